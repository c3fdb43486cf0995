"""Escrow REST API routes.

These endpoints provide the HTTP interface to every escrow operation. The
caller identity comes from the X-Caller-ID header; amounts travel in the body.

Routes:
    POST   /api/v1/escrow                        — List a product (caller = seller)
    GET    /api/v1/escrow                        — List escrows
    GET    /api/v1/escrow/{id}                   — Get escrow details
    GET    /api/v1/escrow/{id}/status            — Get lightweight status check
    GET    /api/v1/escrow/{id}/events            — Get audit trail
    POST   /api/v1/escrow/{id}/price             — Seller changes the price
    POST   /api/v1/escrow/{id}/deposit           — Buyer purchases
    POST   /api/v1/escrow/{id}/confirm-delivery  — Buyer confirms delivery
    POST   /api/v1/escrow/{id}/reclaim           — Seller reclaims after the window
    POST   /api/v1/escrow/{id}/return            — Seller issues a return
    POST   /api/v1/escrow/{id}/return/confirm    — Seller confirms the return arrived
    POST   /api/v1/escrow/{id}/return/reclaim    — Buyer reclaims an unconfirmed return
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends

from safe_purchase.api.deps import get_caller, get_escrow_service
from safe_purchase.domain.enums import EscrowStatus
from safe_purchase.schemas.escrow import (
    ChangePriceRequest,
    EscrowEventResponse,
    EscrowResponse,
    EscrowStatusResponse,
    ListItemRequest,
    PaymentRequest,
)
from safe_purchase.services.escrow_service import EscrowService

router = APIRouter(prefix="/api/v1/escrow", tags=["Escrow"])


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=EscrowResponse,
    status_code=201,
    summary="List a product for sale",
)
async def list_item(
    request: ListItemRequest,
    caller: str = Depends(get_caller),
    svc: EscrowService = Depends(get_escrow_service),
) -> EscrowResponse:
    """Create a new escrow in LISTED state with the caller as seller."""
    record = await svc.list_item(
        seller=caller,
        product_name=request.product_name,
        price=request.price,
    )
    return EscrowResponse.model_validate(record)


@router.post(
    "/{escrow_id}/price",
    response_model=EscrowResponse,
    summary="Change the price",
)
async def change_price(
    escrow_id: uuid.UUID,
    request: ChangePriceRequest,
    caller: str = Depends(get_caller),
    svc: EscrowService = Depends(get_escrow_service),
) -> EscrowResponse:
    """Seller re-prices the product. Only valid before a purchase."""
    record = await svc.change_price(escrow_id, caller, request.new_price)
    return EscrowResponse.model_validate(record)


# ---------------------------------------------------------------------------
# Purchase and delivery
# ---------------------------------------------------------------------------


@router.post(
    "/{escrow_id}/deposit",
    response_model=EscrowResponse,
    summary="Purchase the product",
)
async def deposit(
    escrow_id: uuid.UUID,
    request: PaymentRequest,
    caller: str = Depends(get_caller),
    svc: EscrowService = Depends(get_escrow_service),
) -> EscrowResponse:
    """Escrow exactly price + security deposit. Transitions LISTED -> PURCHASED."""
    record = await svc.deposit(escrow_id, caller, request.amount_sent)
    return EscrowResponse.model_validate(record)


@router.post(
    "/{escrow_id}/confirm-delivery",
    response_model=EscrowResponse,
    summary="Confirm delivery",
)
async def confirm_delivery(
    escrow_id: uuid.UUID,
    caller: str = Depends(get_caller),
    svc: EscrowService = Depends(get_escrow_service),
) -> EscrowResponse:
    """Buyer confirms receipt.

    Transitions PURCHASED -> DELIVERY_CONFIRMED within the confirmation
    window, PURCHASED -> DELIVERY_OVERDUE_SETTLED after it.
    """
    record = await svc.confirm_delivery(escrow_id, caller)
    return EscrowResponse.model_validate(record)


@router.post(
    "/{escrow_id}/reclaim",
    response_model=EscrowResponse,
    summary="Seller reclaims unconfirmed funds",
)
async def reclaim_as_seller(
    escrow_id: uuid.UUID,
    caller: str = Depends(get_caller),
    svc: EscrowService = Depends(get_escrow_service),
) -> EscrowResponse:
    """Transitions PURCHASED -> DELIVERY_OVERDUE_SETTLED after the reclaim window."""
    record = await svc.reclaim_as_seller(escrow_id, caller)
    return EscrowResponse.model_validate(record)


# ---------------------------------------------------------------------------
# Returns
# ---------------------------------------------------------------------------


@router.post(
    "/{escrow_id}/return",
    response_model=EscrowResponse,
    summary="Issue a return",
)
async def issue_return(
    escrow_id: uuid.UUID,
    request: PaymentRequest,
    caller: str = Depends(get_caller),
    svc: EscrowService = Depends(get_escrow_service),
) -> EscrowResponse:
    """Seller escrows the price again and opens a return."""
    record = await svc.issue_return(escrow_id, caller, request.amount_sent)
    return EscrowResponse.model_validate(record)


@router.post(
    "/{escrow_id}/return/confirm",
    response_model=EscrowResponse,
    summary="Confirm the returned product arrived",
)
async def confirm_return_received(
    escrow_id: uuid.UUID,
    caller: str = Depends(get_caller),
    svc: EscrowService = Depends(get_escrow_service),
) -> EscrowResponse:
    record = await svc.confirm_return_received(escrow_id, caller)
    return EscrowResponse.model_validate(record)


@router.post(
    "/{escrow_id}/return/reclaim",
    response_model=EscrowResponse,
    summary="Buyer reclaims an unconfirmed return",
)
async def buyer_reclaim_return(
    escrow_id: uuid.UUID,
    caller: str = Depends(get_caller),
    svc: EscrowService = Depends(get_escrow_service),
) -> EscrowResponse:
    record = await svc.buyer_reclaim_return(escrow_id, caller)
    return EscrowResponse.model_validate(record)


# ---------------------------------------------------------------------------
# Read endpoints
# ---------------------------------------------------------------------------


@router.get(
    "",
    response_model=list[EscrowResponse],
    summary="List escrows",
)
async def list_escrows(
    status: EscrowStatus | None = None,
    party: str | None = None,
    svc: EscrowService = Depends(get_escrow_service),
) -> list[EscrowResponse]:
    """Return all escrows, optionally filtered by status or participant."""
    return [
        EscrowResponse.model_validate(r)
        for r in await svc.list_escrows(status=status, party=party)
    ]


@router.get(
    "/{escrow_id}",
    response_model=EscrowResponse,
    summary="Get escrow details",
)
async def get_escrow(
    escrow_id: uuid.UUID,
    svc: EscrowService = Depends(get_escrow_service),
) -> EscrowResponse:
    """Fetch an escrow by its UUID."""
    return EscrowResponse.model_validate(await svc.get_escrow(escrow_id))


@router.get(
    "/{escrow_id}/status",
    response_model=EscrowStatusResponse,
    summary="Get lightweight status check",
)
async def get_status(
    escrow_id: uuid.UUID,
    svc: EscrowService = Depends(get_escrow_service),
) -> EscrowStatusResponse:
    """Return the current status and allowed next phase events."""
    return EscrowStatusResponse(**await svc.get_status(escrow_id))


@router.get(
    "/{escrow_id}/events",
    response_model=list[EscrowEventResponse],
    summary="Get audit trail",
)
async def get_events(
    escrow_id: uuid.UUID,
    svc: EscrowService = Depends(get_escrow_service),
) -> list[EscrowEventResponse]:
    """Return the full audit trail for an escrow."""
    return [EscrowEventResponse.model_validate(e) for e in await svc.get_events(escrow_id)]
