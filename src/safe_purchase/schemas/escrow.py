"""Pydantic schemas for the Escrow API.

These schemas define the request/response shapes for the REST API. They are
separate from the domain dataclasses to keep clean boundaries between the API
and the state machine. The caller identity is not part of any request body:
it arrives in the X-Caller-ID header.
"""

from __future__ import annotations

import uuid

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class ListItemRequest(BaseModel):
    """Request body for listing a product. The caller becomes the seller."""

    product_name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Human-readable name of the product for sale",
        examples=["Mechanical keyboard"],
    )
    price: int = Field(
        ...,
        ge=0,
        description="Price in the ledger's base unit",
        examples=[1000],
    )


class ChangePriceRequest(BaseModel):
    """Request body for re-pricing a listed product."""

    new_price: int = Field(..., ge=0, description="New price in the ledger's base unit")


class PaymentRequest(BaseModel):
    """Request body for operations that send funds into escrow custody."""

    amount_sent: int = Field(
        ...,
        ge=0,
        description=(
            "Funds sent with the call. Must equal price + security deposit for "
            "a purchase, and price for a return."
        ),
    )


class CreditRequest(BaseModel):
    """Request body for crediting faucet funds to a ledger account."""

    amount: int = Field(..., gt=0, description="Amount to credit")


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class EscrowResponse(BaseModel):
    """Response schema for one escrow."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    seller: str
    buyer: str | None
    product_name: str
    price: int
    security_deposit: int
    status: str
    purchase_timestamp: int | None
    delivery_confirmation_timestamp: int | None
    return_timestamp: int | None
    return_in_progress: bool
    custody_balance: int


class EscrowEventResponse(BaseModel):
    """Response schema for an audit event."""

    model_config = ConfigDict(from_attributes=True)

    sequence: int
    event_type: str
    old_status: str | None
    new_status: str
    actor: str
    timestamp: int
    metadata: dict = Field(default_factory=dict)


class EscrowStatusResponse(BaseModel):
    """Lightweight status check response."""

    escrow_id: uuid.UUID
    status: str
    return_in_progress: bool
    custody_balance: int
    allowed_events: list[str] = Field(
        description="State machine events that can fire from the current status"
    )


class LedgerBalanceResponse(BaseModel):
    """Balance of one ledger account."""

    account: str
    balance: int


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    database: str = "unknown"
    escrows: int = 0
