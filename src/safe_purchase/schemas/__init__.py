"""Pydantic API schemas."""

from safe_purchase.schemas.escrow import (
    ChangePriceRequest,
    CreditRequest,
    EscrowEventResponse,
    EscrowResponse,
    EscrowStatusResponse,
    HealthResponse,
    LedgerBalanceResponse,
    ListItemRequest,
    PaymentRequest,
)

__all__ = [
    "ChangePriceRequest",
    "CreditRequest",
    "EscrowEventResponse",
    "EscrowResponse",
    "EscrowStatusResponse",
    "HealthResponse",
    "LedgerBalanceResponse",
    "ListItemRequest",
    "PaymentRequest",
]
