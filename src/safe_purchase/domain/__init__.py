"""Domain layer — pure business logic with zero framework dependencies."""

from safe_purchase.domain.custody import CustodyAccount
from safe_purchase.domain.enums import EscrowStatus, EventType
from safe_purchase.domain.escrow_machine import EscrowEvent, EscrowMachine, EscrowState
from safe_purchase.domain.exceptions import (
    AlreadyPurchasedError,
    EscrowError,
    EscrowNotFoundError,
    IncorrectAmountError,
    InsufficientCustodyError,
    InvalidStateTransitionError,
    LedgerError,
    NoReturnIssuedError,
    PaymentFailedError,
    ReturnInProgressError,
    UnauthorizedError,
    WindowExpiredError,
    WindowNotElapsedError,
)
from safe_purchase.domain.ledger_protocol import Clock, Ledger, Payout
from safe_purchase.domain.state_machine import EscrowStateMachine, validate_transition
from safe_purchase.domain.terms import EscrowTerms

__all__ = [
    "CustodyAccount",
    "EscrowStatus",
    "EventType",
    "EscrowEvent",
    "EscrowMachine",
    "EscrowState",
    "AlreadyPurchasedError",
    "EscrowError",
    "EscrowNotFoundError",
    "IncorrectAmountError",
    "InsufficientCustodyError",
    "InvalidStateTransitionError",
    "LedgerError",
    "NoReturnIssuedError",
    "PaymentFailedError",
    "ReturnInProgressError",
    "UnauthorizedError",
    "WindowExpiredError",
    "WindowNotElapsedError",
    "Clock",
    "Ledger",
    "Payout",
    "EscrowStateMachine",
    "validate_transition",
    "EscrowTerms",
]
