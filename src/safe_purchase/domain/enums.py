"""Domain enumerations for the Safe Purchase escrow.

These enums define the canonical states and audit event types used throughout
the system. They are framework-agnostic (no FastAPI, no pydantic imports).
"""

import enum


class EscrowStatus(enum.StrEnum):
    """Lifecycle states of one sale.

    State transitions are enforced by the EscrowStateMachine guard.
    See domain/state_machine.py for the transition table.
    """

    LISTED = "LISTED"
    PURCHASED = "PURCHASED"
    DELIVERY_CONFIRMED = "DELIVERY_CONFIRMED"
    DELIVERY_OVERDUE_SETTLED = "DELIVERY_OVERDUE_SETTLED"
    RETURN_ISSUED = "RETURN_ISSUED"
    RETURN_CONFIRMED = "RETURN_CONFIRMED"
    RETURN_RECLAIMED = "RETURN_RECLAIMED"


class EventType(enum.StrEnum):
    """Types of audit events recorded on an EscrowMachine.

    Every successful operation produces exactly one event.
    Rejected operations produce none.
    """

    # Listing
    LISTED = "LISTED"
    PRICE_CHANGED = "PRICE_CHANGED"

    # Forward path
    PURCHASED = "PURCHASED"
    DELIVERY_CONFIRMED = "DELIVERY_CONFIRMED"
    DELIVERY_CONFIRMED_LATE = "DELIVERY_CONFIRMED_LATE"
    SELLER_RECLAIMED = "SELLER_RECLAIMED"

    # Return path
    RETURN_ISSUED = "RETURN_ISSUED"
    RETURN_CONFIRMED = "RETURN_CONFIRMED"
    RETURN_RECLAIMED = "RETURN_RECLAIMED"
