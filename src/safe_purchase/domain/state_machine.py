"""Escrow Phase State Machine Guard.

Uses python-statemachine to enforce legal phase transitions at the domain level.
Whatever the API or the service layer does, an illegal transition
(e.g., LISTED -> RETURN_ISSUED) will raise TransitionNotAllowed.

The state machine is instantiated per operation from the escrow's current
status and validates the transition before the new status is committed.

Transition table:
    LISTED                    -> PURCHASED                 (purchase)
    PURCHASED                 -> DELIVERY_CONFIRMED        (confirm_on_time)
    PURCHASED                 -> DELIVERY_OVERDUE_SETTLED  (confirm_late)
    PURCHASED                 -> DELIVERY_OVERDUE_SETTLED  (seller_reclaims)
    DELIVERY_CONFIRMED        -> RETURN_ISSUED             (issue_return)
    DELIVERY_OVERDUE_SETTLED  -> RETURN_ISSUED             (issue_return)
    RETURN_ISSUED             -> RETURN_CONFIRMED          (return_confirmed)
    RETURN_ISSUED             -> RETURN_RECLAIMED          (buyer_reclaims_return)
"""

from __future__ import annotations

from statemachine import State, StateMachine


class EscrowStateMachine(StateMachine):
    """State machine that guards the escrow sale lifecycle.

    Usage:
        sm = EscrowStateMachine(current_status="PURCHASED")
        sm.confirm_on_time()  # transitions to DELIVERY_CONFIRMED
        sm.status             # "DELIVERY_CONFIRMED"
    """

    # --- States ---
    LISTED = State("Listed", value="LISTED", initial=True)
    PURCHASED = State("Purchased", value="PURCHASED")
    DELIVERY_CONFIRMED = State("Delivery confirmed", value="DELIVERY_CONFIRMED")
    DELIVERY_OVERDUE_SETTLED = State(
        "Delivery overdue settled", value="DELIVERY_OVERDUE_SETTLED"
    )
    RETURN_ISSUED = State("Return issued", value="RETURN_ISSUED")
    RETURN_CONFIRMED = State("Return confirmed", value="RETURN_CONFIRMED", final=True)
    RETURN_RECLAIMED = State("Return reclaimed", value="RETURN_RECLAIMED", final=True)

    # --- Events / Transitions ---

    # Purchase
    purchase = LISTED.to(PURCHASED)

    # Delivery resolution
    confirm_on_time = PURCHASED.to(DELIVERY_CONFIRMED)
    confirm_late = PURCHASED.to(DELIVERY_OVERDUE_SETTLED)
    seller_reclaims = PURCHASED.to(DELIVERY_OVERDUE_SETTLED)

    # Returns
    issue_return = DELIVERY_CONFIRMED.to(RETURN_ISSUED) | DELIVERY_OVERDUE_SETTLED.to(
        RETURN_ISSUED
    )
    return_confirmed = RETURN_ISSUED.to(RETURN_CONFIRMED)
    buyer_reclaims_return = RETURN_ISSUED.to(RETURN_RECLAIMED)

    def __init__(self, current_status: str = "LISTED") -> None:
        """Initialize the state machine at a given status.

        Args:
            current_status: The current EscrowStatus value (e.g., "PURCHASED").
                           Must match one of the State values exactly.
        """
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown status '{current_status}'. Valid states: {valid}"
            )
        super().__init__(start_value=current_status)

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches EscrowStatus)."""
        return str(self.current_state.value)

    def get_allowed_events(self) -> list[str]:
        """Return a list of event names that can fire from the current state."""
        return [event.id for event in self.allowed_events]


def validate_transition(current_status: str, event_name: str) -> str:
    """Validate a phase transition and return the new status.

    Creates a temporary state machine, fires the named event, and returns the
    resulting status string.

    Raises:
        TransitionNotAllowed: If the transition is illegal.
        ValueError: If the status or event name is invalid.
    """
    sm = EscrowStateMachine(current_status=current_status)

    event_method = getattr(sm, event_name, None)
    if event_name not in {e.id for e in sm.events} or not callable(event_method):
        raise ValueError(
            f"Unknown event '{event_name}'. "
            f"Allowed events from {current_status}: {sm.get_allowed_events()}"
        )

    event_method()
    return sm.status
