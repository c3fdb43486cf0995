"""EscrowMachine: the state machine for one remote purchase.

One instance mediates one sale between one Seller and one Buyer:

    LISTED -> PURCHASED -> {DELIVERY_CONFIRMED, DELIVERY_OVERDUE_SETTLED}
           -> [RETURN_ISSUED -> {RETURN_CONFIRMED, RETURN_RECLAIMED}]

Every operation is a single check-and-mutate step under a per-instance lock:

    1. role, flag, amount and deadline guards
    2. custody arithmetic for any outgoing payment
    3. phase transition guard (EscrowStateMachine)
    4. ledger transfer
    5. commit of the staged state and the audit event

The new state is staged as an immutable EscrowState and only committed after
the ledger transfer succeeded. A failed transfer discards the staged state,
so no field is ever persisted without its paired payment.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from statemachine.exceptions import TransitionNotAllowed

from safe_purchase.domain.custody import CustodyAccount
from safe_purchase.domain.enums import EscrowStatus, EventType
from safe_purchase.domain.exceptions import (
    AlreadyPurchasedError,
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
from safe_purchase.domain.ledger_protocol import Payout
from safe_purchase.domain.state_machine import EscrowStateMachine, validate_transition
from safe_purchase.domain.terms import elapsed_since, has_elapsed, is_within

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from safe_purchase.domain.ledger_protocol import Clock, Ledger
    from safe_purchase.domain.terms import EscrowTerms


@dataclass(frozen=True)
class EscrowState:
    """Everything persisted for one sale."""

    seller: str
    product_name: str
    price: int
    security_deposit: int
    buyer: str | None = None
    purchase_timestamp: int | None = None
    delivery_confirmation_timestamp: int | None = None
    return_timestamp: int | None = None
    return_in_progress: bool = False
    status: EscrowStatus = EscrowStatus.LISTED
    custody: CustodyAccount = field(default_factory=CustodyAccount)

    @property
    def purchase_amount(self) -> int:
        return self.price + self.security_deposit


@dataclass(frozen=True)
class EscrowEvent:
    """One entry of the append-only audit trail."""

    sequence: int
    event_type: EventType
    old_status: EscrowStatus | None
    new_status: EscrowStatus
    actor: str
    timestamp: int
    metadata: dict = field(default_factory=dict)


class EscrowMachine:
    """Escrow for a single product, seller and buyer."""

    def __init__(
        self,
        state: EscrowState,
        terms: EscrowTerms,
        ledger: Ledger,
        clock: Clock,
        escrow_id: uuid.UUID | None = None,
        events: Iterable[EscrowEvent] = (),
    ) -> None:
        self.escrow_id = escrow_id or uuid.uuid4()
        self._state = state
        self._terms = terms
        self._ledger = ledger
        self._clock = clock
        self._events: list[EscrowEvent] = list(events)
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    @classmethod
    def list_item(
        cls,
        seller: str,
        product_name: str,
        price: int,
        *,
        terms: EscrowTerms,
        ledger: Ledger,
        clock: Clock,
    ) -> EscrowMachine:
        """Create an escrow in LISTED state. No funds move."""
        _check_price(price)
        machine = cls(
            EscrowState(
                seller=seller,
                product_name=product_name,
                price=price,
                security_deposit=terms.security_deposit,
            ),
            terms=terms,
            ledger=ledger,
            clock=clock,
        )
        machine._record(
            EventType.LISTED,
            old_status=None,
            actor=seller,
            timestamp=clock.now(),
            metadata={"product_name": product_name, "price": price},
        )
        return machine

    def change_price(self, caller: str, new_price: int) -> EscrowEvent:
        """Re-price the item. Only the seller, only before a purchase."""
        with self._lock:
            state = self._state
            if state.buyer is not None:
                raise AlreadyPurchasedError()
            self._require_seller(state, caller)
            _check_price(new_price)

            staged = replace(state, price=new_price)
            return self._commit(
                staged,
                EventType.PRICE_CHANGED,
                actor=caller,
                timestamp=self._clock.now(),
                metadata={"old_price": state.price, "new_price": new_price},
            )

    # ------------------------------------------------------------------
    # Purchase
    # ------------------------------------------------------------------

    def deposit(self, caller: str, amount_sent: int) -> EscrowEvent:
        """Buy the item by escrowing exactly price + security deposit."""
        with self._lock:
            state = self._state
            if state.buyer is not None:
                raise AlreadyPurchasedError()
            if amount_sent != state.purchase_amount:
                raise IncorrectAmountError(expected=state.purchase_amount, received=amount_sent)

            now = self._clock.now()
            staged = replace(
                state,
                buyer=caller,
                purchase_timestamp=now,
                status=self._transition(state, "purchase"),
                custody=state.custody.deposit(amount_sent),
            )
            self._collect(caller, amount_sent)
            return self._commit(
                staged,
                EventType.PURCHASED,
                actor=caller,
                timestamp=now,
                metadata={"amount": amount_sent},
            )

    # ------------------------------------------------------------------
    # Delivery resolution
    # ------------------------------------------------------------------

    def confirm_delivery(self, caller: str) -> EscrowEvent:
        """Buyer confirms receipt.

        On time, the seller gets the price and the buyer gets the deposit
        back. Late, the seller gets both and the buyer forfeits the deposit.
        """
        with self._lock:
            state = self._state
            self._require_buyer(state, caller)

            now = self._clock.now()
            if is_within(state.purchase_timestamp, now, self._terms.confirmation_window):
                payouts = _payouts(
                    Payout(state.seller, state.price),
                    Payout(caller, state.security_deposit),
                )
                event_name, event_type = "confirm_on_time", EventType.DELIVERY_CONFIRMED
            else:
                payouts = _payouts(Payout(state.seller, state.purchase_amount))
                event_name, event_type = "confirm_late", EventType.DELIVERY_CONFIRMED_LATE

            staged = replace(
                state,
                delivery_confirmation_timestamp=now,
                custody=self._withdraw(state.custody, payouts),
                status=self._transition(state, event_name),
            )
            self._disburse(payouts)
            return self._commit(
                staged,
                event_type,
                actor=caller,
                timestamp=now,
                metadata={
                    "elapsed": elapsed_since(state.purchase_timestamp, now),
                    "payouts": [p.to_dict() for p in payouts],
                },
            )

    def reclaim_as_seller(self, caller: str) -> EscrowEvent:
        """Seller collects price + deposit once the buyer let the window lapse.

        Before the reclaim window has elapsed the call is rejected with
        WindowNotElapsedError rather than silently doing nothing.
        """
        with self._lock:
            state = self._state
            self._require_seller(state, caller)
            if state.return_in_progress:
                raise ReturnInProgressError()

            now = self._clock.now()
            window = self._terms.reclaim_window
            if not has_elapsed(state.purchase_timestamp, now, window):
                raise WindowNotElapsedError(
                    "reclaim", elapsed_since(state.purchase_timestamp, now), window
                )

            payouts = _payouts(Payout(state.seller, state.purchase_amount))
            staged = replace(
                state,
                custody=self._withdraw(state.custody, payouts),
                status=self._transition(state, "seller_reclaims"),
            )
            self._disburse(payouts)
            return self._commit(
                staged,
                EventType.SELLER_RECLAIMED,
                actor=caller,
                timestamp=now,
                metadata={"payouts": [p.to_dict() for p in payouts]},
            )

    # ------------------------------------------------------------------
    # Returns
    # ------------------------------------------------------------------

    def issue_return(self, caller: str, amount_sent: int) -> EscrowEvent:
        """Seller starts a return by escrowing the product price again."""
        with self._lock:
            state = self._state
            self._require_seller(state, caller)
            if state.return_in_progress:
                raise ReturnInProgressError()
            if amount_sent != state.price:
                raise IncorrectAmountError(expected=state.price, received=amount_sent)

            now = self._clock.now()
            window = self._terms.return_window
            if not is_within(state.delivery_confirmation_timestamp, now, window):
                raise WindowExpiredError(
                    "return", elapsed_since(state.delivery_confirmation_timestamp, now), window
                )

            staged = replace(
                state,
                return_timestamp=now,
                return_in_progress=True,
                custody=state.custody.deposit(amount_sent),
                status=self._transition(state, "issue_return"),
            )
            self._collect(caller, amount_sent)
            return self._commit(
                staged,
                EventType.RETURN_ISSUED,
                actor=caller,
                timestamp=now,
                metadata={"amount": amount_sent},
            )

    def confirm_return_received(self, caller: str) -> EscrowEvent:
        """Seller confirms the returned good arrived; the buyer is refunded."""
        with self._lock:
            state = self._state
            self._require_seller(state, caller)
            if not state.return_in_progress:
                raise NoReturnIssuedError()
            return self._settle_return(
                state, caller, "return_confirmed", EventType.RETURN_CONFIRMED, self._clock.now()
            )

    def buyer_reclaim_return(self, caller: str) -> EscrowEvent:
        """Buyer takes the refund after the seller failed to confirm in time."""
        with self._lock:
            state = self._state
            self._require_buyer(state, caller)
            if not state.return_in_progress:
                raise NoReturnIssuedError()

            now = self._clock.now()
            window = self._terms.return_confirm_window
            if not has_elapsed(state.return_timestamp, now, window):
                raise WindowNotElapsedError(
                    "return confirmation", elapsed_since(state.return_timestamp, now), window
                )
            return self._settle_return(
                state, caller, "buyer_reclaims_return", EventType.RETURN_RECLAIMED, now
            )

    def _settle_return(
        self,
        state: EscrowState,
        caller: str,
        event_name: str,
        event_type: EventType,
        now: int,
    ) -> EscrowEvent:
        # buyer is always set once a return exists
        payouts = _payouts(Payout(state.buyer or "", state.price))
        staged = replace(
            state,
            return_in_progress=False,
            custody=self._withdraw(state.custody, payouts),
            status=self._transition(state, event_name),
        )
        self._disburse(payouts)
        return self._commit(
            staged,
            event_type,
            actor=caller,
            timestamp=now,
            metadata={"payouts": [p.to_dict() for p in payouts]},
        )

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    @property
    def state(self) -> EscrowState:
        return self._state

    @property
    def terms(self) -> EscrowTerms:
        return self._terms

    @property
    def seller(self) -> str:
        return self._state.seller

    @property
    def buyer(self) -> str | None:
        return self._state.buyer

    @property
    def product_name(self) -> str:
        return self._state.product_name

    @property
    def price(self) -> int:
        return self._state.price

    @property
    def security_deposit(self) -> int:
        return self._state.security_deposit

    @property
    def purchase_timestamp(self) -> int | None:
        return self._state.purchase_timestamp

    @property
    def delivery_confirmation_timestamp(self) -> int | None:
        return self._state.delivery_confirmation_timestamp

    @property
    def return_timestamp(self) -> int | None:
        return self._state.return_timestamp

    @property
    def return_in_progress(self) -> bool:
        return self._state.return_in_progress

    @property
    def status(self) -> EscrowStatus:
        return self._state.status

    @property
    def custody_balance(self) -> int:
        return self._state.custody.balance

    @property
    def events(self) -> tuple[EscrowEvent, ...]:
        return tuple(self._events)

    @property
    def allowed_events(self) -> list[str]:
        """Phase events that can fire from the current status."""
        return EscrowStateMachine(current_status=self._state.status).get_allowed_events()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _require_seller(state: EscrowState, caller: str) -> None:
        if caller != state.seller:
            raise UnauthorizedError(caller, "seller")

    @staticmethod
    def _require_buyer(state: EscrowState, caller: str) -> None:
        if state.buyer is None or caller != state.buyer:
            raise UnauthorizedError(caller, "buyer")

    @staticmethod
    def _transition(state: EscrowState, event_name: str) -> EscrowStatus:
        try:
            return EscrowStatus(validate_transition(state.status, event_name))
        except TransitionNotAllowed as err:
            raise InvalidStateTransitionError(state.status, event_name) from err

    @staticmethod
    def _withdraw(custody: CustodyAccount, payouts: Sequence[Payout]) -> CustodyAccount:
        try:
            return custody.withdraw(sum(p.amount for p in payouts))
        except InsufficientCustodyError as err:
            raise PaymentFailedError(err.message) from err

    def _collect(self, payer: str, amount: int) -> None:
        try:
            self._ledger.collect(payer, amount)
        except LedgerError as err:
            raise PaymentFailedError(
                f"Could not collect {amount} from {payer}: {err.message}"
            ) from err

    def _disburse(self, payouts: Sequence[Payout]) -> None:
        if not payouts:
            return
        try:
            self._ledger.disburse(payouts)
        except LedgerError as err:
            raise PaymentFailedError(f"Payout failed: {err.message}") from err

    def _commit(
        self,
        staged: EscrowState,
        event_type: EventType,
        actor: str,
        timestamp: int,
        metadata: dict,
    ) -> EscrowEvent:
        old_status = self._state.status
        self._state = staged
        return self._record(event_type, old_status, actor, timestamp, metadata)

    def _record(
        self,
        event_type: EventType,
        old_status: EscrowStatus | None,
        actor: str,
        timestamp: int,
        metadata: dict,
    ) -> EscrowEvent:
        event = EscrowEvent(
            sequence=len(self._events) + 1,
            event_type=event_type,
            old_status=old_status,
            new_status=self._state.status,
            actor=actor,
            timestamp=timestamp,
            metadata=metadata,
        )
        self._events.append(event)
        return event


def _check_price(price: int) -> None:
    if price < 0:
        raise ValueError(f"Price cannot be negative: {price}")


def _payouts(*payouts: Payout) -> list[Payout]:
    """Drop zero-amount payouts; they move no funds."""
    return [p for p in payouts if p.amount > 0]
