"""Escrow Service — use-case layer for the escrow lifecycle.

This is the application layer that coordinates between:
    - Domain EscrowMachine (guards, deadlines, custody)
    - Repositories (escrow rows, audit trail, ledger balances)
    - Structured logging (one log entry per successful transition)

Every mutating call is one unit of work on the caller's session: the escrow
row is locked, the balances of every party are staged into a working ledger,
the machine runs, and the new escrow state, its event and the moved balances
are flushed together. Committing is the caller's job (the request dependency
or the simulation), so state and funds are persisted in one transaction.

The REST routes and the simulation script both call into this service,
ensuring a single source of truth for all business rules.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from safe_purchase.domain.enums import EscrowStatus
from safe_purchase.domain.escrow_machine import EscrowMachine
from safe_purchase.domain.exceptions import EscrowNotFoundError
from safe_purchase.domain.state_machine import EscrowStateMachine
from safe_purchase.infrastructure.database.repositories import (
    EscrowRepository,
    LedgerRepository,
    restore_machine,
    to_domain_event,
)
from safe_purchase.infrastructure.ledger import InMemoryLedger
from safe_purchase.logging_config import get_logger

if TYPE_CHECKING:
    import uuid
    from collections.abc import Callable

    from sqlalchemy.ext.asyncio import AsyncSession

    from safe_purchase.domain.escrow_machine import EscrowEvent
    from safe_purchase.domain.ledger_protocol import Clock
    from safe_purchase.domain.terms import EscrowTerms
    from safe_purchase.infrastructure.database.orm_models import EscrowRecord

logger = get_logger(__name__)


class EscrowService:
    """Manages escrow machines for many independent sales."""

    def __init__(self, session: AsyncSession, clock: Clock, terms: EscrowTerms) -> None:
        self._session = session
        self._clock = clock
        self._terms = terms
        self._escrow_repo = EscrowRepository(session)
        self._ledger_repo = LedgerRepository(session)

    @property
    def terms(self) -> EscrowTerms:
        return self._terms

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def list_item(self, seller: str, product_name: str, price: int) -> EscrowRecord:
        """Create a new escrow in LISTED state."""
        machine = EscrowMachine.list_item(
            seller,
            product_name,
            price,
            terms=self._terms,
            ledger=InMemoryLedger(),
            clock=self._clock,
        )
        record = await self._escrow_repo.create(machine)

        logger.info(
            "escrow.listed",
            escrow_id=str(record.id),
            seller=seller,
            product_name=product_name,
            price=price,
            security_deposit=record.security_deposit,
        )
        return record

    async def change_price(
        self, escrow_id: uuid.UUID, caller: str, new_price: int
    ) -> EscrowRecord:
        return await self._apply(
            escrow_id,
            caller,
            lambda m: m.change_price(caller, new_price),
            "escrow.price_changed",
        )

    # ------------------------------------------------------------------
    # Purchase and delivery
    # ------------------------------------------------------------------

    async def deposit(self, escrow_id: uuid.UUID, caller: str, amount_sent: int) -> EscrowRecord:
        """Buyer escrows price + security deposit. LISTED -> PURCHASED."""
        return await self._apply(
            escrow_id, caller, lambda m: m.deposit(caller, amount_sent), "escrow.purchased"
        )

    async def confirm_delivery(self, escrow_id: uuid.UUID, caller: str) -> EscrowRecord:
        """Buyer confirms delivery, on time or late."""
        return await self._apply(
            escrow_id,
            caller,
            lambda m: m.confirm_delivery(caller),
            "escrow.delivery_confirmed",
        )

    async def reclaim_as_seller(self, escrow_id: uuid.UUID, caller: str) -> EscrowRecord:
        """Seller reclaims funds after the buyer's window lapsed."""
        return await self._apply(
            escrow_id,
            caller,
            lambda m: m.reclaim_as_seller(caller),
            "escrow.seller_reclaimed",
        )

    # ------------------------------------------------------------------
    # Returns
    # ------------------------------------------------------------------

    async def issue_return(
        self, escrow_id: uuid.UUID, caller: str, amount_sent: int
    ) -> EscrowRecord:
        return await self._apply(
            escrow_id,
            caller,
            lambda m: m.issue_return(caller, amount_sent),
            "escrow.return_issued",
        )

    async def confirm_return_received(self, escrow_id: uuid.UUID, caller: str) -> EscrowRecord:
        return await self._apply(
            escrow_id,
            caller,
            lambda m: m.confirm_return_received(caller),
            "escrow.return_confirmed",
        )

    async def buyer_reclaim_return(self, escrow_id: uuid.UUID, caller: str) -> EscrowRecord:
        return await self._apply(
            escrow_id,
            caller,
            lambda m: m.buyer_reclaim_return(caller),
            "escrow.return_reclaimed",
        )

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get_escrow(self, escrow_id: uuid.UUID) -> EscrowRecord:
        """Get an escrow or raise."""
        return await self._get_or_raise(escrow_id)

    async def list_escrows(
        self,
        status: EscrowStatus | None = None,
        party: str | None = None,
    ) -> list[EscrowRecord]:
        """List escrows, optionally filtered by status and/or participant."""
        if party is not None:
            return await self._escrow_repo.get_by_party(party, status=status)
        if status is not None:
            return await self._escrow_repo.get_by_status(status)
        return await self._escrow_repo.get_all()

    async def count_escrows(self) -> int:
        return await self._escrow_repo.count()

    async def get_status(self, escrow_id: uuid.UUID) -> dict:
        """Get escrow status with allowed phase events."""
        record = await self._get_or_raise(escrow_id)
        status = EscrowStatus(record.status)
        return {
            "escrow_id": record.id,
            "status": status,
            "return_in_progress": record.return_in_progress,
            "custody_balance": record.custody_balance,
            "allowed_events": EscrowStateMachine(current_status=status).get_allowed_events(),
        }

    async def get_events(self, escrow_id: uuid.UUID) -> list[EscrowEvent]:
        """Get the audit trail."""
        record = await self._get_or_raise(escrow_id)
        return [to_domain_event(row) for row in record.events]

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _get_or_raise(
        self, escrow_id: uuid.UUID, *, for_update: bool = False
    ) -> EscrowRecord:
        record = await self._escrow_repo.get_by_id(escrow_id, for_update=for_update)
        if record is None:
            raise EscrowNotFoundError(str(escrow_id))
        return record

    async def _apply(
        self,
        escrow_id: uuid.UUID,
        caller: str,
        operation: Callable[[EscrowMachine], EscrowEvent],
        log_name: str,
    ) -> EscrowRecord:
        """Run one machine operation and stage its outcome in the session.

        Nothing is written to the session before the operation succeeds, so a
        rejected or failed call leaves the transaction untouched.
        """
        record = await self._get_or_raise(escrow_id, for_update=True)
        parties = {record.seller, caller}
        if record.buyer is not None:
            parties.add(record.buyer)
        ledger = await self._ledger_repo.stage(parties)

        machine = restore_machine(record, ledger=ledger, clock=self._clock)
        event = operation(machine)

        await self._ledger_repo.write_back(ledger)
        await self._escrow_repo.save(record, machine)
        self._log_transition(log_name, machine, event)
        return record

    @staticmethod
    def _log_transition(name: str, machine: EscrowMachine, event: EscrowEvent) -> None:
        logger.info(
            name,
            escrow_id=str(machine.escrow_id),
            event_type=str(event.event_type),
            old_status=str(event.old_status) if event.old_status else None,
            new_status=str(event.new_status),
            actor=event.actor,
            custody_balance=machine.custody_balance,
            **event.metadata,
        )
