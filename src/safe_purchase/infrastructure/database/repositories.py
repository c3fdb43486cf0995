"""Repository classes for database access.

Repositories encapsulate all SQL queries and provide a clean interface
to the service layer. They accept an AsyncSession and never manage
their own transactions (that's the caller's responsibility).

The EscrowMachine never sees a session. An operation runs against a machine
restored from its row and an InMemoryLedger staged from the balances of the
accounts it may touch; afterwards both are written back into the same session.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import func, or_, select

from safe_purchase.domain.custody import CustodyAccount
from safe_purchase.domain.enums import EscrowStatus, EventType
from safe_purchase.domain.escrow_machine import EscrowEvent, EscrowMachine, EscrowState
from safe_purchase.domain.terms import EscrowTerms
from safe_purchase.infrastructure.database.orm_models import (
    EscrowEventRecord,
    EscrowRecord,
    LedgerAccount,
)
from safe_purchase.infrastructure.ledger import InMemoryLedger

if TYPE_CHECKING:
    import uuid
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession

    from safe_purchase.domain.ledger_protocol import Clock, Ledger


class EscrowRepository:
    """Data access for escrows and their audit trail."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, machine: EscrowMachine) -> EscrowRecord:
        """Insert a newly listed escrow together with its first event."""
        terms = machine.terms
        record = EscrowRecord(
            id=machine.escrow_id,
            confirmation_window=terms.confirmation_window,
            reclaim_window=terms.reclaim_window,
            return_window=terms.return_window,
            return_confirm_window=terms.return_confirm_window,
            events=[],
        )
        _copy_state(record, machine.state)
        record.events.extend(_to_rows(machine.escrow_id, machine.events))
        self._session.add(record)
        await self._session.flush()
        return record

    async def get_by_id(
        self, escrow_id: uuid.UUID, *, for_update: bool = False
    ) -> EscrowRecord | None:
        """Fetch an escrow by its UUID.

        With ``for_update`` the row is locked until the transaction ends, so
        two operations on one escrow never interleave (on PostgreSQL; SQLite
        serializes writers on its own).
        """
        stmt = select(EscrowRecord).where(EscrowRecord.id == escrow_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_all(self) -> list[EscrowRecord]:
        result = await self._session.execute(
            select(EscrowRecord).order_by(EscrowRecord.created_at.asc())
        )
        return list(result.scalars().all())

    async def get_by_status(self, status: EscrowStatus) -> list[EscrowRecord]:
        """Fetch all escrows currently in ``status``."""
        result = await self._session.execute(
            select(EscrowRecord)
            .where(EscrowRecord.status == status.value)
            .order_by(EscrowRecord.created_at.asc())
        )
        return list(result.scalars().all())

    async def get_by_party(
        self, party: str, status: EscrowStatus | None = None
    ) -> list[EscrowRecord]:
        """Fetch all escrows where ``party`` is the seller or the buyer."""
        stmt = select(EscrowRecord).where(
            or_(EscrowRecord.seller == party, EscrowRecord.buyer == party)
        )
        if status is not None:
            stmt = stmt.where(EscrowRecord.status == status.value)
        result = await self._session.execute(stmt.order_by(EscrowRecord.created_at.asc()))
        return list(result.scalars().all())

    async def count(self) -> int:
        result = await self._session.execute(select(func.count()).select_from(EscrowRecord))
        return result.scalar_one()

    async def save(self, record: EscrowRecord, machine: EscrowMachine) -> EscrowRecord:
        """Write the machine's committed state and its new events into ``record``."""
        _copy_state(record, machine.state)
        new_events = machine.events[len(record.events):]
        record.events.extend(_to_rows(record.id, new_events))
        await self._session.flush()
        return record


class LedgerRepository:
    """Data access for ledger account balances."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_many(
        self, accounts: Iterable[str], *, for_update: bool = False
    ) -> dict[str, LedgerAccount]:
        """Fetch the rows of ``accounts``; accounts without a row are omitted.

        Rows are locked in account order so concurrent operations that share
        accounts always acquire them in the same sequence.
        """
        names = sorted(set(accounts))
        stmt = (
            select(LedgerAccount)
            .where(LedgerAccount.account.in_(names))
            .order_by(LedgerAccount.account)
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        return {row.account: row for row in result.scalars().all()}

    async def balance_of(self, account: str) -> int:
        row = await self._session.get(LedgerAccount, account)
        return row.balance if row is not None else 0

    async def credit(self, account: str, amount: int) -> int:
        """Add funds to an account from outside the escrow system."""
        if amount <= 0:
            raise ValueError(f"Credit amount must be positive: {amount}")
        row = await self._get_or_create(account)
        row.balance += amount
        await self._session.flush()
        return row.balance

    async def set_rejecting(self, account: str, rejecting: bool = True) -> None:
        """Make ``account`` refuse (or accept again) incoming payouts."""
        row = await self._get_or_create(account)
        row.rejects_incoming = rejecting
        await self._session.flush()

    async def stage(self, accounts: Iterable[str]) -> InMemoryLedger:
        """Lock ``accounts`` and copy their balances into a working ledger."""
        rows = await self.get_many(accounts, for_update=True)
        ledger = InMemoryLedger({name: row.balance for name, row in rows.items()})
        for name, row in rows.items():
            if row.rejects_incoming:
                ledger.reject_incoming(name)
        return ledger

    async def write_back(self, ledger: InMemoryLedger) -> None:
        """Persist every balance held by a working ledger from ``stage``."""
        for account, balance in ledger.balances().items():
            row = await self._session.get(LedgerAccount, account)
            if row is None:
                if balance == 0:
                    continue
                row = LedgerAccount(account=account, balance=0, rejects_incoming=False)
                self._session.add(row)
            row.balance = balance
        await self._session.flush()

    async def _get_or_create(self, account: str) -> LedgerAccount:
        row = await self._session.get(LedgerAccount, account)
        if row is None:
            row = LedgerAccount(account=account, balance=0, rejects_incoming=False)
            self._session.add(row)
        return row


# ---------------------------------------------------------------------------
# Row <-> domain mapping
# ---------------------------------------------------------------------------


def restore_machine(record: EscrowRecord, *, ledger: Ledger, clock: Clock) -> EscrowMachine:
    """Rebuild the EscrowMachine stored in ``record``."""
    state = EscrowState(
        seller=record.seller,
        product_name=record.product_name,
        price=record.price,
        security_deposit=record.security_deposit,
        buyer=record.buyer,
        purchase_timestamp=record.purchase_timestamp,
        delivery_confirmation_timestamp=record.delivery_confirmation_timestamp,
        return_timestamp=record.return_timestamp,
        return_in_progress=record.return_in_progress,
        status=EscrowStatus(record.status),
        custody=CustodyAccount(record.custody_balance),
    )
    terms = EscrowTerms(
        security_deposit=record.security_deposit,
        confirmation_window=record.confirmation_window,
        reclaim_window=record.reclaim_window,
        return_window=record.return_window,
        return_confirm_window=record.return_confirm_window,
    )
    return EscrowMachine(
        state,
        terms=terms,
        ledger=ledger,
        clock=clock,
        escrow_id=record.id,
        events=[to_domain_event(row) for row in record.events],
    )


def to_domain_event(row: EscrowEventRecord) -> EscrowEvent:
    return EscrowEvent(
        sequence=row.sequence,
        event_type=EventType(row.event_type),
        old_status=EscrowStatus(row.old_status) if row.old_status else None,
        new_status=EscrowStatus(row.new_status),
        actor=row.actor,
        timestamp=row.timestamp,
        metadata=row.metadata_json or {},
    )


def _copy_state(record: EscrowRecord, state: EscrowState) -> None:
    record.seller = state.seller
    record.buyer = state.buyer
    record.product_name = state.product_name
    record.price = state.price
    record.security_deposit = state.security_deposit
    record.custody_balance = state.custody.balance
    record.status = state.status.value
    record.purchase_timestamp = state.purchase_timestamp
    record.delivery_confirmation_timestamp = state.delivery_confirmation_timestamp
    record.return_timestamp = state.return_timestamp
    record.return_in_progress = state.return_in_progress


def _to_rows(escrow_id: uuid.UUID, events: Iterable[EscrowEvent]) -> list[EscrowEventRecord]:
    return [
        EscrowEventRecord(
            escrow_id=escrow_id,
            sequence=event.sequence,
            event_type=event.event_type.value,
            old_status=event.old_status.value if event.old_status else None,
            new_status=event.new_status.value,
            actor=event.actor,
            timestamp=event.timestamp,
            metadata_json=event.metadata,
        )
        for event in events
    ]
