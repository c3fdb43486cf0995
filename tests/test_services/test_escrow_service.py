"""Tests for the EscrowService use-case layer, against an in-memory SQLite database."""

from __future__ import annotations

import uuid

import pytest

from safe_purchase.domain.enums import EscrowStatus, EventType
from safe_purchase.domain.exceptions import (
    EscrowNotFoundError,
    PaymentFailedError,
    UnauthorizedError,
    WindowExpiredError,
)
from safe_purchase.domain.terms import EscrowTerms
from safe_purchase.infrastructure.database.engine import (
    create_engine_from_url,
    create_tables,
    make_session_factory,
)
from safe_purchase.infrastructure.database.repositories import LedgerRepository
from safe_purchase.services.escrow_service import EscrowService
from tests.conftest import BUYER, SELLER, STARTING_BALANCE, STRANGER


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_happy_path(self, service: EscrowService, accounts, clock) -> None:
        record = await service.list_item(SELLER, "Mechanical keyboard", 1)
        escrow_id = record.id

        await service.deposit(escrow_id, BUYER, 2)
        clock.set(5)
        await service.confirm_delivery(escrow_id, BUYER)

        escrow = await service.get_escrow(escrow_id)
        assert escrow.status == EscrowStatus.DELIVERY_CONFIRMED
        assert escrow.custody_balance == 0
        assert await accounts.balance_of(SELLER) == STARTING_BALANCE + 1
        assert await accounts.balance_of(BUYER) == STARTING_BALANCE - 1

    @pytest.mark.asyncio
    async def test_return_reclaimed(self, service: EscrowService, accounts, clock) -> None:
        escrow_id = (await service.list_item(SELLER, "Lamp", 1)).id
        await service.deposit(escrow_id, BUYER, 2)
        clock.set(15)
        await service.confirm_delivery(escrow_id, BUYER)
        clock.set(16)
        await service.issue_return(escrow_id, SELLER, 1)
        clock.set(27)
        record = await service.buyer_reclaim_return(escrow_id, BUYER)

        assert record.status == EscrowStatus.RETURN_RECLAIMED
        assert await accounts.balance_of(SELLER) == STARTING_BALANCE + 1
        assert await accounts.balance_of(BUYER) == STARTING_BALANCE - 1

    @pytest.mark.asyncio
    async def test_no_return_after_seller_reclaim(self, service: EscrowService, clock) -> None:
        escrow_id = (await service.list_item(SELLER, "Lamp", 1)).id
        await service.deposit(escrow_id, BUYER, 2)
        clock.set(11)
        await service.reclaim_as_seller(escrow_id, SELLER)

        with pytest.raises(WindowExpiredError, match="never opened"):
            await service.issue_return(escrow_id, SELLER, 1)

    @pytest.mark.asyncio
    async def test_price_change_then_confirmed_return(
        self, service: EscrowService, accounts
    ) -> None:
        escrow_id = (await service.list_item(SELLER, "Lamp", 1)).id
        await service.change_price(escrow_id, SELLER, 3)
        await service.deposit(escrow_id, BUYER, 4)
        await service.confirm_delivery(escrow_id, BUYER)
        await service.issue_return(escrow_id, SELLER, 3)
        record = await service.confirm_return_received(escrow_id, SELLER)

        assert record.status == EscrowStatus.RETURN_CONFIRMED
        assert await accounts.balance_of(SELLER) == STARTING_BALANCE
        assert await accounts.balance_of(BUYER) == STARTING_BALANCE

    @pytest.mark.asyncio
    async def test_terms_are_fixed_at_listing(self, session, accounts, clock, terms) -> None:
        early = EscrowService(session, clock=clock, terms=terms)
        escrow_id = (await early.list_item(SELLER, "Lamp", 1)).id
        await early.deposit(escrow_id, BUYER, 2)

        later = EscrowService(
            session, clock=clock, terms=EscrowTerms(security_deposit=50, confirmation_window=3)
        )
        clock.set(5)
        record = await later.confirm_delivery(escrow_id, BUYER)

        # Confirmed within the 10s window the escrow was listed under
        assert record.status == EscrowStatus.DELIVERY_CONFIRMED
        assert await accounts.balance_of(BUYER) == STARTING_BALANCE - 1


class TestTransactions:
    @pytest.mark.asyncio
    async def test_failed_payout_persists_nothing(
        self, service: EscrowService, session, session_factory, accounts, clock, terms
    ) -> None:
        escrow_id = (await service.list_item(SELLER, "Lamp", 1)).id
        await service.deposit(escrow_id, BUYER, 2)
        await accounts.set_rejecting(SELLER)
        await session.commit()

        with pytest.raises(PaymentFailedError, match="rejected"):
            await service.confirm_delivery(escrow_id, BUYER)
        await session.rollback()

        async with session_factory() as fresh:
            record = await EscrowService(fresh, clock=clock, terms=terms).get_escrow(escrow_id)
            ledger = LedgerRepository(fresh)
            assert record.status == EscrowStatus.PURCHASED
            assert record.custody_balance == 2
            assert [e.sequence for e in record.events] == [1, 2]
            assert await ledger.balance_of(SELLER) == STARTING_BALANCE
            assert await ledger.balance_of(BUYER) == STARTING_BALANCE - 2

    @pytest.mark.asyncio
    async def test_retry_after_rejection_lifted(
        self, service: EscrowService, session, accounts
    ) -> None:
        escrow_id = (await service.list_item(SELLER, "Lamp", 1)).id
        await service.deposit(escrow_id, BUYER, 2)
        await accounts.set_rejecting(SELLER)
        await session.commit()

        with pytest.raises(PaymentFailedError):
            await service.confirm_delivery(escrow_id, BUYER)
        await session.rollback()

        await accounts.set_rejecting(SELLER, rejecting=False)
        record = await service.confirm_delivery(escrow_id, BUYER)
        await session.commit()

        assert record.status == EscrowStatus.DELIVERY_CONFIRMED
        assert await accounts.balance_of(SELLER) == STARTING_BALANCE + 1

    @pytest.mark.asyncio
    async def test_escrows_and_balances_survive_restart(self, tmp_path, clock, terms) -> None:
        url = f"sqlite+aiosqlite:///{tmp_path / 'escrow.db'}"

        first = create_engine_from_url(url)
        await create_tables(first)
        async with make_session_factory(first)() as session:
            await LedgerRepository(session).credit(SELLER, STARTING_BALANCE)
            await LedgerRepository(session).credit(BUYER, STARTING_BALANCE)
            service = EscrowService(session, clock=clock, terms=terms)
            escrow_id = (await service.list_item(SELLER, "Lamp", 1)).id
            await service.deposit(escrow_id, BUYER, 2)
            await session.commit()
        await first.dispose()

        second = create_engine_from_url(url)
        async with make_session_factory(second)() as session:
            service = EscrowService(session, clock=clock, terms=terms)
            ledger = LedgerRepository(session)

            record = await service.get_escrow(escrow_id)
            assert record.status == EscrowStatus.PURCHASED
            assert record.buyer == BUYER
            assert record.custody_balance == 2
            assert await ledger.balance_of(BUYER) == STARTING_BALANCE - 2

            clock.set(5)
            await service.confirm_delivery(escrow_id, BUYER)
            await session.commit()

            assert await ledger.balance_of(SELLER) == STARTING_BALANCE + 1
            assert await ledger.balance_of(BUYER) == STARTING_BALANCE - 1
            events = await service.get_events(escrow_id)
            assert [e.event_type for e in events] == [
                EventType.LISTED,
                EventType.PURCHASED,
                EventType.DELIVERY_CONFIRMED,
            ]
        await second.dispose()


class TestLookups:
    @pytest.mark.asyncio
    async def test_unknown_escrow(self, service: EscrowService) -> None:
        missing = uuid.uuid4()
        with pytest.raises(EscrowNotFoundError, match=str(missing)):
            await service.deposit(missing, BUYER, 2)

    @pytest.mark.asyncio
    async def test_escrows_are_independent(self, service: EscrowService) -> None:
        first = (await service.list_item(SELLER, "Lamp", 1)).id
        second = (await service.list_item(STRANGER, "Desk", 5)).id
        await service.deposit(first, BUYER, 2)

        other = await service.get_escrow(second)
        assert other.status == EscrowStatus.LISTED
        assert other.buyer is None

    @pytest.mark.asyncio
    async def test_list_filters(self, service: EscrowService) -> None:
        first = (await service.list_item(SELLER, "Lamp", 1)).id
        second = (await service.list_item(STRANGER, "Desk", 5)).id
        await service.deposit(first, BUYER, 2)

        def ids(records) -> set[uuid.UUID]:
            return {r.id for r in records}

        assert ids(await service.list_escrows()) == {first, second}
        assert ids(await service.list_escrows(status=EscrowStatus.LISTED)) == {second}
        assert ids(await service.list_escrows(status=EscrowStatus.PURCHASED)) == {first}
        assert ids(await service.list_escrows(party=BUYER)) == {first}
        assert ids(await service.list_escrows(party=STRANGER)) == {second}
        assert await service.list_escrows(status=EscrowStatus.LISTED, party=BUYER) == []
        assert await service.count_escrows() == 2

    @pytest.mark.asyncio
    async def test_get_status(self, service: EscrowService) -> None:
        record = await service.list_item(SELLER, "Lamp", 1)
        status = await service.get_status(record.id)

        assert status == {
            "escrow_id": record.id,
            "status": EscrowStatus.LISTED,
            "return_in_progress": False,
            "custody_balance": 0,
            "allowed_events": ["purchase"],
        }

    @pytest.mark.asyncio
    async def test_rejected_operations_leave_no_events(self, service: EscrowService) -> None:
        escrow_id = (await service.list_item(SELLER, "Lamp", 1)).id
        await service.deposit(escrow_id, BUYER, 2)
        with pytest.raises(UnauthorizedError):
            await service.confirm_delivery(escrow_id, STRANGER)

        events = await service.get_events(escrow_id)
        assert [e.event_type for e in events] == [EventType.LISTED, EventType.PURCHASED]

    @pytest.mark.asyncio
    async def test_terms_exposed(self, service: EscrowService, terms) -> None:
        assert service.terms is terms
