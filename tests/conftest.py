"""Shared test fixtures for the Safe Purchase test suite.

Provides:
    - A manual clock starting at t=0
    - Short escrow terms (deposit 1, every window 10 seconds)
    - An in-memory ledger with a funded seller, buyer and stranger
    - Factory fixtures for listed and purchased escrows
    - An in-memory SQLite database, a session on it, funded ledger accounts
      and an EscrowService bound to that session
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from safe_purchase.domain.escrow_machine import EscrowMachine
from safe_purchase.domain.terms import EscrowTerms
from safe_purchase.infrastructure.clock import ManualClock
from safe_purchase.infrastructure.database.engine import (
    create_engine_from_url,
    create_tables,
    make_session_factory,
)
from safe_purchase.infrastructure.database.repositories import LedgerRepository
from safe_purchase.infrastructure.ledger import InMemoryLedger
from safe_purchase.services.escrow_service import EscrowService

SELLER = "seller-0x5e11"
BUYER = "buyer-0xb0b"
STRANGER = "mallory-0xbad"
STARTING_BALANCE = 100

IN_MEMORY_DB = "sqlite+aiosqlite:///:memory:"

# ---------------------------------------------------------------------------
# Collaborator Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(start=0)


@pytest.fixture
def terms() -> EscrowTerms:
    """Deposit of 1 base unit; every window is 10 seconds."""
    return EscrowTerms(
        security_deposit=1,
        confirmation_window=10,
        reclaim_window=10,
        return_window=10,
        return_confirm_window=10,
    )


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger(
        {SELLER: STARTING_BALANCE, BUYER: STARTING_BALANCE, STRANGER: STARTING_BALANCE}
    )


# ---------------------------------------------------------------------------
# Escrow Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def listed(terms: EscrowTerms, ledger: InMemoryLedger, clock: ManualClock) -> EscrowMachine:
    """An escrow for a product priced at 1, listed at t=0."""
    return EscrowMachine.list_item(
        SELLER, "Mechanical keyboard", 1, terms=terms, ledger=ledger, clock=clock
    )


@pytest.fixture
def purchased(listed: EscrowMachine) -> EscrowMachine:
    """The listed escrow, bought by BUYER at t=0 for price + deposit = 2."""
    listed.deposit(BUYER, 2)
    return listed


# ---------------------------------------------------------------------------
# Database Fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """A fresh in-memory database with every table created."""
    db = create_engine_from_url(IN_MEMORY_DB)
    await create_tables(db)
    yield db
    await db.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest_asyncio.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as s:
        yield s


@pytest_asyncio.fixture
async def accounts(session: AsyncSession) -> LedgerRepository:
    """Ledger accounts of SELLER, BUYER and STRANGER, each holding STARTING_BALANCE."""
    repo = LedgerRepository(session)
    for party in (SELLER, BUYER, STRANGER):
        await repo.credit(party, STARTING_BALANCE)
    await session.commit()
    return repo


@pytest.fixture
def service(
    session: AsyncSession, accounts: LedgerRepository, clock: ManualClock, terms: EscrowTerms
) -> EscrowService:
    return EscrowService(session, clock=clock, terms=terms)
