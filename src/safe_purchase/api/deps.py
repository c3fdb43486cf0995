"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject database sessions,
the escrow service, the ledger repository, the caller identity and
configuration. Tests replace them through ``app.dependency_overrides``.
"""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING

from fastapi import Depends, Header

from safe_purchase.config import Settings, get_settings
from safe_purchase.domain.terms import EscrowTerms
from safe_purchase.infrastructure.clock import SystemClock
from safe_purchase.infrastructure.database.engine import get_async_session
from safe_purchase.infrastructure.database.repositories import LedgerRepository
from safe_purchase.services.escrow_service import EscrowService

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from sqlalchemy.ext.asyncio import AsyncSession

    from safe_purchase.domain.ledger_protocol import Clock


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for a request."""
    async for session in get_async_session():
        yield session


@lru_cache(maxsize=1)
def get_clock() -> Clock:
    """Provide the wall clock the escrow deadlines are measured against."""
    return SystemClock()


def get_app_settings() -> Settings:
    """Provide the application settings."""
    return get_settings()


async def get_escrow_service(
    session: AsyncSession = Depends(get_db_session),
    clock: Clock = Depends(get_clock),
    settings: Settings = Depends(get_app_settings),
) -> EscrowService:
    """Provide an EscrowService bound to the current session."""
    return EscrowService(session, clock=clock, terms=EscrowTerms.from_settings(settings))


async def get_ledger_repo(
    session: AsyncSession = Depends(get_db_session),
) -> LedgerRepository:
    """Provide a LedgerRepository bound to the current session."""
    return LedgerRepository(session)


def get_caller(
    x_caller_id: str = Header(
        ..., min_length=1, description="Identity of the authenticated caller"
    ),
) -> str:
    """Provide the caller identity supplied by the authorization layer."""
    return x_caller_id
