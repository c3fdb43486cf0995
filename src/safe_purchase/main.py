"""FastAPI application entry point for the Safe Purchase escrow.

Lifecycle:
    1. Startup: Initialize logging, create the database engine (and the
       tables in development), log the escrow terms in force.
    2. Running: Serve the REST API at /api/v1/*.
    3. Shutdown: Dispose of the database engine.

Run with:
    uvicorn safe_purchase.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from safe_purchase import __version__
from safe_purchase.config import get_settings
from safe_purchase.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info(
        "app.starting",
        env=settings.app_env,
        debug=settings.app_debug,
    )

    from safe_purchase.domain.terms import EscrowTerms
    from safe_purchase.infrastructure.database.engine import close_db, init_db

    await init_db()

    terms = EscrowTerms.from_settings(settings)
    logger.info(
        "app.started",
        host=settings.app_host,
        port=settings.app_port,
        ledger_faucet_enabled=settings.ledger_faucet_enabled,
        security_deposit=terms.security_deposit,
        confirmation_window=terms.confirmation_window,
        reclaim_window=terms.reclaim_window,
        return_window=terms.return_window,
        return_confirm_window=terms.return_confirm_window,
    )

    yield

    await close_db()
    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Application factory — creates and configures the FastAPI app."""
    settings = get_settings()

    app = FastAPI(
        title="Safe Purchase",
        description=(
            "Deadline-driven escrow for remote purchases. "
            "Funds move only by fixed, auditable rules."
        ),
        version=__version__,
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    from safe_purchase.api.middleware import setup_middleware

    setup_middleware(app)

    from safe_purchase.api.routes.escrow import router as escrow_router
    from safe_purchase.api.routes.health import router as health_router
    from safe_purchase.api.routes.ledger import router as ledger_router

    app.include_router(health_router)
    app.include_router(escrow_router)
    app.include_router(ledger_router)

    return app


# The app instance used by Uvicorn
app = create_app()
