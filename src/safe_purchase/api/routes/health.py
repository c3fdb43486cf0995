"""Health check endpoint.

Verifies database connectivity and reports the number of stored escrows.
Used by container healthchecks, load balancers, and monitoring systems.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError

from safe_purchase import __version__
from safe_purchase.api.deps import get_escrow_service
from safe_purchase.logging_config import get_logger
from safe_purchase.schemas.escrow import HealthResponse
from safe_purchase.services.escrow_service import EscrowService

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns the health status of the application and its database.",
)
async def health_check(
    svc: EscrowService = Depends(get_escrow_service),
) -> HealthResponse:
    escrows = 0
    try:
        escrows = await svc.count_escrows()
        db_status = "healthy"
    except SQLAlchemyError as exc:
        db_status = f"unhealthy: {exc}"
        logger.error("health.db_check_failed", error=str(exc))

    return HealthResponse(
        status="ok" if db_status == "healthy" else "degraded",
        version=__version__,
        database=db_status,
        escrows=escrows,
    )
