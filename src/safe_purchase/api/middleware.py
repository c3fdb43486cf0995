"""FastAPI middleware for request tracing, error handling, and CORS.

Middleware stack (applied bottom-up):
    1. RequestIDMiddleware — injects X-Request-ID into every request/response
    2. ErrorHandlerMiddleware — catches domain exceptions -> structured JSON errors
    3. CORSMiddleware — handles browser-based clients
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import structlog
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from safe_purchase.domain.exceptions import (
    AlreadyPurchasedError,
    EscrowError,
    EscrowNotFoundError,
    IncorrectAmountError,
    InvalidStateTransitionError,
    NoReturnIssuedError,
    PaymentFailedError,
    ReturnInProgressError,
    UnauthorizedError,
    WindowExpiredError,
    WindowNotElapsedError,
)

if TYPE_CHECKING:
    from fastapi import FastAPI, Request, Response

logger = structlog.get_logger(__name__)

# Most specific first; the first matching class wins.
_STATUS_CODES: tuple[tuple[type[EscrowError], int], ...] = (
    (EscrowNotFoundError, 404),
    (UnauthorizedError, 403),
    (IncorrectAmountError, 400),
    (PaymentFailedError, 402),
    (AlreadyPurchasedError, 409),
    (ReturnInProgressError, 409),
    (NoReturnIssuedError, 409),
    (WindowExpiredError, 409),
    (WindowNotElapsedError, 409),
    (InvalidStateTransitionError, 409),
)


def status_code_for(exc: EscrowError) -> int:
    """Map a domain exception to its HTTP status code (400 if unmapped)."""
    for exc_type, status_code in _STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code
    return 400


# ---------------------------------------------------------------------------
# 1. Request ID Middleware
# ---------------------------------------------------------------------------
class RequestIDMiddleware(BaseHTTPMiddleware):
    """Inject a unique X-Request-ID into every request for log correlation."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


# ---------------------------------------------------------------------------
# 2. Error Handler Middleware
# ---------------------------------------------------------------------------
class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catch domain exceptions and return structured JSON error responses."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except EscrowNotFoundError as exc:
            logger.warning("escrow.not_found", error=exc.message)
            return _error_response(exc)
        except PaymentFailedError as exc:
            logger.error("escrow.payment_failed", error=exc.message, path=request.url.path)
            return _error_response(exc)
        except EscrowError as exc:
            logger.warning(
                "escrow.rejected",
                code=exc.code,
                error=exc.message,
                path=request.url.path,
            )
            return _error_response(exc)
        except ValueError as exc:
            logger.warning("request.invalid", error=str(exc), path=request.url.path)
            return JSONResponse(
                status_code=400,
                content={"error": "INVALID_REQUEST", "message": str(exc)},
            )
        except Exception as exc:
            logger.exception("unhandled.error", error=str(exc))
            return JSONResponse(
                status_code=500,
                content={
                    "error": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred",
                },
            )


def _error_response(exc: EscrowError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code_for(exc),
        content={"error": exc.code, "message": exc.message},
    )


# ---------------------------------------------------------------------------
# Setup function
# ---------------------------------------------------------------------------
def setup_middleware(app: FastAPI) -> None:
    """Register all middleware on the FastAPI application.

    Order matters — middleware is applied bottom-up, so the last added
    middleware runs first.
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(ErrorHandlerMiddleware)

    # Outermost, so the request_id is bound before errors are logged
    app.add_middleware(RequestIDMiddleware)
