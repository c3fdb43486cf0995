"""Ledger REST API routes.

Read access to ledger balances, plus an opt-in faucet so parties can be
funded before they trade. The faucet mints money, so it stays disabled
unless LEDGER_FAUCET_ENABLED is set.

Routes:
    GET    /api/v1/ledger/{account}         — Get an account balance
    POST   /api/v1/ledger/{account}/credit  — Credit funds (faucet, off by default)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from safe_purchase.api.deps import get_app_settings, get_ledger_repo
from safe_purchase.config import Settings
from safe_purchase.infrastructure.database.repositories import LedgerRepository
from safe_purchase.logging_config import get_logger
from safe_purchase.schemas.escrow import CreditRequest, LedgerBalanceResponse

router = APIRouter(prefix="/api/v1/ledger", tags=["Ledger"])
logger = get_logger(__name__)


@router.get(
    "/{account}",
    response_model=LedgerBalanceResponse,
    summary="Get an account balance",
)
async def get_balance(
    account: str,
    ledger: LedgerRepository = Depends(get_ledger_repo),
) -> LedgerBalanceResponse:
    return LedgerBalanceResponse(account=account, balance=await ledger.balance_of(account))


@router.post(
    "/{account}/credit",
    response_model=LedgerBalanceResponse,
    summary="Credit funds from the faucet",
)
async def credit(
    account: str,
    request: CreditRequest,
    ledger: LedgerRepository = Depends(get_ledger_repo),
    settings: Settings = Depends(get_app_settings),
) -> LedgerBalanceResponse:
    """Mint funds into an account. Refused unless the faucet is enabled."""
    if not settings.ledger_faucet_enabled:
        logger.warning("ledger.credit_refused", account=account, env=settings.app_env)
        raise HTTPException(status_code=403, detail="The ledger faucet is disabled")
    balance = await ledger.credit(account, request.amount)
    logger.info("ledger.credited", account=account, amount=request.amount, balance=balance)
    return LedgerBalanceResponse(account=account, balance=balance)
