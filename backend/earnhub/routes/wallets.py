"""Wallet routes: balances, transaction log, internal transfers and bonuses."""

from decimal import Decimal

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel, Field

from ..auth import CurrentUser
from ..currency import format_amount, set_display_currency
from ..database import TRANSACTION_TYPES, Database
from ..errors import InvalidRequestError
from ..logging_config import get_logger
from ..rate_limit import TRANSFER_LIMIT, limiter
from ..wallets import get_wallet, transfer
from ..wallets.bonuses import claim_daily_bonus, get_daily_bonus_status
from ..wallets.ledger import list_transactions, wallet_summary

logger = get_logger("earnhub.routes.wallets")
router = APIRouter(prefix="/wallets", tags=["wallets"])


# =============================================================================
# Request Models
# =============================================================================


class TransferRequest(BaseModel):
    """Move money between two of the caller's own balances."""

    source: str = Field(..., description="Balance to take from, e.g. 'deposit' or 'earning_balance'")
    destination: str
    amount: Decimal = Field(..., gt=0)


class CurrencyRequest(BaseModel):
    currency: str = Field(..., min_length=3, max_length=3)


# =============================================================================
# Routes
# =============================================================================


@router.get("/me")
async def get_my_wallet(auth: CurrentUser, db: Database):
    """Balances in USD plus the formatted total in the display currency."""
    logger.info(f"GET /wallets/me | {auth.user_id}")
    wallet = await get_wallet(db, auth.user_id)
    summary = wallet_summary(wallet)
    summary["formatted_total"] = format_amount(
        Decimal(str(summary["total_assets"])), summary["currency"]
    )
    return summary


@router.get("/me/transactions")
async def get_my_transactions(
    auth: CurrentUser,
    db: Database,
    type: str | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    logger.info(f"GET /wallets/me/transactions | {auth.user_id} | type={type}")
    if type and type not in TRANSACTION_TYPES:
        raise InvalidRequestError(f"Unknown transaction type: {type}")
    rows, total = await list_transactions(db, auth.user_id, type=type, limit=limit, offset=offset)
    return {"transactions": rows, "total": total, "limit": limit, "offset": offset}


@router.post("/me/transfer")
@limiter.limit(TRANSFER_LIMIT)
async def transfer_between_balances(
    request: Request,
    body: TransferRequest,
    auth: CurrentUser,
    db: Database,
):
    logger.info(f"POST /wallets/me/transfer | {auth.user_id} | {body.source} -> {body.destination}")
    wallet = await transfer(db, auth.user_id, body.source, body.destination, body.amount)
    return wallet_summary(wallet)


@router.put("/me/currency")
async def change_currency(body: CurrencyRequest, auth: CurrentUser, db: Database):
    logger.info(f"PUT /wallets/me/currency | {auth.user_id} | {body.currency}")
    code = await set_display_currency(db, auth.user_id, body.currency)
    return {"currency": code}


@router.get("/me/daily-bonus")
async def daily_bonus_status(auth: CurrentUser, db: Database):
    return await get_daily_bonus_status(db, auth.user_id)


@router.post("/me/daily-bonus")
async def claim_daily(auth: CurrentUser, db: Database):
    logger.info(f"POST /wallets/me/daily-bonus | {auth.user_id}")
    return await claim_daily_bonus(db, auth.user_id)
