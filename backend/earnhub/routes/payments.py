"""Payment routes: deposits, withdrawals and P2P transfers."""

from decimal import Decimal

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from ..auth import CurrentUser
from ..database import Database
from ..logging_config import get_logger
from ..payments import deposits, transfers, withdrawals
from ..rate_limit import DEPOSIT_LIMIT, TRANSFER_LIMIT, WITHDRAW_LIMIT, limiter
from ..system import require_feature
from ..verification import Verifier

logger = get_logger("earnhub.routes.payments")
router = APIRouter(prefix="/payments", tags=["payments"])

deposits_enabled = require_feature("is_deposit_enabled")
withdrawals_enabled = require_feature("is_withdraw_enabled")


# =============================================================================
# Request Models
# =============================================================================


class DepositRequest(BaseModel):
    method_id: str
    amount: Decimal = Field(..., gt=0)
    transaction_id: str = Field(..., min_length=4, max_length=64)
    sender_number: str = Field(..., min_length=3, max_length=64)
    screenshot_url: str | None = None


class WithdrawRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    method: str = Field(..., min_length=2, max_length=40)
    account_number: str = Field(..., min_length=3, max_length=64)


class WithdrawMethodRequest(BaseModel):
    method: str = Field(..., min_length=2, max_length=40)
    account_number: str = Field(..., min_length=3, max_length=64)
    is_auto_enabled: bool = False


class SendMoneyRequest(BaseModel):
    recipient: str = Field(..., description="8-digit user id or email")
    amount: Decimal = Field(..., gt=0)


# =============================================================================
# Deposits
# =============================================================================


@router.get("/methods", dependencies=[deposits_enabled])
async def get_methods(db: Database):
    return {"methods": await deposits.list_payment_methods(db)}


@router.get("/deposits", dependencies=[deposits_enabled])
async def my_deposits(auth: CurrentUser, db: Database):
    return {"deposits": await deposits.list_deposit_requests(db, user_id=auth.user_id)}


@router.post("/deposits", dependencies=[deposits_enabled])
@limiter.limit(DEPOSIT_LIMIT)
async def create_deposit(
    request: Request,
    body: DepositRequest,
    auth: CurrentUser,
    db: Database,
    client: Verifier,
):
    """
    Submit a deposit for review.

    A screenshot is checked automatically; a confident match is credited
    immediately, anything else waits for an admin.
    """
    logger.info(f"POST /payments/deposits | {auth.user_id} | {body.amount} | trx={body.transaction_id}")
    return await deposits.request_deposit(
        db,
        client,
        auth.user_id,
        body.method_id,
        body.amount,
        body.transaction_id,
        body.sender_number,
        body.screenshot_url,
    )


@router.post("/send", dependencies=[deposits_enabled])
@limiter.limit(TRANSFER_LIMIT)
async def send_money(request: Request, body: SendMoneyRequest, auth: CurrentUser, db: Database):
    logger.info(f"POST /payments/send | {auth.user_id} -> {body.recipient} | {body.amount}")
    return await transfers.send_money(db, auth.user_id, body.recipient, body.amount)


# =============================================================================
# Withdrawals
# =============================================================================


@router.get("/withdrawals/settings", dependencies=[withdrawals_enabled])
async def get_withdraw_settings(db: Database):
    return await withdrawals.get_withdrawal_settings(db)


@router.get("/withdrawals", dependencies=[withdrawals_enabled])
async def my_withdrawals(auth: CurrentUser, db: Database):
    return {"withdrawals": await withdrawals.list_withdraw_requests(db, user_id=auth.user_id)}


@router.post("/withdrawals", dependencies=[withdrawals_enabled])
@limiter.limit(WITHDRAW_LIMIT)
async def create_withdrawal(request: Request, body: WithdrawRequest, auth: CurrentUser, db: Database):
    logger.info(f"POST /payments/withdrawals | {auth.user_id} | {body.amount} | {body.method}")
    return await withdrawals.request_withdrawal(
        db, auth.user_id, body.amount, body.method, body.account_number
    )


@router.get("/withdrawals/method")
async def get_withdraw_method(auth: CurrentUser, db: Database):
    return {"method": await withdrawals.get_withdraw_method(db, auth.user_id)}


@router.put("/withdrawals/method")
async def save_withdraw_method(body: WithdrawMethodRequest, auth: CurrentUser, db: Database):
    """Save the payout account. Changing a saved number costs the id-change fee."""
    logger.info(f"PUT /payments/withdrawals/method | {auth.user_id} | {body.method}")
    return await withdrawals.save_withdraw_method(
        db, auth.user_id, body.method, body.account_number, body.is_auto_enabled
    )
