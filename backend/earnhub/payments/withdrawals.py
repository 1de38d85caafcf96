"""Withdrawal requests and saved payout accounts."""

from __future__ import annotations

from datetime import datetime, time, timezone
from decimal import Decimal, ROUND_HALF_UP

from pydantic import BaseModel
from supabase import Client

from ..database import (
    USER_WITHDRAWAL_METHODS_TABLE,
    WITHDRAW_REQUESTS_TABLE,
    WITHDRAWAL_SETTINGS_TABLE,
    as_number,
    create_notification,
    get_profile,
    record_transaction,
    to_decimal,
    utcnow,
)
from ..errors import (
    ConflictError,
    InsufficientFundsError,
    InvalidRequestError,
    NotFoundError,
    PermissionDeniedError,
)
from ..logging_config import get_logger
from ..wallets.ledger import apply_changes, get_wallet

logger = get_logger("earnhub.payments.withdrawals")


class WithdrawalSettings(BaseModel):
    min_withdraw: Decimal = Decimal("5")
    max_withdraw: Decimal = Decimal("5000")
    daily_limit: Decimal = Decimal("10000")
    monthly_limit: Decimal = Decimal("50000")
    id_change_fee: Decimal = Decimal("30")
    withdraw_fee_percent: Decimal = Decimal("0")
    kyc_required: bool = False


async def get_withdrawal_settings(db: Client) -> WithdrawalSettings:
    result = db.table(WITHDRAWAL_SETTINGS_TABLE).select("*").limit(1).execute()
    row = result.data[0] if result.data else {}
    return WithdrawalSettings(**{k: v for k, v in row.items() if v is not None})


async def _requested_since(db: Client, user_id: str, since: datetime) -> Decimal:
    """Sum of non-rejected withdrawal requests created since `since`."""
    result = (
        db.table(WITHDRAW_REQUESTS_TABLE)
        .select("amount, status")
        .eq("user_id", user_id)
        .gte("created_at", since.isoformat())
        .execute()
    )
    return sum(
        (to_decimal(r["amount"]) for r in result.data or [] if r.get("status") != "rejected"),
        Decimal("0"),
    )


# =============================================================================
# Requests
# =============================================================================


async def request_withdrawal(
    db: Client, user_id: str, amount: Decimal, method: str, account_number: str
) -> dict:
    """Reserve funds from the main balance and queue a withdrawal."""
    amount = to_decimal(amount)
    if amount <= 0:
        raise InvalidRequestError("Amount must be positive")
    if not account_number.strip():
        raise InvalidRequestError("Account number is required")

    profile = await get_profile(db, user_id)
    if not profile:
        raise NotFoundError("Profile not found")
    if profile.get("is_withdraw_blocked"):
        raise PermissionDeniedError("Withdrawals are blocked for this account")

    settings = await get_withdrawal_settings(db)
    if settings.kyc_required and not profile.get("is_kyc_1"):
        raise PermissionDeniedError("Identity verification is required to withdraw")
    if amount < settings.min_withdraw:
        raise InvalidRequestError(f"Minimum withdrawal is {as_number(settings.min_withdraw)}")
    if amount > settings.max_withdraw:
        raise InvalidRequestError(f"Maximum withdrawal is {as_number(settings.max_withdraw)}")

    now = utcnow()
    day_start = datetime.combine(now.date(), time.min, tzinfo=timezone.utc)
    month_start = day_start.replace(day=1)
    if await _requested_since(db, user_id, day_start) + amount > settings.daily_limit:
        raise InvalidRequestError("Daily withdrawal limit reached")
    if await _requested_since(db, user_id, month_start) + amount > settings.monthly_limit:
        raise InvalidRequestError("Monthly withdrawal limit reached")

    fee = (amount * settings.withdraw_fee_percent / 100).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)
    await apply_changes(db, user_id, {"main_balance": -amount, "pending_withdraw": amount})

    try:
        result = (
            db.table(WITHDRAW_REQUESTS_TABLE)
            .insert(
                {
                    "user_id": user_id,
                    "amount": as_number(amount),
                    "fee": as_number(fee),
                    "net_amount": as_number(amount - fee),
                    "method": method,
                    "account_number": account_number,
                    "status": "pending",
                }
            )
            .execute()
        )
    except Exception:
        logger.error(f"Withdrawal insert failed, refunding | {user_id} | {amount}")
        await apply_changes(db, user_id, {"main_balance": amount, "pending_withdraw": -amount})
        raise

    await record_transaction(db, user_id, "withdraw", amount, f"Withdrawal via {method}", status="pending")
    logger.info(f"Withdrawal requested | {user_id} | {amount} | fee={fee}")
    return result.data[0]


async def get_withdraw_request(db: Client, request_id: str) -> dict:
    result = db.table(WITHDRAW_REQUESTS_TABLE).select("*").eq("id", request_id).limit(1).execute()
    if not result.data:
        raise NotFoundError("Withdrawal request not found")
    return result.data[0]


async def list_withdraw_requests(
    db: Client, user_id: str | None = None, status: str | None = None, limit: int = 50
) -> list[dict]:
    query = db.table(WITHDRAW_REQUESTS_TABLE).select("*")
    if user_id:
        query = query.eq("user_id", user_id)
    if status:
        query = query.eq("status", status)
    return query.order("created_at", desc=True).limit(limit).execute().data or []


async def _close_request(db: Client, request_id: str, status: str, note: str | None) -> dict:
    request = await get_withdraw_request(db, request_id)
    if request["status"] != "pending":
        raise InvalidRequestError("Withdrawal request already processed")
    updated = (
        db.table(WITHDRAW_REQUESTS_TABLE)
        .update({"status": status, "admin_note": note, "processed_at": utcnow().isoformat()})
        .eq("id", request_id)
        .eq("status", "pending")
        .execute()
    )
    if not updated.data:
        raise ConflictError("Withdrawal request was processed concurrently")
    return updated.data[0]


async def approve_withdrawal(db: Client, request_id: str, note: str | None = None) -> dict:
    request = await _close_request(db, request_id, "approved", note)
    user_id = request["user_id"]
    amount = to_decimal(request["amount"])
    await apply_changes(db, user_id, {"pending_withdraw": -amount})
    await create_notification(
        db, user_id, "Withdrawal Approved", f"Your withdrawal of ${as_number(amount):,.2f} has been sent.", "success"
    )
    logger.info(f"Withdrawal approved | {user_id} | {amount}")
    return request


async def reject_withdrawal(db: Client, request_id: str, note: str | None = None) -> dict:
    """Reject a pending withdrawal and return the funds to the main balance."""
    request = await _close_request(db, request_id, "rejected", note)
    user_id = request["user_id"]
    amount = to_decimal(request["amount"])
    await apply_changes(db, user_id, {"main_balance": amount, "pending_withdraw": -amount})
    await create_notification(
        db, user_id, "Withdrawal Rejected", note or "Your withdrawal was rejected and refunded.", "error"
    )
    logger.info(f"Withdrawal rejected | {user_id} | {amount}")
    return request


# =============================================================================
# Saved Methods
# =============================================================================


async def get_withdraw_method(db: Client, user_id: str) -> dict | None:
    result = db.table(USER_WITHDRAWAL_METHODS_TABLE).select("*").eq("user_id", user_id).limit(1).execute()
    return result.data[0] if result.data else None


async def save_withdraw_method(
    db: Client, user_id: str, method: str, account_number: str, is_auto: bool = False
) -> dict:
    """Save the payout account; changing the number costs the id-change fee."""
    account_number = account_number.strip()
    if not account_number:
        raise InvalidRequestError("Account number is required")

    existing = await get_withdraw_method(db, user_id)
    row = {
        "method_name": method,
        "account_number": account_number,
        "is_auto_enabled": is_auto,
        "updated_at": utcnow().isoformat(),
    }
    if not existing:
        result = db.table(USER_WITHDRAWAL_METHODS_TABLE).insert({"user_id": user_id, **row}).execute()
        return result.data[0]

    if existing.get("account_number") != account_number:
        fee = (await get_withdrawal_settings(db)).id_change_fee
        if fee > 0:
            wallet = await get_wallet(db, user_id)
            if to_decimal(wallet.get("main_balance")) < fee:
                raise InsufficientFundsError(
                    f"Changing the saved number costs {as_number(fee)} from the main balance"
                )
            await apply_changes(db, user_id, {"main_balance": -fee})
            await record_transaction(db, user_id, "penalty", fee, "Withdrawal ID Change Fee")
            logger.info(f"Withdrawal id change fee | {user_id} | {fee}")

    result = db.table(USER_WITHDRAWAL_METHODS_TABLE).update(row).eq("user_id", user_id).execute()
    return result.data[0] if result.data else {**existing, **row}
