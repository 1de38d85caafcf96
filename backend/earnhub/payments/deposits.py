"""Manual deposits through admin-configured payment methods.

A deposit request is created by the user after paying off-platform. An
optional screenshot is checked by the AI; a confident match under the
auto-approval limit is approved immediately, everything else waits for an
admin.
"""

from __future__ import annotations

from decimal import Decimal

from postgrest.exceptions import APIError
from supabase import Client

from ..config import get_settings
from ..database import (
    DEPOSIT_BONUSES_TABLE,
    DEPOSIT_REQUESTS_TABLE,
    PAYMENT_METHODS_TABLE,
    as_number,
    create_notification,
    record_transaction,
    to_decimal,
    utcnow,
)
from ..errors import ConflictError, InvalidRequestError, NotFoundError
from ..logging_config import get_logger
from ..verification.analysis import analyze_deposit_screenshot
from ..verification.client import VerificationClient
from ..wallets.ledger import apply_changes

logger = get_logger("earnhub.payments.deposits")


# =============================================================================
# Payment Methods and Bonuses
# =============================================================================


async def list_payment_methods(db: Client) -> list[dict]:
    result = db.table(PAYMENT_METHODS_TABLE).select("*").eq("is_active", True).execute()
    return result.data or []


async def get_payment_method(db: Client, method_id: str) -> dict:
    result = (
        db.table(PAYMENT_METHODS_TABLE)
        .select("*")
        .eq("id", method_id)
        .eq("is_active", True)
        .limit(1)
        .execute()
    )
    if not result.data:
        raise NotFoundError("Payment method not found")
    return result.data[0]


def bonus_amount(bonus: dict, amount: Decimal) -> Decimal:
    percent = to_decimal(bonus.get("bonus_percent"))
    fixed = to_decimal(bonus.get("bonus_fixed"))
    return amount * percent / 100 + fixed


def select_deposit_bonus(
    bonuses: list[dict], amount: Decimal, method_name: str | None, deposit_number: int
) -> tuple[dict | None, Decimal]:
    """Pick the most valuable bonus this deposit qualifies for.

    Tier 0 applies to every deposit; tier n only to the user's n-th
    approved deposit.
    """
    best: dict | None = None
    best_amount = Decimal("0")
    for bonus in bonuses:
        if not bonus.get("is_active", True):
            continue
        tier = int(bonus.get("tier_level") or 0)
        if tier and tier != deposit_number:
            continue
        if bonus.get("method_name") and bonus["method_name"] != method_name:
            continue
        if amount < to_decimal(bonus.get("min_deposit")):
            continue
        value = bonus_amount(bonus, amount)
        if value > best_amount:
            best, best_amount = bonus, value
    return best, best_amount


async def _apply_deposit_bonus(db: Client, request: dict) -> Decimal:
    user_id = request["user_id"]
    amount = to_decimal(request["amount"])
    approved = (
        db.table(DEPOSIT_REQUESTS_TABLE)
        .select("id", count="exact")
        .eq("user_id", user_id)
        .eq("status", "approved")
        .execute()
    )
    bonuses = db.table(DEPOSIT_BONUSES_TABLE).select("*").eq("is_active", True).execute()
    bonus, value = select_deposit_bonus(
        bonuses.data or [], amount, request.get("method_name"), approved.count or 0
    )
    if not bonus or value <= 0:
        return Decimal("0")

    await apply_changes(db, user_id, {"bonus_balance": value})
    await record_transaction(db, user_id, "bonus", value, f"Deposit Bonus: {bonus.get('title')}")
    logger.info(f"Deposit bonus | {user_id} | {bonus.get('title')} | {value}")
    return value


# =============================================================================
# Requests
# =============================================================================


async def get_deposit_request(db: Client, request_id: str) -> dict:
    result = db.table(DEPOSIT_REQUESTS_TABLE).select("*").eq("id", request_id).limit(1).execute()
    if not result.data:
        raise NotFoundError("Deposit request not found")
    return result.data[0]


async def list_deposit_requests(
    db: Client, user_id: str | None = None, status: str | None = None, limit: int = 50
) -> list[dict]:
    query = db.table(DEPOSIT_REQUESTS_TABLE).select("*")
    if user_id:
        query = query.eq("user_id", user_id)
    if status:
        query = query.eq("status", status)
    return query.order("created_at", desc=True).limit(limit).execute().data or []


async def _transaction_id_used(db: Client, transaction_id: str) -> bool:
    result = (
        db.table(DEPOSIT_REQUESTS_TABLE)
        .select("id")
        .eq("transaction_id", transaction_id)
        .limit(1)
        .execute()
    )
    return bool(result.data)


def qualifies_for_auto_approval(ai_result: dict | None, amount: Decimal) -> bool:
    settings = get_settings()
    if not ai_result or ai_result.get("status") != "match":
        return False
    return (
        int(ai_result.get("confidence") or 0) >= settings.ai_auto_approve_confidence
        and amount <= settings.deposit_auto_approve_limit
    )


async def request_deposit(
    db: Client,
    client: VerificationClient,
    user_id: str,
    method_id: str,
    amount: Decimal,
    transaction_id: str,
    sender_number: str,
    screenshot_url: str | None = None,
) -> dict:
    """Create a deposit request, auto-approving a verified screenshot."""
    amount = to_decimal(amount)
    if amount <= 0:
        raise InvalidRequestError("Amount must be positive")
    transaction_id = transaction_id.strip()
    if not transaction_id:
        raise InvalidRequestError("Transaction id is required")

    method = await get_payment_method(db, method_id)
    if await _transaction_id_used(db, transaction_id):
        raise ConflictError("This transaction id has already been submitted")

    ai_result = None
    if screenshot_url:
        ai_result = await analyze_deposit_screenshot(
            client, screenshot_url, amount, transaction_id, method.get("name", "")
        )

    try:
        result = (
            db.table(DEPOSIT_REQUESTS_TABLE)
            .insert(
                {
                    "user_id": user_id,
                    "method_id": method["id"],
                    "method_name": method.get("name"),
                    "amount": as_number(amount),
                    "transaction_id": transaction_id,
                    "sender_number": sender_number,
                    "screenshot_url": screenshot_url,
                    "status": "pending",
                    "ai_result": ai_result,
                }
            )
            .execute()
        )
    except APIError as e:
        # Unique transaction_id taken by a concurrent request
        logger.warning(f"Duplicate deposit transaction id | {user_id} | trx={transaction_id}")
        raise ConflictError("This transaction id has already been submitted") from e
    request = result.data[0]
    logger.info(f"Deposit requested | {user_id} | {amount} | trx={transaction_id}")

    if qualifies_for_auto_approval(ai_result, amount):
        return await approve_deposit(db, request["id"], note="AI Auto-Approved")
    return request


async def approve_deposit(db: Client, request_id: str, note: str | None = None) -> dict:
    """Credit a pending deposit and apply any matching bonus."""
    request = await get_deposit_request(db, request_id)
    if request["status"] != "pending":
        raise InvalidRequestError("Deposit request already processed")

    updated = (
        db.table(DEPOSIT_REQUESTS_TABLE)
        .update(
            {
                "status": "approved",
                "admin_note": note or "Manual Approval",
                "processed_at": utcnow().isoformat(),
            }
        )
        .eq("id", request_id)
        .eq("status", "pending")
        .execute()
    )
    if not updated.data:
        raise ConflictError("Deposit request was processed concurrently")

    user_id = request["user_id"]
    amount = to_decimal(request["amount"])
    try:
        await apply_changes(db, user_id, {"deposit_balance": amount})
    except Exception:
        logger.error(f"Deposit credit failed, back to pending | {user_id} | {request_id}")
        db.table(DEPOSIT_REQUESTS_TABLE).update(
            {"status": "pending", "admin_note": None, "processed_at": None}
        ).eq("id", request_id).eq("status", "approved").execute()
        raise

    # Credited: bookkeeping below is best effort
    try:
        await record_transaction(
            db, user_id, "deposit", amount, f"Deposit via {request.get('method_name')} (Approved)"
        )
    except Exception as e:
        logger.error(f"Deposit transaction log failed | {user_id} | {request_id} | {e}")
    bonus = Decimal("0")
    try:
        bonus = await _apply_deposit_bonus(db, request)
        message = f"Your deposit of ${as_number(amount):,.2f} was approved."
        if bonus > 0:
            message += f" Bonus: ${as_number(bonus):,.2f}."
        await create_notification(db, user_id, "Deposit Approved", message, "success")
    except Exception as e:
        logger.error(f"Deposit bookkeeping failed | {user_id} | {request_id} | {e}")
    logger.info(f"Deposit approved | {user_id} | {amount} | bonus={bonus}")
    return {**updated.data[0], "bonus": as_number(bonus)}


async def reject_deposit(db: Client, request_id: str, note: str | None = None) -> dict:
    request = await get_deposit_request(db, request_id)
    if request["status"] != "pending":
        raise InvalidRequestError("Deposit request already processed")

    updated = (
        db.table(DEPOSIT_REQUESTS_TABLE)
        .update(
            {
                "status": "rejected",
                "admin_note": note or "Manual Rejection",
                "processed_at": utcnow().isoformat(),
            }
        )
        .eq("id", request_id)
        .eq("status", "pending")
        .execute()
    )
    if not updated.data:
        raise ConflictError("Deposit request was processed concurrently")

    await create_notification(
        db,
        request["user_id"],
        "Deposit Rejected",
        note or "Your deposit request was rejected.",
        "error",
    )
    logger.info(f"Deposit rejected | {request['user_id']} | {request_id}")
    return updated.data[0]
