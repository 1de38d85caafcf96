"""Profile bootstrap and referral commission.

A referral link carries the referrer's code. The referred user gets a
larger welcome bonus, and from then on the referrer earns a percentage of
everything the referred user earns (games, tasks, investment returns).
"""

from __future__ import annotations

import secrets
import string
from decimal import Decimal, ROUND_HALF_UP

from supabase import Client

from ..config import get_settings
from ..currency import CURRENCY_CONFIG, signup_bonus_usd
from ..database import (
    PROFILES_TABLE,
    REFERRAL_TIERS_TABLE,
    REFERRALS_TABLE,
    TRANSACTIONS_TABLE,
    WALLETS_TABLE,
    as_number,
    create_notification,
    get_profile,
    get_profile_by_ref_code,
    is_valid_uuid,
    record_transaction,
    to_decimal,
)
from ..errors import InvalidRequestError
from ..logging_config import get_logger
from ..wallets.ledger import BALANCE_FIELDS, STAT_FIELDS, apply_changes

logger = get_logger("earnhub.referrals")

REFERRAL_CODE_PREFIX = "EH"
REFERRAL_BONUS_RATE = Decimal("0.25")
MIN_COMMISSION = Decimal("0.001")
WELCOME_DESCRIPTION = "Welcome Bonus"

_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_referral_code() -> str:
    """EH + 6 uppercase alphanumerics."""
    return REFERRAL_CODE_PREFIX + "".join(secrets.choice(_CODE_ALPHABET) for _ in range(6))


# =============================================================================
# Profile Bootstrap
# =============================================================================


async def create_user_profile(
    db: Client,
    user_id: str,
    email: str,
    full_name: str,
    referral_code: str | None = None,
    currency: str = "USD",
) -> dict:
    """Create the profile and wallet for a new user.

    Safe to call repeatedly: existing rows are not overwritten and the
    welcome bonus is granted once.
    """
    if not is_valid_uuid(user_id):
        raise InvalidRequestError("Invalid user id")
    if currency not in CURRENCY_CONFIG:
        currency = "USD"

    welcome_bonus = signup_bonus_usd(currency)
    referrer = None
    if referral_code and referral_code.strip():
        referrer = await get_profile_by_ref_code(db, referral_code.strip().upper())
        if referrer and referrer["id"] == user_id:
            referrer = None
        if referrer:
            welcome_bonus += welcome_bonus * REFERRAL_BONUS_RATE

    db.table(PROFILES_TABLE).upsert(
        {
            "id": user_id,
            "email_1": email.lower(),
            "name_1": full_name,
            "ref_code_1": generate_referral_code(),
            "referred_by": referrer["ref_code_1"] if referrer else None,
            "level_1": 1,
            "is_kyc_1": False,
        },
        on_conflict="id",
        ignore_duplicates=True,
    ).execute()

    wallet_row = {field: 0 for field in BALANCE_FIELDS + STAT_FIELDS}
    wallet_row.update(
        {
            "user_id": user_id,
            "currency": currency,
            "bonus_balance": as_number(welcome_bonus),
            "balance": 0,
            "deposit": 0,
            "withdrawable": 0,
            "version": 0,
        }
    )
    db.table(WALLETS_TABLE).upsert(
        wallet_row, on_conflict="user_id", ignore_duplicates=True
    ).execute()

    existing = (
        db.table(TRANSACTIONS_TABLE)
        .select("id", count="exact")
        .eq("user_id", user_id)
        .eq("description", WELCOME_DESCRIPTION)
        .execute()
    )
    granted = False
    if not existing.count:
        granted = True
        await record_transaction(db, user_id, "bonus", welcome_bonus, WELCOME_DESCRIPTION)
        await create_notification(
            db,
            user_id,
            "Welcome!",
            f"You received a welcome bonus of ${welcome_bonus:.2f}",
            "success",
        )
        if referrer:
            db.table(REFERRALS_TABLE).upsert(
                {
                    "referrer_id": referrer["id"],
                    "referred_id": user_id,
                    "status": "completed",
                    "earned": 0,
                },
                on_conflict="referred_id",
                ignore_duplicates=True,
            ).execute()
            await create_notification(
                db,
                referrer["id"],
                "New Referral",
                f"{full_name or 'Someone'} joined with your code",
                "info",
            )
        logger.info(f"Profile created | {user_id} | referred={bool(referrer)}")

    return {
        "profile": await get_profile(db, user_id),
        "welcome_bonus": as_number(welcome_bonus) if granted else 0.0,
        "referred": referrer is not None,
    }


# =============================================================================
# Commission
# =============================================================================


async def get_commission_percent(db: Client) -> Decimal:
    """Active level-1 earning commission, or the configured default."""
    result = (
        db.table(REFERRAL_TIERS_TABLE)
        .select("commission_percent")
        .eq("level", 1)
        .eq("type", "earning")
        .eq("is_active", True)
        .limit(1)
        .execute()
    )
    if result.data and result.data[0].get("commission_percent") is not None:
        return to_decimal(result.data[0]["commission_percent"])
    return get_settings().default_commission_percent


async def distribute_referral_reward(db: Client, user_id: str, amount: Decimal) -> Decimal:
    """Pay the earner's referrer a commission on `amount`.

    Returns the commission paid (0 when nothing was paid).
    """
    amount = to_decimal(amount)
    if amount <= 0:
        return Decimal("0")

    earner = await get_profile(db, user_id)
    if not earner or not earner.get("referred_by"):
        return Decimal("0")

    referrer = await get_profile_by_ref_code(db, earner["referred_by"])
    if not referrer or referrer["id"] == user_id:
        return Decimal("0")

    percent = await get_commission_percent(db)
    commission = (amount * percent / 100).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)
    if commission < MIN_COMMISSION:
        return Decimal("0")

    referrer_id = referrer["id"]
    await apply_changes(
        db,
        referrer_id,
        {
            "commission_balance": commission,
            "total_earning": commission,
            "referral_earnings": commission,
        },
    )
    await record_transaction(
        db,
        referrer_id,
        "referral",
        commission,
        f"{percent}% Commission from {earner.get('name_1') or 'User'}",
    )

    ref = (
        db.table(REFERRALS_TABLE)
        .select("*")
        .eq("referrer_id", referrer_id)
        .eq("referred_id", user_id)
        .limit(1)
        .execute()
    )
    if ref.data:
        row = ref.data[0]
        db.table(REFERRALS_TABLE).update(
            {"earned": as_number(to_decimal(row.get("earned")) + commission)}
        ).eq("id", row["id"]).execute()

    await create_notification(
        db,
        referrer_id,
        "Commission Earned!",
        f"You earned {commission:.2f} ({percent}%) commission.",
        "success",
    )
    logger.info(f"Commission paid | {referrer_id} <- {user_id} | {commission}")
    return commission


async def get_referral_stats(db: Client, user_id: str) -> dict:
    """Referral code, invited count and total commission earned."""
    profile = await get_profile(db, user_id)
    invited = (
        db.table(REFERRALS_TABLE).select("*", count="exact").eq("referrer_id", user_id).execute()
    )
    total = sum((to_decimal(r.get("earned")) for r in invited.data or []), Decimal("0"))
    return {
        "code": (profile or {}).get("ref_code_1"),
        "invited_users": invited.count or 0,
        "total_earned": as_number(total),
    }
