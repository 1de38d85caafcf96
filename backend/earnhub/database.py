"""Database utilities for Supabase integration."""

import re
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Annotated, Any

from fastapi import Depends

from supabase import Client, create_client

from .config import Settings, get_settings
from .logging_config import get_logger

logger = get_logger("earnhub.database")

_supabase_client: Client | None = None


def get_supabase_client(settings: Settings | None = None) -> Client:
    """Get cached Supabase client."""
    global _supabase_client
    if _supabase_client is None:
        if settings is None:
            settings = get_settings()
        # Prefer new secret key, fall back to legacy service_role_key
        api_key = settings.supabase_secret_key or settings.supabase_service_role_key
        if not api_key:
            raise ValueError("Either SUPABASE_SECRET_KEY or SUPABASE_SERVICE_ROLE_KEY must be set")
        _supabase_client = create_client(settings.supabase_url, api_key)
    return _supabase_client


def get_db(settings: Annotated[Settings, Depends(get_settings)]) -> Client:
    """FastAPI dependency for Supabase client."""
    return get_supabase_client(settings)


# Type alias for dependency injection
Database = Annotated[Client, Depends(get_db)]


# =============================================================================
# Table Names
# =============================================================================

PROFILES_TABLE = "profiles"
WALLETS_TABLE = "wallets"
TRANSACTIONS_TABLE = "transactions"
NOTIFICATIONS_TABLE = "notifications"
REFERRALS_TABLE = "referrals"
REFERRAL_TIERS_TABLE = "referral_tiers"
SYSTEM_CONFIG_TABLE = "system_config"
GAME_HISTORY_TABLE = "game_history"
FAIR_SEEDS_TABLE = "fair_seeds"
GAME_SESSIONS_TABLE = "game_sessions"
SPIN_ITEMS_TABLE = "spin_items"
TASKS_TABLE = "tasks"
USER_TASKS_TABLE = "user_tasks"
MARKETPLACE_TASKS_TABLE = "marketplace_tasks"
MARKETPLACE_SUBMISSIONS_TABLE = "marketplace_submissions"
INVESTMENT_PLANS_TABLE = "investment_plans"
INVESTMENTS_TABLE = "investments"
PAYMENT_METHODS_TABLE = "payment_methods"
DEPOSIT_REQUESTS_TABLE = "deposit_requests"
DEPOSIT_BONUSES_TABLE = "deposit_bonuses"
WITHDRAWAL_SETTINGS_TABLE = "withdrawal_settings"
WITHDRAW_REQUESTS_TABLE = "withdraw_requests"
USER_WITHDRAWAL_METHODS_TABLE = "user_withdrawal_methods"
KYC_REQUESTS_TABLE = "kyc_requests"
LOTTERIES_TABLE = "lotteries"
LOTTERY_TICKETS_TABLE = "lottery_tickets"

TRANSACTION_TYPES = (
    "deposit",
    "withdraw",
    "earn",
    "bonus",
    "invest",
    "game_win",
    "game_loss",
    "referral",
    "penalty",
    "transfer",
)
TRANSACTION_STATUSES = ("success", "pending", "failed")
NOTIFICATION_TYPES = ("info", "success", "warning", "error")


# =============================================================================
# Value Helpers
# =============================================================================

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)


def is_valid_uuid(value: Any) -> bool:
    """Basic UUID format check."""
    return isinstance(value, str) and bool(_UUID_RE.match(value.strip()))


def to_decimal(value: Any) -> Decimal:
    """Convert a database number to Decimal (None -> 0)."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def as_number(value: Decimal, places: int = 4) -> float:
    """Round a Decimal for a JSON payload."""
    quantum = Decimal(1).scaleb(-places)
    return float(to_decimal(value).quantize(quantum, rounding=ROUND_HALF_UP))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Profile Operations
# =============================================================================


async def get_profile(db: Client, user_id: str) -> dict | None:
    """Get a profile by user id."""
    result = db.table(PROFILES_TABLE).select("*").eq("id", user_id).execute()
    return result.data[0] if result.data else None


async def get_profile_by_ref_code(db: Client, ref_code: str) -> dict | None:
    """Get a profile by its referral code."""
    result = db.table(PROFILES_TABLE).select("*").eq("ref_code_1", ref_code).limit(1).execute()
    return result.data[0] if result.data else None


async def get_profile_by_uid_or_email(db: Client, identifier: str) -> dict | None:
    """Find a profile by 8-digit public uid or by email."""
    identifier = identifier.strip()
    if identifier.isdigit():
        result = (
            db.table(PROFILES_TABLE).select("*").eq("user_uid", int(identifier)).limit(1).execute()
        )
    else:
        result = (
            db.table(PROFILES_TABLE)
            .select("*")
            .eq("email_1", identifier.lower())
            .limit(1)
            .execute()
        )
    return result.data[0] if result.data else None


# =============================================================================
# Notifications and Transaction Log
# =============================================================================


async def create_notification(
    db: Client,
    user_id: str,
    title: str,
    message: str,
    type: str = "info",
) -> dict | None:
    """Insert an unread notification for a user."""
    if not is_valid_uuid(user_id):
        logger.warning(f"Skipping notification: invalid user id {user_id!r}")
        return None
    if type not in NOTIFICATION_TYPES:
        type = "info"
    result = (
        db.table(NOTIFICATIONS_TABLE)
        .insert(
            {
                "user_id": user_id,
                "title": title,
                "message": message,
                "type": type,
                "is_read": False,
            }
        )
        .execute()
    )
    return result.data[0] if result.data else None


async def record_transaction(
    db: Client,
    user_id: str,
    type: str,
    amount: Decimal,
    description: str,
    status: str = "success",
    metadata: dict | None = None,
) -> dict | None:
    """Append a row to the user's transaction log.

    Invalid user ids are skipped with a warning instead of raising.
    """
    if not is_valid_uuid(user_id):
        logger.warning(f"Skipping transaction log: invalid user id {user_id!r}")
        return None
    if type not in TRANSACTION_TYPES:
        raise ValueError(f"Unknown transaction type: {type}")
    if status not in TRANSACTION_STATUSES:
        raise ValueError(f"Unknown transaction status: {status}")

    data = {
        "user_id": user_id,
        "type": type,
        "amount": as_number(amount),
        "status": status,
        "description": description,
    }
    if metadata:
        data["metadata"] = metadata
    result = db.table(TRANSACTIONS_TABLE).insert(data).execute()
    return result.data[0] if result.data else None
