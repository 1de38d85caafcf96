"""Daily login bonus.

The streak is derived from the user's most recent "Daily Login Bonus
(Day N)" transaction: claiming on the next UTC day continues the streak,
any longer gap restarts it at day 1, and day 7 wraps back to day 1.
"""

import re
from datetime import datetime, timedelta
from decimal import Decimal

from dateutil.parser import isoparse
from supabase import Client

from ..database import TRANSACTIONS_TABLE, record_transaction, utcnow
from ..errors import ConflictError
from ..logging_config import get_logger
from .ledger import credit

logger = get_logger("earnhub.wallets.bonuses")

DAILY_REWARDS = [
    Decimal("0.10"),
    Decimal("0.20"),
    Decimal("0.30"),
    Decimal("0.40"),
    Decimal("0.50"),
    Decimal("0.75"),
    Decimal("1.00"),
]
DAILY_BONUS_PREFIX = "Daily Login Bonus"
_DAY_RE = re.compile(r"Day (\d+)")


async def _last_daily_bonus(db: Client, user_id: str) -> dict | None:
    result = (
        db.table(TRANSACTIONS_TABLE)
        .select("*")
        .eq("user_id", user_id)
        .eq("type", "bonus")
        .ilike("description", f"{DAILY_BONUS_PREFIX}%")
        .order("created_at", desc=True)
        .limit(1)
        .execute()
    )
    return result.data[0] if result.data else None


def _next_day(last_day: int, last_date, today) -> int:
    if last_date == today - timedelta(days=1):
        return last_day % len(DAILY_REWARDS) + 1
    return 1


async def get_daily_bonus_status(db: Client, user_id: str, now: datetime | None = None) -> dict:
    """Whether today's bonus can be claimed and which streak day it would be."""
    now = now or utcnow()
    today = now.date()
    last = await _last_daily_bonus(db, user_id)

    if not last:
        return {"can_claim": True, "day": 1, "reward": float(DAILY_REWARDS[0]), "last_claimed_at": None}

    last_date = isoparse(last["created_at"]).date()
    match = _DAY_RE.search(last.get("description") or "")
    last_day = int(match.group(1)) if match else 1

    if last_date == today:
        return {
            "can_claim": False,
            "day": last_day,
            "reward": float(DAILY_REWARDS[last_day - 1]),
            "last_claimed_at": last["created_at"],
        }

    day = _next_day(last_day, last_date, today)
    return {
        "can_claim": True,
        "day": day,
        "reward": float(DAILY_REWARDS[day - 1]),
        "last_claimed_at": last["created_at"],
    }


async def claim_daily_bonus(db: Client, user_id: str, now: datetime | None = None) -> dict:
    """Credit today's bonus to the bonus balance."""
    status = await get_daily_bonus_status(db, user_id, now)
    if not status["can_claim"]:
        raise ConflictError("Daily bonus already claimed today")

    day = status["day"]
    amount = DAILY_REWARDS[day - 1]
    await credit(db, user_id, "bonus_balance", amount)
    await record_transaction(db, user_id, "bonus", amount, f"{DAILY_BONUS_PREFIX} (Day {day})")
    logger.info(f"Daily bonus claimed | {user_id} | day {day} | {amount}")
    return {"day": day, "amount": float(amount)}
