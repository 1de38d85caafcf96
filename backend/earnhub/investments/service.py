"""Fixed-term investment plans with daily claimable returns."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP

from dateutil.parser import isoparse
from supabase import Client

from ..database import (
    INVESTMENT_PLANS_TABLE,
    INVESTMENTS_TABLE,
    as_number,
    create_notification,
    record_transaction,
    to_decimal,
    utcnow,
)
from ..errors import ConflictError, InvalidRequestError, NotFoundError
from ..logging_config import get_logger
from ..referrals.service import distribute_referral_reward
from ..wallets.ledger import apply_changes, debit_ordered

logger = get_logger("earnhub.investments")

INVEST_FUNDING_ORDER = ("deposit_balance", "main_balance")
CLAIM_INTERVAL = timedelta(hours=24)

DEFAULT_PLANS = [
    {"id": "starter", "name": "Starter Pack", "daily_return": 2.5, "duration_days": 7, "min_invest": 50},
    {"id": "golden", "name": "Golden Growth", "daily_return": 3.2, "duration_days": 15, "min_invest": 200},
    {"id": "royal", "name": "Royal Estate", "daily_return": 4.5, "duration_days": 30, "min_invest": 1000},
]


async def list_plans(db: Client) -> list[dict]:
    """Active plans from the database, or the built-in plans when none exist."""
    try:
        result = db.table(INVESTMENT_PLANS_TABLE).select("*").eq("is_active", True).execute()
    except Exception as e:
        logger.error(f"Failed to load investment plans: {e}")
        return list(DEFAULT_PLANS)
    return result.data or list(DEFAULT_PLANS)


async def get_plan(db: Client, plan_id: str) -> dict:
    for plan in await list_plans(db):
        if str(plan["id"]) == str(plan_id):
            return plan
    raise NotFoundError("Investment plan not found")


async def list_investments(db: Client, user_id: str) -> list[dict]:
    result = (
        db.table(INVESTMENTS_TABLE)
        .select("*")
        .eq("user_id", user_id)
        .order("created_at", desc=True)
        .execute()
    )
    return result.data or []


async def get_investment(db: Client, user_id: str, investment_id: str) -> dict:
    result = (
        db.table(INVESTMENTS_TABLE)
        .select("*")
        .eq("id", investment_id)
        .eq("user_id", user_id)
        .limit(1)
        .execute()
    )
    if not result.data:
        raise NotFoundError("Investment not found")
    return result.data[0]


async def invest(db: Client, user_id: str, plan_id: str, amount: Decimal | None = None) -> dict:
    """Buy into a plan, moving capital into the investment balance."""
    plan = await get_plan(db, plan_id)
    minimum = to_decimal(plan.get("min_invest"))
    amount = minimum if amount is None else to_decimal(amount)
    if amount < minimum or amount <= 0:
        raise InvalidRequestError(f"Minimum investment is {as_number(minimum)}")

    percent = to_decimal(plan.get("daily_return"))
    duration = int(plan.get("duration_days") or 0)
    daily_return = (amount * percent / 100).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)

    taken = await debit_ordered(
        db, user_id, amount, INVEST_FUNDING_ORDER, credit_to="investment_balance"
    )

    now = utcnow()
    row = {
        "user_id": user_id,
        "plan_id": str(plan["id"]),
        "plan_name": plan.get("name"),
        "amount": as_number(amount),
        "daily_percent": as_number(percent),
        "daily_return": as_number(daily_return),
        "duration_days": duration,
        "claims_made": 0,
        "start_date": now.isoformat(),
        "end_date": (now + timedelta(days=duration)).isoformat(),
        "next_claim_at": (now + CLAIM_INTERVAL).isoformat(),
        "status": "active",
    }
    try:
        result = db.table(INVESTMENTS_TABLE).insert(row).execute()
    except Exception:
        logger.error(f"Investment insert failed, refunding | {user_id} | {amount}")
        await apply_changes(db, user_id, {**taken, "investment_balance": -amount})
        raise

    await record_transaction(db, user_id, "invest", amount, f"Invested in {plan.get('name')}")
    logger.info(f"Investment created | {user_id} | {plan.get('name')} | {amount}")
    return result.data[0] if result.data else row


async def claim_return(db: Client, user_id: str, investment_id: str) -> dict:
    """Claim one day of returns; mature the investment after its end date."""
    investment = await get_investment(db, user_id, investment_id)
    if investment.get("status") != "active":
        raise InvalidRequestError("Investment is not active")

    now = utcnow()
    next_claim = isoparse(investment["next_claim_at"])
    if now < next_claim:
        raise InvalidRequestError(f"Next claim available at {next_claim.isoformat()}")

    claims_made = int(investment.get("claims_made") or 0)
    duration = int(investment.get("duration_days") or 0)
    matured = now >= isoparse(investment["end_date"])
    reward = to_decimal(investment.get("daily_return")) if claims_made < duration else Decimal("0")
    if reward <= 0 and not matured:
        raise InvalidRequestError("All returns for this investment have been claimed")

    updates = {
        "claims_made": claims_made + (1 if reward > 0 else 0),
        "next_claim_at": (now + CLAIM_INTERVAL).isoformat(),
    }
    if matured:
        updates["status"] = "completed"
    result = (
        db.table(INVESTMENTS_TABLE)
        .update(updates)
        .eq("id", investment_id)
        .eq("claims_made", claims_made)
        .eq("status", "active")
        .execute()
    )
    if not result.data:
        raise ConflictError("Investment was claimed concurrently")

    if reward > 0:
        await apply_changes(
            db,
            user_id,
            {"earning_balance": reward, "total_earning": reward, "today_earning": reward},
        )
        await record_transaction(
            db, user_id, "earn", reward, f"Investment Return: {investment.get('plan_name')}"
        )
        try:
            await distribute_referral_reward(db, user_id, reward)
        except Exception as e:
            logger.error(f"Referral commission failed | {user_id} | {e}")

    capital = Decimal("0")
    if matured:
        capital = to_decimal(investment.get("amount"))
        await apply_changes(db, user_id, {"investment_balance": -capital, "main_balance": capital})
        await record_transaction(
            db, user_id, "earn", capital, f"Capital Return: {investment.get('plan_name')}"
        )
        await create_notification(
            db,
            user_id,
            "Investment Matured",
            f"{investment.get('plan_name')} completed. Capital returned to your main balance.",
            "success",
        )
        logger.info(f"Investment matured | {user_id} | {investment_id} | capital={capital}")

    return {
        "investment": result.data[0],
        "reward": as_number(reward),
        "capital_returned": as_number(capital),
    }
