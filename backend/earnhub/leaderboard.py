"""Top earners and investors, ranked from wallet totals."""

from __future__ import annotations

from supabase import Client

from .database import PROFILES_TABLE, WALLETS_TABLE, as_number, to_decimal
from .errors import InvalidRequestError

RANKINGS = {
    "earning": "total_earning",
    "invest": "investment_balance",
}


def ranking_field(by: str) -> str:
    field = RANKINGS.get(by)
    if field is None:
        raise InvalidRequestError("Rank by earning or invest")
    return field


async def get_leaderboard(
    db: Client, user_id: str, by: str = "earning", limit: int = 20
) -> dict:
    """Top wallets by the chosen total, plus the caller's own rank."""
    field = ranking_field(by)
    top = (
        db.table(WALLETS_TABLE)
        .select(f"user_id, {field}")
        .gt(field, 0)
        .order(field, desc=True)
        .limit(limit)
        .execute()
    ).data or []

    ids = [row["user_id"] for row in top]
    profiles = {}
    if ids:
        result = (
            db.table(PROFILES_TABLE)
            .select("id, name_1, avatar_1, level_1, user_uid")
            .in_("id", ids)
            .execute()
        )
        profiles = {p["id"]: p for p in result.data or []}

    leaders = []
    for rank, row in enumerate(top, start=1):
        profile = profiles.get(row["user_id"], {})
        leaders.append(
            {
                "rank": rank,
                "user_id": row["user_id"],
                "uid": profile.get("user_uid"),
                "name": profile.get("name_1") or "Anonymous",
                "avatar": profile.get("avatar_1"),
                "level": profile.get("level_1"),
                "amount": as_number(to_decimal(row.get(field))),
                "is_current_user": row["user_id"] == user_id,
            }
        )

    return {"by": by, "leaders": leaders, "me": await _own_rank(db, user_id, field)}


async def _own_rank(db: Client, user_id: str, field: str) -> dict | None:
    mine = db.table(WALLETS_TABLE).select(field).eq("user_id", user_id).limit(1).execute()
    if not mine.data:
        return None
    amount = to_decimal(mine.data[0].get(field))
    ahead = (
        db.table(WALLETS_TABLE)
        .select("user_id", count="exact")
        .gt(field, as_number(amount))
        .execute()
    )
    return {"rank": (ahead.count or 0) + 1, "amount": as_number(amount)}
