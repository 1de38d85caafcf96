"""Leaderboard route."""

from typing import Literal

from fastapi import APIRouter, Query

from ..auth import CurrentUser
from ..database import Database
from ..leaderboard import get_leaderboard

router = APIRouter(prefix="/leaderboard", tags=["leaderboard"])


@router.get("")
async def leaderboard(
    auth: CurrentUser,
    db: Database,
    by: Literal["earning", "invest"] = "earning",
    limit: int = Query(20, ge=1, le=100),
):
    """Top earners or investors and the caller's own rank."""
    return await get_leaderboard(db, auth.user_id, by=by, limit=limit)
