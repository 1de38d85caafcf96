"""Referral routes."""

from fastapi import APIRouter

from ..auth import CurrentUser
from ..database import Database
from ..referrals import get_referral_stats
from ..system import require_feature

router = APIRouter(
    prefix="/referrals",
    tags=["referrals"],
    dependencies=[require_feature("is_invite_enabled")],
)


@router.get("/me")
async def my_referrals(auth: CurrentUser, db: Database):
    """Referral code, invited users and commission earned."""
    return await get_referral_stats(db, auth.user_id)
