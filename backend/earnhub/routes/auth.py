"""Profile bootstrap and current-user routes."""

from fastapi import APIRouter
from pydantic import BaseModel, Field

from ..auth import CurrentUser
from ..database import Database, get_profile
from ..errors import InvalidRequestError, NotFoundError
from ..logging_config import get_logger, log_auth_event
from ..referrals import create_user_profile
from ..system import get_system_config
from ..wallets import get_wallet
from ..wallets.ledger import wallet_summary

logger = get_logger("earnhub.routes.auth")
router = APIRouter(prefix="/auth", tags=["auth"])


class ProfileCreateRequest(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=100)
    email: str | None = None
    referral_code: str | None = Field(None, max_length=20)
    currency: str = "USD"


@router.post("/profile")
async def bootstrap_profile(request: ProfileCreateRequest, auth: CurrentUser, db: Database):
    """
    Create the caller's profile and wallet after sign-up.

    Safe to call again: existing rows are kept and the welcome bonus is
    only granted once.
    """
    logger.info(f"POST /auth/profile | {auth.user_id}")
    email = request.email or auth.email
    if not email:
        raise InvalidRequestError("Email is required")

    referral_code = request.referral_code
    if referral_code:
        config = await get_system_config(db)
        if not config.is_invite_enabled:
            referral_code = None

    result = await create_user_profile(
        db,
        auth.user_id,
        email,
        request.full_name,
        referral_code=referral_code,
        currency=request.currency,
    )
    log_auth_event("profile", auth.user_id, True)
    return result


@router.get("/me")
async def get_me(auth: CurrentUser, db: Database):
    """Current user's profile and wallet summary."""
    logger.info(f"GET /auth/me | {auth.user_id}")
    profile = auth.profile or await get_profile(db, auth.user_id)
    if not profile:
        raise NotFoundError("Profile not found. Complete sign-up first.")
    wallet = await get_wallet(db, auth.user_id)
    return {
        "user_id": auth.user_id,
        "email": auth.email,
        "is_admin": auth.is_admin,
        "profile": profile,
        "wallet": wallet_summary(wallet),
    }
