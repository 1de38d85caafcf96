"""Admin routes: platform switches, payment approvals, KYC, risk and draws.

Every route requires a profile with the admin flag.
"""

from typing import Any

from fastapi import APIRouter, Query
from pydantic import BaseModel

from .. import lottery
from ..auth import AdminUser
from ..database import KYC_REQUESTS_TABLE, PROFILES_TABLE, Database
from ..errors import InvalidRequestError, NotFoundError
from ..logging_config import get_logger
from ..lottery import LotteryCreate
from ..payments import deposits, withdrawals
from ..system import update_system_config
from ..tasks.service import review_submission
from ..verification import Verifier
from ..verification.service import assess_user_risk, review_kyc

logger = get_logger("earnhub.routes.admin")
router = APIRouter(prefix="/admin", tags=["admin"])


# =============================================================================
# Models
# =============================================================================


class ReviewRequest(BaseModel):
    """Approve or reject a pending request."""

    approve: bool
    note: str | None = None


class UserFlagsRequest(BaseModel):
    is_suspended: bool | None = None
    is_withdraw_blocked: bool | None = None


# =============================================================================
# System
# =============================================================================


@router.patch("/system/config")
async def patch_system_config(changes: dict[str, Any], auth: AdminUser, db: Database):
    """Update feature flags, maintenance mode, alert and P2P parameters."""
    logger.info(f"PATCH /admin/system/config | {auth.user_id} | {sorted(changes)}")
    return await update_system_config(db, changes)


# =============================================================================
# Deposits and Withdrawals
# =============================================================================


@router.get("/deposits")
async def list_deposits(
    auth: AdminUser,
    db: Database,
    status: str | None = "pending",
    limit: int = Query(50, ge=1, le=200),
):
    return {"deposits": await deposits.list_deposit_requests(db, status=status, limit=limit)}


@router.post("/deposits/{request_id}/review")
async def review_deposit(request_id: str, body: ReviewRequest, auth: AdminUser, db: Database):
    logger.info(f"POST /admin/deposits/{request_id}/review | {auth.user_id}"
                f" | approve={body.approve}")
    if body.approve:
        return await deposits.approve_deposit(db, request_id, body.note)
    return await deposits.reject_deposit(db, request_id, body.note)


@router.get("/withdrawals")
async def list_withdrawals(
    auth: AdminUser,
    db: Database,
    status: str | None = "pending",
    limit: int = Query(50, ge=1, le=200),
):
    requests = await withdrawals.list_withdraw_requests(db, status=status, limit=limit)
    return {"withdrawals": requests}


@router.post("/withdrawals/{request_id}/review")
async def review_withdrawal(request_id: str, body: ReviewRequest, auth: AdminUser, db: Database):
    logger.info(f"POST /admin/withdrawals/{request_id}/review | {auth.user_id}"
                f" | approve={body.approve}")
    if body.approve:
        return await withdrawals.approve_withdrawal(db, request_id, body.note)
    return await withdrawals.reject_withdrawal(db, request_id, body.note)


# =============================================================================
# KYC, Risk and Users
# =============================================================================


@router.get("/kyc")
async def list_kyc(auth: AdminUser, db: Database, status: str = "pending"):
    result = (
        db.table(KYC_REQUESTS_TABLE)
        .select("*")
        .eq("status", status)
        .order("created_at", desc=True)
        .execute()
    )
    return {"requests": result.data or []}


@router.post("/kyc/{request_id}/review")
async def review_kyc_request(request_id: str, body: ReviewRequest, auth: AdminUser, db: Database):
    logger.info(f"POST /admin/kyc/{request_id}/review | {auth.user_id} | approve={body.approve}")
    return await review_kyc(db, request_id, body.approve, body.note)


@router.post("/users/{user_id}/risk")
async def assess_risk(user_id: str, auth: AdminUser, db: Database, client: Verifier):
    """Run the AI risk check on a user's recent activity."""
    logger.info(f"POST /admin/users/{user_id}/risk | {auth.user_id}")
    return await assess_user_risk(db, client, user_id)


@router.patch("/users/{user_id}")
async def update_user_flags(user_id: str, body: UserFlagsRequest, auth: AdminUser, db: Database):
    changes = body.model_dump(exclude_none=True)
    logger.info(f"PATCH /admin/users/{user_id} | {auth.user_id} | {changes}")
    if not changes:
        raise InvalidRequestError("Nothing to update")
    result = db.table(PROFILES_TABLE).update(changes).eq("id", user_id).execute()
    if not result.data:
        raise NotFoundError("User not found")
    return result.data[0]


@router.post("/submissions/{submission_id}/review")
async def review_task_submission(
    submission_id: str, body: ReviewRequest, auth: AdminUser, db: Database
):
    logger.info(f"POST /admin/submissions/{submission_id}/review | {auth.user_id}"
                f" | approve={body.approve}")
    return await review_submission(db, auth, submission_id, body.approve, body.note)


# =============================================================================
# Lucky Draws
# =============================================================================


@router.post("/lotteries")
async def create_lottery(body: LotteryCreate, auth: AdminUser, db: Database):
    logger.info(f"POST /admin/lotteries | {auth.user_id} | {body.title}")
    return await lottery.create_lottery(db, body)


@router.post("/lotteries/{lottery_id}/draw")
async def draw_lottery(lottery_id: str, auth: AdminUser, db: Database):
    """Pick the winning ticket and pay or announce the prize."""
    logger.info(f"POST /admin/lotteries/{lottery_id}/draw | {auth.user_id}")
    return await lottery.draw_lottery(db, lottery_id)
