"""Task routes: sponsored tasks and the task marketplace."""

from fastapi import APIRouter, Request

from ..auth import CurrentUser
from ..database import Database
from ..logging_config import get_logger
from ..rate_limit import AI_LIMIT, limiter
from ..system import require_feature
from ..tasks import CampaignCreate, SubmissionCreate, SubmissionReview
from ..tasks import service
from ..verification import Verifier

logger = get_logger("earnhub.routes.tasks")
router = APIRouter(
    prefix="/tasks",
    tags=["tasks"],
    dependencies=[require_feature("is_tasks_enabled")],
)


# =============================================================================
# Sponsored Tasks
# =============================================================================


@router.get("")
async def get_tasks(auth: CurrentUser, db: Database):
    return {"tasks": await service.list_tasks(db, auth.user_id)}


@router.post("/{task_id}/claim")
async def claim(task_id: str, auth: CurrentUser, db: Database):
    logger.info(f"POST /tasks/{task_id}/claim | {auth.user_id}")
    return await service.claim_task(db, auth.user_id, task_id)


# =============================================================================
# Marketplace
# =============================================================================


@router.get("/marketplace")
async def get_marketplace(auth: CurrentUser, db: Database):
    """Open campaigns from other users."""
    return {"tasks": await service.list_campaigns(db, auth.user_id)}


@router.get("/marketplace/mine")
async def get_my_campaigns(auth: CurrentUser, db: Database):
    return {"tasks": await service.list_my_campaigns(db, auth.user_id)}


@router.post("/marketplace")
@limiter.limit(AI_LIMIT)
async def create_campaign(
    request: Request,
    body: CampaignCreate,
    auth: CurrentUser,
    db: Database,
    client: Verifier,
):
    """
    Fund and publish a campaign.

    The budget (quantity x price per action) is taken from the deposit
    balance first, then the main balance.
    """
    logger.info(f"POST /tasks/marketplace | {auth.user_id} | {body.title} x{body.quantity}")
    return await service.create_campaign(db, client, auth.user_id, body)


@router.post("/marketplace/{task_id}/submit")
@limiter.limit(AI_LIMIT)
async def submit(
    request: Request,
    task_id: str,
    body: SubmissionCreate,
    auth: CurrentUser,
    db: Database,
    client: Verifier,
):
    logger.info(f"POST /tasks/marketplace/{task_id}/submit | {auth.user_id}")
    return await service.submit_proof(db, client, auth.user_id, task_id, body)


@router.get("/marketplace/{task_id}/submissions")
async def get_submissions(task_id: str, auth: CurrentUser, db: Database, status: str | None = None):
    return {"submissions": await service.list_submissions(db, auth, task_id, status)}


@router.post("/marketplace/submissions/{submission_id}/review")
async def review(submission_id: str, body: SubmissionReview, auth: CurrentUser, db: Database):
    logger.info(f"POST /tasks/marketplace/submissions/{submission_id}/review | {auth.user_id}"
                f" | approve={body.approve}")
    return await service.review_submission(db, auth, submission_id, body.approve, body.note)
