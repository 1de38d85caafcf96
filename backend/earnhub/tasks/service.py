"""Sponsored tasks and the user-funded task marketplace.

Sponsored tasks are created by the platform and pay a fixed reward once or
once per day. Marketplace campaigns are funded up front by their creator;
workers earn `worker_reward_share` of the price per action for each
approved proof.
"""

from __future__ import annotations

from datetime import datetime, time, timezone
from decimal import Decimal, ROUND_HALF_UP

from postgrest.exceptions import APIError
from supabase import Client

from ..auth import AuthContext
from ..config import get_settings
from ..database import (
    MARKETPLACE_SUBMISSIONS_TABLE,
    MARKETPLACE_TASKS_TABLE,
    TASKS_TABLE,
    USER_TASKS_TABLE,
    as_number,
    create_notification,
    record_transaction,
    to_decimal,
    utcnow,
)
from ..errors import (
    ConflictError,
    InvalidRequestError,
    NotFoundError,
    PermissionDeniedError,
)
from ..logging_config import get_logger
from ..referrals.service import distribute_referral_reward
from ..verification.analysis import analyze_task_reference, verify_task_submission
from ..verification.client import VerificationClient
from ..wallets.ledger import apply_changes, debit_ordered
from .models import CampaignCreate, ProofType, SubmissionCreate, TaskFrequency

logger = get_logger("earnhub.tasks")

CAMPAIGN_FUNDING_ORDER = ("deposit_balance", "main_balance")
SCREENSHOT_AUTO_APPROVE_CONFIDENCE = 80
MAX_QUANTITY_ATTEMPTS = 5


def _start_of_day(now: datetime) -> str:
    return datetime.combine(now.date(), time.min, tzinfo=timezone.utc).isoformat()


async def _pay_earning(db: Client, user_id: str, amount: Decimal, description: str) -> None:
    """Credit an earning and pay the referrer's commission on it."""
    await apply_changes(
        db,
        user_id,
        {"earning_balance": amount, "total_earning": amount, "today_earning": amount},
    )
    await record_transaction(db, user_id, "earn", amount, description)
    try:
        await distribute_referral_reward(db, user_id, amount)
    except Exception as e:
        logger.error(f"Referral commission failed | {user_id} | {e}")


# =============================================================================
# Sponsored Tasks
# =============================================================================


async def get_task(db: Client, task_id: str) -> dict:
    result = db.table(TASKS_TABLE).select("*").eq("id", task_id).limit(1).execute()
    if not result.data:
        raise NotFoundError("Task not found")
    return result.data[0]


async def _claimed(db: Client, user_id: str, task_id: str, since: str | None = None) -> bool:
    query = db.table(USER_TASKS_TABLE).select("id").eq("user_id", user_id).eq("task_id", task_id)
    if since:
        query = query.gte("completed_at", since)
    return bool(query.limit(1).execute().data)


def claim_key(task: dict, now: datetime) -> str:
    """One key per allowed completion: the task id, or task id and day for daily tasks."""
    if task.get("frequency") == TaskFrequency.DAILY.value:
        return f"{task['id']}:{now.date().isoformat()}"
    return str(task["id"])


async def list_tasks(db: Client, user_id: str) -> list[dict]:
    """Active sponsored tasks with the caller's completion state."""
    tasks = (
        db.table(TASKS_TABLE)
        .select("*")
        .eq("is_active", True)
        .order("created_at", desc=True)
        .execute()
    )
    claims = (
        db.table(USER_TASKS_TABLE).select("task_id, completed_at").eq("user_id", user_id).execute()
    )
    today = _start_of_day(utcnow())
    claimed_ever = {c["task_id"] for c in claims.data or []}
    claimed_today = {c["task_id"] for c in claims.data or [] if c["completed_at"] >= today}

    listed = []
    for task in tasks.data or []:
        if task.get("frequency") == TaskFrequency.DAILY.value:
            status = "cooldown" if task["id"] in claimed_today else "available"
        else:
            status = "completed" if task["id"] in claimed_ever else "available"
        listed.append({**task, "status": status})
    return listed


async def claim_task(db: Client, user_id: str, task_id: str) -> dict:
    """Credit a sponsored task's reward to the earning balance."""
    task = await get_task(db, task_id)
    if not task.get("is_active"):
        raise InvalidRequestError("Task is not active")

    now = utcnow()
    if task.get("frequency") == TaskFrequency.DAILY.value:
        if await _claimed(db, user_id, task_id, since=_start_of_day(now)):
            raise ConflictError("Task already completed today")
    elif await _claimed(db, user_id, task_id):
        raise ConflictError("Task already completed")

    reward = to_decimal(task.get("reward"))
    if reward <= 0:
        raise InvalidRequestError("Task has no reward")

    try:
        db.table(USER_TASKS_TABLE).insert(
            {
                "user_id": user_id,
                "task_id": task_id,
                "claim_key": claim_key(task, now),
                "completed_at": now.isoformat(),
            }
        ).execute()
    except APIError as e:
        # Unique (user_id, claim_key) taken by a concurrent claim
        logger.warning(f"Duplicate task claim | {user_id} | {task_id} | {e}")
        raise ConflictError("Task already completed") from e
    await _pay_earning(db, user_id, reward, f"Task Completed: {task.get('title')}")
    logger.info(f"Task claimed | {user_id} | {task_id} | {reward}")
    return {"task_id": task_id, "reward": as_number(reward)}


# =============================================================================
# Marketplace Campaigns
# =============================================================================


def worker_reward(price_per_action: Decimal) -> Decimal:
    share = get_settings().worker_reward_share
    reward = to_decimal(price_per_action) * share
    return reward.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)


def public_campaign(task: dict) -> dict:
    """Campaign as shown to workers (quiz answer removed)."""
    view = {k: v for k, v in task.items() if k not in ("visual_dna", "expected_file_name")}
    quiz = task.get("quiz_config")
    if isinstance(quiz, dict):
        view["quiz_config"] = {k: v for k, v in quiz.items() if k != "correct_index"}
    return view


async def get_campaign(db: Client, task_id: str) -> dict:
    result = db.table(MARKETPLACE_TASKS_TABLE).select("*").eq("id", task_id).limit(1).execute()
    if not result.data:
        raise NotFoundError("Task not found")
    return result.data[0]


async def create_campaign(
    db: Client,
    client: VerificationClient,
    creator_id: str,
    data: CampaignCreate,
) -> dict:
    """Fund and publish a marketplace campaign."""
    if data.proof_type == ProofType.QUIZ and not data.quiz:
        raise InvalidRequestError("Quiz campaigns need a quiz")
    if data.quiz and data.quiz.correct_index >= len(data.quiz.options):
        raise InvalidRequestError("Quiz answer index is out of range")
    if data.proof_type == ProofType.FILE and not data.expected_file_name:
        raise InvalidRequestError("File campaigns need the expected file name")

    visual_dna: dict = {}
    quiz_config = data.quiz.model_dump() if data.quiz else None
    if data.proof_type == ProofType.SCREENSHOT and data.reference_image_url:
        reference = await analyze_task_reference(
            client, data.reference_image_url, data.category.value
        )
        visual_dna = reference["visual_dna"]
        quiz_config = quiz_config or reference["quiz"]

    budget = to_decimal(data.price_per_action) * data.quantity
    taken = await debit_ordered(db, creator_id, budget, CAMPAIGN_FUNDING_ORDER)

    row = {
        "creator_id": creator_id,
        "title": data.title,
        "description": data.description or "Visit the link and verify completion.",
        "category": data.category.value,
        "target_url": str(data.target_url),
        "total_quantity": data.quantity,
        "remaining_quantity": data.quantity,
        "price_per_action": as_number(data.price_per_action),
        "worker_reward": as_number(worker_reward(data.price_per_action)),
        "proof_type": data.proof_type.value,
        "timer_seconds": data.timer_seconds,
        "reference_image_url": data.reference_image_url,
        "visual_dna": visual_dna,
        "quiz_config": quiz_config,
        "expected_file_name": data.expected_file_name,
        "status": "active",
    }
    try:
        result = db.table(MARKETPLACE_TASKS_TABLE).insert(row).execute()
    except Exception:
        logger.error(f"Campaign insert failed, refunding | {creator_id} | {budget}")
        await apply_changes(db, creator_id, taken)
        raise

    await record_transaction(db, creator_id, "invest", budget, f"Ad Campaign: {data.title}")
    campaign = result.data[0] if result.data else row
    logger.info(f"Campaign created | {creator_id} | {campaign.get('id')} | budget={budget}")
    return campaign


async def list_campaigns(db: Client, user_id: str, limit: int = 50) -> list[dict]:
    """Active campaigns with open slots, excluding the caller's own."""
    result = (
        db.table(MARKETPLACE_TASKS_TABLE)
        .select("*")
        .eq("status", "active")
        .gt("remaining_quantity", 0)
        .neq("creator_id", user_id)
        .order("created_at", desc=True)
        .limit(limit)
        .execute()
    )
    return [public_campaign(t) for t in result.data or []]


async def list_my_campaigns(db: Client, creator_id: str) -> list[dict]:
    result = (
        db.table(MARKETPLACE_TASKS_TABLE)
        .select("*")
        .eq("creator_id", creator_id)
        .order("created_at", desc=True)
        .execute()
    )
    return result.data or []


async def _reserve_slot(db: Client, task_id: str) -> dict:
    """Decrement remaining quantity, completing the campaign at zero."""
    for _ in range(MAX_QUANTITY_ATTEMPTS):
        task = await get_campaign(db, task_id)
        remaining = int(task.get("remaining_quantity") or 0)
        if remaining <= 0 or task.get("status") != "active":
            raise ConflictError("This task has no remaining slots")
        updates = {"remaining_quantity": remaining - 1}
        if remaining - 1 == 0:
            updates["status"] = "completed"
        result = (
            db.table(MARKETPLACE_TASKS_TABLE)
            .update(updates)
            .eq("id", task_id)
            .eq("remaining_quantity", remaining)
            .execute()
        )
        if result.data:
            return result.data[0]
    raise ConflictError("Task is busy, please retry")


async def _evaluate_proof(
    client: VerificationClient, task: dict, proof: SubmissionCreate
) -> tuple[str, dict]:
    """Decide the initial submission status for a proof."""
    proof_type = task.get("proof_type")

    if proof_type == ProofType.QUIZ.value:
        quiz = task.get("quiz_config") or {}
        if proof.quiz_answer is None:
            raise InvalidRequestError("Answer the quiz")
        if proof.quiz_answer != quiz.get("correct_index"):
            raise InvalidRequestError("Incorrect answer. Please check the content again.")
        return "approved", {"method": proof_type, "answer": proof.quiz_answer}

    if proof_type == ProofType.FILE.value:
        if not proof.file_name:
            raise InvalidRequestError("Upload the downloaded file")
        if proof.file_name != task.get("expected_file_name"):
            raise InvalidRequestError("File does not match the expected download")
        return "approved", {"method": proof_type, "file": proof.file_name}

    if proof_type == ProofType.TEXT.value:
        if not (proof.text or "").strip():
            raise InvalidRequestError("Enter the required information")
        return "pending", {"method": proof_type, "input": proof.text}

    if not proof.screenshot_url:
        raise InvalidRequestError("Upload a screenshot as proof")
    data = {"method": ProofType.SCREENSHOT.value, "screenshot_url": proof.screenshot_url}
    if task.get("visual_dna"):
        verdict = await verify_task_submission(client, proof.screenshot_url, task["visual_dna"])
        data["ai_result"] = verdict
        if verdict["match"] and verdict["confidence"] >= SCREENSHOT_AUTO_APPROVE_CONFIDENCE:
            return "approved", data
    return "pending", data


async def submit_proof(
    db: Client,
    client: VerificationClient,
    worker_id: str,
    task_id: str,
    proof: SubmissionCreate,
) -> dict:
    """Submit proof for a marketplace task."""
    task = await get_campaign(db, task_id)
    if task.get("status") != "active" or int(task.get("remaining_quantity") or 0) <= 0:
        raise InvalidRequestError("This task is no longer available")
    if task.get("creator_id") == worker_id:
        raise PermissionDeniedError("You cannot complete your own task")

    existing = (
        db.table(MARKETPLACE_SUBMISSIONS_TABLE)
        .select("id")
        .eq("task_id", task_id)
        .eq("worker_id", worker_id)
        .limit(1)
        .execute()
    )
    if existing.data:
        raise ConflictError("You already submitted this task")

    status, submission_data = await _evaluate_proof(client, task, proof)
    try:
        result = (
            db.table(MARKETPLACE_SUBMISSIONS_TABLE)
            .insert(
                {
                    "task_id": task_id,
                    "worker_id": worker_id,
                    "status": status,
                    "submission_data": submission_data,
                }
            )
            .execute()
        )
    except APIError as e:
        # Unique (task_id, worker_id)
        raise ConflictError("You already submitted this task") from e
    submission = result.data[0]

    if status == "approved":
        try:
            task = await _reserve_slot(db, task_id)
        except Exception:
            db.table(MARKETPLACE_SUBMISSIONS_TABLE).delete().eq("id", submission["id"]).execute()
            raise
        await _pay_earning(
            db, worker_id, to_decimal(task.get("worker_reward")), f"Task: {task.get('title')}"
        )
    logger.info(f"Submission {status} | {worker_id} | {task_id}")
    return submission


async def list_submissions(
    db: Client, auth: AuthContext, task_id: str, status: str | None = None
) -> list[dict]:
    """Submissions for a campaign, visible to its creator and admins."""
    task = await get_campaign(db, task_id)
    if task.get("creator_id") != auth.user_id and not auth.is_admin:
        raise PermissionDeniedError("Not your campaign")
    query = db.table(MARKETPLACE_SUBMISSIONS_TABLE).select("*").eq("task_id", task_id)
    if status:
        query = query.eq("status", status)
    return query.order("created_at", desc=True).execute().data or []


async def review_submission(
    db: Client,
    auth: AuthContext,
    submission_id: str,
    approve: bool,
    note: str | None = None,
) -> dict:
    """Creator or admin approves or rejects a pending submission."""
    result = (
        db.table(MARKETPLACE_SUBMISSIONS_TABLE)
        .select("*")
        .eq("id", submission_id)
        .limit(1)
        .execute()
    )
    if not result.data:
        raise NotFoundError("Submission not found")
    submission = result.data[0]
    task = await get_campaign(db, submission["task_id"])
    if task.get("creator_id") != auth.user_id and not auth.is_admin:
        raise PermissionDeniedError("Not your campaign")
    if submission["status"] != "pending":
        raise InvalidRequestError("Submission already reviewed")

    new_status = "approved" if approve else "rejected"
    updated = (
        db.table(MARKETPLACE_SUBMISSIONS_TABLE)
        .update({"status": new_status, "review_note": note, "reviewed_at": utcnow().isoformat()})
        .eq("id", submission_id)
        .eq("status", "pending")
        .execute()
    )
    if not updated.data:
        raise ConflictError("Submission was reviewed concurrently")

    if approve:
        try:
            task = await _reserve_slot(db, task["id"])
        except Exception:
            db.table(MARKETPLACE_SUBMISSIONS_TABLE).update(
                {"status": "pending", "review_note": None, "reviewed_at": None}
            ).eq("id", submission_id).eq("status", "approved").execute()
            raise

    worker_id = submission["worker_id"]
    title = task.get("title")
    if approve:
        await _pay_earning(db, worker_id, to_decimal(task.get("worker_reward")), f"Task: {title}")
        await create_notification(
            db, worker_id, "Task Approved", f"Your proof for {title} was approved.", "success"
        )
    else:
        await create_notification(
            db, worker_id, "Task Rejected", note or f"Your proof for {title} was rejected.", "error"
        )
    logger.info(f"Submission reviewed | {submission_id} | {new_status} | by {auth.user_id}")
    return updated.data[0]
