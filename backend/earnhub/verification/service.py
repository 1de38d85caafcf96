"""KYC requests and user risk assessment."""

from supabase import Client

from ..config import get_settings
from ..database import (
    GAME_HISTORY_TABLE,
    KYC_REQUESTS_TABLE,
    PROFILES_TABLE,
    TRANSACTIONS_TABLE,
    create_notification,
    get_profile,
    utcnow,
)
from ..errors import ConflictError, InvalidRequestError, NotFoundError
from ..logging_config import get_logger
from .analysis import analyze_kyc_documents, analyze_user_risk
from .client import VerificationClient

logger = get_logger("earnhub.verification.service")

RISK_LOOKBACK = 50


async def submit_kyc(
    db: Client,
    client: VerificationClient,
    user_id: str,
    front_url: str,
    back_url: str,
) -> dict:
    """Store a KYC request together with the AI pre-check."""
    profile = await get_profile(db, user_id)
    if not profile:
        raise NotFoundError("Profile not found")
    if profile.get("is_kyc_1"):
        raise ConflictError("Account is already verified")

    pending = (
        db.table(KYC_REQUESTS_TABLE)
        .select("id")
        .eq("user_id", user_id)
        .eq("status", "pending")
        .limit(1)
        .execute()
    )
    if pending.data:
        raise ConflictError("A verification request is already pending")

    verdict = await analyze_kyc_documents(client, front_url, back_url, profile.get("name_1") or "")
    result = (
        db.table(KYC_REQUESTS_TABLE)
        .insert(
            {
                "user_id": user_id,
                "front_url": front_url,
                "back_url": back_url,
                "status": "pending",
                "ai_result": verdict,
            }
        )
        .execute()
    )
    logger.info(f"KYC submitted | {user_id} | ai_valid={verdict.get('is_valid')}")
    return result.data[0] if result.data else {}


async def review_kyc(db: Client, request_id: str, approve: bool, note: str | None = None) -> dict:
    """Approve or reject a pending KYC request."""
    result = db.table(KYC_REQUESTS_TABLE).select("*").eq("id", request_id).limit(1).execute()
    if not result.data:
        raise NotFoundError("KYC request not found")
    request = result.data[0]
    if request["status"] != "pending":
        raise InvalidRequestError("KYC request already processed")

    status = "approved" if approve else "rejected"
    updated = (
        db.table(KYC_REQUESTS_TABLE)
        .update({"status": status, "admin_note": note, "processed_at": utcnow().isoformat()})
        .eq("id", request_id)
        .eq("status", "pending")
        .execute()
    )
    if not updated.data:
        raise ConflictError("KYC request was processed concurrently")

    user_id = request["user_id"]
    if approve:
        db.table(PROFILES_TABLE).update({"is_kyc_1": True}).eq("id", user_id).execute()
        await create_notification(db, user_id, "Verified", "Your identity has been verified.", "success")
    else:
        await create_notification(
            db, user_id, "Verification Rejected", note or "Your documents could not be verified.", "error"
        )
    logger.info(f"KYC {status} | {user_id}")
    return updated.data[0]


async def assess_user_risk(db: Client, client: VerificationClient, user_id: str) -> dict:
    """Run the risk check, store the score and optionally suspend."""
    profile = await get_profile(db, user_id)
    if not profile:
        raise NotFoundError("Profile not found")

    transactions = (
        db.table(TRANSACTIONS_TABLE)
        .select("*")
        .eq("user_id", user_id)
        .order("created_at", desc=True)
        .limit(RISK_LOOKBACK)
        .execute()
    ).data or []
    games = (
        db.table(GAME_HISTORY_TABLE)
        .select("*")
        .eq("user_id", user_id)
        .eq("status", "settled")
        .order("created_at", desc=True)
        .limit(RISK_LOOKBACK)
        .execute()
    ).data or []

    verdict = await analyze_user_risk(client, profile, transactions, games)
    if verdict["verdict"] == "error":
        return {**verdict, "suspended": False}

    updates = {"risk_score": verdict["risk_score"]}
    suspended = verdict["verdict"] == "suspend" and get_settings().auto_suspend_on_risk
    if suspended:
        updates["is_suspended"] = True
    db.table(PROFILES_TABLE).update(updates).eq("id", user_id).execute()

    if suspended:
        logger.warning(f"User auto-suspended | {user_id} | {verdict['reason']}")
    return {**verdict, "suspended": suspended}
