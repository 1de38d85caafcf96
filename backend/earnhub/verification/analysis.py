"""AI-assisted checks.

Each check asks the model for a JSON verdict. When the provider is down,
unconfigured or answers garbage, a safe verdict is returned so the item
lands in manual review instead of being approved.
"""

import json
from datetime import datetime
from decimal import Decimal

from ..database import to_decimal
from ..errors import VerificationError
from ..logging_config import get_logger
from .client import VerificationClient, text_with_images

logger = get_logger("earnhub.verification")

DEPOSIT_STATUSES = ("match", "mismatch", "suspicious", "unclear")
RISK_VERDICTS = ("suspend", "flag", "safe")

DEFAULT_QUIZ = {
    "question": "What is the primary color of the app logo?",
    "options": ["Red", "Blue", "Green", "Yellow"],
    "correct_index": 1,
}

SUPPORT_CONTEXT = (
    "You are the EarnHub support assistant. EarnHub lets users earn by completing "
    "tasks, inviting friends and holding investment plans, and play mini-games. "
    "Deposits are reviewed before they are credited; withdrawals are paid from the "
    "main balance after review. Answer briefly and never ask for passwords."
)

_TASK_HINTS = {
    "youtube": "Identify if the 'Subscribe' button is active or grayed out (Subscribed). "
    "Extract the channel name and subscriber count. Check for 'Liked' status.",
    "video": "Identify if the 'Subscribe' button is active or grayed out (Subscribed). "
    "Extract the channel name and subscriber count. Check for 'Liked' status.",
    "social": "Look for 'Follow', 'Following' or 'Liked' indicators. Extract the profile username.",
    "app": "Identify the main UI elements, header text and prominent button colors.",
}


def _confidence(value) -> int:
    try:
        return max(0, min(100, int(float(value))))
    except (TypeError, ValueError):
        return 0


# =============================================================================
# Deposits
# =============================================================================


async def analyze_deposit_screenshot(
    client: VerificationClient,
    image_url: str,
    claimed_amount: Decimal,
    claimed_trx: str,
    method: str,
    session_start: datetime | None = None,
) -> dict:
    """OCR a payment screenshot and compare it with the user's claim."""
    time_rule = ""
    if session_start:
        time_rule = (
            f"The user started the payment session at {session_start.isoformat()}. "
            "The valid window is 10 minutes. Reject screenshots older than the start "
            "time or more than 10 minutes after it."
        )
    prompt = (
        "Verify this payment screenshot.\n"
        f"Claimed amount: {claimed_amount}\n"
        f"Claimed transaction id: {claimed_trx}\n"
        f"Method: {method}\n"
        f"{time_rule}\n"
        "Extract the transaction id and amount, compare them with the claim and look "
        "for signs of editing. Return only JSON: "
        '{"status": "match|mismatch|suspicious|unclear", "found_trx": string|null, '
        '"found_amount": number|null, "confidence": 0-100, "reason": string}'
    )
    try:
        result = await client.complete_json(text_with_images(prompt, image_url))
    except VerificationError as e:
        logger.warning(f"Deposit screenshot check failed: {e}")
        return {"status": "error", "reason": "AI analysis failed. Manual review required."}

    status = str(result.get("status", "unclear")).lower()
    return {
        "status": status if status in DEPOSIT_STATUSES else "unclear",
        "found_trx": result.get("found_trx"),
        "found_amount": result.get("found_amount"),
        "confidence": _confidence(result.get("confidence")),
        "reason": result.get("reason", ""),
    }


# =============================================================================
# KYC
# =============================================================================


async def analyze_kyc_documents(
    client: VerificationClient, front_url: str, back_url: str, user_name: str
) -> dict:
    """Check an ID card pair against the profile name."""
    prompt = (
        f'Target name: "{user_name}". Analyze these two ID card images. Extract the name, '
        "compare it with the target (allow minor spelling differences), check for digital "
        "manipulation and whether it looks like a government ID. Return only JSON: "
        '{"is_valid": bool, "name_match": bool, "extracted_name": string, '
        '"document_type": string, "risk_score": 0-100, "notes": string}'
    )
    try:
        result = await client.complete_json(text_with_images(prompt, front_url, back_url))
    except VerificationError as e:
        logger.warning(f"KYC check failed: {e}")
        return {"is_valid": False, "notes": "AI analysis failed."}

    return {
        "is_valid": bool(result.get("is_valid")),
        "name_match": bool(result.get("name_match")),
        "extracted_name": result.get("extracted_name"),
        "document_type": result.get("document_type"),
        "risk_score": _confidence(result.get("risk_score")),
        "notes": result.get("notes", ""),
    }


# =============================================================================
# Marketplace tasks
# =============================================================================


async def analyze_task_reference(client: VerificationClient, image_url: str, category: str) -> dict:
    """Derive a visual profile and a quiz from a campaign's reference image."""
    hint = _TASK_HINTS.get(category, "Extract all visible text and dominant colors.")
    prompt = (
        f"This is the reference image for a micro-task campaign (category: {category}). "
        f"{hint} Summarize the features a worker's proof must show and write one "
        "multiple-choice question about a visual detail. Return only JSON: "
        '{"visual_dna": {"required_text": [string], "required_status": string, '
        '"dominant_colors": [string], "key_objects": [string]}, '
        '"quiz": {"question": string, "options": [4 strings], "correct_index": int}}'
    )
    try:
        result = await client.complete_json(text_with_images(prompt, image_url))
    except VerificationError as e:
        logger.warning(f"Task reference analysis failed: {e}")
        return {"visual_dna": {}, "quiz": dict(DEFAULT_QUIZ)}

    quiz = result.get("quiz")
    if not isinstance(quiz, dict) or not quiz.get("options"):
        quiz = dict(DEFAULT_QUIZ)
    visual_dna = result.get("visual_dna")
    return {"visual_dna": visual_dna if isinstance(visual_dna, dict) else {}, "quiz": quiz}


async def verify_task_submission(
    client: VerificationClient, image_url: str, visual_dna: dict
) -> dict:
    """Compare a worker's screenshot with the campaign's visual profile."""
    prompt = (
        "Compare the worker screenshot with this reference profile: "
        f"{json.dumps(visual_dna)}. Does it contain the required text and status, and do "
        'the colors and objects match? Return only JSON: '
        '{"match": bool, "confidence": 0-100, "reason": string}'
    )
    try:
        result = await client.complete_json(text_with_images(prompt, image_url))
    except VerificationError as e:
        logger.warning(f"Task submission check failed: {e}")
        return {"match": False, "confidence": 0, "reason": "AI verification failed"}

    return {
        "match": bool(result.get("match")),
        "confidence": _confidence(result.get("confidence")),
        "reason": result.get("reason", ""),
    }


# =============================================================================
# Risk
# =============================================================================


def activity_stats(transactions: list[dict], games: list[dict]) -> dict:
    """Totals the risk check is based on."""
    deposits = sum(
        (to_decimal(t.get("amount")) for t in transactions
         if t.get("type") == "deposit" and t.get("status") == "success"),
        Decimal("0"),
    )
    withdrawals = sum(
        (to_decimal(t.get("amount")) for t in transactions if t.get("type") == "withdraw"),
        Decimal("0"),
    )
    played = len(games)
    won = sum(1 for g in games if to_decimal(g.get("profit")) > 0)
    return {
        "deposit_total": float(deposits),
        "withdraw_total": float(withdrawals),
        "games_played": played,
        "win_rate": round(won / played * 100, 1) if played else 0.0,
    }


async def analyze_user_risk(
    client: VerificationClient,
    profile: dict,
    transactions: list[dict],
    games: list[dict],
) -> dict:
    """Score a user's recent activity for fraud."""
    stats = activity_stats(transactions, games)
    prompt = (
        "Analyze this user's activity for fraud.\n"
        f"User: {profile.get('id')} created {profile.get('created_at')}\n"
        f"Deposits ${stats['deposit_total']}, withdrawals ${stats['withdraw_total']}\n"
        f"Games: {stats['games_played']} played, {stats['win_rate']}% win rate\n"
        "Rules: win rate over 90% with more than 10 games means suspend; withdrawals over "
        "5x deposits without wins means suspend; a new account with high withdrawals means "
        'flag. Return only JSON: {"risk_score": 0-100, "verdict": "suspend|flag|safe", '
        '"reason": string}'
    )
    try:
        result = await client.complete_json([{"role": "user", "content": prompt}])
    except VerificationError as e:
        logger.warning(f"Risk analysis failed: {e}")
        return {"risk_score": 0, "verdict": "error", "reason": "Analysis failed", **stats}

    verdict = str(result.get("verdict", "flag")).lower()
    return {
        "risk_score": _confidence(result.get("risk_score")),
        "verdict": verdict if verdict in RISK_VERDICTS else "flag",
        "reason": result.get("reason", ""),
        **stats,
    }


# =============================================================================
# Support
# =============================================================================


async def chat(client: VerificationClient, message: str, history: list[dict] | None = None) -> str:
    """Answer a support question."""
    messages = [{"role": "system", "content": SUPPORT_CONTEXT}]
    messages.extend(history or [])
    messages.append({"role": "user", "content": message})
    return await client.complete(messages)
