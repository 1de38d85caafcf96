"""Support assistant and identity verification routes."""

from typing import Literal

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from ..auth import CurrentUser
from ..database import KYC_REQUESTS_TABLE, Database
from ..logging_config import get_logger
from ..rate_limit import AI_LIMIT, limiter
from ..verification import Verifier
from ..verification.analysis import chat
from ..verification.service import submit_kyc

logger = get_logger("earnhub.routes.support")
router = APIRouter(tags=["support"])


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str = Field(..., max_length=4000)


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=2000)
    history: list[ChatMessage] = Field(default_factory=list, max_length=20)


class KycRequest(BaseModel):
    front_url: str
    back_url: str


@router.post("/support/chat")
@limiter.limit(AI_LIMIT)
async def support_chat(request: Request, body: ChatRequest, auth: CurrentUser, client: Verifier):
    logger.info(f"POST /support/chat | {auth.user_id}")
    reply = await chat(client, body.message, [m.model_dump() for m in body.history])
    return {"reply": reply}


@router.post("/kyc")
@limiter.limit(AI_LIMIT)
async def create_kyc_request(
    request: Request,
    body: KycRequest,
    auth: CurrentUser,
    db: Database,
    client: Verifier,
):
    """Submit ID document images for verification."""
    logger.info(f"POST /kyc | {auth.user_id}")
    return await submit_kyc(db, client, auth.user_id, body.front_url, body.back_url)


@router.get("/kyc")
async def get_kyc_status(auth: CurrentUser, db: Database):
    result = (
        db.table(KYC_REQUESTS_TABLE)
        .select("id, status, admin_note, created_at")
        .eq("user_id", auth.user_id)
        .order("created_at", desc=True)
        .limit(1)
        .execute()
    )
    return {"request": result.data[0] if result.data else None}
