"""Lucky draw routes."""

from fastapi import APIRouter, Request

from ..auth import CurrentUser
from ..database import Database
from ..logging_config import get_logger
from ..lottery import buy_ticket, list_lotteries, list_tickets
from ..rate_limit import GAME_ROUND_LIMIT, limiter
from ..system import require_feature

logger = get_logger("earnhub.routes.lottery")
router = APIRouter(
    prefix="/lottery",
    tags=["lottery"],
    dependencies=[require_feature("is_games_enabled")],
)


@router.get("")
async def get_lotteries(auth: CurrentUser, db: Database):
    return {"lotteries": await list_lotteries(db)}


@router.get("/tickets")
async def get_my_tickets(auth: CurrentUser, db: Database):
    return {"tickets": await list_tickets(db, auth.user_id)}


@router.post("/{lottery_id}/tickets")
@limiter.limit(GAME_ROUND_LIMIT)
async def buy(request: Request, lottery_id: str, auth: CurrentUser, db: Database):
    logger.info(f"POST /lottery/{lottery_id}/tickets | {auth.user_id}")
    return await buy_ticket(db, auth.user_id, lottery_id)
