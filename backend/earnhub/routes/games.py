"""Game routes: catalog, single-round play, Apple Fortune and fairness."""

from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel, Field

from ..auth import CurrentUser
from ..database import Database
from ..games import ladder, list_games, list_history, settle_round
from ..games.fairness import get_active_seed, public_seed, rotate_seed, verify_round
from ..logging_config import get_logger
from ..rate_limit import GAME_ROUND_LIMIT, limiter
from ..system import require_feature

logger = get_logger("earnhub.routes.games")
router = APIRouter(
    prefix="/games",
    tags=["games"],
    dependencies=[require_feature("is_games_enabled")],
)


# =============================================================================
# Request Models
# =============================================================================


class PlayRequest(BaseModel):
    """One round of a single-step game.

    `choice` carries the game-specific pick (side, prediction, cup, stakes,
    risk and rows, target). Reusing a `round_id` returns the stored result.
    """

    bet: Decimal | None = Field(None, gt=0)
    choice: dict[str, Any] = Field(default_factory=dict)
    round_id: str | None = Field(None, min_length=8, max_length=64)


class LadderStartRequest(BaseModel):
    bet: Decimal = Field(..., gt=0)


class LadderPickRequest(BaseModel):
    column: int = Field(..., ge=0)


class RotateSeedRequest(BaseModel):
    client_seed: str | None = Field(None, min_length=1, max_length=64)


class VerifyRoundRequest(BaseModel):
    server_seed: str
    client_seed: str
    nonce: int = Field(..., ge=0)
    count: int = Field(8, ge=1, le=64)


# =============================================================================
# Catalog and History
# =============================================================================


@router.get("")
async def get_games():
    """Games with their multipliers and win probabilities."""
    return {"games": list_games()}


@router.get("/history")
async def get_history(
    auth: CurrentUser,
    db: Database,
    game_id: str | None = None,
    limit: int = Query(50, ge=1, le=200),
):
    logger.info(f"GET /games/history | {auth.user_id} | game={game_id}")
    return {"rounds": await list_history(db, auth.user_id, game_id=game_id, limit=limit)}


# =============================================================================
# Fairness
# =============================================================================


@router.get("/fairness")
async def get_fairness(auth: CurrentUser, db: Database):
    """The active seed pair (server seed hidden)."""
    return public_seed(await get_active_seed(db, auth.user_id))


@router.post("/fairness/rotate")
async def rotate_fairness(body: RotateSeedRequest, auth: CurrentUser, db: Database):
    """Reveal the current server seed and start a new pair."""
    logger.info(f"POST /games/fairness/rotate | {auth.user_id}")
    return await rotate_seed(db, auth.user_id, body.client_seed)


@router.post("/fairness/verify")
async def verify_fairness(body: VerifyRoundRequest):
    return verify_round(body.server_seed, body.client_seed, body.nonce, body.count)


# =============================================================================
# Apple Fortune
# =============================================================================


@router.get("/apple-fortune/current")
async def current_ladder(auth: CurrentUser, db: Database):
    session = await ladder.get_open_session(db, auth.user_id)
    return {"session": ladder.session_view(session) if session else None}


@router.post("/apple-fortune/start")
@limiter.limit(GAME_ROUND_LIMIT)
async def start_ladder(request: Request, body: LadderStartRequest, auth: CurrentUser, db: Database):
    logger.info(f"POST /games/apple-fortune/start | {auth.user_id} | bet={body.bet}")
    return await ladder.start(db, auth.user_id, body.bet)


@router.post("/apple-fortune/{session_id}/pick")
@limiter.limit(GAME_ROUND_LIMIT)
async def pick_ladder(
    request: Request,
    session_id: str,
    body: LadderPickRequest,
    auth: CurrentUser,
    db: Database,
):
    return await ladder.pick(db, auth.user_id, session_id, body.column)


@router.post("/apple-fortune/{session_id}/cashout")
async def cashout_ladder(session_id: str, auth: CurrentUser, db: Database):
    logger.info(f"POST /games/apple-fortune/{session_id}/cashout | {auth.user_id}")
    return await ladder.cashout(db, auth.user_id, session_id)


# =============================================================================
# Single-round Games
# =============================================================================


@router.post("/{game_id}/play")
@limiter.limit(GAME_ROUND_LIMIT)
async def play_round(
    request: Request,
    game_id: str,
    body: PlayRequest,
    auth: CurrentUser,
    db: Database,
):
    """
    Play one round server-side.

    The bet is debited, the outcome drawn from the caller's seed pair and
    the payout credited to the game balance. Dragon Spin takes its bet
    from the sum of `choice.stakes`.
    """
    logger.info(f"POST /games/{game_id}/play | {auth.user_id} | bet={body.bet}")
    return await settle_round(
        db,
        auth.user_id,
        game_id,
        body.bet,
        choice=body.choice,
        round_id=body.round_id,
    )
