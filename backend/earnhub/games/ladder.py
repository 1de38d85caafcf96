"""Apple Fortune: a multi-step ladder game.

The bet is debited when the session starts and the whole grid of bad
apples is drawn up front from the round's fair stream. The grid stays
server-side until the session ends. Each safe pick climbs one row; a bad
pick loses the bet, and the player may cash out at the current row's
multiplier after clearing at least one row.

A user has at most one open session, enforced by a unique index on
(user_id, game_id) over open rows. Ending a session is a guarded
transition out of `open`; only the request that wins it pays out.
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Any

from postgrest.exceptions import APIError
from supabase import Client

from ..database import GAME_SESSIONS_TABLE, as_number, to_decimal
from ..errors import ConflictError, InvalidRequestError, NotFoundError
from ..logging_config import get_logger
from ..wallets.ledger import debit_playable
from .catalog import APPLE_COLUMNS, APPLE_MULTIPLIERS, APPLE_ROWS, apple_grid
from .fairness import next_round_stream
from .settlement import (
    apply_fee,
    credit_payout,
    record_round,
    refund_bet,
    round_response,
    validate_bet,
)

logger = get_logger("earnhub.games.ladder")

GAME_ID = "apple_fortune"
GAME_NAME = "Apple Fortune"
ZERO = Decimal("0")


def session_view(session: dict) -> dict:
    """Public view of a session; the grid is revealed only once it ends."""
    state = session.get("state") or {}
    step = int(session.get("step") or 0)
    view = {
        "session_id": session["id"],
        "status": session["status"],
        "bet": as_number(to_decimal(session.get("bet"))),
        "step": step,
        "picks": state.get("picks", []),
        "current_multiplier": float(APPLE_MULTIPLIERS[step - 1]) if step else None,
        "next_multiplier": float(APPLE_MULTIPLIERS[step]) if step < APPLE_ROWS else None,
        "fairness": {
            "server_seed_hash": session.get("server_seed_hash"),
            "client_seed": session.get("client_seed"),
            "nonce": session.get("nonce"),
        },
    }
    if session["status"] != "open":
        view["grid"] = state.get("grid")
    return view


async def get_open_session(db: Client, user_id: str) -> dict | None:
    result = (
        db.table(GAME_SESSIONS_TABLE)
        .select("*")
        .eq("user_id", user_id)
        .eq("game_id", GAME_ID)
        .eq("status", "open")
        .limit(1)
        .execute()
    )
    return result.data[0] if result.data else None


async def _get_session(db: Client, user_id: str, session_id: str) -> dict:
    result = (
        db.table(GAME_SESSIONS_TABLE)
        .select("*")
        .eq("id", session_id)
        .eq("user_id", user_id)
        .limit(1)
        .execute()
    )
    if not result.data:
        raise NotFoundError("Game session not found")
    session = result.data[0]
    if session["status"] != "open":
        raise ConflictError("Game session already finished")
    return session


def _fairness(session: dict) -> dict:
    return {
        "server_seed_hash": session.get("server_seed_hash"),
        "client_seed": session.get("client_seed"),
        "nonce": session.get("nonce"),
    }


async def start(db: Client, user_id: str, bet: Any) -> dict:
    """Debit the bet and open a session with a freshly drawn grid."""
    bet = validate_bet(bet)
    if await get_open_session(db, user_id):
        raise ConflictError("Finish your current Apple Fortune game first")

    stream, fairness = await next_round_stream(db, user_id)
    grid = apple_grid(stream)
    taken = await debit_playable(db, user_id, bet)

    row = {
        "id": str(uuid.uuid4()),
        "user_id": user_id,
        "game_id": GAME_ID,
        "bet": as_number(bet),
        "step": 0,
        "status": "open",
        "state": {"grid": grid, "picks": []},
        **fairness,
    }
    try:
        result = db.table(GAME_SESSIONS_TABLE).insert(row).execute()
    except APIError as e:
        await refund_bet(db, user_id, taken, row["id"])
        logger.warning(f"Apple Fortune start lost race | {user_id} | {e}")
        raise ConflictError("Finish your current Apple Fortune game first") from e
    except Exception:
        await refund_bet(db, user_id, taken, row["id"])
        raise
    session = result.data[0] if result.data else row
    logger.info(f"Apple Fortune started | {user_id} | {session['id']} | {bet}")
    return session_view(session)


async def _close(db: Client, session: dict, status: str, step: int, picks: list) -> dict:
    state = {**(session.get("state") or {}), "picks": picks}
    result = (
        db.table(GAME_SESSIONS_TABLE)
        .update({"status": status, "step": step, "state": state})
        .eq("id", session["id"])
        .eq("status", "open")
        .execute()
    )
    if not result.data:
        raise ConflictError("Game session already finished")
    return result.data[0]


async def _settle(
    db: Client,
    user_id: str,
    session: dict,
    gross_payout: Decimal,
    details: dict,
    summary: str,
) -> dict:
    """Credit the payout of a closed session and record the round.

    If the credit fails nothing was paid and the session is reopened.
    """
    bet = to_decimal(session["bet"])
    payout, fee = apply_fee(bet, gross_payout)
    try:
        await credit_payout(db, user_id, bet, payout)
    except Exception:
        logger.error(f"Apple Fortune payout failed, reopening | {user_id} | {session['id']}")
        (
            db.table(GAME_SESSIONS_TABLE)
            .update({"status": "open", "step": session.get("step"), "state": session.get("state")})
            .eq("id", session["id"])
            .neq("status", "open")
            .execute()
        )
        raise
    return await record_round(
        db,
        user_id,
        GAME_ID,
        GAME_NAME,
        bet,
        payout,
        fee,
        details,
        summary,
        session["id"],
        _fairness(session),
    )


async def pick(db: Client, user_id: str, session_id: str, column: int) -> dict:
    """Reveal one cell in the current row."""
    if not 0 <= column < APPLE_COLUMNS:
        raise InvalidRequestError(f"Column must be between 0 and {APPLE_COLUMNS - 1}")

    session = await _get_session(db, user_id, session_id)
    state = session.get("state") or {}
    grid = state["grid"]
    step = int(session.get("step") or 0)
    if step >= APPLE_ROWS:
        raise InvalidRequestError("All rows cleared, cash out to finish")
    picks = [*state.get("picks", []), column]

    if column in grid[step]:
        closed = await _close(db, session, "lost", step, picks)
        history = await _settle(
            db, user_id, session, ZERO, {"picks": picks, "grid": grid, "row": step},
            f"Apple Fortune bad apple on row {step + 1}",
        )
        return {**session_view(closed), "result": "bad", "round": round_response(history)}

    step += 1
    if step == APPLE_ROWS:
        return await _cash_out(db, user_id, session, step, picks)

    result = (
        db.table(GAME_SESSIONS_TABLE)
        .update({"step": step, "state": {**state, "picks": picks}})
        .eq("id", session["id"])
        .eq("step", step - 1)
        .eq("status", "open")
        .execute()
    )
    if not result.data:
        raise ConflictError("Game session changed, refresh and retry")
    return {**session_view(result.data[0]), "result": "safe"}


async def cashout(db: Client, user_id: str, session_id: str) -> dict:
    """Take the current multiplier and end the session."""
    session = await _get_session(db, user_id, session_id)
    step = int(session.get("step") or 0)
    if step < 1:
        raise InvalidRequestError("Clear at least one row before cashing out")
    picks = (session.get("state") or {}).get("picks", [])
    return await _cash_out(db, user_id, session, step, picks)


async def _cash_out(db: Client, user_id: str, session: dict, step: int, picks: list) -> dict:
    multiplier = APPLE_MULTIPLIERS[step - 1]
    bet = to_decimal(session["bet"])
    closed = await _close(db, session, "cashed_out", step, picks)
    details = {
        "picks": picks,
        "grid": session["state"]["grid"],
        "rows_cleared": step,
        "multiplier": float(multiplier),
    }
    history = await _settle(
        db, user_id, session, bet * multiplier, details,
        f"Apple Fortune cashed out at x{multiplier}",
    )
    return {**session_view(closed), "result": "cashed_out", "round": round_response(history)}
