"""Per-round game settlement.

A round is identified by a client-supplied `round_id`. The round is claimed
by inserting a pending `game_history` row, so a retried request returns
the recorded result instead of playing again. The bet is then debited
across the playable balances, the outcome resolved from the user's
provably fair stream and the payout (minus the fee on profit) credited to
the game balance. If resolving or crediting fails, the bet is refunded to
the balances it came from. Once the payout is credited nothing raises: the
history row, transaction log and side effects are written best effort.
"""

from __future__ import annotations

import uuid
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Awaitable, Mapping

from postgrest.exceptions import APIError
from supabase import Client

from ..config import get_settings
from ..database import (
    GAME_HISTORY_TABLE,
    SPIN_ITEMS_TABLE,
    as_number,
    create_notification,
    record_transaction,
    to_decimal,
)
from ..errors import ConflictError, InvalidRequestError
from ..logging_config import get_logger, log_game_round
from ..referrals.service import distribute_referral_reward
from ..wallets.ledger import apply_changes, debit_playable, get_wallet, playable_balance
from .catalog import GameOutcome, get_game
from .fairness import next_round_stream

logger = get_logger("earnhub.games.settlement")

ZERO = Decimal("0")
_CENT = Decimal("0.0001")


def _q(value: Decimal) -> Decimal:
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def validate_bet(bet: Any) -> Decimal:
    settings = get_settings()
    try:
        bet = to_decimal(bet)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidRequestError("Bet must be a number") from None
    if not bet.is_finite():
        raise InvalidRequestError("Bet must be a number")
    if bet < settings.min_bet:
        raise InvalidRequestError(f"Minimum bet is {settings.min_bet}")
    if bet > settings.max_bet:
        raise InvalidRequestError(f"Maximum bet is {settings.max_bet}")
    return bet


def apply_fee(bet: Decimal, gross_payout: Decimal) -> tuple[Decimal, Decimal]:
    """Deduct the house fee from the profit part of a payout.

    Returns (final payout, fee).
    """
    profit = gross_payout - bet
    if profit <= 0:
        return _q(gross_payout), ZERO
    fee = _q(profit * get_settings().game_fee_percent / 100)
    return _q(gross_payout - fee), fee


# =============================================================================
# History
# =============================================================================


async def get_round(db: Client, user_id: str, round_id: str) -> dict | None:
    result = (
        db.table(GAME_HISTORY_TABLE)
        .select("*")
        .eq("user_id", user_id)
        .eq("round_id", round_id)
        .limit(1)
        .execute()
    )
    return result.data[0] if result.data else None


async def list_history(
    db: Client, user_id: str, game_id: str | None = None, limit: int = 50
) -> list[dict]:
    query = db.table(GAME_HISTORY_TABLE).select("*").eq("user_id", user_id).eq("status", "settled")
    if game_id:
        query = query.eq("game_id", game_id)
    result = query.order("created_at", desc=True).limit(limit).execute()
    return result.data or []


def round_response(row: dict, replayed: bool = False) -> dict:
    return {
        "round_id": row["round_id"],
        "game_id": row["game_id"],
        "bet": as_number(to_decimal(row.get("bet"))),
        "payout": as_number(to_decimal(row.get("payout"))),
        "profit": as_number(to_decimal(row.get("profit"))),
        "fee": as_number(to_decimal(row.get("fee"))),
        "won": to_decimal(row.get("profit")) > 0,
        "details": row.get("details") or {},
        "fairness": {
            "server_seed_hash": row.get("server_seed_hash"),
            "client_seed": row.get("client_seed"),
            "nonce": row.get("nonce"),
        },
        "status": row.get("status"),
        "replayed": replayed,
    }


async def get_spin_items(db: Client) -> list[dict]:
    result = (
        db.table(SPIN_ITEMS_TABLE)
        .select("*")
        .eq("is_active", True)
        .order("value")
        .execute()
    )
    return result.data or []


# =============================================================================
# Settlement
# =============================================================================


async def credit_payout(db: Client, user_id: str, bet: Decimal, payout: Decimal) -> None:
    """Credit a final payout to the game balance and count profit as earnings."""
    profit = payout - bet
    deltas: dict[str, Decimal] = {}
    if payout > 0:
        deltas["game_balance"] = payout
    if profit > 0:
        deltas["total_earning"] = profit
        deltas["today_earning"] = profit
    if deltas:
        await apply_changes(db, user_id, deltas)


async def record_round(
    db: Client,
    user_id: str,
    game_id: str,
    game_name: str,
    bet: Decimal,
    payout: Decimal,
    fee: Decimal,
    details: dict,
    summary: str,
    round_id: str,
    fairness: dict,
    history_id: str | None = None,
) -> dict:
    """Write the settled history row, the transaction log and side effects."""
    settings = get_settings()
    profit = payout - bet
    description = summary
    if fee > 0:
        description += f" (Fee: -{fee:.2f})"

    row = {
        "user_id": user_id,
        "game_id": game_id,
        "game_name": game_name,
        "round_id": round_id,
        "bet": as_number(bet),
        "payout": as_number(payout),
        "profit": as_number(profit),
        "fee": as_number(fee),
        "details": {**details, "summary": description},
        "status": "settled",
        "server_seed_hash": fairness.get("server_seed_hash"),
        "client_seed": fairness.get("client_seed"),
        "nonce": fairness.get("nonce"),
    }
    saved = row
    try:
        if history_id:
            result = db.table(GAME_HISTORY_TABLE).update(row).eq("id", history_id).execute()
        else:
            result = db.table(GAME_HISTORY_TABLE).insert(row).execute()
        saved = result.data[0] if result.data else row
    except Exception as e:
        logger.error(f"Game history write failed | {user_id} | round={round_id} | {e}")
    log_game_round(user_id, game_id, round_id, bet, payout)

    await _after_credit(
        "Game transaction log",
        user_id,
        record_transaction(
            db, user_id, "game_win" if profit > 0 else "game_loss", abs(profit), description
        ),
    )
    if profit > 0:
        await _after_credit(
            "Referral commission", user_id, distribute_referral_reward(db, user_id, profit)
        )
    if profit > settings.big_win_threshold:
        await _after_credit(
            "Big win notification",
            user_id,
            create_notification(
                db, user_id, "Big Win!", f"You won ${profit:.2f} in {game_name}!", "success"
            ),
        )
    return saved


async def _after_credit(what: str, user_id: str, step: Awaitable) -> None:
    """Run a post-payout step; failures are logged, the round stays settled."""
    try:
        await step
    except Exception as e:
        logger.error(f"{what} failed | {user_id} | {e}")


async def _claim_round(db: Client, user_id: str, game_id: str, bet: Decimal, round_id: str):
    """Insert the pending history row. Returns (row, existing)."""
    existing = await get_round(db, user_id, round_id)
    if existing:
        return None, existing
    try:
        result = (
            db.table(GAME_HISTORY_TABLE)
            .insert(
                {
                    "user_id": user_id,
                    "game_id": game_id,
                    "round_id": round_id,
                    "bet": as_number(bet),
                    "status": "pending",
                }
            )
            .execute()
        )
    except APIError:
        # Unique (user_id, round_id) violated by a concurrent request
        existing = await get_round(db, user_id, round_id)
        if existing:
            return None, existing
        raise
    return result.data[0], None


async def settle_round(
    db: Client,
    user_id: str,
    game_id: str,
    bet: Any,
    choice: dict | None = None,
    round_id: str | None = None,
) -> dict:
    """Play and settle one round of a single-step game."""
    spec = get_game(game_id)
    choice = dict(choice or {})
    round_id = round_id or str(uuid.uuid4())

    if game_id == "lucky_spin":
        choice["items"] = await get_spin_items(db)
    choice = spec.validate(choice)
    if game_id == "dragon_spin":
        bet = sum(choice["stakes"].values(), ZERO)
    bet = validate_bet(bet)

    claimed, existing = await _claim_round(db, user_id, game_id, bet, round_id)
    if existing:
        if existing.get("status") == "pending":
            raise ConflictError("This round is still being settled")
        if existing.get("game_id") != game_id:
            raise ConflictError("Round id already used for another game")
        return round_response(existing, replayed=True)

    try:
        stream, fairness = await next_round_stream(db, user_id)
        taken = await debit_playable(db, user_id, bet)
    except Exception:
        db.table(GAME_HISTORY_TABLE).delete().eq("id", claimed["id"]).execute()
        raise

    try:
        outcome: GameOutcome = spec.resolve(stream, choice)
        payout, fee = apply_fee(bet, outcome.payout(bet))
        await credit_payout(db, user_id, bet, payout)
    except Exception:
        await refund_bet(db, user_id, taken, round_id, claimed["id"])
        raise

    saved = await record_round(
        db,
        user_id,
        game_id,
        spec.name,
        bet,
        payout,
        fee,
        outcome.details,
        outcome.summary,
        round_id,
        fairness,
        history_id=claimed["id"],
    )
    response = round_response(saved)
    wallet = await get_wallet(db, user_id)
    response["playable_balance"] = as_number(playable_balance(wallet))
    return response


async def refund_bet(
    db: Client,
    user_id: str,
    taken: Mapping[str, Decimal],
    round_id: str,
    history_id: str | None = None,
) -> None:
    """Return a debited bet to the balances it was drawn from."""
    logger.warning(f"Refunding bet | {user_id} | round={round_id} | {dict(taken)}")
    await apply_changes(db, user_id, taken)
    if history_id:
        db.table(GAME_HISTORY_TABLE).update({"status": "refunded"}).eq("id", history_id).execute()
