"""Lucky draws.

An admin publishes a draw with a fixed number of tickets. Users buy
tickets from their playable balance; ticket numbers are handed out by a
guarded increment of `sold_tickets`, so every sold ticket gets a distinct
number. Drawing picks one sold ticket at random. Cash prizes are credited
to the winner's main balance; item prizes are delivered off-platform and
only announced.
"""

from __future__ import annotations

import secrets
from decimal import Decimal

from pydantic import BaseModel, Field
from supabase import Client

from ..database import (
    LOTTERIES_TABLE,
    LOTTERY_TICKETS_TABLE,
    as_number,
    create_notification,
    get_profile,
    record_transaction,
    to_decimal,
    utcnow,
)
from ..errors import ConflictError, InvalidRequestError, NotFoundError
from ..logging_config import get_logger
from ..wallets.ledger import apply_changes, debit_playable

logger = get_logger("earnhub.lottery")

MAX_TICKET_ATTEMPTS = 5
OPEN_STATUSES = ("active", "ended")


class LotteryCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=120)
    ticket_price: Decimal = Field(..., gt=0)
    total_tickets: int = Field(..., gt=0, le=100000)
    prize_value: Decimal = Field(Decimal("0"), ge=0)
    prize_type: str = Field("cash", pattern="^(cash|item)$")
    image_url: str | None = None


async def get_lottery(db: Client, lottery_id: str) -> dict:
    result = db.table(LOTTERIES_TABLE).select("*").eq("id", lottery_id).limit(1).execute()
    if not result.data:
        raise NotFoundError("Lottery not found")
    return result.data[0]


async def list_lotteries(db: Client) -> list[dict]:
    """Draws that have not been drawn yet, newest first."""
    result = (
        db.table(LOTTERIES_TABLE)
        .select("*")
        .neq("status", "drawn")
        .order("created_at", desc=True)
        .execute()
    )
    return result.data or []


async def list_tickets(db: Client, user_id: str) -> list[dict]:
    result = (
        db.table(LOTTERY_TICKETS_TABLE)
        .select("*")
        .eq("user_id", user_id)
        .order("created_at", desc=True)
        .execute()
    )
    return result.data or []


async def create_lottery(db: Client, data: LotteryCreate) -> dict:
    row = {
        "title": data.title,
        "ticket_price": as_number(data.ticket_price),
        "total_tickets": data.total_tickets,
        "sold_tickets": 0,
        "prize_value": as_number(data.prize_value),
        "prize_type": data.prize_type,
        "image_url": data.image_url,
        "status": "active",
    }
    result = db.table(LOTTERIES_TABLE).insert(row).execute()
    lottery = result.data[0] if result.data else row
    logger.info(f"Lottery created | {lottery.get('id')} | {data.title}")
    return lottery


async def _reserve_ticket_number(db: Client, lottery_id: str) -> tuple[dict, int]:
    for _ in range(MAX_TICKET_ATTEMPTS):
        lottery = await get_lottery(db, lottery_id)
        if lottery.get("status") != "active":
            raise InvalidRequestError("This draw is closed")
        sold = int(lottery.get("sold_tickets") or 0)
        if sold >= int(lottery.get("total_tickets") or 0):
            raise ConflictError("This draw is sold out")
        result = (
            db.table(LOTTERIES_TABLE)
            .update({"sold_tickets": sold + 1})
            .eq("id", lottery_id)
            .eq("sold_tickets", sold)
            .eq("status", "active")
            .execute()
        )
        if result.data:
            return result.data[0], sold + 1
    raise ConflictError("Draw is busy, please retry")


async def buy_ticket(db: Client, user_id: str, lottery_id: str) -> dict:
    """Pay for one ticket and issue the next ticket number."""
    lottery = await get_lottery(db, lottery_id)
    if lottery.get("status") != "active":
        raise InvalidRequestError("This draw is closed")
    price = to_decimal(lottery.get("ticket_price"))

    taken = await debit_playable(db, user_id, price)
    try:
        lottery, number = await _reserve_ticket_number(db, lottery_id)
        result = (
            db.table(LOTTERY_TICKETS_TABLE)
            .insert({"lottery_id": lottery_id, "user_id": user_id, "ticket_number": number})
            .execute()
        )
    except Exception:
        logger.warning(f"Ticket purchase failed, refunding | {user_id} | {lottery_id}")
        await apply_changes(db, user_id, taken)
        raise

    ticket = result.data[0]
    await record_transaction(
        db, user_id, "game_loss", price, f"Lucky Draw ticket #{number}: {lottery.get('title')}"
    )
    logger.info(f"Ticket sold | {user_id} | {lottery_id} | #{number}")
    return ticket


async def draw_lottery(db: Client, lottery_id: str) -> dict:
    """Pick a winning ticket, close the draw and pay or announce the prize."""
    lottery = await get_lottery(db, lottery_id)
    if lottery.get("status") not in OPEN_STATUSES:
        raise InvalidRequestError("Lottery already drawn")

    tickets = (
        db.table(LOTTERY_TICKETS_TABLE)
        .select("id, user_id, ticket_number")
        .eq("lottery_id", lottery_id)
        .execute()
    ).data or []
    if not tickets:
        raise InvalidRequestError("No tickets sold for this draw")

    winner = tickets[secrets.randbelow(len(tickets))]
    profile = await get_profile(db, winner["user_id"]) or {}
    updated = (
        db.table(LOTTERIES_TABLE)
        .update(
            {
                "status": "drawn",
                "winner_id": winner["user_id"],
                "winner_name": profile.get("name_1") or "Anonymous",
                "winning_ticket": winner["ticket_number"],
                "drawn_at": utcnow().isoformat(),
            }
        )
        .eq("id", lottery_id)
        .in_("status", list(OPEN_STATUSES))
        .execute()
    )
    if not updated.data:
        raise ConflictError("Lottery was drawn concurrently")

    winner_id = winner["user_id"]
    title = lottery.get("title")
    message = f"You won the {title} draw with ticket #{winner['ticket_number']}."
    prize = to_decimal(lottery.get("prize_value"))
    if lottery.get("prize_type", "cash") == "cash" and prize > 0:
        await apply_changes(db, winner_id, {"main_balance": prize})
        await record_transaction(db, winner_id, "game_win", prize, f"Lucky Draw Prize: {title}")
        message += " Prize credited to your main balance."
    else:
        message += " Support will contact you about delivery."
    await create_notification(db, winner_id, "Lucky Draw Winner!", message, "success")
    logger.info(f"Lottery drawn | {lottery_id} | winner={winner_id} | #{winner['ticket_number']}")
    return updated.data[0]
