"""Lucky draws."""

from .service import (
    LotteryCreate,
    buy_ticket,
    create_lottery,
    draw_lottery,
    list_lotteries,
    list_tickets,
)

__all__ = [
    "LotteryCreate",
    "buy_ticket",
    "create_lottery",
    "draw_lottery",
    "list_lotteries",
    "list_tickets",
]
