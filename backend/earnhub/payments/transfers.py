"""Peer-to-peer money transfers between users."""

from decimal import Decimal, ROUND_HALF_UP

from supabase import Client

from ..database import (
    as_number,
    create_notification,
    get_profile_by_uid_or_email,
    record_transaction,
    to_decimal,
)
from ..errors import InvalidRequestError, NotFoundError
from ..logging_config import get_logger
from ..system import get_system_config
from ..wallets.ledger import apply_changes

logger = get_logger("earnhub.payments.transfers")


def transfer_fee(amount: Decimal, percent: Decimal) -> Decimal:
    return (amount * percent / 100).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)


async def send_money(db: Client, sender_id: str, recipient: str, amount: Decimal) -> dict:
    """Send `amount` to another user, identified by uid or email.

    The sender's deposit balance pays the amount plus the transfer fee; the
    recipient receives the amount on their main balance.
    """
    amount = to_decimal(amount)
    config = await get_system_config(db)
    if amount < config.p2p_min_transfer:
        raise InvalidRequestError(f"Minimum transfer is {as_number(config.p2p_min_transfer)}")

    target = await get_profile_by_uid_or_email(db, recipient)
    if not target:
        raise NotFoundError("Recipient not found")
    if target["id"] == sender_id:
        raise InvalidRequestError("You cannot send money to yourself")

    fee = transfer_fee(amount, config.p2p_transfer_fee_percent)
    total = amount + fee
    await apply_changes(db, sender_id, {"deposit_balance": -total})
    try:
        await apply_changes(db, target["id"], {"main_balance": amount})
    except Exception:
        logger.error(f"Transfer credit failed, refunding | {sender_id} -> {target['id']} | {amount}")
        await apply_changes(db, sender_id, {"deposit_balance": total})
        raise

    recipient_name = target.get("name_1") or "user"
    await record_transaction(
        db,
        sender_id,
        "transfer",
        total,
        f"Sent to {recipient_name}",
        metadata={"to": target["id"], "amount": as_number(amount), "fee": as_number(fee)},
    )
    await record_transaction(
        db,
        target["id"],
        "transfer",
        amount,
        "Received money",
        metadata={"from": sender_id},
    )
    await create_notification(
        db,
        target["id"],
        "Money Received",
        f"You received ${as_number(amount):,.2f}.",
        "success",
    )
    logger.info(f"P2P transfer | {sender_id} -> {target['id']} | {amount} | fee={fee}")
    return {
        "recipient_id": target["id"],
        "recipient_name": recipient_name,
        "amount": as_number(amount),
        "fee": as_number(fee),
        "total_debited": as_number(total),
    }
