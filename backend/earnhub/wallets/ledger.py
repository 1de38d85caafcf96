"""Wallet ledger.

Every balance change goes through `apply_changes`, which reads the wallet
row, computes the new values and writes them back guarded by the row's
`version` column. A concurrent writer bumps the version, the guarded update
matches no row, and the change is recomputed from fresh data.

All amounts are USD Decimals; they are written as floats rounded to 4 dp.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Callable, Mapping

from supabase import Client

from ..database import (
    TRANSACTIONS_TABLE,
    WALLETS_TABLE,
    as_number,
    record_transaction,
    to_decimal,
)
from ..errors import ConflictError, InsufficientFundsError, InvalidRequestError, NotFoundError
from ..logging_config import get_logger, log_wallet_event

logger = get_logger("earnhub.wallets.ledger")

MAX_CAS_ATTEMPTS = 5
SHORTFALL_TOLERANCE = Decimal("0.001")

BALANCE_FIELDS = (
    "main_balance",
    "deposit_balance",
    "game_balance",
    "earning_balance",
    "investment_balance",
    "referral_balance",
    "commission_balance",
    "bonus_balance",
)
STAT_FIELDS = ("total_earning", "today_earning", "pending_withdraw", "referral_earnings")

# Order in which a bet drains the sub-wallets
PLAYABLE_ORDER = (
    "game_balance",
    "bonus_balance",
    "deposit_balance",
    "earning_balance",
    "referral_balance",
    "commission_balance",
    "main_balance",
)

# source -> allowed destinations
TRANSFER_ROUTES: dict[str, tuple[str, ...]] = {
    "deposit_balance": ("game_balance", "investment_balance"),
    "main_balance": ("game_balance", "investment_balance"),
    "game_balance": ("main_balance",),
    "earning_balance": ("main_balance",),
    "referral_balance": ("main_balance",),
    "commission_balance": ("main_balance",),
    "investment_balance": ("main_balance",),
    "bonus_balance": (),
}

Deltas = Mapping[str, Decimal]


def balance_field(name: str) -> str:
    """Map a short wallet name ("game") or a column name to the column."""
    field = name if name.endswith("_balance") else f"{name}_balance"
    if field not in BALANCE_FIELDS:
        raise InvalidRequestError(f"Unknown wallet: {name}")
    return field


# =============================================================================
# Reads
# =============================================================================


async def get_wallet(db: Client, user_id: str) -> dict:
    """Get a user's wallet row or raise NotFoundError."""
    result = db.table(WALLETS_TABLE).select("*").eq("user_id", user_id).execute()
    if not result.data:
        raise NotFoundError("Wallet not found")
    return result.data[0]


def playable_balance(wallet: dict) -> Decimal:
    """Everything a bet can draw from (all balances except investment)."""
    return sum((to_decimal(wallet.get(f)) for f in PLAYABLE_ORDER), Decimal("0"))


def wallet_summary(wallet: dict) -> dict:
    """Balances as numbers plus the derived totals shown to the user."""
    summary = {f: as_number(to_decimal(wallet.get(f))) for f in BALANCE_FIELDS + STAT_FIELDS}
    summary["currency"] = wallet.get("currency") or "USD"
    summary["withdrawable"] = as_number(to_decimal(wallet.get("withdrawable")))
    summary["playable_balance"] = as_number(playable_balance(wallet))
    summary["total_assets"] = as_number(
        sum((to_decimal(wallet.get(f)) for f in BALANCE_FIELDS), Decimal("0"))
    )
    return summary


async def list_transactions(
    db: Client,
    user_id: str,
    type: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[dict], int]:
    """Newest-first page of a user's transaction log with total count."""
    query = db.table(TRANSACTIONS_TABLE).select("*", count="exact").eq("user_id", user_id)
    if type:
        query = query.eq("type", type)
    result = query.order("created_at", desc=True).range(offset, offset + limit - 1).execute()
    return result.data or [], result.count or 0


# =============================================================================
# Mutations
# =============================================================================


def _compute_updates(wallet: dict, deltas: Deltas) -> dict:
    updates: dict = {}
    for field, delta in deltas.items():
        if field not in BALANCE_FIELDS and field not in STAT_FIELDS:
            raise InvalidRequestError(f"Unknown wallet field: {field}")
        new_value = to_decimal(wallet.get(field)) + to_decimal(delta)
        if new_value < 0:
            if field in BALANCE_FIELDS:
                raise InsufficientFundsError(
                    f"Insufficient {field.replace('_', ' ')}"
                )
            new_value = Decimal("0")
        updates[field] = new_value

    # Legacy mirrors
    if "main_balance" in updates or "pending_withdraw" in updates:
        main = updates.get("main_balance", to_decimal(wallet.get("main_balance")))
        pending = updates.get("pending_withdraw", to_decimal(wallet.get("pending_withdraw")))
        updates["balance"] = main
        updates["withdrawable"] = max(Decimal("0"), main - pending)
    if "deposit_balance" in updates:
        updates["deposit"] = updates["deposit_balance"]

    return {k: as_number(v) for k, v in updates.items()}


async def _apply(db: Client, user_id: str, compute: Callable[[dict], Deltas]) -> dict:
    for attempt in range(1, MAX_CAS_ATTEMPTS + 1):
        wallet = await get_wallet(db, user_id)
        deltas = compute(wallet)
        updates = _compute_updates(wallet, deltas)

        version = wallet.get("version")
        updates["version"] = int(version or 0) + 1
        query = db.table(WALLETS_TABLE).update(updates).eq("user_id", user_id)
        query = query.is_("version", "null") if version is None else query.eq("version", version)
        result = query.execute()

        if result.data:
            for field, delta in deltas.items():
                log_wallet_event(user_id, "credit" if delta >= 0 else "debit", field, delta)
            return result.data[0]

        logger.debug(f"Wallet version conflict | {user_id} | attempt {attempt}")

    logger.warning(f"Wallet update gave up after {MAX_CAS_ATTEMPTS} attempts | {user_id}")
    raise ConflictError("Wallet is busy, please retry")


async def apply_changes(db: Client, user_id: str, deltas: Deltas) -> dict:
    """Atomically apply signed deltas to wallet fields.

    Raises InsufficientFundsError if any balance would go negative and
    ConflictError if the row kept changing underneath us.
    """
    return await _apply(db, user_id, lambda wallet: deltas)


async def credit(db: Client, user_id: str, field: str, amount: Decimal) -> dict:
    amount = to_decimal(amount)
    if amount <= 0:
        raise InvalidRequestError("Amount must be positive")
    return await apply_changes(db, user_id, {balance_field(field): amount})


async def debit(db: Client, user_id: str, field: str, amount: Decimal) -> dict:
    amount = to_decimal(amount)
    if amount <= 0:
        raise InvalidRequestError("Amount must be positive")
    return await apply_changes(db, user_id, {balance_field(field): -amount})


def allocate_debit(
    wallet: dict, amount: Decimal, order: tuple[str, ...] = PLAYABLE_ORDER
) -> dict[str, Decimal]:
    """Split `amount` across balances in `order`.

    Returns negative deltas. A shortfall within SHORTFALL_TOLERANCE is
    forgiven; anything larger raises InsufficientFundsError.
    """
    available = sum((to_decimal(wallet.get(f)) for f in order), Decimal("0"))
    if available + SHORTFALL_TOLERANCE < amount:
        raise InsufficientFundsError("Insufficient balance")

    remaining = amount
    deltas: dict[str, Decimal] = {}
    for field in order:
        if remaining <= 0:
            break
        take = min(to_decimal(wallet.get(field)), remaining)
        if take > 0:
            deltas[field] = -take
            remaining -= take
    return deltas


async def debit_playable(db: Client, user_id: str, amount: Decimal) -> dict[str, Decimal]:
    """Debit a bet across sub-wallets in priority order.

    Returns the per-field breakdown that was taken.
    """
    return await debit_ordered(db, user_id, amount, PLAYABLE_ORDER)


async def debit_ordered(
    db: Client,
    user_id: str,
    amount: Decimal,
    order: tuple[str, ...],
    credit_to: str | None = None,
) -> dict[str, Decimal]:
    """Debit `amount` draining the given balances in order.

    With `credit_to`, the same amount lands in that field in the same write.
    """
    amount = to_decimal(amount)
    if amount <= 0:
        raise InvalidRequestError("Amount must be positive")

    taken: dict[str, Decimal] = {}

    def compute(wallet: dict) -> Deltas:
        deltas = allocate_debit(wallet, amount, order)
        taken.clear()
        taken.update({k: -v for k, v in deltas.items()})
        if credit_to:
            deltas[credit_to] = deltas.get(credit_to, Decimal("0")) + amount
        return deltas

    await _apply(db, user_id, compute)
    return taken


async def transfer(
    db: Client,
    user_id: str,
    source: str,
    destination: str,
    amount: Decimal,
) -> dict:
    """Move money between two of the user's own sub-wallets."""
    src = balance_field(source)
    dst = balance_field(destination)
    amount = to_decimal(amount)
    if amount <= 0:
        raise InvalidRequestError("Amount must be positive")
    if dst not in TRANSFER_ROUTES.get(src, ()):
        raise InvalidRequestError(
            f"Transfers from {src.replace('_', ' ')} to {dst.replace('_', ' ')} are not allowed"
        )

    wallet = await apply_changes(db, user_id, {src: -amount, dst: amount})
    await record_transaction(
        db,
        user_id,
        "transfer",
        amount,
        f"Transfer {src.replace('_balance', '')} to {dst.replace('_balance', '')}",
        metadata={"from": src, "to": dst},
    )
    return wallet
