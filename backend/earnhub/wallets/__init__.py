"""Wallet balances, internal transfers and the daily bonus."""

from .ledger import (
    BALANCE_FIELDS,
    PLAYABLE_ORDER,
    TRANSFER_ROUTES,
    apply_changes,
    credit,
    debit,
    debit_ordered,
    debit_playable,
    get_wallet,
    playable_balance,
    transfer,
)

__all__ = [
    "BALANCE_FIELDS",
    "PLAYABLE_ORDER",
    "TRANSFER_ROUTES",
    "apply_changes",
    "credit",
    "debit",
    "debit_ordered",
    "debit_playable",
    "get_wallet",
    "playable_balance",
    "transfer",
]
