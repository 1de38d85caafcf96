"""Deposits, withdrawals and peer-to-peer transfers."""

from .deposits import approve_deposit, list_payment_methods, reject_deposit, request_deposit
from .transfers import send_money
from .withdrawals import (
    approve_withdrawal,
    get_withdrawal_settings,
    reject_withdrawal,
    request_withdrawal,
    save_withdraw_method,
)

__all__ = [
    "approve_deposit",
    "approve_withdrawal",
    "get_withdrawal_settings",
    "list_payment_methods",
    "reject_deposit",
    "reject_withdrawal",
    "request_deposit",
    "request_withdrawal",
    "save_withdraw_method",
    "send_money",
]
