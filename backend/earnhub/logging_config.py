"""Logging setup and structured log helpers for the EarnHub backend."""

import logging
import sys
from decimal import Decimal

ROOT_LOGGER = "earnhub"
LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"


def configure_logging(debug: bool = False) -> logging.Logger:
    """Install a single stream handler on the earnhub logger tree."""
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(logging.DEBUG if debug else logging.INFO)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.propagate = False
    return root


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the earnhub namespace."""
    if not name.startswith(ROOT_LOGGER):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


_auth_logger = get_logger("earnhub.auth.events")
_wallet_logger = get_logger("earnhub.wallets.events")
_game_logger = get_logger("earnhub.games.events")


def log_auth_event(event: str, user_id: str, success: bool, reason: str | None = None) -> None:
    """Log an authentication event."""
    status = "OK" if success else "FAIL"
    msg = f"AUTH {event} | {user_id} | {status}"
    if reason:
        msg += f" | {reason}"
    if success:
        _auth_logger.info(msg)
    else:
        _auth_logger.warning(msg)


def log_wallet_event(user_id: str, action: str, field: str, amount: Decimal) -> None:
    """Log a balance mutation."""
    _wallet_logger.info(f"WALLET {action} | {user_id} | {field} | {amount}")


def log_game_round(
    user_id: str,
    game_id: str,
    round_id: str,
    bet: Decimal,
    payout: Decimal,
) -> None:
    """Log a settled game round."""
    _game_logger.info(
        f"ROUND {game_id} | {user_id} | round={round_id} | bet={bet} | payout={payout}"
    )
