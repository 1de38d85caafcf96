"""Display currencies.

Balances are always stored in USD. A wallet's `currency` only selects how
amounts are shown, so switching it never touches balances.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from supabase import Client

from .database import WALLETS_TABLE, to_decimal
from .errors import InvalidRequestError, NotFoundError
from .logging_config import get_logger

logger = get_logger("earnhub.currency")

BASE_CURRENCY = "USD"


@dataclass(frozen=True)
class CurrencyInfo:
    code: str
    rate: Decimal  # Units of this currency per 1 USD
    symbol: str
    signup_bonus: Decimal  # Native units


CURRENCY_CONFIG: dict[str, CurrencyInfo] = {
    "USD": CurrencyInfo("USD", Decimal("1"), "$", Decimal("0.5")),
    "BDT": CurrencyInfo("BDT", Decimal("120"), "৳", Decimal("50")),
    "INR": CurrencyInfo("INR", Decimal("83"), "₹", Decimal("40")),
    "PKR": CurrencyInfo("PKR", Decimal("280"), "Rs", Decimal("140")),
    "EUR": CurrencyInfo("EUR", Decimal("0.92"), "€", Decimal("0.5")),
}

_COMPACT_STEPS = (
    (Decimal("1e12"), "T", 2),
    (Decimal("1e9"), "B", 2),
    (Decimal("1e6"), "M", 2),
    (Decimal("1e3"), "K", 1),
)


def get_currency(code: str | None) -> CurrencyInfo:
    """Look up a currency, falling back to USD for unknown codes."""
    return CURRENCY_CONFIG.get((code or BASE_CURRENCY).upper(), CURRENCY_CONFIG[BASE_CURRENCY])


def _quantize(value: Decimal, places: int) -> Decimal:
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def format_amount(
    amount,
    currency: str = BASE_CURRENCY,
    compact: bool = False,
    is_native: bool = False,
) -> str:
    """Format an amount for display.

    USD amounts are converted to `currency` unless `is_native` says the value
    is already in that currency. Compact mode abbreviates large values.
    """
    info = get_currency(currency)
    value = to_decimal(amount)
    if not is_native:
        value = value * info.rate

    if compact:
        for threshold, suffix, places in _COMPACT_STEPS:
            if value >= threshold:
                return f"{info.symbol}{_quantize(value / threshold, places)}{suffix}"

    sign = "-" if value < 0 else ""
    return f"{sign}{info.symbol}{abs(_quantize(value, 2)):,.2f}"


def to_usd(amount, currency: str) -> Decimal:
    """Convert a native amount into the USD base."""
    return to_decimal(amount) / get_currency(currency).rate


def signup_bonus_usd(currency: str | None) -> Decimal:
    """Welcome bonus for a currency, expressed in USD."""
    info = get_currency(currency)
    return info.signup_bonus / info.rate


async def set_display_currency(db: Client, user_id: str, code: str) -> str:
    """Switch the wallet's display currency."""
    code = (code or "").upper()
    if code not in CURRENCY_CONFIG:
        raise InvalidRequestError(f"Unsupported currency: {code}")

    result = db.table(WALLETS_TABLE).update({"currency": code}).eq("user_id", user_id).execute()
    if not result.data:
        raise NotFoundError("Wallet not found")
    logger.info(f"Display currency set | {user_id} | {code}")
    return code
