"""Game catalog and outcome rules.

Every resolver is a pure function of a float stream and the player's
choice. It returns a `GameOutcome` whose payout is either `bet * multiplier`
or, for games paying fixed amounts, `fixed_payout`.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

from ..database import to_decimal
from ..errors import InvalidRequestError
from .fairness import FloatStream

ZERO = Decimal("0")


@dataclass
class GameOutcome:
    """Result of resolving one round."""

    multiplier: Decimal = ZERO
    fixed_payout: Decimal | None = None
    details: dict = field(default_factory=dict)
    summary: str = ""

    def payout(self, bet: Decimal) -> Decimal:
        if self.fixed_payout is not None:
            return self.fixed_payout
        return bet * self.multiplier


def _as_int(value: Any, message: str) -> int:
    if isinstance(value, bool):
        raise InvalidRequestError(message)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidRequestError(message) from None


def _as_decimal(value: Any, message: str) -> Decimal:
    try:
        number = to_decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidRequestError(message) from None
    if not number.is_finite():
        raise InvalidRequestError(message)
    return number


# =============================================================================
# Coin flip
# =============================================================================

COIN_SIDES = ("head", "tail")
COIN_MULTIPLIER = Decimal("1.90")


def check_coin_flip(choice: dict) -> dict:
    side = str(choice.get("side", "")).lower()
    if side not in COIN_SIDES:
        raise InvalidRequestError("Choose head or tail")
    return {"side": side}


def coin_flip(stream: FloatStream, choice: dict) -> GameOutcome:
    side = check_coin_flip(choice)["side"]

    result = COIN_SIDES[stream.next_int(2)]
    won = result == side
    return GameOutcome(
        multiplier=COIN_MULTIPLIER if won else ZERO,
        details={"side": side, "result": result},
        summary=f"Coin {result}, picked {side}",
    )


# =============================================================================
# Dice
# =============================================================================

DICE_MULTIPLIERS = {"low": Decimal("2.3"), "seven": Decimal("5.8"), "high": Decimal("2.3")}


def _dice_bucket(total: int) -> str:
    if total < 7:
        return "low"
    if total == 7:
        return "seven"
    return "high"


def check_dice(choice: dict) -> dict:
    prediction = str(choice.get("prediction", "")).lower()
    if prediction not in DICE_MULTIPLIERS:
        raise InvalidRequestError("Predict low, seven or high")
    return {"prediction": prediction}


def dice(stream: FloatStream, choice: dict) -> GameOutcome:
    prediction = check_dice(choice)["prediction"]

    dice_values = [stream.next_int(6) + 1, stream.next_int(6) + 1]
    total = sum(dice_values)
    bucket = _dice_bucket(total)
    won = bucket == prediction
    return GameOutcome(
        multiplier=DICE_MULTIPLIERS[prediction] if won else ZERO,
        details={"dice": dice_values, "total": total, "prediction": prediction},
        summary=f"Rolled {total} ({bucket}), predicted {prediction}",
    )


# =============================================================================
# Thimbles
# =============================================================================

THIMBLE_CUPS = 3
THIMBLE_MULTIPLIERS = {1: Decimal("2.91"), 2: Decimal("1.45")}


def check_thimbles(choice: dict) -> dict:
    balls = _as_int(choice.get("balls", 1), "Play with 1 or 2 balls")
    if balls not in THIMBLE_MULTIPLIERS:
        raise InvalidRequestError("Play with 1 or 2 balls")
    cup = _as_int(choice.get("cup"), "Pick cup 0, 1 or 2")
    if not 0 <= cup < THIMBLE_CUPS:
        raise InvalidRequestError("Pick cup 0, 1 or 2")
    return {"balls": balls, "cup": cup}


def thimbles(stream: FloatStream, choice: dict) -> GameOutcome:
    choice = check_thimbles(choice)
    balls, cup = choice["balls"], choice["cup"]

    if balls == 1:
        ball_cups = [stream.next_int(THIMBLE_CUPS)]
    else:
        empty = stream.next_int(THIMBLE_CUPS)
        ball_cups = [c for c in range(THIMBLE_CUPS) if c != empty]

    won = cup in ball_cups
    return GameOutcome(
        multiplier=THIMBLE_MULTIPLIERS[balls] if won else ZERO,
        details={"balls": balls, "cup": cup, "ball_cups": ball_cups},
        summary=f"Thimbles {balls} ball(s), picked cup {cup}",
    )


# =============================================================================
# Reels
# =============================================================================

REEL_SYMBOLS = {
    # symbol: (stops on the strip, three-of-a-kind multiplier)
    "ankh": (1, Decimal("50")),
    "eye": (2, Decimal("30")),
    "pyramid": (3, Decimal("15")),
    "scarab": (4, Decimal("8")),
    "phoenix": (5, Decimal("4")),
    "blank": (3, ZERO),
}
REEL_STRIP = [s for s, (stops, _) in REEL_SYMBOLS.items() for _ in range(stops)]
REEL_COUNT = 3
PAIR_MULTIPLIER = Decimal("1.5")


def check_reels(choice: dict) -> dict:
    return {}


def reels(stream: FloatStream, choice: dict) -> GameOutcome:
    symbols = [REEL_STRIP[stream.next_int(len(REEL_STRIP))] for _ in range(REEL_COUNT)]

    multiplier = ZERO
    line = "no win"
    for symbol in set(symbols):
        hits = symbols.count(symbol)
        paytable = REEL_SYMBOLS[symbol][1]
        if paytable == 0:
            continue
        if hits == 3:
            multiplier, line = paytable, f"three {symbol}"
        elif hits == 2:
            multiplier, line = PAIR_MULTIPLIER, f"pair of {symbol}"

    return GameOutcome(
        multiplier=multiplier,
        details={"symbols": symbols, "line": line},
        summary=f"Reels {' '.join(symbols)}",
    )


# =============================================================================
# Dragon spin
# =============================================================================

DRAGON_SECTORS = {
    "x2": Decimal("2"),
    "x4": Decimal("4"),
    "x5": Decimal("5"),
    "x7": Decimal("7"),
    "x10": Decimal("10"),
    "x20": Decimal("20"),
}
DRAGON_WHEEL = [
    "x2", "x4", "x2", "x5", "x2", "x4", "x2", "x7", "x2", "x10", "x2",
    "x4", "x2", "x5", "x2", "x4", "x2", "x7", "x2", "x20", "x4", "x5",
]


def dragon_stakes(choice: dict) -> dict[str, Decimal]:
    """Validated per-sector stakes; zero stakes are dropped."""
    raw = choice.get("stakes") or {}
    if not isinstance(raw, dict):
        raise InvalidRequestError("Stakes must map sectors to amounts")
    stakes: dict[str, Decimal] = {}
    for sector, amount in raw.items():
        if sector not in DRAGON_SECTORS:
            raise InvalidRequestError(f"Unknown sector: {sector}")
        value = _as_decimal(amount, "Stakes must be numbers")
        if value < 0:
            raise InvalidRequestError("Stakes cannot be negative")
        if value > 0:
            stakes[sector] = value
    if not stakes:
        raise InvalidRequestError("Place a stake on at least one sector")
    return stakes


def check_dragon_spin(choice: dict) -> dict:
    return {"stakes": dragon_stakes(choice)}


def dragon_spin(stream: FloatStream, choice: dict) -> GameOutcome:
    stakes = dragon_stakes(choice)
    index = stream.next_int(len(DRAGON_WHEEL))
    landed = DRAGON_WHEEL[index]
    payout = stakes.get(landed, ZERO) * DRAGON_SECTORS[landed]
    return GameOutcome(
        fixed_payout=payout,
        details={
            "segment": index,
            "landed": landed,
            "stakes": {k: float(v) for k, v in stakes.items()},
        },
        summary=f"Dragon wheel landed {landed}",
    )


# =============================================================================
# Lucky spin
# =============================================================================


def check_lucky_spin(choice: dict) -> dict:
    items = [i for i in choice.get("items") or [] if to_decimal(i.get("probability")) > 0]
    if not items:
        raise InvalidRequestError("Lucky spin is not configured")
    return {"items": items}


def lucky_spin(stream: FloatStream, choice: dict) -> GameOutcome:
    """Weighted pick among active spin items; `choice["items"]` is injected."""
    items = check_lucky_spin(choice)["items"]

    total = sum((to_decimal(i["probability"]) for i in items), ZERO)
    target = to_decimal(stream.next_float()) * total
    accumulated = ZERO
    selected = items[-1]
    for item in items:
        accumulated += to_decimal(item["probability"])
        if target < accumulated:
            selected = item
            break

    return GameOutcome(
        fixed_payout=to_decimal(selected.get("value")),
        details={"item_id": selected.get("id"), "label": selected.get("label")},
        summary=f"Won {selected.get('label')}",
    )


# =============================================================================
# Plinko
# =============================================================================

PLINKO_MULTIPLIERS: dict[str, dict[int, list[float]]] = {
    "low": {
        8: [5.6, 2.1, 1.1, 1, 0.5, 1, 1.1, 2.1, 5.6],
        10: [8.9, 3, 1.4, 1.1, 1, 0.5, 1, 1.1, 1.4, 3, 8.9],
        12: [10, 3, 1.6, 1.4, 1.1, 1, 0.5, 1, 1.1, 1.4, 1.6, 3, 10],
        14: [12, 4, 2.5, 1.8, 1.4, 1.1, 1, 0.5, 1, 1.1, 1.4, 1.8, 2.5, 4, 12],
        16: [16, 9, 2, 1.4, 1.4, 1.2, 1.1, 1, 0.5, 1, 1.1, 1.2, 1.4, 1.4, 2, 9, 16],
    },
    "medium": {
        8: [13, 3, 1.3, 0.7, 0.4, 0.7, 1.3, 3, 13],
        10: [22, 5, 2, 1.4, 0.6, 0.4, 0.6, 1.4, 2, 5, 22],
        12: [33, 11, 4, 2, 1.1, 0.6, 0.3, 0.6, 1.1, 2, 4, 11, 33],
        14: [58, 15, 7, 4, 1.9, 1, 0.5, 0.2, 0.5, 1, 1.9, 4, 7, 15, 58],
        16: [110, 41, 10, 5, 3, 1.5, 1, 0.5, 0.3, 0.5, 1, 1.5, 3, 5, 10, 41, 110],
    },
    "high": {
        8: [29, 4, 1.5, 0.3, 0.2, 0.3, 1.5, 4, 29],
        10: [76, 10, 3, 0.9, 0.3, 0.2, 0.3, 0.9, 3, 10, 76],
        12: [170, 51, 14, 4, 1.7, 0.3, 0.2, 0.3, 1.7, 4, 14, 51, 170],
        14: [420, 86, 24, 8, 3, 0.6, 0.2, 0.2, 0.2, 0.6, 3, 8, 24, 86, 420],
        16: [620, 130, 26, 9, 4, 2, 0.2, 0.2, 0.2, 0.2, 0.2, 2, 4, 9, 26, 130, 620],
    },
}


def check_plinko(choice: dict) -> dict:
    risk = str(choice.get("risk", "low")).lower()
    if risk not in PLINKO_MULTIPLIERS:
        raise InvalidRequestError("Risk must be low, medium or high")
    rows = _as_int(choice.get("rows", 8), "Rows must be 8, 10, 12, 14 or 16")
    if rows not in PLINKO_MULTIPLIERS[risk]:
        raise InvalidRequestError("Rows must be 8, 10, 12, 14 or 16")
    return {"risk": risk, "rows": rows}


def plinko(stream: FloatStream, choice: dict) -> GameOutcome:
    choice = check_plinko(choice)
    risk, rows = choice["risk"], choice["rows"]

    path = ["R" if stream.next_float() >= 0.5 else "L" for _ in range(rows)]
    bucket = path.count("R")
    multiplier = to_decimal(PLINKO_MULTIPLIERS[risk][rows][bucket])
    return GameOutcome(
        multiplier=multiplier,
        details={"risk": risk, "rows": rows, "path": "".join(path), "bucket": bucket},
        summary=f"Plinko {risk}/{rows} bucket {bucket} x{multiplier}",
    )


# =============================================================================
# Crash
# =============================================================================

CRASH_HOUSE_EDGE = 0.03
CRASH_MAX_MULTIPLIER = 100.0
CRASH_MIN_TARGET = Decimal("1.01")


def crash_point(r: float) -> float:
    """Crash multiplier for a uniform draw r in [0, 1)."""
    if r < CRASH_HOUSE_EDGE:
        return 1.0
    point = min((1 - CRASH_HOUSE_EDGE) / (1 - r), CRASH_MAX_MULTIPLIER)
    return math.floor(point * 100) / 100


def check_crash(choice: dict) -> dict:
    target = _as_decimal(choice.get("target"), "Cash-out target must be a number")
    if target < CRASH_MIN_TARGET:
        raise InvalidRequestError(f"Cash-out target must be at least {CRASH_MIN_TARGET}")
    if target > Decimal(str(CRASH_MAX_MULTIPLIER)):
        raise InvalidRequestError(f"Cash-out target cannot exceed {CRASH_MAX_MULTIPLIER:g}")
    return {"target": target}


def crash(stream: FloatStream, choice: dict) -> GameOutcome:
    target = check_crash(choice)["target"]

    point = crash_point(stream.next_float())
    won = Decimal(str(point)) >= target
    return GameOutcome(
        multiplier=target if won else ZERO,
        details={"target": float(target), "crash_point": point},
        summary=f"Crashed at {point:.2f}x, target {target}x",
    )


# =============================================================================
# Apple fortune (ladder rules; the session flow lives in ladder.py)
# =============================================================================

APPLE_ROWS = 10
APPLE_COLUMNS = 5
APPLE_MULTIPLIERS = [
    Decimal(m)
    for m in ("1.23", "1.54", "1.93", "2.41", "4.02", "6.71", "11.18", "27.97", "69.93", "349.68")
]


def apple_bad_cells(row: int) -> int:
    """Number of bad apples in a ladder row."""
    if row <= 3:
        return 1
    if row <= 6:
        return 2
    if row <= 8:
        return 3
    return 4


def apple_grid(stream: FloatStream) -> list[list[int]]:
    """Bad-cell columns per row, drawn without replacement."""
    grid = []
    for row in range(APPLE_ROWS):
        columns = list(range(APPLE_COLUMNS))
        bad = []
        for _ in range(apple_bad_cells(row)):
            bad.append(columns.pop(stream.next_int(len(columns))))
        grid.append(sorted(bad))
    return grid


# =============================================================================
# Catalog
# =============================================================================


@dataclass(frozen=True)
class GameSpec:
    id: str
    name: str
    resolve: Callable[[FloatStream, dict], GameOutcome]
    validate: Callable[[dict], dict]
    description: str
    win_probability: float | None
    multipliers: dict


GAMES: dict[str, GameSpec] = {
    spec.id: spec
    for spec in (
        GameSpec("coin_flip", "Head & Tail", coin_flip, check_coin_flip, "Call the coin", 0.5,
                 {"win": float(COIN_MULTIPLIER)}),
        GameSpec("dice", "Dice", dice, check_dice,
                 "Two dice: low, seven or high", None,
                 {k: float(v) for k, v in DICE_MULTIPLIERS.items()}),
        GameSpec("thimbles", "Thimbles", thimbles, check_thimbles,
                 "Find the ball under the cups", None,
                 {f"{k}_ball": float(v) for k, v in THIMBLE_MULTIPLIERS.items()}),
        GameSpec("reels", "Reels of Gods", reels, check_reels,
                 "Three reels, match the symbols", None,
                 {**{k: float(m) for k, (_, m) in REEL_SYMBOLS.items() if m},
                  "pair": float(PAIR_MULTIPLIER)}),
        GameSpec("dragon_spin", "Dragon Spin", dragon_spin, check_dragon_spin,
                 "Stake on wheel sectors", None,
                 {k: float(v) for k, v in DRAGON_SECTORS.items()}),
        GameSpec("lucky_spin", "Lucky Spin", lucky_spin, check_lucky_spin,
                 "Spin for a fixed prize", None, {}),
        GameSpec("plinko", "Plinko", plinko, check_plinko,
                 "Drop the ball through the pegs", None,
                 {"rows": sorted(PLINKO_MULTIPLIERS["low"])}),
        GameSpec("crash", "Crash", crash, check_crash,
                 "Cash out before the crash", None,
                 {"min_target": float(CRASH_MIN_TARGET), "max": CRASH_MAX_MULTIPLIER}),
    )
}


def _dice_probabilities() -> dict[str, float]:
    counts = {"low": 0, "seven": 0, "high": 0}
    for a in range(1, 7):
        for b in range(1, 7):
            counts[_dice_bucket(a + b)] += 1
    return {k: v / 36 for k, v in counts.items()}


def win_probabilities() -> dict[str, dict | float | None]:
    """Per-game chance of a winning outcome for the catalog listing."""
    reel_total = len(REEL_STRIP)
    dragon_total = len(DRAGON_WHEEL)
    return {
        "coin_flip": 0.5,
        "dice": _dice_probabilities(),
        "thimbles": {"1_ball": 1 / 3, "2_ball": 2 / 3},
        "reels": {
            s: (stops / reel_total) ** 3 for s, (stops, m) in REEL_SYMBOLS.items() if m
        },
        "dragon_spin": {s: DRAGON_WHEEL.count(s) / dragon_total for s in DRAGON_SECTORS},
        "lucky_spin": None,
        "plinko": None,
        "crash": {"formula": "P(win) = 0.97 / target"},
    }


def get_game(game_id: str) -> GameSpec:
    spec = GAMES.get(game_id)
    if spec is None:
        raise InvalidRequestError(f"Unknown game: {game_id}")
    return spec


def list_games() -> list[dict]:
    probabilities = win_probabilities()
    games = [
        {
            "id": spec.id,
            "name": spec.name,
            "description": spec.description,
            "win_probability": probabilities.get(spec.id),
            "multipliers": spec.multipliers,
        }
        for spec in GAMES.values()
    ]
    games.append(
        {
            "id": "apple_fortune",
            "name": "Apple Fortune",
            "description": "Climb the ladder, avoid the bad apples",
            "win_probability": None,
            "multipliers": {"ladder": [float(m) for m in APPLE_MULTIPLIERS]},
        }
    )
    return games
