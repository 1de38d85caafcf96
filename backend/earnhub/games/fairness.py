"""Provably fair randomness.

Each user has an active seed pair: a secret server seed (only its SHA-256
hash is published) and a client seed the player may choose. Every round
uses the next nonce:

    hash_k = HMAC-SHA256(server_seed, f"{client_seed}:{nonce}:{k}")

and floats in [0, 1) are read from consecutive 8-hex-char windows of
hash_0, hash_1, ... (int / 2^32). Rotating the pair reveals the old server
seed so past rounds can be recomputed with `verify_round`.
"""

from __future__ import annotations

import hashlib
import hmac
import os
from typing import Iterator

from supabase import Client

from ..database import FAIR_SEEDS_TABLE, utcnow
from ..errors import ConflictError
from ..logging_config import get_logger

logger = get_logger("earnhub.games.fairness")

_WINDOW = 8
_WINDOWS_PER_HASH = 64 // _WINDOW
_SCALE = 0x100000000  # 2^32
MAX_NONCE_ATTEMPTS = 5


def hash_server_seed(server_seed: str) -> str:
    return hashlib.sha256(server_seed.encode()).hexdigest()


def derive_hash(server_seed: str, client_seed: str, nonce: int, cursor: int = 0) -> str:
    """Compute HMAC-SHA256(server_seed, client_seed:nonce:cursor)."""
    message = f"{client_seed}:{nonce}:{cursor}"
    return hmac.new(server_seed.encode(), message.encode(), hashlib.sha256).hexdigest()


class FloatStream:
    """Deterministic stream of floats in [0, 1) for one round."""

    def __init__(self, server_seed: str, client_seed: str, nonce: int):
        self.server_seed = server_seed
        self.client_seed = client_seed
        self.nonce = nonce
        self._iter = self._floats()
        self.consumed = 0

    def _floats(self) -> Iterator[float]:
        cursor = 0
        while True:
            digest = derive_hash(self.server_seed, self.client_seed, self.nonce, cursor)
            for i in range(_WINDOWS_PER_HASH):
                segment = digest[i * _WINDOW : (i + 1) * _WINDOW]
                yield int(segment, 16) / _SCALE
            cursor += 1

    def next_float(self) -> float:
        self.consumed += 1
        return next(self._iter)

    def next_int(self, upper: int) -> int:
        """Integer in [0, upper)."""
        return int(self.next_float() * upper)

    def __iter__(self):
        return self

    def __next__(self) -> float:
        return self.next_float()


def verify_round(server_seed: str, client_seed: str, nonce: int, count: int = 8) -> dict:
    """Recompute the first `count` floats of a past round."""
    stream = FloatStream(server_seed, client_seed, nonce)
    return {
        "server_seed_hash": hash_server_seed(server_seed),
        "floats": [stream.next_float() for _ in range(count)],
    }


def new_seed_pair(client_seed: str | None = None) -> dict:
    server_seed = os.urandom(32).hex()
    return {
        "server_seed": server_seed,
        "server_seed_hash": hash_server_seed(server_seed),
        "client_seed": client_seed or os.urandom(16).hex(),
        "nonce": 0,
    }


def public_seed(row: dict) -> dict:
    """Seed pair without the secret server seed."""
    return {
        "server_seed_hash": row["server_seed_hash"],
        "client_seed": row["client_seed"],
        "nonce": row.get("nonce", 0),
    }


# =============================================================================
# Persistence
# =============================================================================


async def get_active_seed(db: Client, user_id: str) -> dict:
    """Get (or create) the user's active seed pair."""
    result = (
        db.table(FAIR_SEEDS_TABLE)
        .select("*")
        .eq("user_id", user_id)
        .eq("is_active", True)
        .limit(1)
        .execute()
    )
    if result.data:
        return result.data[0]

    row = {"user_id": user_id, "is_active": True, **new_seed_pair()}
    result = db.table(FAIR_SEEDS_TABLE).insert(row).execute()
    return result.data[0] if result.data else row


async def next_round_stream(db: Client, user_id: str) -> tuple[FloatStream, dict]:
    """Reserve the next nonce and return the round's float stream.

    The nonce is claimed with a compare-and-set so two concurrent rounds
    never share randomness.
    """
    for _ in range(MAX_NONCE_ATTEMPTS):
        seed = await get_active_seed(db, user_id)
        nonce = int(seed.get("nonce") or 0)
        result = (
            db.table(FAIR_SEEDS_TABLE)
            .update({"nonce": nonce + 1})
            .eq("id", seed["id"])
            .eq("nonce", nonce)
            .execute()
        )
        if result.data:
            stream = FloatStream(seed["server_seed"], seed["client_seed"], nonce)
            return stream, {**public_seed(seed), "nonce": nonce}
    raise ConflictError("Could not reserve a round, please retry")


async def rotate_seed(db: Client, user_id: str, client_seed: str | None = None) -> dict:
    """Retire the active pair (revealing its server seed) and issue a new one."""
    current = await get_active_seed(db, user_id)
    db.table(FAIR_SEEDS_TABLE).update(
        {"is_active": False, "revealed_at": utcnow().isoformat()}
    ).eq("id", current["id"]).execute()

    row = {"user_id": user_id, "is_active": True, **new_seed_pair(client_seed)}
    result = db.table(FAIR_SEEDS_TABLE).insert(row).execute()
    new_row = result.data[0] if result.data else row
    logger.info(f"Seed rotated | {user_id}")

    return {
        "previous": {
            "server_seed": current["server_seed"],
            "server_seed_hash": current["server_seed_hash"],
            "client_seed": current["client_seed"],
            "nonce": current.get("nonce", 0),
        },
        "current": public_seed(new_row),
    }
