"""Rate limiting for money-moving and AI-backed routes.

Requests are keyed by client IP. X-Forwarded-For is read only when the
direct peer sits in a trusted proxy network (TRUSTED_PROXY_CIDRS, comma
separated), otherwise any client could choose its own bucket.
"""

import ipaddress
import os
from functools import lru_cache

from slowapi import Limiter
from slowapi.util import get_remote_address

from .logging_config import get_logger

logger = get_logger("earnhub.rate_limit")

GAME_ROUND_LIMIT = "60/minute"
DEPOSIT_LIMIT = "10/minute"
WITHDRAW_LIMIT = "5/minute"
TRANSFER_LIMIT = "20/minute"
AI_LIMIT = "10/minute"

PRIVATE_NETWORKS = ("10.0.0.0/8", "172.16.0.0/12", "192.168.0.0/16", "127.0.0.0/8", "::1/128")


@lru_cache
def trusted_networks() -> tuple:
    raw = os.environ.get("TRUSTED_PROXY_CIDRS", "")
    entries = [s.strip() for s in raw.split(",") if s.strip()] or list(PRIVATE_NETWORKS)
    networks = []
    for entry in entries:
        try:
            networks.append(ipaddress.ip_network(entry, strict=False))
        except ValueError:
            logger.warning(f"Ignoring invalid trusted proxy CIDR: {entry}")
    return tuple(networks)


def is_trusted_proxy(ip_str: str) -> bool:
    try:
        addr = ipaddress.ip_address(ip_str)
    except ValueError:
        return False
    return any(addr in network for network in trusted_networks())


def get_client_ip(request) -> str:
    """Rate limit key: the peer address, or the original client behind a trusted proxy."""
    peer = get_remote_address(request)
    if not is_trusted_proxy(peer):
        return peer
    forwarded = request.headers.get("x-forwarded-for") or ""
    original = forwarded.split(",")[0].strip()
    return original or peer


limiter = Limiter(key_func=get_client_ip)
