"""Referral codes, welcome bonus and commission."""

from .service import (
    create_user_profile,
    distribute_referral_reward,
    generate_referral_code,
    get_commission_percent,
    get_referral_stats,
)

__all__ = [
    "create_user_profile",
    "distribute_referral_reward",
    "generate_referral_code",
    "get_commission_percent",
    "get_referral_stats",
]
