"""API routes."""

from .admin import router as admin_router
from .auth import router as auth_router
from .games import router as games_router
from .investments import router as investments_router
from .leaderboard import router as leaderboard_router
from .lottery import router as lottery_router
from .notifications import router as notifications_router
from .payments import router as payments_router
from .referrals import router as referrals_router
from .support import router as support_router
from .system import router as system_router
from .tasks import router as tasks_router
from .wallets import router as wallets_router

__all__ = [
    "admin_router",
    "auth_router",
    "games_router",
    "investments_router",
    "leaderboard_router",
    "lottery_router",
    "notifications_router",
    "payments_router",
    "referrals_router",
    "support_router",
    "system_router",
    "tasks_router",
    "wallets_router",
]
