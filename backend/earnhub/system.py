"""Platform-wide feature flags.

A single `system_config` row switches product areas on and off. The row is
cached in-process for a short time; a missing row or a failed read falls
back to everything enabled.
"""

import time
from decimal import Decimal
from fastapi import Depends
from pydantic import BaseModel
from supabase import Client

from .auth import CurrentUser
from .config import get_settings
from .database import SYSTEM_CONFIG_TABLE, Database
from .errors import FeatureDisabledError, InvalidRequestError, MaintenanceModeError
from .logging_config import get_logger

logger = get_logger("earnhub.system")

FEATURE_FLAGS = (
    "is_tasks_enabled",
    "is_games_enabled",
    "is_invest_enabled",
    "is_invite_enabled",
    "is_video_enabled",
    "is_deposit_enabled",
    "is_withdraw_enabled",
)


class SystemConfig(BaseModel):
    """Feature switches and P2P transfer parameters."""

    is_tasks_enabled: bool = True
    is_games_enabled: bool = True
    is_invest_enabled: bool = True
    is_invite_enabled: bool = True
    is_video_enabled: bool = True
    is_deposit_enabled: bool = True
    is_withdraw_enabled: bool = True
    maintenance_mode: bool = False
    global_alert: str | None = None
    p2p_transfer_fee_percent: Decimal = Decimal("2.0")
    p2p_min_transfer: Decimal = Decimal("10.0")


class _ConfigSnapshot:
    """The last loaded config and the monotonic deadline it is good until."""

    def __init__(self) -> None:
        self.config: SystemConfig | None = None
        self.expires_at = 0.0

    def fresh(self) -> SystemConfig | None:
        if self.config is not None and time.monotonic() < self.expires_at:
            return self.config
        return None

    def store(self, config: SystemConfig) -> None:
        self.config = config
        self.expires_at = time.monotonic() + get_settings().config_cache_seconds

    def drop(self) -> None:
        self.config = None
        self.expires_at = 0.0


_snapshot = _ConfigSnapshot()


def _from_row(row: dict | None) -> SystemConfig:
    if not row:
        return SystemConfig()
    values = {k: v for k, v in row.items() if k in SystemConfig.model_fields and v is not None}
    return SystemConfig(**values)


async def get_system_config(db: Client, use_cache: bool = True) -> SystemConfig:
    """Load the feature flags row."""
    if use_cache:
        cached = _snapshot.fresh()
        if cached is not None:
            return cached

    try:
        result = db.table(SYSTEM_CONFIG_TABLE).select("*").limit(1).execute()
        config = _from_row(result.data[0] if result.data else None)
    except Exception as e:
        logger.error(f"System config read failed, using defaults: {e}")
        return SystemConfig()

    _snapshot.store(config)
    return config


async def update_system_config(db: Client, changes: dict) -> SystemConfig:
    """Apply flag changes to the config row (creating it if absent)."""
    unknown = set(changes) - set(SystemConfig.model_fields)
    if unknown:
        raise InvalidRequestError(f"Unknown config fields: {', '.join(sorted(unknown))}")

    payload = {k: float(v) if isinstance(v, Decimal) else v for k, v in changes.items()}
    result = db.table(SYSTEM_CONFIG_TABLE).select("id").limit(1).execute()
    if result.data:
        db.table(SYSTEM_CONFIG_TABLE).update(payload).eq("id", result.data[0]["id"]).execute()
    else:
        db.table(SYSTEM_CONFIG_TABLE).insert(payload).execute()

    invalidate_system_config()
    logger.info(f"System config updated: {sorted(payload)}")
    return await get_system_config(db, use_cache=False)


def invalidate_system_config() -> None:
    _snapshot.drop()


def is_feature_enabled(config: SystemConfig, flag: str) -> bool:
    if flag not in FEATURE_FLAGS:
        raise ValueError(f"Unknown feature flag: {flag}")
    return bool(getattr(config, flag))


def require_feature(flag: str):
    """Build a dependency that refuses the route when `flag` is off.

    Maintenance mode blocks every gated route for non-admin callers.
    """
    if flag not in FEATURE_FLAGS:
        raise ValueError(f"Unknown feature flag: {flag}")

    async def _check(auth: CurrentUser, db: Database) -> SystemConfig:
        config = await get_system_config(db)
        if config.maintenance_mode and not auth.is_admin:
            raise MaintenanceModeError("The platform is under maintenance")
        if not is_feature_enabled(config, flag):
            raise FeatureDisabledError(f"This feature is currently disabled ({flag})")
        return config

    return Depends(_check)
