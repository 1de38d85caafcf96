"""Tests for feature flags and display currencies."""

import time
from decimal import Decimal

import pytest
from earnhub import system
from earnhub.config import get_settings
from earnhub.currency import format_amount, get_currency, set_display_currency, signup_bonus_usd, to_usd
from earnhub.database import SYSTEM_CONFIG_TABLE, WALLETS_TABLE
from earnhub.errors import InvalidRequestError
from earnhub.system import (
    SystemConfig,
    get_system_config,
    is_feature_enabled,
    require_feature,
    update_system_config,
)


class TestSystemConfig:
    """Test loading and caching the flags row."""

    @pytest.mark.asyncio
    async def test_missing_row_enables_everything(self, db):
        config = await get_system_config(db)
        assert config == SystemConfig()
        assert config.is_games_enabled is True
        assert config.maintenance_mode is False

    @pytest.mark.asyncio
    async def test_read_failure_falls_back(self, db):
        db.failures[(SYSTEM_CONFIG_TABLE, "select")] = RuntimeError("down")
        config = await get_system_config(db)
        assert config.is_deposit_enabled is True

    @pytest.mark.asyncio
    async def test_row_values_and_cache(self, db):
        db.add_row(SYSTEM_CONFIG_TABLE, {"is_games_enabled": False, "p2p_transfer_fee_percent": 1.5})
        config = await get_system_config(db)
        assert config.is_games_enabled is False
        assert config.p2p_transfer_fee_percent == Decimal("1.5")

        db.tables[SYSTEM_CONFIG_TABLE][0]["is_games_enabled"] = True
        assert (await get_system_config(db)).is_games_enabled is False
        assert (await get_system_config(db, use_cache=False)).is_games_enabled is True

    @pytest.mark.asyncio
    async def test_cached_config_expires(self, db):
        db.add_row(SYSTEM_CONFIG_TABLE, {"is_games_enabled": False})
        assert (await get_system_config(db)).is_games_enabled is False
        remaining = system._snapshot.expires_at - time.monotonic()
        assert 0 < remaining <= get_settings().config_cache_seconds

        db.tables[SYSTEM_CONFIG_TABLE][0]["is_games_enabled"] = True
        assert (await get_system_config(db)).is_games_enabled is False
        system._snapshot.expires_at = time.monotonic() - 1
        assert (await get_system_config(db)).is_games_enabled is True

    @pytest.mark.asyncio
    async def test_update_creates_then_updates(self, db):
        config = await update_system_config(db, {"is_tasks_enabled": False})
        assert config.is_tasks_enabled is False
        config = await update_system_config(db, {"global_alert": "Deposits delayed"})
        assert config.is_tasks_enabled is False
        assert config.global_alert == "Deposits delayed"
        assert len(db.rows(SYSTEM_CONFIG_TABLE)) == 1

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_fields(self, db):
        with pytest.raises(InvalidRequestError):
            await update_system_config(db, {"is_casino_enabled": True})

    def test_unknown_flag(self):
        with pytest.raises(ValueError):
            is_feature_enabled(SystemConfig(), "maintenance_mode")
        with pytest.raises(ValueError):
            require_feature("is_lottery_enabled")


class TestCurrency:
    def test_format_converts_from_usd(self):
        assert format_amount(10, "BDT") == "৳1,200.00"
        assert format_amount(Decimal("1.005"), "USD") == "$1.01"

    def test_format_native_and_negative(self):
        assert format_amount(-5, "INR", is_native=True) == "-₹5.00"

    def test_compact(self):
        assert format_amount(1500, "USD", compact=True) == "$1.5K"
        assert format_amount(2_500_000, "USD", compact=True) == "$2.50M"
        assert format_amount(999, "USD", compact=True) == "$999.00"

    def test_unknown_currency_is_usd(self):
        assert get_currency("XYZ").code == "USD"

    def test_conversions(self):
        assert to_usd(280, "PKR") == 1
        assert signup_bonus_usd("EUR") == Decimal("0.5") / Decimal("0.92")

    @pytest.mark.asyncio
    async def test_switch_keeps_balances(self, db, make_user):
        user = make_user({"main_balance": 10})
        assert await set_display_currency(db, user, "eur") == "EUR"
        row = db.rows(WALLETS_TABLE, user_id=user)[0]
        assert row["currency"] == "EUR"
        assert row["main_balance"] == 10

    @pytest.mark.asyncio
    async def test_switch_rejects_unknown(self, db, make_user):
        with pytest.raises(InvalidRequestError):
            await set_display_currency(db, make_user(), "GBP")
