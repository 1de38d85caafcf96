"""Tests for wallet mutations, transfers and the daily bonus."""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from earnhub.database import TRANSACTIONS_TABLE, WALLETS_TABLE, utcnow
from earnhub.errors import (
    ConflictError,
    InsufficientFundsError,
    InvalidRequestError,
    NotFoundError,
)
from earnhub.wallets import ledger
from earnhub.wallets.bonuses import DAILY_REWARDS, claim_daily_bonus, get_daily_bonus_status


def wallet(db, user_id):
    return db.rows(WALLETS_TABLE, user_id=user_id)[0]


class TestApplyChanges:
    """Test compare-and-set wallet updates."""

    @pytest.mark.asyncio
    async def test_credit_bumps_version(self, db, make_user):
        user = make_user({"main_balance": 10})
        await ledger.credit(db, user, "main", Decimal("5.5"))
        row = wallet(db, user)
        assert row["main_balance"] == 15.5
        assert row["version"] == 1

    @pytest.mark.asyncio
    async def test_main_balance_mirrors(self, db, make_user):
        user = make_user({"main_balance": 100, "pending_withdraw": 30})
        await ledger.apply_changes(db, user, {"main_balance": Decimal("-20")})
        row = wallet(db, user)
        assert row["balance"] == 80
        assert row["withdrawable"] == 50

    @pytest.mark.asyncio
    async def test_deposit_mirror(self, db, make_user):
        user = make_user()
        await ledger.credit(db, user, "deposit_balance", Decimal("12"))
        assert wallet(db, user)["deposit"] == 12

    @pytest.mark.asyncio
    async def test_negative_balance_refused(self, db, make_user):
        user = make_user({"game_balance": 5})
        with pytest.raises(InsufficientFundsError):
            await ledger.debit(db, user, "game", Decimal("6"))
        assert wallet(db, user)["game_balance"] == 5
        assert wallet(db, user)["version"] == 0

    @pytest.mark.asyncio
    async def test_stats_clamp_at_zero(self, db, make_user):
        user = make_user({"today_earning": 1})
        await ledger.apply_changes(db, user, {"today_earning": Decimal("-3")})
        assert wallet(db, user)["today_earning"] == 0

    @pytest.mark.asyncio
    async def test_unknown_field(self, db, make_user):
        user = make_user()
        with pytest.raises(InvalidRequestError):
            await ledger.apply_changes(db, user, {"gold_balance": Decimal("1")})

    @pytest.mark.asyncio
    async def test_amount_must_be_positive(self, db, make_user):
        user = make_user()
        with pytest.raises(InvalidRequestError):
            await ledger.credit(db, user, "main", Decimal("0"))

    @pytest.mark.asyncio
    async def test_missing_wallet(self, db):
        with pytest.raises(NotFoundError):
            await ledger.credit(db, "00000000-0000-4000-8000-000000000000", "main", Decimal("1"))

    @pytest.mark.asyncio
    async def test_retries_after_concurrent_write(self, db, make_user):
        user = make_user({"main_balance": 10})
        real_get_wallet = ledger.get_wallet
        calls = []

        async def racing_get_wallet(db_, user_id):
            row = await real_get_wallet(db_, user_id)
            if not calls:
                # Another writer commits between our read and write
                stored = wallet(db, user_id)
                stored["main_balance"] = 20
                stored["version"] = 1
            calls.append(row)
            return row

        with patch.object(ledger, "get_wallet", racing_get_wallet):
            await ledger.credit(db, user, "main", Decimal("5"))

        assert len(calls) == 2
        assert wallet(db, user)["main_balance"] == 25
        assert wallet(db, user)["version"] == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, db, make_user):
        user = make_user({"main_balance": 10})
        real_get_wallet = ledger.get_wallet

        async def always_stale(db_, user_id):
            row = await real_get_wallet(db_, user_id)
            wallet(db, user_id)["version"] += 1
            return row

        with patch.object(ledger, "get_wallet", always_stale):
            with pytest.raises(ConflictError):
                await ledger.credit(db, user, "main", Decimal("5"))
        assert wallet(db, user)["main_balance"] == 10


class TestDebitOrder:
    """Test bet debits across sub-wallets."""

    @pytest.mark.asyncio
    async def test_priority_order(self, db, make_user):
        user = make_user({"game_balance": 3, "bonus_balance": 2, "deposit_balance": 10, "main_balance": 10})
        taken = await ledger.debit_playable(db, user, Decimal("7"))
        assert taken == {"game_balance": 3, "bonus_balance": 2, "deposit_balance": 2}
        row = wallet(db, user)
        assert (row["game_balance"], row["bonus_balance"], row["deposit_balance"]) == (0, 0, 8)
        assert row["main_balance"] == 10

    @pytest.mark.asyncio
    async def test_investment_not_playable(self, db, make_user):
        user = make_user({"investment_balance": 100, "game_balance": 1})
        assert ledger.playable_balance(wallet(db, user)) == 1
        with pytest.raises(InsufficientFundsError):
            await ledger.debit_playable(db, user, Decimal("2"))

    @pytest.mark.asyncio
    async def test_tiny_shortfall_forgiven(self, db, make_user):
        user = make_user({"game_balance": 9.9995})
        await ledger.debit_playable(db, user, Decimal("10"))
        assert wallet(db, user)["game_balance"] == 0

    def test_allocate_debit_rejects_real_shortfall(self):
        with pytest.raises(InsufficientFundsError):
            ledger.allocate_debit({"game_balance": 9.99}, Decimal("10"))


class TestTransfers:
    """Test internal transfer routes."""

    @pytest.mark.asyncio
    async def test_deposit_to_game(self, db, make_user):
        user = make_user({"deposit_balance": 50})
        await ledger.transfer(db, user, "deposit", "game", Decimal("20"))
        row = wallet(db, user)
        assert (row["deposit_balance"], row["game_balance"]) == (30, 20)
        tx = db.rows(TRANSACTIONS_TABLE, user_id=user)
        assert tx[0]["type"] == "transfer"
        assert tx[0]["metadata"] == {"from": "deposit_balance", "to": "game_balance"}

    @pytest.mark.asyncio
    async def test_earning_to_main(self, db, make_user):
        user = make_user({"earning_balance": 5})
        await ledger.transfer(db, user, "earning_balance", "main_balance", Decimal("5"))
        assert wallet(db, user)["main_balance"] == 5

    @pytest.mark.asyncio
    @pytest.mark.parametrize("source,destination", [("bonus", "main"), ("game", "deposit"), ("deposit", "main")])
    async def test_forbidden_routes(self, db, make_user, source, destination):
        user = make_user({"bonus_balance": 5, "game_balance": 5, "deposit_balance": 5})
        with pytest.raises(InvalidRequestError):
            await ledger.transfer(db, user, source, destination, Decimal("1"))

    @pytest.mark.asyncio
    async def test_insufficient_source(self, db, make_user):
        user = make_user({"main_balance": 1})
        with pytest.raises(InsufficientFundsError):
            await ledger.transfer(db, user, "main", "game", Decimal("2"))


class TestDailyBonus:
    """Test the daily login streak."""

    @pytest.mark.asyncio
    async def test_first_claim_is_day_one(self, db, make_user):
        user = make_user()
        result = await claim_daily_bonus(db, user)
        assert result == {"day": 1, "amount": float(DAILY_REWARDS[0])}
        assert wallet(db, user)["bonus_balance"] == 0.1
        tx = db.rows(TRANSACTIONS_TABLE, user_id=user)[0]
        assert tx["description"] == "Daily Login Bonus (Day 1)"

    @pytest.mark.asyncio
    async def test_one_claim_per_day(self, db, make_user):
        user = make_user()
        await claim_daily_bonus(db, user)
        with pytest.raises(ConflictError):
            await claim_daily_bonus(db, user)

    @pytest.mark.asyncio
    async def test_streak_continues_from_yesterday(self, db, make_user):
        user = make_user()
        db.add_row(TRANSACTIONS_TABLE, {
            "user_id": user, "type": "bonus", "amount": 0.3,
            "description": "Daily Login Bonus (Day 3)",
            "created_at": (utcnow() - timedelta(days=1)).isoformat(),
        })
        status = await get_daily_bonus_status(db, user)
        assert status["can_claim"] is True
        assert status["day"] == 4

    @pytest.mark.asyncio
    async def test_day_seven_wraps(self, db, make_user):
        user = make_user()
        db.add_row(TRANSACTIONS_TABLE, {
            "user_id": user, "type": "bonus", "amount": 1.0,
            "description": "Daily Login Bonus (Day 7)",
            "created_at": (utcnow() - timedelta(days=1)).isoformat(),
        })
        assert (await get_daily_bonus_status(db, user))["day"] == 1

    @pytest.mark.asyncio
    async def test_gap_resets_streak(self, db, make_user):
        user = make_user()
        db.add_row(TRANSACTIONS_TABLE, {
            "user_id": user, "type": "bonus", "amount": 0.5,
            "description": "Daily Login Bonus (Day 5)",
            "created_at": (utcnow() - timedelta(days=3)).isoformat(),
        })
        assert (await get_daily_bonus_status(db, user))["day"] == 1
