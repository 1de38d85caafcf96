"""Tests for profile bootstrap and referral commission."""

import uuid
from decimal import Decimal

import pytest
from earnhub.database import (
    NOTIFICATIONS_TABLE,
    PROFILES_TABLE,
    REFERRAL_TIERS_TABLE,
    REFERRALS_TABLE,
    TRANSACTIONS_TABLE,
    WALLETS_TABLE,
)
from earnhub.errors import InvalidRequestError
from earnhub.referrals.service import (
    create_user_profile,
    distribute_referral_reward,
    generate_referral_code,
    get_commission_percent,
    get_referral_stats,
)


def wallet(db, user_id):
    return db.rows(WALLETS_TABLE, user_id=user_id)[0]


class TestReferralCode:
    def test_format(self):
        code = generate_referral_code()
        assert code.startswith("EH")
        assert len(code) == 8
        assert code[2:].isalnum() and code[2:].upper() == code[2:]


class TestCreateProfile:
    """Test first-login profile creation."""

    @pytest.mark.asyncio
    async def test_creates_profile_and_wallet(self, db):
        user_id = str(uuid.uuid4())
        result = await create_user_profile(db, user_id, "New@Example.com", "New User")

        assert result["welcome_bonus"] == 0.5
        assert result["referred"] is False
        assert result["profile"]["email_1"] == "new@example.com"
        row = wallet(db, user_id)
        assert row["bonus_balance"] == 0.5
        assert row["main_balance"] == 0
        assert row["version"] == 0

        tx = db.rows(TRANSACTIONS_TABLE, user_id=user_id)
        assert [(t["type"], t["description"]) for t in tx] == [("bonus", "Welcome Bonus")]

    @pytest.mark.asyncio
    async def test_repeat_call_grants_bonus_once(self, db):
        user_id = str(uuid.uuid4())
        await create_user_profile(db, user_id, "a@example.com", "A")
        again = await create_user_profile(db, user_id, "a@example.com", "A")

        assert again["welcome_bonus"] == 0.0
        assert len(db.rows(PROFILES_TABLE, id=user_id)) == 1
        assert len(db.rows(WALLETS_TABLE, user_id=user_id)) == 1
        assert len(db.rows(TRANSACTIONS_TABLE, user_id=user_id)) == 1

    @pytest.mark.asyncio
    async def test_native_currency_bonus_converted(self, db):
        user_id = str(uuid.uuid4())
        await create_user_profile(db, user_id, "b@example.com", "B", currency="BDT")
        row = wallet(db, user_id)
        assert row["currency"] == "BDT"
        # 50 BDT at 120 per USD
        assert row["bonus_balance"] == 0.4167

    @pytest.mark.asyncio
    async def test_referral_raises_bonus_and_links(self, db, make_user):
        referrer = make_user(ref_code_1="EHABC123")
        user_id = str(uuid.uuid4())
        result = await create_user_profile(db, user_id, "c@example.com", "C", referral_code=" ehabc123 ")

        assert result["referred"] is True
        assert result["welcome_bonus"] == 0.625
        assert result["profile"]["referred_by"] == "EHABC123"
        link = db.rows(REFERRALS_TABLE, referred_id=user_id)
        assert link[0]["referrer_id"] == referrer
        assert [n["title"] for n in db.rows(NOTIFICATIONS_TABLE, user_id=referrer)] == ["New Referral"]

    @pytest.mark.asyncio
    async def test_unknown_code_ignored(self, db):
        user_id = str(uuid.uuid4())
        result = await create_user_profile(db, user_id, "d@example.com", "D", referral_code="EHNOPE00")
        assert result["referred"] is False
        assert result["welcome_bonus"] == 0.5

    @pytest.mark.asyncio
    async def test_invalid_user_id(self, db):
        with pytest.raises(InvalidRequestError):
            await create_user_profile(db, "not-a-uuid", "e@example.com", "E")


class TestCommission:
    """Test referral commission on earnings."""

    @pytest.mark.asyncio
    async def test_default_percent(self, db):
        assert await get_commission_percent(db) == Decimal("5")

    @pytest.mark.asyncio
    async def test_tier_percent(self, db):
        db.add_row(REFERRAL_TIERS_TABLE, {"level": 1, "type": "earning", "is_active": True, "commission_percent": 10})
        assert await get_commission_percent(db) == Decimal("10")

    @pytest.mark.asyncio
    async def test_pays_referrer(self, db, make_user):
        referrer = make_user(ref_code_1="EHREF001")
        earner = make_user(referred_by="EHREF001", name_1="Earner")
        db.add_row(REFERRALS_TABLE, {"referrer_id": referrer, "referred_id": earner, "earned": 0})

        paid = await distribute_referral_reward(db, earner, Decimal("20"))

        assert paid == Decimal("1.0000")
        row = wallet(db, referrer)
        assert row["commission_balance"] == 1
        assert row["referral_earnings"] == 1
        assert row["total_earning"] == 1
        assert db.rows(REFERRALS_TABLE, referred_id=earner)[0]["earned"] == 1
        tx = db.rows(TRANSACTIONS_TABLE, user_id=referrer)[0]
        assert tx["type"] == "referral"
        assert tx["description"] == "5% Commission from Earner"

    @pytest.mark.asyncio
    async def test_no_referrer(self, db, make_user):
        earner = make_user()
        assert await distribute_referral_reward(db, earner, Decimal("20")) == 0

    @pytest.mark.asyncio
    async def test_tiny_commission_skipped(self, db, make_user):
        referrer = make_user(ref_code_1="EHREF002")
        earner = make_user(referred_by="EHREF002")
        assert await distribute_referral_reward(db, earner, Decimal("0.01")) == 0
        assert wallet(db, referrer)["commission_balance"] == 0

    @pytest.mark.asyncio
    async def test_stats(self, db, make_user):
        referrer = make_user(ref_code_1="EHREF003")
        for earned in (1.5, 2):
            db.add_row(REFERRALS_TABLE, {"referrer_id": referrer, "referred_id": str(uuid.uuid4()), "earned": earned})
        stats = await get_referral_stats(db, referrer)
        assert stats == {"code": "EHREF003", "invited_users": 2, "total_earned": 3.5}
