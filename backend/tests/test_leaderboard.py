"""Tests for the earnings and investment leaderboard."""

import pytest
from earnhub.errors import InvalidRequestError
from earnhub.leaderboard import get_leaderboard


@pytest.fixture
def players(make_user):
    return {
        "top": make_user({"total_earning": 120, "investment_balance": 5}, name_1="Karim"),
        "mid": make_user({"total_earning": 40, "investment_balance": 500}, name_1="Nadia"),
        "idle": make_user({"total_earning": 0}),
    }


class TestLeaderboard:
    @pytest.mark.asyncio
    async def test_ranked_by_earning(self, db, players):
        board = await get_leaderboard(db, players["mid"])

        assert [(p["rank"], p["name"], p["amount"]) for p in board["leaders"]] == [
            (1, "Karim", 120),
            (2, "Nadia", 40),
        ]
        assert [p["is_current_user"] for p in board["leaders"]] == [False, True]
        assert board["me"] == {"rank": 2, "amount": 40}

    @pytest.mark.asyncio
    async def test_ranked_by_investment(self, db, players):
        board = await get_leaderboard(db, players["top"], by="invest")
        assert [p["name"] for p in board["leaders"]] == ["Nadia", "Karim"]
        assert board["me"]["rank"] == 2

    @pytest.mark.asyncio
    async def test_limit_and_unranked_caller(self, db, players):
        board = await get_leaderboard(db, players["idle"], limit=1)
        assert [p["name"] for p in board["leaders"]] == ["Karim"]
        assert board["me"] == {"rank": 3, "amount": 0}

    @pytest.mark.asyncio
    async def test_unknown_ranking(self, db, players):
        with pytest.raises(InvalidRequestError):
            await get_leaderboard(db, players["top"], by="referrals")
