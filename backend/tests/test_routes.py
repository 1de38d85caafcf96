"""HTTP tests for the API routes."""

import uuid
from types import SimpleNamespace

from earnhub.database import (
    DEPOSIT_REQUESTS_TABLE,
    KYC_REQUESTS_TABLE,
    NOTIFICATIONS_TABLE,
    PAYMENT_METHODS_TABLE,
    PROFILES_TABLE,
    SYSTEM_CONFIG_TABLE,
    WALLETS_TABLE,
)
from earnhub.rate_limit import get_client_ip, is_trusted_proxy

API = "/api/v1"


def disable(db, **flags):
    db.add_row(SYSTEM_CONFIG_TABLE, flags)


class TestAuthentication:
    """Test bearer token handling."""

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["service"] == "earnhub-backend"

    def test_missing_token(self, client):
        assert client.get(f"{API}/wallets/me").status_code == 401

    def test_invalid_token(self, client):
        response = client.get(f"{API}/wallets/me", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401

    def test_suspended_account(self, client, make_user, headers_for):
        user = make_user(is_suspended=True)
        assert client.get(f"{API}/wallets/me", headers=headers_for(user)).status_code == 403

    def test_me(self, client, user_id, auth_headers):
        response = client.get(f"{API}/auth/me", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["user_id"] == user_id
        assert data["is_admin"] is False
        assert data["wallet"]["game_balance"] == 100

    def test_me_without_profile(self, client, headers_for):
        response = client.get(f"{API}/auth/me", headers=headers_for(str(uuid.uuid4())))
        assert response.status_code == 404


class TestProfileBootstrap:
    """Test first-login profile creation over HTTP."""

    def test_creates_profile(self, client, db, headers_for):
        user = str(uuid.uuid4())
        response = client.post(
            f"{API}/auth/profile",
            json={"full_name": "Fresh User", "email": "fresh@example.com"},
            headers=headers_for(user),
        )
        assert response.status_code == 200
        assert response.json()["welcome_bonus"] == 0.5
        assert db.rows(WALLETS_TABLE, user_id=user)[0]["bonus_balance"] == 0.5

    def test_email_required(self, client, headers_for):
        response = client.post(f"{API}/auth/profile", json={"full_name": "X"}, headers=headers_for(str(uuid.uuid4())))
        assert response.status_code == 400

    def test_referral_ignored_when_invites_disabled(self, client, db, make_user, headers_for):
        make_user(ref_code_1="EHINVITE")
        disable(db, is_invite_enabled=False)
        response = client.post(
            f"{API}/auth/profile",
            json={"full_name": "Y", "email": "y@example.com", "referral_code": "EHINVITE"},
            headers=headers_for(str(uuid.uuid4())),
        )
        assert response.json()["referred"] is False


class TestWalletRoutes:
    def test_wallet_summary(self, client, auth_headers):
        data = client.get(f"{API}/wallets/me", headers=auth_headers).json()
        assert data["total_assets"] == 650
        assert data["playable_balance"] == 600
        assert data["formatted_total"] == "$650.00"

    def test_transfer_and_history(self, client, auth_headers):
        response = client.post(
            f"{API}/wallets/me/transfer",
            json={"source": "deposit", "destination": "game", "amount": 25},
            headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json()["game_balance"] == 125

        history = client.get(f"{API}/wallets/me/transactions?type=transfer", headers=auth_headers).json()
        assert history["total"] == 1
        assert client.get(f"{API}/wallets/me/transactions?type=gift", headers=auth_headers).status_code == 400

    def test_forbidden_transfer(self, client, auth_headers):
        response = client.post(
            f"{API}/wallets/me/transfer",
            json={"source": "game", "destination": "main", "amount": 5},
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert "detail" in response.json()

    def test_currency_and_daily_bonus(self, client, auth_headers):
        assert client.put(f"{API}/wallets/me/currency", json={"currency": "BDT"}, headers=auth_headers).json() == {
            "currency": "BDT"
        }
        assert client.get(f"{API}/wallets/me/daily-bonus", headers=auth_headers).json()["can_claim"] is True
        assert client.post(f"{API}/wallets/me/daily-bonus", headers=auth_headers).json()["day"] == 1
        assert client.post(f"{API}/wallets/me/daily-bonus", headers=auth_headers).status_code == 409


class TestFeatureFlags:
    """Test feature switches and maintenance mode."""

    def test_public_config(self, client, db):
        disable(db, is_games_enabled=False, global_alert="Scheduled maintenance")
        data = client.get(f"{API}/system/config").json()
        assert data["is_games_enabled"] is False
        assert data["global_alert"] == "Scheduled maintenance"

    def test_disabled_area_refused(self, client, db, auth_headers):
        disable(db, is_games_enabled=False, is_tasks_enabled=False, is_invest_enabled=False)
        assert client.get(f"{API}/games", headers=auth_headers).status_code == 403
        assert client.get(f"{API}/tasks", headers=auth_headers).status_code == 403
        assert client.get(f"{API}/investments/plans", headers=auth_headers).status_code == 403
        assert client.get(f"{API}/referrals/me", headers=auth_headers).status_code == 200

    def test_withdraw_switch_keeps_saved_method(self, client, db, auth_headers):
        disable(db, is_withdraw_enabled=False)
        assert client.get(f"{API}/payments/withdrawals", headers=auth_headers).status_code == 403
        assert client.get(f"{API}/payments/withdrawals/method", headers=auth_headers).status_code == 200
        assert client.get(f"{API}/payments/methods", headers=auth_headers).status_code == 200

    def test_maintenance_blocks_users_not_admins(self, client, db, auth_headers, admin_headers):
        disable(db, maintenance_mode=True)
        assert client.get(f"{API}/games", headers=auth_headers).status_code == 503
        assert client.get(f"{API}/games", headers=admin_headers).status_code == 200


class TestGameRoutes:
    def test_play_and_replay(self, client, db, user_id, auth_headers):
        body = {"bet": 10, "choice": {"side": "head"}, "round_id": "round-route-1"}
        first = client.post(f"{API}/games/coin_flip/play", json=body, headers=auth_headers)
        assert first.status_code == 200
        data = first.json()
        assert data["bet"] == 10
        assert data["payout"] in (0, 18.55)

        again = client.post(f"{API}/games/coin_flip/play", json=body, headers=auth_headers).json()
        assert again["replayed"] is True
        assert again["payout"] == data["payout"]

        history = client.get(f"{API}/games/history", headers=auth_headers).json()
        assert len(history["rounds"]) == 1

    def test_unknown_game(self, client, auth_headers):
        response = client.post(f"{API}/games/roulette/play", json={"bet": 1}, headers=auth_headers)
        assert response.status_code == 400

    def test_fairness_flow(self, client, auth_headers):
        seed = client.get(f"{API}/games/fairness", headers=auth_headers).json()
        assert "server_seed" not in seed
        rotated = client.post(f"{API}/games/fairness/rotate", json={"client_seed": "mine"}, headers=auth_headers).json()
        assert rotated["previous"]["server_seed_hash"] == seed["server_seed_hash"]

        check = client.post(
            f"{API}/games/fairness/verify",
            json={"server_seed": rotated["previous"]["server_seed"], "client_seed": "c", "nonce": 0, "count": 2},
            headers=auth_headers,
        ).json()
        assert len(check["floats"]) == 2

    def test_bad_choice_is_client_error(self, client, db, user_id, auth_headers):
        bad = [
            ("coin_flip", {"side": "edge"}),
            ("crash", {"target": "abc"}),
            ("thimbles", {"balls": "two", "cup": 1}),
        ]
        for game, choice in bad:
            body = {"bet": 10, "choice": choice}
            response = client.post(f"{API}/games/{game}/play", json=body, headers=auth_headers)
            assert response.status_code == 400
        assert db.rows(WALLETS_TABLE, user_id=user_id)[0]["game_balance"] == 100

    def test_apple_fortune(self, client, auth_headers):
        started = client.post(f"{API}/games/apple-fortune/start", json={"bet": 5}, headers=auth_headers).json()
        current = client.get(f"{API}/games/apple-fortune/current", headers=auth_headers).json()
        assert current["session"]["session_id"] == started["session_id"]
        response = client.post(f"{API}/games/apple-fortune/{started['session_id']}/cashout", headers=auth_headers)
        assert response.status_code == 400


class TestPaymentRoutes:
    def test_deposit_then_admin_approval(self, client, db, user_id, auth_headers, admin_headers):
        method = db.add_row(PAYMENT_METHODS_TABLE, {"name": "bKash", "is_active": True})
        created = client.post(
            f"{API}/payments/deposits",
            json={"method_id": method["id"], "amount": 40, "transaction_id": "TRXROUTE1", "sender_number": "0170"},
            headers=auth_headers,
        ).json()
        assert created["status"] == "pending"

        assert client.post(
            f"{API}/admin/deposits/{created['id']}/review", json={"approve": True}, headers=auth_headers
        ).status_code == 403
        pending = client.get(f"{API}/admin/deposits", headers=admin_headers).json()["deposits"]
        assert [d["id"] for d in pending] == [created["id"]]

        approved = client.post(
            f"{API}/admin/deposits/{created['id']}/review", json={"approve": True}, headers=admin_headers
        )
        assert approved.status_code == 200
        assert db.rows(WALLETS_TABLE, user_id=user_id)[0]["deposit_balance"] == 540
        assert db.rows(DEPOSIT_REQUESTS_TABLE, id=created["id"])[0]["status"] == "approved"

    def test_withdraw_then_reject(self, client, db, user_id, auth_headers, admin_headers):
        created = client.post(
            f"{API}/payments/withdrawals",
            json={"amount": 20, "method": "bKash", "account_number": "0170"},
            headers=auth_headers,
        ).json()
        assert db.rows(WALLETS_TABLE, user_id=user_id)[0]["main_balance"] == 30

        client.post(f"{API}/admin/withdrawals/{created['id']}/review", json={"approve": False}, headers=admin_headers)
        assert db.rows(WALLETS_TABLE, user_id=user_id)[0]["main_balance"] == 50

    def test_send_money(self, client, db, make_user, auth_headers):
        friend = make_user(email_1="pal@example.com")
        response = client.post(
            f"{API}/payments/send", json={"recipient": "pal@example.com", "amount": 10}, headers=auth_headers
        )
        assert response.status_code == 200
        assert db.rows(WALLETS_TABLE, user_id=friend)[0]["main_balance"] == 10


class TestAdminRoutes:
    def test_requires_admin(self, client, auth_headers):
        response = client.patch(f"{API}/admin/system/config", json={"is_games_enabled": False}, headers=auth_headers)
        assert response.status_code == 403

    def test_update_config(self, client, admin_headers):
        response = client.patch(f"{API}/admin/system/config", json={"is_games_enabled": False}, headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["is_games_enabled"] is False
        unknown = client.patch(f"{API}/admin/system/config", json={"bogus": 1}, headers=admin_headers)
        assert unknown.status_code == 400

    def test_user_flags(self, client, user_id, auth_headers, admin_headers):
        assert client.patch(f"{API}/admin/users/{user_id}", json={}, headers=admin_headers).status_code == 400
        response = client.patch(f"{API}/admin/users/{user_id}", json={"is_suspended": True}, headers=admin_headers)
        assert response.json()["is_suspended"] is True
        assert client.get(f"{API}/wallets/me", headers=auth_headers).status_code == 403

    def test_kyc_flow(self, client, db, user_id, auth_headers, admin_headers):
        submitted = client.post(
            f"{API}/kyc", json={"front_url": "https://f.png", "back_url": "https://b.png"}, headers=auth_headers
        ).json()
        assert submitted["ai_result"]["is_valid"] is False
        assert client.post(
            f"{API}/kyc", json={"front_url": "https://f.png", "back_url": "https://b.png"}, headers=auth_headers
        ).status_code == 409

        client.post(f"{API}/admin/kyc/{submitted['id']}/review", json={"approve": True}, headers=admin_headers)
        assert db.rows(PROFILES_TABLE, id=user_id)[0]["is_kyc_1"] is True
        assert db.rows(KYC_REQUESTS_TABLE, id=submitted["id"])[0]["status"] == "approved"
        assert client.get(f"{API}/kyc", headers=auth_headers).json()["request"]["status"] == "approved"

    def test_risk_without_provider(self, client, user_id, admin_headers):
        result = client.post(f"{API}/admin/users/{user_id}/risk", headers=admin_headers).json()
        assert result["verdict"] == "error"
        assert result["suspended"] is False


class TestLotteryAndLeaderboard:
    def test_admin_runs_a_draw(self, client, db, user_id, auth_headers, admin_headers):
        body = {"title": "Weekend Cash", "ticket_price": 5, "total_tickets": 10, "prize_value": 25}
        assert client.post(f"{API}/admin/lotteries", json=body, headers=auth_headers).status_code == 403
        draw = client.post(f"{API}/admin/lotteries", json=body, headers=admin_headers).json()

        listed = client.get(f"{API}/lottery", headers=auth_headers).json()["lotteries"]
        assert [d["id"] for d in listed] == [draw["id"]]
        ticket = client.post(f"{API}/lottery/{draw['id']}/tickets", headers=auth_headers).json()
        assert ticket["ticket_number"] == 1
        assert len(client.get(f"{API}/lottery/tickets", headers=auth_headers).json()["tickets"]) == 1

        drawn = client.post(f"{API}/admin/lotteries/{draw['id']}/draw", headers=admin_headers).json()
        assert drawn["winner_id"] == user_id
        assert db.rows(WALLETS_TABLE, user_id=user_id)[0]["main_balance"] == 75
        assert client.get(f"{API}/lottery", headers=auth_headers).json()["lotteries"] == []

    def test_lottery_follows_games_switch(self, client, db, auth_headers):
        disable(db, is_games_enabled=False)
        assert client.get(f"{API}/lottery", headers=auth_headers).status_code == 403

    def test_leaderboard(self, client, make_user, auth_headers):
        make_user({"total_earning": 30}, name_1="Leader")
        board = client.get(f"{API}/leaderboard", headers=auth_headers).json()
        assert board["by"] == "earning"
        assert [p["name"] for p in board["leaders"]] == ["Leader"]
        assert board["me"]["rank"] == 2

        response = client.get(f"{API}/leaderboard?by=referrals", headers=auth_headers)
        assert response.status_code == 422


class TestNotificationsAndSupport:
    def test_inbox(self, client, db, user_id, auth_headers):
        for title in ("One", "Two"):
            db.add_row(NOTIFICATIONS_TABLE, {"user_id": user_id, "title": title, "message": "m", "is_read": False})
        inbox = client.get(f"{API}/notifications?unread=true", headers=auth_headers).json()["notifications"]
        assert len(inbox) == 2

        first = client.post(f"{API}/notifications/{inbox[0]['id']}/read", headers=auth_headers)
        assert first.json()["is_read"] is True
        assert client.post(f"{API}/notifications/read-all", headers=auth_headers).json() == {"updated": 1}
        assert client.post(f"{API}/notifications/missing/read", headers=auth_headers).status_code == 404

    def test_chat_without_provider(self, client, auth_headers):
        response = client.post(f"{API}/support/chat", json={"message": "Hi"}, headers=auth_headers)
        assert response.status_code == 502


class TestClientIp:
    def test_forwarded_header_from_trusted_proxy(self):
        request = SimpleNamespace(client=SimpleNamespace(host="10.0.0.5"), headers={"x-forwarded-for": "203.0.113.9, 10.0.0.5"})
        assert get_client_ip(request) == "203.0.113.9"

    def test_forwarded_header_ignored_from_public_peer(self):
        request = SimpleNamespace(client=SimpleNamespace(host="198.51.100.7"), headers={"x-forwarded-for": "1.2.3.4"})
        assert get_client_ip(request) == "198.51.100.7"

    def test_trusted_proxy_check(self):
        assert is_trusted_proxy("127.0.0.1")
        assert not is_trusted_proxy("not-an-ip")
