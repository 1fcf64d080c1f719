"""
HTTP contract tests: success shapes and stable error codes.
"""

from decimal import Decimal

import pytest


def signup(client, email="ivy@example.com", password="secret1", name="Ivy"):
    response = client.post("/api/signup", json={"email": email, "name": name, "password": password})
    assert response.status_code == 200, response.json()
    return response.json()["profile"]


def admin_headers(key):
    return {"x-admin-key": key}


class TestUserEndpoints:

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"

    def test_signup_and_profile(self, client):
        profile = signup(client)

        assert profile["email"] == "ivy@example.com"
        assert Decimal(profile["homeBalance"]) == 0
        assert Decimal(profile["gasBalance"]) == 0

        response = client.get(f"/api/profile/{profile['uid']}")
        assert response.status_code == 200
        assert response.json() == profile
        assert set(profile) == {"uid", "email", "name", "homeBalance", "gasBalance"}

        entry = client.get(f"/api/deposits/{profile['uid']}").json()["deposits"][0]
        assert "createdAt" in entry and "created_at" not in entry

    def test_signup_short_password(self, client):
        response = client.post("/api/signup", json={"email": "ivy@example.com", "password": "123"})
        assert response.status_code == 400
        assert response.json()["error"] == "email_and_password_required_min_6_chars"

    def test_signup_duplicate(self, client):
        signup(client)
        response = client.post("/api/signup", json={"email": "ivy@example.com", "password": "secret2"})
        assert response.status_code == 400
        assert response.json()["error"] == "email_already_registered"

    def test_login(self, client):
        profile = signup(client)

        ok = client.post("/api/login", json={"email": "ivy@example.com", "password": "secret1"})
        assert ok.status_code == 200
        assert ok.json()["profile"]["uid"] == profile["uid"]

        bad = client.post("/api/login", json={"email": "ivy@example.com", "password": "nope123"})
        assert bad.status_code == 401
        assert bad.json()["error"] == "invalid_credentials"

        missing = client.post("/api/login", json={"email": "ivy@example.com"})
        assert missing.status_code == 400
        assert missing.json()["error"] == "email_and_password_required"

    def test_profile_not_found(self, client):
        response = client.get("/api/profile/uid_missing")
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"


class TestAdminEndpoints:

    def test_gas_credit(self, client, admin_key):
        uid = signup(client)["uid"]

        response = client.post(
            "/api/deposits/manual",
            json={"uid": uid, "amount": 50},
            headers=admin_headers(admin_key),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert Decimal(body["profile"]["gasBalance"]) == Decimal("50")

    def test_home_credit_with_note(self, client, admin_key):
        uid = signup(client)["uid"]

        response = client.post(
            "/api/deposits/manual/home",
            json={"uid": uid, "amount": "100.50", "note": "bonus"},
            headers=admin_headers(admin_key),
        )

        assert Decimal(response.json()["profile"]["homeBalance"]) == Decimal("100.50")
        latest = client.get(f"/api/deposits/{uid}").json()["deposits"][0]
        assert (latest["category"], latest["note"]) == ("wallet", "bonus")

    @pytest.mark.parametrize("headers", [{}, {"x-admin-key": "wrong"}])
    def test_unauthorized_changes_nothing(self, client, headers):
        uid = signup(client)["uid"]
        before = client.get(f"/api/deposits/{uid}").json()

        response = client.post("/api/deposits/manual", json={"uid": uid, "amount": 50}, headers=headers)

        assert response.status_code == 401
        assert response.json()["error"] == "unauthorized"
        assert client.get(f"/api/deposits/{uid}").json() == before
        assert Decimal(client.get(f"/api/profile/{uid}").json()["gasBalance"]) == 0

    def test_unauthorized_wins_over_bad_body(self, client):
        response = client.post("/api/deposits/manual", json={"amount": "abc"}, headers=admin_headers("wrong"))
        assert response.status_code == 401
        assert response.json()["error"] == "unauthorized"

    @pytest.mark.parametrize("payload", [
        {"amount": 0},
        {"amount": -10},
        {"amount": "abc"},
        {"amount": "1.001"},
        {"amount": "100000000000000000"},
    ])
    def test_invalid_params(self, client, admin_key, payload):
        uid = signup(client)["uid"]
        response = client.post(
            "/api/deposits/manual/home", json={"uid": uid, **payload}, headers=admin_headers(admin_key)
        )
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_params"

    def test_missing_uid(self, client, admin_key):
        response = client.post("/api/deposits/manual", json={"amount": 5}, headers=admin_headers(admin_key))
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_params"

    def test_unknown_user(self, client, admin_key):
        response = client.post(
            "/api/deposits/manual", json={"uid": "uid_missing", "amount": 5}, headers=admin_headers(admin_key)
        )
        assert response.status_code == 404
        assert response.json()["error"] == "user_not_found"

    def test_list_users(self, client, admin_key):
        first = signup(client, email="a@example.com")
        second = signup(client, email="b@example.com")

        assert client.get("/api/users").status_code == 401

        users = client.get("/api/users", headers=admin_headers(admin_key)).json()["users"]
        assert {u["uid"] for u in users} == {first["uid"], second["uid"]}

    def test_reconcile(self, client, admin_key):
        uid = signup(client)["uid"]
        client.post("/api/deposits/manual", json={"uid": uid, "amount": 5}, headers=admin_headers(admin_key))

        report = client.get(f"/api/admin/reconcile/{uid}", headers=admin_headers(admin_key)).json()

        assert report["consistent"] is True
        assert Decimal(report["gasDrift"]) == 0
        assert Decimal(report["gasLedgerTotal"]) == Decimal("5")
        assert report["entryCount"] == 2


class TestLedgerEndpoints:

    @pytest.fixture
    def uid(self, client, admin_key):
        uid = signup(client)["uid"]
        client.post("/api/deposits/manual", json={"uid": uid, "amount": 50}, headers=admin_headers(admin_key))
        client.post("/api/deposits/manual/home", json={"uid": uid, "amount": 100}, headers=admin_headers(admin_key))
        return uid

    def test_withdraw(self, client, uid):
        response = client.post("/api/withdraw", json={"uid": uid, "principalAmount": 40, "gasAmount": 10})

        assert response.status_code == 200
        profile = response.json()["profile"]
        assert Decimal(profile["homeBalance"]) == Decimal("60")
        assert Decimal(profile["gasBalance"]) == Decimal("40")

        deposits = client.get(f"/api/deposits/{uid}").json()["deposits"]
        assert [(Decimal(d["amount"]), d["category"]) for d in deposits[:2]] == [
            (Decimal("-10"), "gas_fee"),
            (Decimal("-40"), "withdraw"),
        ]

    @pytest.mark.parametrize("payload,status,code", [
        ({"principalAmount": 0, "gasAmount": 0}, 400, "invalid_params"),
        ({"principalAmount": 10, "gasAmount": -1}, 400, "invalid_params"),
        ({"principalAmount": 1000, "gasAmount": 0}, 400, "insufficient_home_balance"),
        ({"principalAmount": 10, "gasAmount": 60}, 400, "insufficient_gas_balance"),
        ({"principalAmount": 40}, 400, "invalid_params"),
        ({"principalAmount": "100000000000000000", "gasAmount": 0}, 400, "invalid_params"),
    ])
    def test_withdraw_failures(self, client, uid, payload, status, code):
        response = client.post("/api/withdraw", json={"uid": uid, **payload})
        assert response.status_code == status
        assert response.json()["error"] == code

        profile = client.get(f"/api/profile/{uid}").json()
        assert Decimal(profile["homeBalance"]) == Decimal("100")
        assert Decimal(profile["gasBalance"]) == Decimal("50")

    def test_withdraw_unknown_user(self, client):
        response = client.post("/api/withdraw", json={"uid": "uid_missing", "principalAmount": 1, "gasAmount": 0})
        assert response.status_code == 404
        assert response.json()["error"] == "user_not_found"

    def test_deposits_capped_at_twenty(self, client, uid, admin_key):
        for _ in range(25):
            client.post("/api/deposits/manual", json={"uid": uid, "amount": 1}, headers=admin_headers(admin_key))

        deposits = client.get(f"/api/deposits/{uid}").json()["deposits"]

        assert len(deposits) == 20
        ids = [d["id"] for d in deposits]
        assert ids == sorted(ids, reverse=True)
