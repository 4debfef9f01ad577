"""
Tests for the FastAPI surface: auth, error mapping, full bet lifecycle
Run with: pytest tests/test_api.py -v
"""

import pytest
from fastapi.testclient import TestClient

from wagerbook.auth import ADMIN_ACCOUNT, get_valid_api_keys
from wagerbook.core.random_outcome import SequenceRandomnessSource
from wagerbook.main import app
from wagerbook.services.engine import WagerEngine
from wagerbook.services.notifications import InMemoryNotificationSink

ADMIN = {"X-API-Key": "key-admin"}      # user1
BOOKIE = {"X-API-Key": "key-bookie"}    # user2
ALICE = {"X-API-Key": "key-alice"}      # user3

MATCH_PAYLOAD = {
    "external_event_id": 1001,
    "odd_homewin": {"integer": 2, "fraction": 0},
    "odd_awaywin": {"integer": 3, "fraction": 50},
    "odd_draw": {"integer": 3, "fraction": 10},
    "odd_under": {"integer": 1, "fraction": 80},
    "odd_over": {"integer": 2, "fraction": 5},
}


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setenv("API_KEY_USER1", "key-admin")
    monkeypatch.setenv("API_KEY_USER2", "key-bookie")
    monkeypatch.setenv("API_KEY_USER3", "key-alice")
    for i in (4, 5):
        monkeypatch.delenv(f"API_KEY_USER{i}", raising=False)
    monkeypatch.setenv("WAGERBOOK_BACKEND", "memory")

    with TestClient(app) as test_client:
        # Scripted scores: home 3, away 1.
        app.state.engine = WagerEngine(
            randomness=SequenceRandomnessSource([3, 1]),
            sink=InMemoryNotificationSink(),
        )
        yield test_client


def _fund(client, account, amount):
    resp = client.post(f"/admin/accounts/{account}/deposit", json={"amount": amount}, headers=ADMIN)
    assert resp.status_code == 200
    return resp.json()


def _open_bet(client, prediction="Homewin", amount=100):
    _fund(client, "user2", 1_000)
    _fund(client, "user3", 500)
    match_index = client.post("/api/matches", json=MATCH_PAYLOAD, headers=BOOKIE).json()["match_index"]
    resp = client.post(
        "/api/bets",
        json={"match_index": match_index, "prediction": prediction, "amount": amount},
        headers=ALICE,
    )
    assert resp.status_code == 200
    return match_index, resp.json()["bet_index"]


# ---------------------------------------------------------------------------
# Public endpoints and auth
# ---------------------------------------------------------------------------

class TestPublicAndAuth:
    def test_root(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        assert resp.json()["status"] == "operational"

    def test_health_reports_backend(self, client):
        resp = client.get("/health")
        assert resp.json() == {"status": "healthy", "backend": "memory"}

    def test_missing_key(self, client):
        assert client.get("/api/accounts/me").status_code == 401

    def test_invalid_key(self, client):
        resp = client.get("/api/accounts/me", headers={"X-API-Key": "nope"})
        assert resp.status_code == 401

    def test_key_maps_to_account(self, client):
        resp = client.get("/api/accounts/me", headers=ALICE)
        assert resp.json() == {"account": "user3", "free": 0, "reserved": 0}

    @pytest.mark.parametrize("path", [
        "/admin/matches/0/close",
        "/admin/matches/0/settle",
    ])
    def test_admin_routes_reject_other_accounts(self, client, path):
        assert client.post(path, headers=BOOKIE).status_code == 403

    def test_deposit_requires_admin(self, client):
        resp = client.post("/admin/accounts/user3/deposit", json={"amount": 5}, headers=ALICE)
        assert resp.status_code == 403

    def test_deposit_must_be_positive(self, client):
        resp = client.post("/admin/accounts/user3/deposit", json={"amount": 0}, headers=ADMIN)
        assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

class TestLifecycle:
    def test_won_bet_end_to_end(self, client):
        match_index, bet_index = _open_bet(client)

        me = client.get("/api/accounts/me", headers=ALICE).json()
        assert (me["free"], me["reserved"]) == (400, 100)

        resp = client.post(f"/admin/matches/{match_index}/close", headers=ADMIN)
        assert resp.json() == {"match_index": match_index, "home_score": 3, "away_score": 1}

        resp = client.post(f"/api/bets/{bet_index}/claim", headers=ALICE)
        assert resp.status_code == 200
        assert resp.json() == {"bet_index": bet_index, "status": "Won"}

        me = client.get("/api/accounts/me", headers=ALICE).json()
        assert (me["free"], me["reserved"]) == (600, 0)
        bookie = client.get("/api/accounts/me", headers=BOOKIE).json()
        assert (bookie["free"], bookie["reserved"]) == (900, 0)

    def test_match_and_bet_views(self, client):
        match_index, bet_index = _open_bet(client, prediction="awaywin", amount=20)

        match = client.get(f"/api/matches/{match_index}", headers=ALICE).json()
        assert match["owner"] == "user2"
        assert match["status"] == "Open"
        assert match["odd_awaywin"] == {"integer": 3, "fraction": 50}

        bet = client.get(f"/api/bets/{bet_index}", headers=ALICE).json()
        assert bet["prediction"] == "Awaywin"
        assert bet["odd"] == {"integer": 3, "fraction": 50}
        assert bet["status"] == "Open"

        bets = client.get(f"/api/matches/{match_index}/bets", headers=BOOKIE).json()
        assert [b["bet_index"] for b in bets] == [bet_index]

    def test_settle_match(self, client):
        match_index, bet_index = _open_bet(client, prediction="Draw", amount=10)
        client.post(f"/admin/matches/{match_index}/close", headers=ADMIN)

        resp = client.post(f"/admin/matches/{match_index}/settle", headers=ADMIN)
        assert resp.status_code == 200
        assert resp.json() == {"match_index": match_index, "results": {str(bet_index): "Lost"}}


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

class TestErrorMapping:
    def test_invalid_odd_fraction(self, client):
        payload = dict(MATCH_PAYLOAD, odd_draw={"integer": 3, "fraction": 100})
        resp = client.post("/api/matches", json=payload, headers=BOOKIE)
        assert resp.status_code == 422
        assert resp.json()["error"] == "InvalidOddFraction"

    def test_invalid_odd_integer(self, client):
        payload = dict(MATCH_PAYLOAD, odd_over={"integer": 0, "fraction": 10})
        resp = client.post("/api/matches", json=payload, headers=BOOKIE)
        assert resp.status_code == 422
        assert resp.json()["error"] == "InvalidOddInteger"

    def test_match_not_found(self, client):
        resp = client.get("/api/matches/9", headers=ALICE)
        assert resp.status_code == 404
        assert resp.json()["error"] == "MatchNotFound"

    def test_bet_not_found(self, client):
        resp = client.post("/api/bets/9/claim", headers=ALICE)
        assert resp.status_code == 404
        assert resp.json()["error"] == "BetNotFound"

    def test_same_match_owner(self, client):
        match_index, _ = _open_bet(client)
        resp = client.post(
            "/api/bets",
            json={"match_index": match_index, "prediction": "Draw", "amount": 1},
            headers=BOOKIE,
        )
        assert resp.status_code == 422
        assert resp.json()["error"] == "SameMatchOwner"

    def test_bettor_insufficient_balance(self, client):
        match_index, _ = _open_bet(client)
        resp = client.post(
            "/api/bets",
            json={"match_index": match_index, "prediction": "Draw", "amount": 401},
            headers=ALICE,
        )
        assert resp.status_code == 402
        assert resp.json()["error"] == "BettorInsufficientBalance"

    def test_claim_lifecycle_conflicts(self, client):
        match_index, bet_index = _open_bet(client)

        resp = client.post(f"/api/bets/{bet_index}/claim", headers=ALICE)
        assert resp.status_code == 409
        assert resp.json()["error"] == "MatchStillOpen"

        client.post(f"/admin/matches/{match_index}/close", headers=ADMIN)
        assert client.post(f"/api/bets/{bet_index}/claim", headers=ALICE).status_code == 200

        resp = client.post(f"/api/bets/{bet_index}/claim", headers=ALICE)
        assert resp.status_code == 409
        assert resp.json()["error"] == "BetAlreadyClosed"

        resp = client.post(f"/admin/matches/{match_index}/close", headers=ADMIN)
        assert resp.status_code == 409
        assert resp.json()["error"] == "MatchAlreadyClosed"

    def test_bet_on_closed_match(self, client):
        match_index, _ = _open_bet(client)
        client.post(f"/admin/matches/{match_index}/close", headers=ADMIN)
        resp = client.post(
            "/api/bets",
            json={"match_index": match_index, "prediction": "Over", "amount": 1},
            headers=ALICE,
        )
        assert resp.status_code == 409
        assert resp.json()["error"] == "MatchClosed"

    def test_unknown_prediction_rejected_by_schema(self, client):
        resp = client.post(
            "/api/bets",
            json={"match_index": 0, "prediction": "Push", "amount": 1},
            headers=ALICE,
        )
        assert resp.status_code == 422

    def test_error_body_documented(self, client):
        schema = client.get("/openapi.json").json()
        assert "ErrorResponse" in schema["components"]["schemas"]
        responses = schema["paths"]["/api/bets/{bet_index}/claim"]["post"]["responses"]
        for code in ("402", "404", "409", "500"):
            assert responses[code]["content"]["application/json"]["schema"]["$ref"].endswith(
                "/ErrorResponse"
            )


# ---------------------------------------------------------------------------
# Key configuration
# ---------------------------------------------------------------------------

class TestKeyConfiguration:
    @pytest.fixture(autouse=True)
    def _no_keys(self, monkeypatch):
        for i in range(1, 6):
            monkeypatch.delenv(f"API_KEY_USER{i}", raising=False)

    def test_keys_map_to_numbered_accounts(self, monkeypatch):
        monkeypatch.setenv("API_KEY_USER2", "k2")
        monkeypatch.setenv("API_KEY_USER5", "k5")
        assert get_valid_api_keys() == {"k2": "user2", "k5": "user5"}

    def test_development_fallback_is_admin(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "development")
        assert get_valid_api_keys() == {"dev-key-insecure": ADMIN_ACCOUNT}

    def test_no_keys_outside_development(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        with pytest.raises(ValueError):
            get_valid_api_keys()
