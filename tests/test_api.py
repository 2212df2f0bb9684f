"""
HTTP contract — replays evaluator-style requests against the app with a fake
language model and a fake reporting callback.
"""

import time

import pytest
from fastapi.testclient import TestClient

from honeypot.main import create_app, redact

from conftest import FakeAgent, FakeReporter


# ── Setup ────────────────────────────────────────────────────────

@pytest.fixture
def agent():
    return FakeAgent()


@pytest.fixture
def reporter():
    return FakeReporter()


@pytest.fixture
def client(settings, agent, reporter):
    """Test client with no API key requirement."""
    app = create_app(settings, agent=agent, reporter=reporter)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth_client(make_settings, agent, reporter):
    """Test client with API key requirement."""
    app = create_app(make_settings(api_key="test-secret-key-123"), agent=agent, reporter=reporter)
    with TestClient(app) as c:
        yield c


def _wait_for(predicate, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


# ── Turn Endpoint ───────────────────────────────────────────────

class TestTurnEndpoint:
    def test_plain_message(self, client, reporter):
        response = client.post("/honeypot", json={"sessionId": "s1", "message": "Send OTP now"})
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "success"
        assert data["reply"]
        assert "extraction" not in data
        assert reporter.sent == []

    def test_structured_message_with_history(self, client, agent):
        response = client.post("/honeypot", json={
            "sessionId": "s-structured",
            "message": {"sender": "scammer", "text": "Share the OTP", "timestamp": 1771585363308},
            "conversationHistory": [
                {"sender": "scammer", "text": "Your SBI account is blocked", "timestamp": 1771585360000},
                {"sender": "user", "text": "Oh no! Which account?", "timestamp": 1771585361000},
            ],
        })
        assert response.status_code == 200
        assert agent.calls[0]["turn"] == 2
        assert len(agent.calls[0]["history"]) == 2

    @pytest.mark.parametrize("path", ["/", "/detect"])
    def test_alias_routes(self, client, path):
        response = client.post(path, json={"sessionId": "s-alias", "message": "Pay now"})
        assert response.status_code == 200
        assert response.json()["status"] == "success"

    def test_missing_session_id(self, client, agent):
        response = client.post("/honeypot", json={"message": "Send OTP now"})
        assert response.status_code == 400
        assert response.json()["status"] == "error"
        assert client.get("/health").json()["activeSessions"] == 0
        assert agent.calls == []

    def test_missing_message(self, client):
        response = client.post("/honeypot", json={"sessionId": "s1", "message": {"text": ""}})
        assert response.status_code == 400

    def test_malformed_body(self, client):
        response = client.post("/honeypot", json={"sessionId": "s1", "message": "hi", "conversationHistory": "nope"})
        assert response.status_code == 400

    def test_model_failure_still_answers(self, settings, reporter):
        app = create_app(settings, agent=FakeAgent(fail=True), reporter=reporter)
        with TestClient(app) as c:
            response = c.post("/honeypot", json={"sessionId": "s1", "message": "Send OTP now"})
        assert response.status_code == 200
        assert response.json()["reply"]

    def test_exit_intent_reports_once(self, client, reporter):
        for _ in range(3):
            response = client.post("/honeypot", json={"sessionId": "s-exit", "message": "I am calling the police"})
            assert response.status_code == 200
        assert _wait_for(lambda: len(reporter.sent) >= 1)
        time.sleep(0.1)
        assert len(reporter.sent) == 1
        assert reporter.sent[0].scamDetected is True

    def test_debug_echoes_extraction(self, make_settings, reporter):
        app = create_app(make_settings(debug=True), agent=FakeAgent(), reporter=reporter)
        with TestClient(app) as c:
            response = c.post("/honeypot", json={"sessionId": "s1", "message": "Pay to fraud.desk@ybl"})
        extraction = response.json()["extraction"]
        assert extraction["upiIds"] == ["fraud.desk@ybl"]
        assert extraction["bankAccounts"] == []


# ── Authentication ──────────────────────────────────────────────

class TestAuthentication:
    def test_correct_key_returns_200(self, auth_client):
        response = auth_client.post(
            "/honeypot",
            json={"sessionId": "test-auth-ok", "message": "Test message"},
            headers={"x-api-key": "test-secret-key-123"},
        )
        assert response.status_code == 200

    def test_wrong_key_returns_401(self, auth_client, agent):
        response = auth_client.post(
            "/honeypot",
            json={"sessionId": "test-auth-fail", "message": "Test message"},
            headers={"x-api-key": "wrong-key"},
        )
        assert response.status_code == 401
        assert agent.calls == []

    def test_missing_key_returns_401(self, auth_client):
        response = auth_client.post("/honeypot", json={"sessionId": "test-auth-missing", "message": "Test message"})
        assert response.status_code == 401

    def test_auth_checked_before_body(self, auth_client):
        response = auth_client.post("/honeypot", json={"message": "no session"})
        assert response.status_code == 401

    def test_inspection_requires_key(self, auth_client):
        assert auth_client.get("/sessions/s1").status_code == 401


# ── Rate Limiting ───────────────────────────────────────────────

def test_rate_limit_returns_429(make_settings, agent, reporter):
    app = create_app(make_settings(rate_limit_max_requests=2), agent=agent, reporter=reporter)
    with TestClient(app) as c:
        codes = [
            c.post("/honeypot", json={"sessionId": "s-rl", "message": f"Pay {i}"}).status_code
            for i in range(3)
        ]
    assert codes == [200, 200, 429]
    assert len(agent.calls) == 2


# ── Operator Inspection ─────────────────────────────────────────

class TestInspection:
    def test_session_view(self, client):
        client.post("/honeypot", json={"sessionId": "s-view", "message": "Pay to fraud.desk@ybl"})
        data = client.get("/sessions/s-view").json()
        assert data["turnCount"] == 1
        assert data["totalMessages"] == 2
        assert data["state"] == "active"

    def test_intelligence_view(self, client, reporter):
        client.post("/honeypot", json={"sessionId": "s-intel", "message": "Pay to fraud.desk@ybl or call 9876543210"})
        data = client.get("/sessions/s-intel/intelligence").json()
        assert data["extractedIntelligence"]["upiIds"] == ["fraud.desk@ybl"]
        assert data["extractedIntelligence"]["phoneNumbers"] == ["+91-9876543210"]
        assert data["scamType"] == "unknown"
        assert data["confidence"] == 0.6
        assert reporter.sent == []

    def test_intelligence_view_classifies_scam(self, client):
        client.post("/honeypot", json={"sessionId": "s-type", "message": "Your parcel is seized by customs, pay at fraud.desk@ybl"})
        data = client.get("/sessions/s-type/intelligence").json()
        assert data["scamType"] == "courier_fraud"
        assert 0.5 <= data["confidence"] <= 0.99

    def test_unknown_session_404(self, client):
        response = client.get("/sessions/missing/intelligence")
        assert response.status_code == 404
        assert response.json()["status"] == "error"


# ── Health Check ────────────────────────────────────────────────

class TestHealthCheck:
    @pytest.mark.parametrize("path", ["/", "/health"])
    def test_health_endpoint(self, client, path):
        response = client.get(path)
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "Honeypot Active"
        assert data["llmConfigured"] is False
        assert data["authConfigured"] is False
        assert data["reportWorkerRunning"] is True


def test_redact_hides_identifiers():
    text = redact("call +91 98765 43210 or mail a.b@fake.com, acct 123456789012")
    assert "98765" not in text
    assert "a.b@fake.com" not in text
    assert "123456789012" not in text
