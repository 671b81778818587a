"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from jamwatch.api import create_app
from jamwatch.models import NotificationOutbox, TrafficReport

REPORT = {"street": "Borowska", "status": "stoi", "direction": "to_center", "userFingerprint": "fp-1"}
INCIDENT = {"street": "Borowska", "incidentType": "accident", "direction": "to_center", "userFingerprint": "fp-1"}


@pytest.fixture
def client(session_factory) -> TestClient:
    return TestClient(create_app(session_factory=session_factory, channels=[]))


def _count(session_factory, model) -> int:
    with session_factory() as session:
        return session.scalar(select(func.count()).select_from(model))


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


class TestTrafficReports:
    def test_report_accepted(self, client, session_factory):
        response = client.post("/api/traffic-reports", json=REPORT)

        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert _count(session_factory, TrafficReport) == 1

    def test_rate_limited_report_looks_successful(self, client, session_factory):
        client.post("/api/traffic-reports", json=REPORT)

        response = client.post("/api/traffic-reports", json={**REPORT, "status": "jedzie"})

        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert _count(session_factory, TrafficReport) == 1

    def test_invalid_status(self, client, session_factory):
        response = client.post("/api/traffic-reports", json={**REPORT, "status": "flying"})

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_input"
        assert _count(session_factory, TrafficReport) == 0

    def test_missing_fingerprint(self, client):
        payload = {key: value for key, value in REPORT.items() if key != "userFingerprint"}

        response = client.post("/api/traffic-reports", json=payload)

        assert response.status_code == 400

    def test_storage_unavailable(self, broken_session_factory):
        client = TestClient(create_app(session_factory=broken_session_factory, channels=[]))

        response = client.post("/api/traffic-reports", json=REPORT)

        assert response.status_code == 500
        assert response.json() == {"error": "storage_unavailable"}


class TestIncidentReports:
    def test_incident_accepted_and_outbox_drained(self, client, session_factory):
        response = client.post("/api/incident-reports", json=INCIDENT)

        assert response.status_code == 200
        assert response.json() == {"success": True}
        with session_factory() as session:
            row = session.scalars(select(NotificationOutbox)).one()
            # No channel configured in tests
            assert row.status == "skipped"

    def test_repeat_incident_rejected(self, client):
        client.post("/api/incident-reports", json=INCIDENT)

        response = client.post("/api/incident-reports", json=INCIDENT)

        assert response.status_code == 429
        assert response.json() == {"error": "rate_limit", "message": "Maks 1 zgłoszenie na 5 minut"}

    def test_unknown_incident_type(self, client):
        response = client.post("/api/incident-reports", json={**INCIDENT, "incidentType": "meteor"})

        assert response.status_code == 400


class TestVisits:
    def test_visit_recorded_once(self, client):
        first = client.post("/api/visits", json={"userFingerprint": "fp-1"})
        second = client.post("/api/visits", json={"userFingerprint": "fp-1"})

        assert first.json() == {"success": True, "recorded": True}
        assert second.json() == {"success": True, "recorded": False}


class TestReads:
    def test_current_status(self, client):
        client.post("/api/traffic-reports", json=REPORT)

        response = client.get("/api/streets/Borowska/to_center/status")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "stoi"
        assert body["street"] == "Borowska"

    def test_unknown_street(self, client):
        response = client.get("/api/streets/Nowhere/to_center/status")

        assert response.status_code == 400

    def test_today_timeline(self, client):
        response = client.get("/api/streets/Borowska/to_center/timeline/today")

        assert response.status_code == 200
        assert len(response.json()["buckets"]) == 24

    def test_weekly_grid(self, client):
        response = client.get("/api/streets/Borowska/from_center/timeline/weekly-grid")

        days = response.json()["days"]
        assert len(days) == 7
        assert all(len(day["blocks"]) == 34 for day in days)

    def test_short_forecast(self, client):
        response = client.get("/api/streets/Borowska/to_center/forecast")

        body = response.json()
        assert body["horizon"] == "short"
        assert len(body["buckets"]) == 12
        assert len(body["ranges"]) == 1
        assert body["ranges"][0]["status"] == "neutral"
        assert body["ranges"][0]["duration_minutes"] == 60

    def test_extended_forecast(self, client):
        response = client.get("/api/streets/Borowska/to_center/forecast", params={"horizon": "extended"})

        body = response.json()
        assert len(body["buckets"]) == 30
        assert body["interval_minutes"] == 20

    def test_commute(self, client):
        response = client.get("/api/streets/Borowska/to_center/commute", params={"hour": 7, "minute": 30})

        body = response.json()
        assert body["time"] == "07:30"
        assert [day["weekday"] for day in body["days"]] == list(range(7))

    def test_commute_rejects_bad_hour(self, client):
        response = client.get("/api/streets/Borowska/to_center/commute", params={"hour": 25})

        assert response.status_code == 400

    def test_incident_counts(self, client):
        client.post("/api/incident-reports", json=INCIDENT)

        response = client.get("/api/streets/Borowska/incidents")

        assert response.json()["counts"] == {"accident": 1}

    def test_read_endpoints_limited_per_ip(self, client):
        headers = {"X-Forwarded-For": "203.0.113.9"}
        for _ in range(10):
            assert client.get("/api/streets/Borowska/to_center/status", headers=headers).status_code == 200

        limited = client.get("/api/streets/Borowska/to_center/timeline/today", headers=headers)
        other_ip = client.get("/api/streets/Borowska/to_center/status", headers={"X-Forwarded-For": "203.0.113.10"})

        assert limited.status_code == 429
        assert limited.json()["error"] == "rate_limit"
        assert other_ip.status_code == 200


class TestChat:
    def test_post_and_read_back(self, client):
        first = client.post(
            "/api/chat-messages",
            json={"street": "Borowska", "message": "stoi od ronda <3", "userFingerprint": "fp-1"},
        )
        client.post(
            "/api/chat-messages",
            json={"street": "Borowska", "message": "już jedzie", "userFingerprint": "fp-2"},
        )

        assert first.status_code == 200
        assert first.json()["message"] == "stoi od ronda &lt;3"
        messages = client.get("/api/streets/Borowska/chat").json()["messages"]
        assert [m["message"] for m in messages] == ["stoi od ronda &lt;3", "już jedzie"]

    def test_overlong_message(self, client):
        response = client.post(
            "/api/chat-messages",
            json={"street": "Borowska", "message": "x" * 501, "userFingerprint": "fp-1"},
        )

        assert response.status_code == 400

    def test_limited_per_ip(self, client):
        headers = {"X-Forwarded-For": "198.51.100.4"}
        payload = {"street": "Borowska", "message": "korek", "userFingerprint": "fp-1"}
        for _ in range(10):
            assert client.post("/api/chat-messages", json=payload, headers=headers).status_code == 200

        response = client.post("/api/chat-messages", json=payload, headers=headers)

        assert response.status_code == 429
        assert response.json()["error"] == "rate_limit"


def test_read_storage_failure(broken_session_factory):
    client = TestClient(create_app(session_factory=broken_session_factory, channels=[]))

    response = client.get("/api/streets/Borowska/to_center/forecast")

    assert response.status_code == 500
    assert response.json() == {"error": "storage_unavailable"}
