"""Tests for ui/app.py: HTTP surface over the lifecycle."""

import pytest
from fastapi.testclient import TestClient

from core import store
from core.errors import NotFoundError
from ui.app import app

ALICE = ("alice@example.com", "correct horse")
BOB = ("bob@example.com", "battery staple")
ADMIN = ("admin@example.com", "admin password")


@pytest.fixture
def client(workspace, fast_hashing):
    c = TestClient(app)
    for email, password in (ALICE, BOB, ADMIN):
        resp = c.post("/api/auth/register", json={"email": email, "password": password})
        assert resp.status_code == 201
    return c


def test_healthz_needs_no_auth(workspace):
    resp = TestClient(app).get("/healthz")
    assert resp.status_code == 200


def test_requires_credentials(client):
    assert client.post("/api/sessions/start").status_code == 401
    assert client.post("/api/sessions/start", auth=("alice@example.com", "wrong pass")).status_code == 401


def test_register_duplicate_and_invalid(client):
    resp = client.post("/api/auth/register", json={"email": "Alice@Example.com", "password": "whatever123"})
    assert resp.status_code == 409
    resp = client.post("/api/auth/register", json={"email": "carol@example.com", "password": "short"})
    assert resp.status_code == 400
    resp = client.post("/api/auth/register", json={"email": "not-an-email", "password": "long enough"})
    assert resp.status_code == 400


def test_me(client):
    resp = client.get("/api/auth/me", auth=ALICE)
    assert resp.status_code == 200
    body = resp.json()
    assert body["email"] == "alice@example.com"
    assert "passwordHash" not in body


def test_session_flow(client):
    resp = client.post("/api/sessions/start", auth=ALICE)
    assert resp.status_code == 201
    session = resp.json()
    assert session["status"] == "active"
    assert session["durationMs"] == 0
    sid = session["id"]

    resp = client.get("/api/sessions/current", auth=ALICE)
    assert resp.json()["session"]["id"] == sid

    resp = client.patch(f"/api/sessions/{sid}", json={"status": "paused", "pausedDurationMs": 0}, auth=ALICE)
    assert resp.status_code == 200
    assert resp.json()["status"] == "paused"

    resp = client.patch(f"/api/sessions/{sid}", json={"status": "active"}, auth=ALICE)
    assert resp.json()["status"] == "active"

    resp = client.post(f"/api/sessions/{sid}/end", json={"title": "Essay", "rating": 4}, auth=ALICE)
    assert resp.status_code == 200
    done = resp.json()
    assert done["status"] == "completed"
    assert done["rating"] == 4
    assert done["durationMs"] >= 0

    resp = client.get(f"/api/sessions/{sid}", auth=ALICE)
    assert resp.json()["status"] == "completed"

    resp = client.get("/api/sessions", auth=ALICE)
    page = resp.json()
    assert page["total"] == 1
    assert page["totalPages"] == 1
    assert page["sessions"][0]["title"] == "Essay"


def test_start_twice_conflicts(client):
    assert client.post("/api/sessions/start", auth=ALICE).status_code == 201
    resp = client.post("/api/sessions/start", auth=ALICE)
    assert resp.status_code == 409
    assert "active session" in resp.json()["detail"]


def test_clear_current_then_start(client):
    first = client.post("/api/sessions/start", auth=ALICE).json()
    resp = client.delete("/api/sessions/current", auth=ALICE)
    assert resp.json()["session"]["id"] == first["id"]
    assert client.post("/api/sessions/start", auth=ALICE).status_code == 201


def test_clear_current_lost_race_is_404(client, monkeypatch):
    client.post("/api/sessions/start", auth=ALICE)

    def ended_elsewhere(session_id, owner_id, root=None):
        raise NotFoundError("Session not found")

    monkeypatch.setattr(store, "discard", ended_elsewhere)
    resp = client.delete("/api/sessions/current", auth=ALICE)
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Session not found"


def test_end_unknown_and_twice(client):
    assert client.post("/api/sessions/nope/end", json={}, auth=ALICE).status_code == 404
    sid = client.post("/api/sessions/start", auth=ALICE).json()["id"]
    assert client.post(f"/api/sessions/{sid}/end", json={}, auth=ALICE).status_code == 200
    assert client.post(f"/api/sessions/{sid}/end", json={}, auth=ALICE).status_code == 404


def test_end_bad_rating(client):
    sid = client.post("/api/sessions/start", auth=ALICE).json()["id"]
    resp = client.post(f"/api/sessions/{sid}/end", json={"rating": 6}, auth=ALICE)
    assert resp.status_code == 400
    resp = client.post(f"/api/sessions/{sid}/end", json={"rating": 4}, auth=ALICE)
    assert resp.status_code == 200
    assert resp.json()["rating"] == 4


def test_other_owner_sees_not_found(client):
    sid = client.post("/api/sessions/start", auth=ALICE).json()["id"]
    assert client.get(f"/api/sessions/{sid}", auth=BOB).status_code == 404
    assert client.patch(f"/api/sessions/{sid}", json={"status": "paused"}, auth=BOB).status_code == 404
    assert client.delete(f"/api/sessions/{sid}", auth=BOB).status_code == 404
    assert client.get(f"/api/sessions/{sid}", auth=ALICE).status_code == 200


def test_discard_twice(client):
    sid = client.post("/api/sessions/start", auth=ALICE).json()["id"]
    assert client.delete(f"/api/sessions/{sid}", auth=ALICE).status_code == 200
    assert client.delete(f"/api/sessions/{sid}", auth=ALICE).status_code == 404


def test_list_rejects_bad_paging(client):
    assert client.get("/api/sessions?page=0", auth=ALICE).status_code == 400
    assert client.get("/api/sessions?limit=1000", auth=ALICE).status_code == 400


def test_purge_requires_admin(client):
    client.post("/api/sessions/start", auth=ALICE)
    client.post("/api/sessions/start", auth=BOB)
    assert client.post("/api/admin/purge-open-sessions", auth=ALICE).status_code == 403

    resp = client.post("/api/admin/purge-open-sessions", auth=ADMIN)
    assert resp.status_code == 200
    assert resp.json() == {"deletedCount": 2}
    assert client.get("/api/sessions/current", auth=ALICE).json() == {"session": None}


def test_stats_empty(client):
    resp = client.get("/api/stats", auth=ALICE)
    assert resp.status_code == 200
    body = resp.json()
    assert body["totalSessions"] == 0
    assert body["averageRating"] is None


def test_chat_falls_back_without_api_key(client, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    resp = client.post("/api/chat", json={"message": "How do I manage my time?"}, auth=ALICE)
    assert resp.status_code == 200
    body = resp.json()
    assert "Time management" in body["response"]
    assert body["timestamp"]


def test_chat_rejects_empty_message(client, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    resp = client.post("/api/chat", json={"message": "  "}, auth=ALICE)
    assert resp.status_code == 400
