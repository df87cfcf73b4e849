import pytest

import app as app_module
from knowledge_engine import DataSourceUnavailable, load_seed_entries

BASE = "/api/admin/chatbot"


@pytest.fixture
def client():
    app_module.app.config["TESTING"] = True
    with app_module.app.test_client() as client:
        yield client


@pytest.fixture
def admin(client):
    with client.session_transaction() as sess:
        sess["role"] = "admin"
    return client


def _create(admin, **overrides):
    body = {"category": "contact", "keywords": "contact, email", "response": "Email us", **overrides}
    return admin.post(BASE, json=body)


# ── Chatbot ──────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("body", [{}, {"message": ""}, {"message": "   "}, {"message": 42}])
def test_chatbot_requires_message(client, body):
    res = client.post("/api/chatbot", json=body)
    assert res.status_code == 400
    assert res.get_json() == {"error": "Message required"}


def test_chatbot_reply(admin):
    _create(admin)
    res = admin.post("/api/chatbot", json={"message": "contact"})
    data = res.get_json()
    assert res.status_code == 200
    assert data["reply"] == "Email us"
    assert set(data) == {"reply", "suggestions", "timestamp"}


def test_chatbot_is_public(client):
    res = client.post("/api/chatbot", json={"message": "hello"})
    assert res.status_code == 200
    assert res.get_json()["suggestions"]


def test_chatbot_unexpected_error(client, monkeypatch):
    def boom(message):
        raise RuntimeError("kaput")

    monkeypatch.setattr(app_module, "get_bot_response", boom)

    res = client.post("/api/chatbot", json={"message": "hello"})
    data = res.get_json()

    assert res.status_code == 500
    assert "error" in data
    assert data["reply"]
    assert data["suggestions"]


# ── Auth ─────────────────────────────────────────────────────────────────────

def test_admin_routes_need_a_session(client):
    assert client.get(BASE).status_code == 401
    assert client.post(f"{BASE}/populate").status_code == 401


def test_admin_routes_need_admin_role(client):
    with client.session_transaction() as sess:
        sess["role"] = "member"
    assert client.get(BASE).status_code == 403
    assert client.patch(f"{BASE}/some-id/toggle").status_code == 403


# ── Knowledge CRUD ───────────────────────────────────────────────────────────

def test_crud_flow(admin):
    res = _create(admin, suggestions="Office hours?|Where are you?", priority=3)
    assert res.status_code == 201
    entry = res.get_json()["data"]
    assert entry["keywords"] == ["contact", "email"]
    entry_id = entry["id"]

    assert [e["id"] for e in admin.get(BASE).get_json()] == [entry_id]
    assert admin.get(f"{BASE}/{entry_id}").get_json()["response"] == "Email us"

    res = admin.put(f"{BASE}/{entry_id}", json={"response": "Call us", "priority": 8})
    assert res.status_code == 200
    assert res.get_json()["data"]["priority"] == 8

    res = admin.patch(f"{BASE}/{entry_id}/toggle")
    assert res.get_json() == {"message": "Knowledge entry deactivated successfully", "is_active": False}

    assert admin.delete(f"{BASE}/{entry_id}").status_code == 200
    assert admin.get(f"{BASE}/{entry_id}").status_code == 404


def test_create_validation(admin):
    res = _create(admin, response="")
    assert res.status_code == 400
    assert res.get_json()["error"] == "Category, keywords, and response are required"

    _create(admin)
    res = _create(admin, category="Contact")
    assert res.status_code == 400
    assert "already exists" in res.get_json()["error"]


def test_update_validation(admin):
    entry_id = _create(admin).get_json()["data"]["id"]
    res = admin.put(f"{BASE}/{entry_id}", json={})
    assert res.status_code == 400
    assert res.get_json()["error"] == "No fields to update"


@pytest.mark.parametrize("method, suffix, body", [
    ("get", "", None),
    ("put", "", {"response": "x"}),
    ("delete", "", None),
    ("patch", "/toggle", None),
])
def test_unknown_entry_is_404(admin, method, suffix, body):
    res = getattr(admin, method)(f"{BASE}/missing{suffix}", json=body)
    assert res.status_code == 404
    assert res.get_json() == {"error": "Knowledge entry not found"}


def test_deactivated_entry_stops_matching(admin):
    entry_id = _create(admin, keywords="secret handshake", response="Shh").get_json()["data"]["id"]
    assert admin.post("/api/chatbot", json={"message": "secret handshake"}).get_json()["reply"] == "Shh"

    admin.patch(f"{BASE}/{entry_id}/toggle")

    assert admin.post("/api/chatbot", json={"message": "secret handshake"}).get_json()["reply"] != "Shh"


def test_store_unavailable_is_503(admin, monkeypatch):
    def broken(*args, **kwargs):
        raise DataSourceUnavailable("read-only disk")

    monkeypatch.setattr(app_module, "create_knowledge", broken)
    assert _create(admin).status_code == 503


# ── Population ───────────────────────────────────────────────────────────────

def test_populate(admin):
    total = len(load_seed_entries())

    res = admin.post(f"{BASE}/populate")
    data = res.get_json()

    assert res.status_code == 200
    assert data["success"] is True
    assert data["inserted"] == total
    assert len(admin.get(BASE).get_json()) == total


def test_populate_without_seed_data(admin, monkeypatch):
    monkeypatch.setattr(
        app_module, "populate_knowledge",
        lambda: {"inserted": 0, "updated": 0, "skipped": 0, "total": 0},
    )
    assert admin.post(f"{BASE}/populate").status_code == 500


def test_populated_knowledge_answers_greeting(admin):
    admin.post(f"{BASE}/populate")
    res = admin.post("/api/chatbot", json={"message": "hello"})
    assert res.status_code == 200
    assert res.get_json()["suggestions"]


# ── Misc ─────────────────────────────────────────────────────────────────────

def test_health(client):
    assert client.get("/health").get_json() == {"status": "ok", "service": "gpsphere-chatbot"}


def test_unknown_route_is_json_404(client):
    res = client.get("/nope")
    assert res.status_code == 404
    assert res.get_json() == {"error": "Endpoint not found."}
