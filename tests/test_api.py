"""HTTP tests for the FastAPI app (in-memory repository, scripted LLM client)"""

import pytest
from fastapi.testclient import TestClient

from mangrat.core.exceptions import UpstreamError, UpstreamTimeoutError
from mangrat_web.app import create_app


def _register(client, name="Ana", email="ana@x.com", password="secret"):
    return client.post("/api/register", json={"name": name, "email": email, "password": password})


def _login(client, email="ana@x.com", password="secret"):
    """Log in and return the token; the cookie jar is cleared so tests choose how to send it."""
    resp = client.post("/api/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    client.cookies.clear()
    return resp.json()["token"]


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def token(client):
    _register(client)
    return _login(client)


class TestRegistration:
    def test_register_then_duplicate(self, client):
        resp = _register(client)
        assert resp.status_code == 201
        body = resp.json()
        assert body["ok"] is True
        assert isinstance(body["userId"], int)

        resp = _register(client, name="Other", email="ANA@x.com")
        assert resp.status_code == 409
        assert resp.json() == {"ok": False, "error": "Email is already registered"}

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"name": "Ana", "email": "ana@x.com"},
            {"name": "", "email": "ana@x.com", "password": "secret"},
            {"name": "Ana", "email": "not-an-email", "password": "secret"},
        ],
    )
    def test_invalid_payloads(self, client, payload):
        resp = client.post("/api/register", json=payload)
        assert resp.status_code == 400
        assert resp.json()["ok"] is False

    def test_non_json_body(self, client):
        resp = client.post("/api/register", content="name=Ana", headers={"Content-Type": "text/plain"})
        assert resp.status_code == 400


class TestLogin:
    def test_wrong_password_then_success(self, client, repository):
        _register(client)

        resp = client.post("/api/login", json={"email": "ana@x.com", "password": "wrong"})
        assert resp.status_code == 401
        assert resp.json() == {"ok": False, "error": "Invalid email or password"}
        assert "set-cookie" not in resp.headers

        resp = client.post("/api/login", json={"email": "ana@x.com", "password": "secret"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["user"]["plan"] == "basic"
        assert "password_hash" not in body["user"]
        assert len(body["token"]) == 64

        client.cookies.clear()
        me = client.get("/api/me", headers=_auth(body["token"]))
        assert me.status_code == 200
        assert me.json()["user"]["plan"] == "basic"

    def test_unknown_email(self, client):
        resp = client.post("/api/login", json={"email": "nobody@x.com", "password": "secret"})
        assert resp.status_code == 401

    def test_missing_fields(self, client):
        resp = client.post("/api/login", json={"email": "ana@x.com"})
        assert resp.status_code == 400

    def test_session_cookie_attributes(self, client):
        _register(client)
        resp = client.post("/api/login", json={"email": "ana@x.com", "password": "secret"})
        cookie = resp.headers["set-cookie"]
        assert cookie.startswith(f"session_token={resp.json()['token']}")
        assert "HttpOnly" in cookie
        assert "Max-Age=86400" in cookie
        assert "SameSite=strict" in cookie
        assert "Secure" not in cookie

    def test_secure_cookie_in_production(self, client, settings):
        settings.app.environment = "production"
        _register(client)
        resp = client.post("/api/login", json={"email": "ana@x.com", "password": "secret"})
        assert "Secure" in resp.headers["set-cookie"]


class TestSessionTransport:
    def test_cookie(self, client, token):
        client.cookies.set("session_token", token)
        assert client.get("/api/me").status_code == 200

    def test_bearer_header(self, client, token):
        assert client.get("/api/me", headers=_auth(token)).status_code == 200

    @pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer "}, {"Authorization": "Basic abc"}])
    def test_missing_token(self, client, headers):
        resp = client.get("/api/me", headers=headers)
        assert resp.status_code == 401
        assert resp.json()["ok"] is False

    def test_unknown_token(self, client):
        assert client.get("/api/me", headers=_auth("f" * 64)).status_code == 401

    def test_expired_token(self, client, token, clock):
        clock.advance(hours=24)
        assert client.get("/api/me", headers=_auth(token)).status_code == 401


class TestLogout:
    def test_logout_invalidates_token(self, client, token):
        resp = client.post("/api/logout", headers=_auth(token))
        assert resp.status_code == 200
        assert resp.json()["ok"] is True

        assert client.get("/api/me", headers=_auth(token)).status_code == 401
        assert client.post("/api/logout", headers=_auth(token)).status_code == 401

    def test_other_sessions_survive(self, client, token):
        second = _login(client)
        client.post("/api/logout", headers=_auth(token))
        assert client.get("/api/me", headers=_auth(second)).status_code == 200


class TestChat:
    def test_memory_reaches_next_prompt(self, client, token, fake_client):
        fake_client.replies = ["Hi Ana!", "You said Hello."]

        first = client.post("/api/chat", json={"message": "Hello"}, headers=_auth(token))
        assert first.status_code == 200
        assert first.json() == {"ok": True, "response": "Hi Ana!", "plan": "basic", "remembered": True}

        second = client.post("/api/chat", json={"message": "What did I just say?"}, headers=_auth(token))
        assert second.json()["response"] == "You said Hello."

        prompt = fake_client.requests[1].prompt
        assert "user: Hello\nassistant: Hi Ana!\n" in prompt
        assert prompt.endswith("user: What did I just say?\nassistant:")

    def test_timeout_returns_504_and_stores_nothing(self, client, token, fake_client):
        fake_client.replies = [UpstreamTimeoutError("read timed out after 120s")]

        resp = client.post("/api/chat", json={"message": "Hello"}, headers=_auth(token))
        assert resp.status_code == 504
        body = resp.json()
        assert body["ok"] is False
        assert "120s" not in body["error"]

        memory = client.get("/api/memory", headers=_auth(token))
        assert memory.json()["entries"] == []
        usage = client.get("/api/usage", headers=_auth(token))
        assert usage.json()["usage"]["messages_sent"] == 0

    def test_upstream_error_returns_502(self, client, token, fake_client):
        fake_client.replies = [UpstreamError("LLM provider returned 500", status=500)]
        resp = client.post("/api/chat", json={"message": "Hello"}, headers=_auth(token))
        assert resp.status_code == 502

    def test_empty_message(self, client, token, fake_client):
        resp = client.post("/api/chat", json={"message": "  "}, headers=_auth(token))
        assert resp.status_code == 400
        assert fake_client.requests == []

    def test_anonymous_chat(self, client, fake_client):
        resp = client.post("/api/chat", json={"message": "Hello"})
        assert resp.status_code == 200
        assert resp.json()["remembered"] is False
        assert resp.json()["plan"] == "basic"

    def test_anonymous_chat_with_stale_token(self, client, fake_client):
        resp = client.post("/api/chat", json={"message": "Hello"}, headers=_auth("0" * 64))
        assert resp.status_code == 200
        assert resp.json()["remembered"] is False

    def test_auth_required_for_chat(self, client, settings):
        settings.chat.require_auth_for_chat = True
        resp = client.post("/api/chat", json={"message": "Hello"})
        assert resp.status_code == 401

    def test_premium_after_upgrade(self, client, token, fake_client):
        resp = client.post("/api/upgrade", headers=_auth(token))
        assert resp.json() == {"ok": True, "plan": "premium"}

        chat = client.post("/api/chat", json={"message": "Hello"}, headers=_auth(token))
        assert chat.json()["plan"] == "premium"
        assert fake_client.requests[-1].max_tokens == 512
        assert client.get("/api/me", headers=_auth(token)).json()["user"]["plan"] == "premium"


class TestMemoryAndUsage:
    def test_memory_listing_and_clear(self, client, token):
        for message in ("one", "two", "three"):
            client.post("/api/chat", json={"message": message}, headers=_auth(token))

        entries = client.get("/api/memory", headers=_auth(token)).json()["entries"]
        assert [e["role"] for e in entries] == ["user", "assistant"] * 3
        assert entries[0]["content"] == "one"

        latest = client.get("/api/memory", params={"limit": 2}, headers=_auth(token)).json()["entries"]
        assert [e["content"] for e in latest] == ["three", "reply 3"]

        resp = client.post("/api/clear-memory", headers=_auth(token))
        assert resp.json() == {"ok": True, "removed": 6}
        assert client.get("/api/memory", headers=_auth(token)).json()["entries"] == []

    @pytest.mark.parametrize("limit", ["0", "-3", "abc"])
    def test_bad_limit(self, client, token, limit):
        resp = client.get("/api/memory", params={"limit": limit}, headers=_auth(token))
        assert resp.status_code == 400

    def test_usage(self, client, token, clock):
        client.post("/api/chat", json={"message": "Hello"}, headers=_auth(token))
        usage = client.get("/api/usage", headers=_auth(token)).json()["usage"]
        assert usage["messages_sent"] == 1
        assert usage["messages_received"] == 1
        assert usage["last_active_at"] == clock.now.isoformat()

    @pytest.mark.parametrize(
        "method,path",
        [("get", "/api/memory"), ("post", "/api/clear-memory"), ("get", "/api/usage"), ("post", "/api/upgrade")],
    )
    def test_protected_routes(self, client, method, path):
        assert getattr(client, method)(path).status_code == 401


class TestApp:
    def test_ping(self, client):
        assert client.get("/api/ping").json() == {"ok": True, "message": "pong"}

    def test_cors_preflight(self, client):
        resp = client.options(
            "/api/login",
            headers={
                "Origin": "http://127.0.0.1:5500",
                "Access-Control-Request-Method": "POST",
            },
        )
        assert resp.headers["access-control-allow-origin"] == "http://127.0.0.1:5500"
        assert resp.headers["access-control-allow-credentials"] == "true"

    def test_lifespan_with_memory_backend(self, services):
        with TestClient(create_app(services=services)) as client:
            assert client.get("/api/ping").status_code == 200
