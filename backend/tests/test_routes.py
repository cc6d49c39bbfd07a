"""
HTTP tests for the passkey and health routes.

The application is built with create_app() against a temporary database
and the fake ceremony engine from conftest.
"""

import pytest
from fastapi.testclient import TestClient

from passkey_api.core.config import Settings
from passkey_api.core.exceptions import EntropyUnavailableError, StorageUnavailableError
from passkey_api.main import create_app

from conftest import FakeCeremonyEngine, client_response

CRED_ID = b"http-credential"


@pytest.fixture
def make_app(db_path):
    def _make(**overrides):
        settings = Settings(DATABASE_PATH=db_path, COOKIE_SECURE=False, LOG_LEVEL="DEBUG", **overrides)
        return create_app(settings, engine=FakeCeremonyEngine())
    return _make


@pytest.fixture
def client(make_app):
    with TestClient(make_app()) as client:
        yield client


def register(client, username="alice"):
    start = client.post("/api/passkey/registerStart", json={"username": username})
    assert start.status_code == 200
    return client.post(
        "/api/passkey/registerFinish",
        content=client_response(start.json()["challenge"], CRED_ID, 0)
    )


def login(client, username="alice", sign_count=1):
    start = client.post("/api/passkey/loginStart", json={"username": username})
    assert start.status_code == 200
    return client.post(
        "/api/passkey/loginFinish",
        content=client_response(start.json()["challenge"], CRED_ID, sign_count)
    )


class TestRegistrationRoutes:
    """Test suite for registerStart and registerFinish."""

    def test_register_start_sets_ceremony_cookie(self, client):
        response = client.post("/api/passkey/registerStart", json={"username": "alice"})

        assert response.status_code == 200
        assert "challenge" in response.json()
        cookie = response.headers["set-cookie"]
        assert cookie.startswith("sid=")
        assert "Path=/api/passkey" in cookie
        assert "HttpOnly" in cookie
        assert "Max-Age=3600" in cookie
        assert "samesite=lax" in cookie.lower()

    def test_register_round_trip(self, client):
        response = register(client)

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Registration Success"}
        assert 'sid=""' in response.headers["set-cookie"] or "Max-Age=0" in response.headers["set-cookie"]

        assert login(client).status_code == 200
        users = client.get("/api/passkey/users").json()
        assert users[0]["name"] == "alice"
        assert users[0]["credential_count"] == 1

    def test_duplicate_username(self, client):
        client.post("/api/passkey/registerStart", json={"username": "alice"})
        response = client.post("/api/passkey/registerStart", json={"username": "alice"})

        assert response.status_code == 409
        body = response.json()
        assert body["success"] is False
        assert body["error_code"] == "ALREADY_EXISTS"

    @pytest.mark.parametrize("payload", [{}, {"username": ""}, {"username": "   "}])
    def test_invalid_username(self, client, payload):
        response = client.post("/api/passkey/registerStart", json=payload)

        assert response.status_code == 422
        assert response.json()["error_code"] == "INVALID_INPUT"

    def test_finish_without_session_cookie(self, client):
        response = client.post("/api/passkey/registerFinish", content=b'{"id": "abc"}')

        assert response.status_code == 404
        assert response.json()["error_code"] == "SESSION_NOT_FOUND"

    def test_finish_with_forged_response(self, client):
        client.post("/api/passkey/registerStart", json={"username": "alice"})
        response = client.post("/api/passkey/registerFinish", content=b'{"reject": true}')

        assert response.status_code == 400
        assert response.json()["error_code"] == "CEREMONY_REJECTED"
        assert "sid=" in response.headers["set-cookie"]

        # No credential was stored, so it cannot be used to log in
        assert login(client).status_code == 400

    def test_finish_with_empty_body(self, client):
        client.post("/api/passkey/registerStart", json={"username": "alice"})
        response = client.post("/api/passkey/registerFinish", content=b"")

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_INPUT"

    def test_username_limit_from_settings(self, make_app):
        with TestClient(make_app(USERNAME_MAX_LENGTH=100)) as client:
            accepted = client.post("/api/passkey/registerStart", json={"username": "x" * 80})
            rejected = client.post("/api/passkey/registerStart", json={"username": "y" * 101})

        assert accepted.status_code == 200
        assert rejected.status_code == 400
        assert rejected.json()["error_code"] == "INVALID_INPUT"

    def test_storage_unavailable(self, client, monkeypatch):
        async def unavailable(*args, **kwargs):
            raise StorageUnavailableError()

        monkeypatch.setattr(client.app.state.coordinator.credential_store, "insert_user", unavailable)

        response = client.post("/api/passkey/registerStart", json={"username": "alice"})

        assert response.status_code == 503
        body = response.json()
        assert body["success"] is False
        assert body["error_code"] == "STORAGE_UNAVAILABLE"

    def test_entropy_unavailable_keeps_name_free(self, client, monkeypatch):
        def no_entropy():
            raise EntropyUnavailableError()

        monkeypatch.setattr(client.app.state.coordinator.token_generator, "generate", no_entropy)

        response = client.post("/api/passkey/registerStart", json={"username": "alice"})

        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["error_code"] == "ENTROPY_UNAVAILABLE"

        monkeypatch.undo()
        retry = client.post("/api/passkey/registerStart", json={"username": "alice"})
        assert retry.status_code == 200


class TestLoginRoutes:
    """Test suite for loginStart, loginFinish, session and logout."""

    def test_login_unknown_user(self, client):
        response = client.post("/api/passkey/loginStart", json={"username": "nobody"})

        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"

    def test_login_opens_authenticated_session(self, client):
        register(client)
        response = login(client)

        assert response.status_code == 200
        assert response.json()["message"] == "Login Success"
        cookies = response.headers.get_list("set-cookie")
        auth_cookie = next(c for c in cookies if c.startswith("auth_sid="))
        assert "Path=/" in auth_cookie
        assert "Max-Age=3600" in auth_cookie

        session = client.get("/api/passkey/session")
        assert session.status_code == 200
        body = session.json()
        assert body["is_authenticated"] is True
        assert body["user"]["name"] == "alice"
        assert body["user"]["credential_count"] == 1
        assert body["expires_at"] is not None

    def test_session_requires_login(self, client):
        response = client.get("/api/passkey/session")

        assert response.status_code == 401
        assert response.json()["error_code"] == "NOT_AUTHENTICATED"

    def test_logout(self, client):
        register(client)
        login(client)

        response = client.post("/api/passkey/logout")

        assert response.status_code == 200
        assert response.json()["message"] == "Logout successful"
        assert client.get("/api/passkey/session").status_code == 401

    def test_users_requires_login(self, client):
        register(client)

        response = client.get("/api/passkey/users")

        assert response.status_code == 401
        assert response.json()["error_code"] == "NOT_AUTHENTICATED"

    def test_clone_warning_allowed(self, client):
        register(client)
        assert login(client, sign_count=5).status_code == 200

        response = login(client, sign_count=2)

        assert response.status_code == 200


class TestHealthRoutes:
    """Test suite for health endpoints."""

    def test_health_check(self, client):
        response = client.get("/api/health/")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["service"] == "passkey-api"

    def test_session_health(self, client):
        register(client)
        login(client)

        response = client.get("/api/health/sessions")

        assert response.status_code == 200
        assert response.json()["active_sessions"] == 1

    def test_session_health_storage_failure(self, client, monkeypatch):
        async def unavailable():
            raise StorageUnavailableError()

        monkeypatch.setattr(
            client.app.state.coordinator.session_manager, "get_active_sessions_count", unavailable
        )

        response = client.get("/api/health/sessions")

        assert response.status_code == 503
        body = response.json()
        assert body["error_code"] == "STORAGE_UNAVAILABLE"
        assert body["message"] == "Storage temporarily unavailable"

    def test_root(self, client):
        assert client.get("/").json()["status"] == "operational"
