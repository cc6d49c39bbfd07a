"""
Pytest configuration for the passkey API tests.

Every test gets its own SQLite file under tmp_path. Coordinator and route
tests run against FakeCeremonyEngine, which speaks a tiny JSON dialect
instead of real WebAuthn so ceremonies can be driven without an
authenticator.
"""

import json
import secrets
from dataclasses import replace
from datetime import timedelta

import pytest
import pytest_asyncio
from webauthn.helpers import base64url_to_bytes, bytes_to_base64url

from passkey_api.core.exceptions import CeremonyRejectedError
from passkey_api.db.database import Database, init_db, utcnow
from passkey_api.models.credential import Credential
from passkey_api.services import (
    CeremonyCoordinator,
    CredentialStore,
    SessionManager,
    SessionStore,
    TokenGenerator,
)


class FakeCeremonyEngine:
    """CeremonyEngine that trusts any response echoing its challenge.

    Client responses are JSON objects:
    ``{"id": <b64 credential id>, "challenge": <b64>, "sign_count": <int>}``.
    ``{"reject": true}`` forces a CeremonyRejectedError.
    """

    def __init__(self):
        self.calls = []

    def _begin(self, user, kind):
        challenge = bytes_to_base64url(secrets.token_bytes(16))
        options = {
            "challenge": challenge,
            "user": {"id": user.id_b64, "name": user.name},
            "allowCredentials": [{"id": bytes_to_base64url(c)} for c in user.credential_ids()]
        }
        state = {"challenge": challenge, "user_id": user.id_b64, "kind": kind}
        self.calls.append(("begin_" + kind, user.name))
        return options, state

    def _parse(self, user, state, raw_request):
        if isinstance(raw_request, (bytes, bytearray)):
            raw_request = raw_request.decode("utf-8")
        try:
            data = json.loads(raw_request) if isinstance(raw_request, str) else raw_request
        except ValueError as e:
            raise CeremonyRejectedError("Malformed response") from e
        if data.get("reject"):
            raise CeremonyRejectedError("Rejected by authenticator")
        if data.get("challenge") != state.get("challenge") or state.get("user_id") != user.id_b64:
            raise CeremonyRejectedError("Challenge mismatch")
        return data

    def begin_registration(self, user):
        return self._begin(user, "registration")

    def finish_registration(self, user, state, raw_request):
        data = self._parse(user, state, raw_request)
        self.calls.append(("finish_registration", user.name))
        return Credential(
            credential_id=base64url_to_bytes(data["id"]),
            public_key=b"fake-public-key",
            sign_count=int(data.get("sign_count", 0)),
            created_at=utcnow()
        )

    def begin_login(self, user):
        return self._begin(user, "login")

    def finish_login(self, user, state, raw_request):
        data = self._parse(user, state, raw_request)
        self.calls.append(("finish_login", user.name))
        stored = user.get_credential(base64url_to_bytes(data["id"]))
        if stored is None:
            raise CeremonyRejectedError("Credential not registered")
        new_count = int(data.get("sign_count", 0))
        clone_warning = (new_count != 0 or stored.sign_count != 0) and new_count <= stored.sign_count
        return replace(
            stored,
            sign_count=stored.sign_count if clone_warning else new_count,
            clone_warning=clone_warning,
            last_used_at=utcnow()
        )


def client_response(challenge: str, credential_id: bytes, sign_count: int = 0) -> bytes:
    """Build a FakeCeremonyEngine client response"""
    return json.dumps({
        "id": bytes_to_base64url(credential_id),
        "challenge": challenge,
        "sign_count": sign_count
    }).encode("utf-8")


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "passkey.db")


@pytest_asyncio.fixture
async def database(db_path):
    """Initialized database in a temporary file"""
    database = Database(db_path, timeout=5.0)
    await init_db(database)
    return database


@pytest.fixture
def token_generator():
    return TokenGenerator()


@pytest.fixture
def credential_store(database):
    return CredentialStore(database)


@pytest.fixture
def session_store(database):
    return SessionStore(database)


@pytest.fixture
def session_manager(database, token_generator):
    return SessionManager(database, token_generator, session_duration_hours=1)


@pytest.fixture
def fake_engine():
    return FakeCeremonyEngine()


@pytest.fixture
def make_coordinator(credential_store, session_store, session_manager, fake_engine, token_generator):
    """Factory so tests can vary policy and retry settings"""
    def _make(**overrides):
        params = dict(
            credential_store=credential_store,
            session_store=session_store,
            session_manager=session_manager,
            engine=fake_engine,
            token_generator=token_generator,
            ceremony_ttl=timedelta(hours=1),
            save_attempts=3,
            save_backoff=0
        )
        params.update(overrides)
        return CeremonyCoordinator(**params)
    return _make


@pytest.fixture
def coordinator(make_coordinator):
    return make_coordinator()
