"""Tests for authenticated sessions."""

from datetime import timedelta

import pytest

from passkey_api.db.database import to_db_timestamp, utcnow


class TestSessionManager:
    """Test suite for SessionManager."""

    @pytest.mark.asyncio
    async def test_create_and_validate(self, credential_store, session_manager):
        user = await credential_store.create_user("alice")
        session = await session_manager.create_session(user.id)

        is_valid, found = await session_manager.validate_session(session.token)

        assert is_valid is True
        assert found.user_id == user.id
        assert found.expires_at - found.created_at == timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_one_session_per_user(self, credential_store, session_manager):
        user = await credential_store.create_user("alice")
        first = await session_manager.create_session(user.id)
        second = await session_manager.create_session(user.id)

        assert first.token != second.token
        assert await session_manager.get_session(first.token) is None
        assert (await session_manager.get_user_session(user.id)).token == second.token
        assert await session_manager.get_active_sessions_count() == 1

    @pytest.mark.asyncio
    async def test_unknown_or_missing_token(self, session_manager):
        assert await session_manager.validate_session("never-issued") == (False, None)
        assert await session_manager.validate_session(None) == (False, None)

    @pytest.mark.asyncio
    async def test_expired_session_is_removed(self, database, credential_store, session_manager):
        user = await credential_store.create_user("alice")
        session = await session_manager.create_session(user.id)
        await database.execute(
            "UPDATE auth_sessions SET expires_at = ? WHERE token = ?",
            (to_db_timestamp(utcnow() - timedelta(seconds=1)), session.token)
        )

        assert await session_manager.get_session(session.token) is None
        assert await database.fetch_one(
            "SELECT token FROM auth_sessions WHERE token = ?", (session.token,)
        ) is None

    @pytest.mark.asyncio
    async def test_end_session(self, credential_store, session_manager):
        user = await credential_store.create_user("alice")
        session = await session_manager.create_session(user.id)

        assert await session_manager.end_session(session.token) is True
        assert await session_manager.end_session(session.token) is False
        assert await session_manager.get_session(session.token) is None

    @pytest.mark.asyncio
    async def test_end_user_session(self, credential_store, session_manager):
        user = await credential_store.create_user("alice")
        await session_manager.create_session(user.id)

        assert await session_manager.is_user_online(user.id) is True
        assert await session_manager.end_user_session(user.id) is True
        assert await session_manager.get_user_session(user.id) is None
        assert await session_manager.is_user_online(user.id) is False

    @pytest.mark.asyncio
    async def test_cleanup_expired_sessions(self, credential_store, session_manager):
        alice = await credential_store.create_user("alice")
        bob = await credential_store.create_user("bob")
        await session_manager.create_session(alice.id)
        await session_manager.create_session(bob.id)

        removed = await session_manager.cleanup_expired_sessions(utcnow() + timedelta(hours=2))

        assert removed == 2
        assert await session_manager.get_active_sessions_count() == 0
