import logging
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, Tuple

from ..db.database import Database, to_db_timestamp, from_db_timestamp, utcnow
from ..models.session import AuthSession
from .token_generator import TokenGenerator

logger = logging.getLogger(__name__)


def _row_to_session(row: Dict[str, Any]) -> AuthSession:
    return AuthSession(
        token=row["token"],
        user_id=bytes(row["user_id"]),
        created_at=from_db_timestamp(row["created_at"]),
        last_activity=from_db_timestamp(row["last_activity"]),
        expires_at=from_db_timestamp(row["expires_at"])
    )


class SessionManager:
    """Authenticated sessions issued after a successful login.

    Kept apart from pending ceremony sessions; a user holds at most one
    authenticated session.
    """

    def __init__(
        self,
        database: Database,
        token_generator: TokenGenerator,
        session_duration_hours: int = 1
    ):
        self.database = database
        self.token_generator = token_generator
        self.session_duration = timedelta(hours=session_duration_hours)

    async def create_session(self, user_id: bytes) -> AuthSession:
        """Create new user session, replacing any existing one"""
        now = utcnow()
        session = AuthSession(
            token=self.token_generator.generate(),
            user_id=user_id,
            created_at=now,
            last_activity=now,
            expires_at=now + self.session_duration
        )

        # user_id is UNIQUE: the replace drops the previous session atomically
        await self.database.execute("""
            INSERT OR REPLACE INTO auth_sessions (token, user_id, created_at, last_activity, expires_at)
            VALUES (?, ?, ?, ?, ?)
        """, (session.token, user_id, to_db_timestamp(now), to_db_timestamp(now),
              to_db_timestamp(session.expires_at)))

        return session

    async def get_session(self, session_token: str) -> Optional[AuthSession]:
        """Get active session by token"""
        if not session_token:
            return None

        row = await self.database.fetch_one(
            "SELECT * FROM auth_sessions WHERE token = ?", (session_token,)
        )
        if not row:
            return None

        session = _row_to_session(row)
        now = utcnow()

        # Check if session has expired
        if session.is_expired(now):
            await self.end_session(session_token)
            return None

        # Update last activity
        session.last_activity = now
        await self.database.execute(
            "UPDATE auth_sessions SET last_activity = ? WHERE token = ?",
            (to_db_timestamp(now), session_token)
        )
        return session

    async def get_user_session(self, user_id: bytes) -> Optional[AuthSession]:
        """Get active session for a user"""
        row = await self.database.fetch_one(
            "SELECT token FROM auth_sessions WHERE user_id = ?", (user_id,)
        )
        if not row:
            return None
        return await self.get_session(row["token"])

    async def validate_session(self, session_token: str) -> Tuple[bool, Optional[AuthSession]]:
        """Validate session and return session data"""
        session = await self.get_session(session_token)
        return (session is not None, session)

    async def end_session(self, session_token: str) -> bool:
        """End a specific session"""
        deleted = await self.database.execute(
            "DELETE FROM auth_sessions WHERE token = ?", (session_token,)
        )
        return deleted > 0

    async def end_user_session(self, user_id: bytes) -> bool:
        """End the session of a specific user"""
        deleted = await self.database.execute(
            "DELETE FROM auth_sessions WHERE user_id = ?", (user_id,)
        )
        return deleted > 0

    async def cleanup_expired_sessions(self, now: Optional[datetime] = None) -> int:
        """Remove expired sessions"""
        now = now or utcnow()
        deleted = await self.database.execute(
            "DELETE FROM auth_sessions WHERE expires_at <= ?", (to_db_timestamp(now),)
        )
        if deleted:
            logger.info(f"Removed {deleted} expired authenticated session(s)")
        return deleted

    async def is_user_online(self, user_id: bytes) -> bool:
        """Check if user has an active session"""
        return await self.get_user_session(user_id) is not None

    async def get_active_sessions_count(self) -> int:
        """Get count of active sessions"""
        row = await self.database.fetch_one(
            "SELECT COUNT(*) AS count FROM auth_sessions WHERE expires_at > ?",
            (to_db_timestamp(utcnow()),)
        )
        return row["count"] if row else 0
