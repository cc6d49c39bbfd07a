import json
import logging
from datetime import datetime
from typing import Optional, Dict, Any

import aiosqlite

from ..core.exceptions import InvalidInputError
from ..db.database import Database, to_db_timestamp, from_db_timestamp, utcnow
from ..models.session import CeremonySession, CEREMONY_TYPES

logger = logging.getLogger(__name__)


def _row_to_session(row: Dict[str, Any]) -> CeremonySession:
    data = row.get("session_data")
    if isinstance(data, (bytes, bytearray)):
        data = data.decode("utf-8")
    return CeremonySession(
        token=row["token"],
        user_id=bytes(row["user_id"]),
        ceremony=row["ceremony"],
        state=json.loads(data) if data else {},
        expires_at=from_db_timestamp(row["expires_at"])
    )


class SessionStore:
    """Pending ceremony sessions keyed by token.

    The schema allows one pending session per user, so saving a new one
    for the same user replaces the previous ceremony.
    """

    def __init__(self, database: Database):
        self.database = database

    async def save(
        self,
        token: str,
        owner_id: bytes,
        ceremony: str,
        state: Dict[str, Any],
        expires_at: datetime,
        conn: Optional[aiosqlite.Connection] = None
    ):
        """Upsert the session for ``token``, optionally inside the caller's transaction"""
        if ceremony not in CEREMONY_TYPES:
            raise InvalidInputError(f"Unknown ceremony type: {ceremony}")

        await self.database.execute("""
            INSERT OR REPLACE INTO sessions (token, user_id, ceremony, session_data, expires_at)
            VALUES (?, ?, ?, ?, ?)
        """, (token, owner_id, ceremony, json.dumps(state).encode("utf-8"),
              to_db_timestamp(expires_at)), conn=conn)
        logger.debug(f"Saved {ceremony} session {token[:8]}...")

    async def fetch(self, token: str) -> Optional[CeremonySession]:
        """Get session by token. Expiry is not checked here."""
        row = await self.database.fetch_one(
            "SELECT * FROM sessions WHERE token = ?", (token,)
        )
        return _row_to_session(row) if row else None

    async def delete(self, token: str) -> bool:
        """Delete a session; deleting an unknown token is not an error"""
        deleted = await self.database.execute(
            "DELETE FROM sessions WHERE token = ?", (token,)
        )
        return deleted > 0

    async def take(self, token: str) -> Optional[CeremonySession]:
        """Fetch and delete a session in one transaction.

        Only one caller can take a given token.
        """
        async with self.database.connection() as conn:
            await conn.execute("BEGIN IMMEDIATE")
            cursor = await conn.execute(
                "SELECT * FROM sessions WHERE token = ?", (token,)
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            await conn.execute("DELETE FROM sessions WHERE token = ?", (token,))
            session = _row_to_session(dict(row))

        logger.debug(f"Consumed {session.ceremony} session {token[:8]}...")
        return session

    async def cleanup_expired(self, now: Optional[datetime] = None) -> int:
        """Remove sessions whose expiry has passed"""
        now = now or utcnow()
        deleted = await self.database.execute(
            "DELETE FROM sessions WHERE expires_at <= ?", (to_db_timestamp(now),)
        )
        if deleted:
            logger.info(f"Removed {deleted} expired ceremony session(s)")
        return deleted
