import logging
import secrets
from typing import Optional, List, Dict, Any

import aiosqlite

from ..core.exceptions import AlreadyExistsError, NotFoundError
from ..db.database import Database, to_db_timestamp, utcnow
from ..models.user import User

logger = logging.getLogger(__name__)

USER_ID_BYTES = 32


class CredentialStore:
    """Users and their registered credentials.

    This store is the only writer of the users table.
    """

    def __init__(self, database: Database):
        self.database = database

    def new_user(self, name: str, display_name: Optional[str] = None) -> User:
        """Mint an unsaved user with a fresh random id"""
        return User(
            id=secrets.token_bytes(USER_ID_BYTES),
            name=name,
            display_name=display_name or name,
            created_at=utcnow()
        )

    async def insert_user(self, user: User, conn: Optional[aiosqlite.Connection] = None):
        """Insert ``user``, optionally inside the caller's transaction.

        Duplicate names are detected by the UNIQUE constraint on insert,
        so two concurrent registrations for one name cannot both succeed.
        """
        try:
            await self.database.execute("""
                INSERT INTO users (id, display_name, name, creds, created_at)
                VALUES (?, ?, ?, ?, ?)
            """, (user.id, user.display_name, user.name, user.credentials_blob(),
                  to_db_timestamp(user.created_at)), conn=conn)
        except aiosqlite.IntegrityError as e:
            logger.info(f"User '{user.name}' already exists: {e}")
            raise AlreadyExistsError("User already exists")

        logger.info(f"Created user '{user.name}'")

    async def create_user(self, name: str, display_name: Optional[str] = None) -> User:
        """Create a new user with an empty credential list"""
        user = self.new_user(name, display_name)
        await self.insert_user(user)
        return user

    async def get_user_by_name(self, name: str) -> User:
        """Get user by name"""
        row = await self.database.fetch_one(
            "SELECT * FROM users WHERE name = ?", (name,)
        )
        if not row:
            raise NotFoundError("User not found")
        return User.from_row(row)

    async def get_user_by_session_owner(self, owner_id: bytes) -> User:
        """Resolve the user a ceremony session was recorded for"""
        row = await self.database.fetch_one(
            "SELECT * FROM users WHERE id = ?", (owner_id,)
        )
        if not row:
            logger.warning("Session owner does not match any user")
            raise NotFoundError("User not found")
        return User.from_row(row)

    async def save_credentials(self, user: User):
        """Overwrite the stored credential list with ``user.credentials``.

        Single UPDATE, last writer wins.
        """
        updated = await self.database.execute(
            "UPDATE users SET creds = ? WHERE id = ?",
            (user.credentials_blob(), user.id)
        )
        if updated == 0:
            raise NotFoundError("User not found")
        logger.debug(f"Saved {len(user.credentials)} credential(s) for '{user.name}'")

    async def list_users(self) -> List[Dict[str, Any]]:
        """List users with their credential counts (no key material)"""
        rows = await self.database.fetch_all(
            "SELECT * FROM users ORDER BY name"
        )
        users = []
        for row in rows:
            user = User.from_row(row)
            users.append({
                "name": user.name,
                "display_name": user.display_name,
                "credential_count": len(user.credentials),
                "created_at": user.created_at
            })
        return users
