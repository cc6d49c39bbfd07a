import aiosqlite
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from passkey_api.core.exceptions import StorageUnavailableError
from passkey_api.db.schema import ALL_TABLES, INDEXES
from passkey_api.db.migrations import run_migrations as run_db_migrations

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_db_timestamp(value: datetime) -> str:
    """Serialize a datetime as a sortable UTC ISO string"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class Database:
    """
    Thin aiosqlite wrapper. Every operation opens its own connection so that
    concurrent requests only share the database file, and coordinate through
    SQLite's constraints and single-statement atomicity.
    """

    def __init__(self, db_path: str, timeout: float = 5.0):
        self.db_path = db_path
        self.timeout = timeout

    @asynccontextmanager
    async def connection(self):
        """Open a connection, commit on success and roll back on error.

        Integrity violations propagate unchanged so callers can map them;
        every other sqlite error surfaces as StorageUnavailableError.
        """
        try:
            async with aiosqlite.connect(self.db_path, timeout=self.timeout) as conn:
                conn.row_factory = aiosqlite.Row
                await conn.execute("PRAGMA foreign_keys = ON")
                try:
                    yield conn
                    await conn.commit()
                except Exception:
                    await conn.rollback()
                    raise
        except aiosqlite.IntegrityError:
            raise
        except aiosqlite.Error as e:
            logger.error(f"Database error on {self.db_path}: {e}", exc_info=True)
            raise StorageUnavailableError() from e

    async def execute(self, query: str, params: tuple = (), conn: Optional[aiosqlite.Connection] = None) -> int:
        """Execute a single statement and return the affected row count.

        With ``conn`` the statement joins that connection's transaction.
        """
        if conn is not None:
            cursor = await conn.execute(query, params)
            return cursor.rowcount
        async with self.connection() as conn:
            cursor = await conn.execute(query, params)
            return cursor.rowcount

    async def fetch_one(self, query: str, params: tuple = ()):
        """Fetch one row"""
        async with self.connection() as conn:
            cursor = await conn.execute(query, params)
            row = await cursor.fetchone()
            return dict(row) if row else None

    async def fetch_all(self, query: str, params: tuple = ()):
        """Fetch all rows"""
        async with self.connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            return [dict(row) for row in rows]

    async def ping(self) -> bool:
        """Check that the database file can be queried"""
        try:
            await self.fetch_one("SELECT 1")
            return True
        except StorageUnavailableError:
            return False


async def create_tables(database: Database):
    """Create all database tables"""
    async with database.connection() as conn:
        for table_sql in ALL_TABLES:
            await conn.execute(table_sql)


async def create_indexes(database: Database):
    async with database.connection() as conn:
        for index_sql in INDEXES:
            await conn.execute(index_sql)


async def init_db(database: Database) -> int:
    """Initialize database with schema and return the schema version"""
    await create_tables(database)
    # Indexes reference columns that older files only gain through migrations
    version = await run_db_migrations(database)
    await create_indexes(database)
    logger.info(f"Database initialized at {database.db_path} (schema version {version})")
    return version
