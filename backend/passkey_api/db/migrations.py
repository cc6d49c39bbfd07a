"""Database migration system"""
import logging
from datetime import datetime
from typing import List, Tuple

import aiosqlite

logger = logging.getLogger(__name__)


# Migration format: (version, description, up_sql, down_sql)
MIGRATIONS: List[Tuple[int, str, str, str]] = [
    (
        1,
        "Initial schema",
        """-- This migration is handled by schema.py create_tables()""",
        """-- Rollback not supported for initial schema"""
    ),
    (
        2,
        "Add created_at column to users table",
        """ALTER TABLE users ADD COLUMN created_at DATETIME""",
        """ALTER TABLE users DROP COLUMN created_at"""
    ),
    (
        3,
        "Record ceremony type and expiry on pending sessions",
        """ALTER TABLE sessions ADD COLUMN ceremony TEXT NOT NULL DEFAULT 'registration';
ALTER TABLE sessions ADD COLUMN expires_at DATETIME NOT NULL DEFAULT '1970-01-01T00:00:00.000000+00:00';
CREATE INDEX IF NOT EXISTS idx_sessions_expires ON sessions(expires_at);""",
        """DROP INDEX IF EXISTS idx_sessions_expires;
ALTER TABLE sessions DROP COLUMN expires_at;
ALTER TABLE sessions DROP COLUMN ceremony;"""
    ),
    (
        4,
        "Move authenticated sessions out of the ceremony sessions table",
        """CREATE TABLE IF NOT EXISTS auth_sessions (
    token TEXT PRIMARY KEY,
    user_id BLOB NOT NULL UNIQUE,
    created_at DATETIME NOT NULL,
    last_activity DATETIME NOT NULL,
    expires_at DATETIME NOT NULL,
    FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_auth_sessions_expires ON auth_sessions(expires_at);""",
        """DROP TABLE IF EXISTS auth_sessions;"""
    ),
]

# Errors that mean a statement was already applied by create_tables()
_ALREADY_APPLIED = (
    "duplicate column name",
    "table already exists",
    "index already exists",
    "column already exists"
)


async def get_current_version(database) -> int:
    """Get current schema version"""
    row = await database.fetch_one(
        "SELECT MAX(version) as version FROM schema_version"
    )
    return row["version"] if row and row["version"] else 0


async def apply_migration(database, version: int, description: str, up_sql: str):
    """Apply a single migration"""
    async with database.connection() as conn:
        if up_sql.strip() and not up_sql.strip().startswith("--"):
            statements = [stmt.strip() for stmt in up_sql.split(';') if stmt.strip()]
            for statement in statements:
                if statement.startswith('--'):
                    continue
                try:
                    await conn.execute(statement)
                except aiosqlite.OperationalError as e:
                    if any(phrase in str(e).lower() for phrase in _ALREADY_APPLIED):
                        logger.debug(f"Migration {version}: skipping statement (already exists): {statement}")
                        continue
                    logger.error(f"Migration {version} failed on statement: {statement}")
                    raise

        await conn.execute(
            "INSERT INTO schema_version (version, applied_at, description) VALUES (?, ?, ?)",
            (version, datetime.now().isoformat(), description)
        )
    logger.info(f"Applied migration {version}: {description}")


async def run_migrations(database):
    """Run all pending migrations"""
    current_version = await get_current_version(database)

    for version, description, up_sql, _ in MIGRATIONS:
        if version > current_version:
            await apply_migration(database, version, description, up_sql)

    final_version = await get_current_version(database)
    if final_version > current_version:
        logger.info(f"Database migrated from version {current_version} to {final_version}")
    else:
        logger.debug(f"Database schema is up to date (version {current_version})")
    return final_version
