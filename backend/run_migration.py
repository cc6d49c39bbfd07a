#!/usr/bin/env python3
"""
Migration Runner - Passkey schema

Run this script to create or upgrade the passkey database at DATABASE_PATH.
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add the backend directory to Python path
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))

from passkey_api.core.config import settings
from passkey_api.core.exceptions import StorageUnavailableError
from passkey_api.db.database import Database, init_db


async def run_migration() -> int:
    database = Database(settings.DATABASE_PATH, timeout=settings.DATABASE_TIMEOUT)
    return await init_db(database)


if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL, format="%(levelname)s [%(name)s] %(message)s")
    print("=== Passkey Database Migration ===")
    print(f"Database: {settings.DATABASE_PATH}")
    print()

    try:
        version = asyncio.run(run_migration())
    except StorageUnavailableError as e:
        print()
        print(f"Migration failed: {e.message}. Please check the error messages above.")
        sys.exit(1)

    print()
    print(f"Migration completed successfully (schema version {version}).")
