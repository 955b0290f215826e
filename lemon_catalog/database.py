"""SQLite database connection management and initialization."""

import asyncio
import logging

import aiosqlite

from lemon_catalog.config import settings
from lemon_catalog.errors import MigrationError
from lemon_catalog.migrations.runner import run_migrations

logger = logging.getLogger(__name__)

# Global connection reference
_db: aiosqlite.Connection | None = None
# Serializes catalog writes on the shared connection
_write_lock: asyncio.Lock | None = None


async def get_db() -> aiosqlite.Connection:
    """Get the database connection. Raises if not initialized."""
    if _db is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _db


def get_write_lock() -> asyncio.Lock:
    """Get the lock that catalog mutations must hold."""
    if _write_lock is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _write_lock


async def init_db() -> None:
    """Initialize the database connection and run migrations."""
    global _db, _write_lock

    # Ensure data directory exists
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)

    _db = await aiosqlite.connect(str(settings.db_path))
    _write_lock = asyncio.Lock()

    await _db.execute("PRAGMA journal_mode=WAL")
    # Every commit must reach disk before the call returns
    await _db.execute("PRAGMA synchronous=FULL")
    await _db.execute("PRAGMA foreign_keys=ON")
    await _db.execute(f"PRAGMA busy_timeout={int(settings.busy_timeout_ms)}")

    await _db.commit()

    try:
        await run_migrations(_db, lock_path=settings.migration_lock_path)
    except MigrationError as e:
        logger.error("Schema migration failed, refusing to start: %s", e)
        await close_db()
        raise


async def close_db() -> None:
    """Close the database connection."""
    global _db, _write_lock
    if _db is not None:
        await _db.close()
        _db = None
    _write_lock = None
