"""Database migration runner.

Uses a simple version tracking table to run migrations in order.
Each migration is a Python module with an `upgrade(db)` async function;
the runner wraps every step in its own transaction and records it in the
same commit, so a failed step leaves the schema at the previous one.
"""

import asyncio
import fcntl
import importlib
import logging
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

import aiosqlite

from lemon_catalog.errors import MigrationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Migration:
    """One ordered schema step."""

    name: str
    upgrade: Callable[[aiosqlite.Connection], Awaitable[None]]

    @classmethod
    def from_module(cls, module_name: str) -> "Migration":
        module = importlib.import_module(module_name)
        return cls(name=module_name.rsplit(".", 1)[-1], upgrade=module.upgrade)


# List of migrations in order
MIGRATIONS = [
    Migration.from_module("lemon_catalog.migrations.m001_games"),
    Migration.from_module("lemon_catalog.migrations.m002_states"),
]


@asynccontextmanager
async def migration_lock(lock_path: Path | None):
    """Hold an exclusive advisory lock on ``lock_path`` for the block.

    Blocks until any other process running migrations on the same
    database has finished. ``None`` disables locking.
    """
    if lock_path is None:
        yield
        return

    lock_path.parent.mkdir(parents=True, exist_ok=True)
    lock_file = open(lock_path, "w")
    try:
        await asyncio.to_thread(fcntl.flock, lock_file, fcntl.LOCK_EX)
        logger.debug("Acquired migration lock %s", lock_path)
        try:
            yield
        finally:
            fcntl.flock(lock_file, fcntl.LOCK_UN)
            logger.debug("Released migration lock %s", lock_path)
    finally:
        lock_file.close()


async def applied_migrations(db: aiosqlite.Connection) -> list[str]:
    """Names of recorded migrations in the order they were applied."""
    cursor = await db.execute("SELECT name FROM _migrations ORDER BY id")
    return [row[0] for row in await cursor.fetchall()]


async def run_migrations(
    db: aiosqlite.Connection,
    migrations: list[Migration] = MIGRATIONS,
    lock_path: Path | None = None,
) -> list[str]:
    """Run any pending migrations.

    Returns the names of the steps applied by this call. Raises
    MigrationError for the first step that fails; steps after it are not
    attempted.
    """
    applied_now: list[str] = []

    async with migration_lock(lock_path):
        # Create migrations tracking table if it doesn't exist
        await db.execute("""
            CREATE TABLE IF NOT EXISTS _migrations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                applied_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
        """)
        await db.commit()

        applied = set(await applied_migrations(db))

        for position, migration in enumerate(migrations, start=1):
            if migration.name in applied:
                continue

            logger.info("Applying migration %d: %s", position, migration.name)
            try:
                await db.execute("BEGIN")
                await migration.upgrade(db)
                await db.execute(
                    "INSERT INTO _migrations (name) VALUES (?)",
                    (migration.name,),
                )
                await db.commit()
            except Exception as e:
                await db.rollback()
                raise MigrationError(migration.name, position, e) from e

            applied_now.append(migration.name)

    if not applied_now:
        logger.debug("Schema is up to date")
    return applied_now
