"""Shared test fixtures for all test modules."""

import os
import tempfile

import pytest

# ── Environment overrides (must be set before importing lemon_catalog) ──────
_tmp = tempfile.mkdtemp(prefix="lemon_pytest_")
os.environ["LEMON_DATA_DIR"] = _tmp
os.environ["LEMON_DB_PATH"] = os.path.join(_tmp, "games.db")
os.environ["LEMON_LOG_LEVEL"] = "DEBUG"


@pytest.fixture
async def catalog_db(tmp_path):
    """Initialize a fresh, fully migrated catalog database for one test."""
    import lemon_catalog.database as db_mod
    from lemon_catalog.config import settings

    original_db_path = settings.db_path
    settings.db_path = tmp_path / "games.db"

    # Reset singleton
    await db_mod.close_db()
    await db_mod.init_db()

    yield await db_mod.get_db()

    await db_mod.close_db()
    settings.db_path = original_db_path


@pytest.fixture
async def raw_db(tmp_path):
    """A bare aiosqlite connection with no migrations applied."""
    import aiosqlite

    db = await aiosqlite.connect(str(tmp_path / "raw.db"))
    await db.execute("PRAGMA foreign_keys=ON")
    yield db
    await db.close()
