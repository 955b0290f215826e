"""Tests for the schema migrations and the migration runner."""

import asyncio
import fcntl

import pytest


async def _schema(db) -> list[tuple]:
    cursor = await db.execute(
        "SELECT type, name, sql FROM sqlite_master ORDER BY type, name"
    )
    return await cursor.fetchall()


async def _table_names(db) -> set[str]:
    cursor = await db.execute("SELECT name FROM sqlite_master WHERE type='table'")
    return {row[0] for row in await cursor.fetchall()}


# ── Database initialization ──────────────────────────────────────────────────


class TestDatabase:
    @pytest.mark.asyncio
    async def test_tables_exist(self, catalog_db):
        tables = await _table_names(catalog_db)
        for table in ("games", "states", "_migrations"):
            assert table in tables, f"Missing table: {table}"

    @pytest.mark.asyncio
    async def test_games_columns_and_defaults(self, catalog_db):
        cursor = await catalog_db.execute("PRAGMA table_info(games)")
        columns = {row[1]: row for row in await cursor.fetchall()}

        assert list(columns) == [
            "filename", "name", "genre", "clone_of", "manufacturer", "year",
            "last_played", "params", "count", "favourite", "hide", "broken",
            "missing", "state_id",
        ]
        # (cid, name, type, notnull, dflt_value, pk)
        assert columns["filename"][5] == 1
        assert columns["name"][3] == 1
        assert columns["genre"][4] == "'Unknown'"
        assert columns["manufacturer"][4] == "'Unknown'"
        assert columns["year"][4] == "0"
        assert columns["count"][4] == "0"
        assert columns["missing"][4] == "1"
        assert columns["favourite"][4] == "0"
        assert columns["clone_of"][3] == 0

    @pytest.mark.asyncio
    async def test_state_id_references_states(self, catalog_db):
        cursor = await catalog_db.execute("PRAGMA foreign_key_list(games)")
        rows = await cursor.fetchall()
        # (id, seq, table, from, to, on_update, on_delete, match)
        assert len(rows) == 1
        assert rows[0][2] == "states"
        assert rows[0][3] == "state_id"
        assert rows[0][6] == "NO ACTION"

    @pytest.mark.asyncio
    async def test_pragmas(self, catalog_db):
        cursor = await catalog_db.execute("PRAGMA journal_mode")
        assert (await cursor.fetchone())[0] == "wal"
        cursor = await catalog_db.execute("PRAGMA foreign_keys")
        assert (await cursor.fetchone())[0] == 1

    @pytest.mark.asyncio
    async def test_migrations_recorded_in_order(self, catalog_db):
        from lemon_catalog.migrations.runner import applied_migrations

        assert await applied_migrations(catalog_db) == ["m001_games", "m002_states"]

    @pytest.mark.asyncio
    async def test_get_db_before_init_raises(self):
        from lemon_catalog.database import get_db

        with pytest.raises(RuntimeError):
            await get_db()

    @pytest.mark.asyncio
    async def test_failed_migration_aborts_startup(self, tmp_path, monkeypatch):
        import lemon_catalog.database as db_mod
        from lemon_catalog.config import settings
        from lemon_catalog.errors import MigrationError

        async def failing_runner(db, **kwargs):
            raise MigrationError("m002_states", 2, RuntimeError("boom"))

        monkeypatch.setattr(db_mod, "run_migrations", failing_runner)
        monkeypatch.setattr(settings, "db_path", tmp_path / "broken.db")

        with pytest.raises(MigrationError):
            await db_mod.init_db()
        with pytest.raises(RuntimeError):
            await db_mod.get_db()


# ── Runner ───────────────────────────────────────────────────────────────────


class TestRunner:
    @pytest.mark.asyncio
    async def test_applies_all_steps(self, raw_db):
        from lemon_catalog.migrations.runner import run_migrations

        applied = await run_migrations(raw_db)
        assert applied == ["m001_games", "m002_states"]
        assert {"games", "states"} <= await _table_names(raw_db)

    @pytest.mark.asyncio
    async def test_second_run_is_noop(self, raw_db):
        from lemon_catalog.migrations.runner import run_migrations

        await run_migrations(raw_db)
        schema_once = await _schema(raw_db)

        assert await run_migrations(raw_db) == []
        assert await _schema(raw_db) == schema_once

    @pytest.mark.asyncio
    async def test_failed_step_reports_name_and_position(self, raw_db):
        from lemon_catalog.errors import MigrationError
        from lemon_catalog.migrations.runner import (
            MIGRATIONS,
            Migration,
            applied_migrations,
            run_migrations,
        )

        async def bad_upgrade(db):
            await db.execute("CREATE TABLE half_done (id INTEGER)")
            raise RuntimeError("constraint violated")

        registry = [MIGRATIONS[0], Migration("m002_bad", bad_upgrade), MIGRATIONS[1]]

        with pytest.raises(MigrationError) as exc_info:
            await run_migrations(raw_db, registry)

        assert exc_info.value.name == "m002_bad"
        assert exc_info.value.position == 2
        assert "constraint violated" in str(exc_info.value)

        # Schema stays at the last good step
        tables = await _table_names(raw_db)
        assert "games" in tables
        assert "half_done" not in tables
        assert "states" not in tables
        assert await applied_migrations(raw_db) == ["m001_games"]

    @pytest.mark.asyncio
    async def test_resumes_after_failure(self, raw_db):
        from lemon_catalog.errors import MigrationError
        from lemon_catalog.migrations.runner import MIGRATIONS, Migration, run_migrations

        async def bad_upgrade(db):
            raise RuntimeError("nope")

        with pytest.raises(MigrationError):
            await run_migrations(raw_db, [MIGRATIONS[0], Migration("m002_states", bad_upgrade)])

        assert await run_migrations(raw_db) == ["m002_states"]

    @pytest.mark.asyncio
    async def test_lock_released_after_failure(self, raw_db, tmp_path):
        from lemon_catalog.errors import MigrationError
        from lemon_catalog.migrations.runner import Migration, run_migrations

        async def bad_upgrade(db):
            raise RuntimeError("nope")

        lock_path = tmp_path / "games.db.migrate.lock"
        with pytest.raises(MigrationError):
            await run_migrations(raw_db, [Migration("m001_bad", bad_upgrade)], lock_path)

        with open(lock_path, "w") as f:
            fcntl.flock(f, fcntl.LOCK_EX | fcntl.LOCK_NB)
            fcntl.flock(f, fcntl.LOCK_UN)

    @pytest.mark.asyncio
    async def test_concurrent_runners_apply_each_step_once(self, tmp_path):
        import aiosqlite

        from lemon_catalog.migrations.runner import run_migrations

        db_path = str(tmp_path / "shared.db")
        lock_path = tmp_path / "shared.db.migrate.lock"
        first = await aiosqlite.connect(db_path)
        second = await aiosqlite.connect(db_path)
        try:
            results = await asyncio.gather(
                run_migrations(first, lock_path=lock_path),
                run_migrations(second, lock_path=lock_path),
            )
        finally:
            await first.close()
            await second.close()

        assert sorted(results[0] + results[1]) == ["m001_games", "m002_states"]
