"""Game catalog service: records keyed by ROM filename, views and play tracking."""

import logging
from collections.abc import AsyncIterator, Mapping
from datetime import datetime, timezone
from typing import Any

import aiosqlite
from pydantic import ValidationError as PydanticValidationError

from lemon_catalog.database import get_db, get_write_lock
from lemon_catalog.errors import NotFound, ValidationError
from lemon_catalog.models.game import (
    SORTABLE_COLUMNS,
    CatalogView,
    GameFilter,
    GameRecord,
    to_utc,
)
from lemon_catalog.services.state_service import state_exists

logger = logging.getLogger(__name__)

GAME_COLUMNS = list(GameRecord.model_fields)
_SELECT = f"SELECT {', '.join(GAME_COLUMNS)} FROM games"

# Equality filters that map directly onto a column
_FILTER_COLUMNS = (
    "favourite",
    "hide",
    "broken",
    "missing",
    "genre",
    "manufacturer",
    "clone_of",
    "state_id",
)


def _row_to_game(row) -> GameRecord:
    return GameRecord.model_validate(dict(zip(GAME_COLUMNS, row)))


def _game_to_row(game: GameRecord) -> dict[str, Any]:
    fields = game.model_dump()
    if game.last_played is not None:
        fields["last_played"] = game.last_played.isoformat()
    return fields


def _build_query(game_filter: GameFilter) -> tuple[str, str, list[Any]]:
    """Translate a filter into WHERE and ORDER BY clauses plus bound params."""
    clauses = []
    params: list[Any] = []
    for column in _FILTER_COLUMNS:
        value = getattr(game_filter, column)
        if value is not None:
            clauses.append(f"{column} = ?")
            params.append(value)
    if game_filter.has_state is not None:
        clauses.append(f"state_id IS {'NOT ' if game_filter.has_state else ''}NULL")
    if game_filter.min_count is not None:
        clauses.append("count >= ?")
        params.append(game_filter.min_count)

    order = []
    for key in game_filter.order_by:
        column = key.lstrip("-")
        if column not in SORTABLE_COLUMNS:
            raise ValidationError(f"Cannot order games by {key!r}")
        order.append(f"{column} {'DESC' if key.startswith('-') else 'ASC'}")
    order.append("filename ASC")

    where = " WHERE " + " AND ".join(clauses) if clauses else ""
    return where, " ORDER BY " + ", ".join(order), params


async def get_game(filename: str) -> GameRecord:
    """Get a single game by filename. Raises NotFound if absent."""
    db = await get_db()
    cursor = await db.execute(f"{_SELECT} WHERE filename = ?", (filename,))
    row = await cursor.fetchone()
    if row is None:
        raise NotFound(f"Game {filename!r} not found")
    return _row_to_game(row)


async def list_games(game_filter: GameFilter | None = None) -> AsyncIterator[GameRecord]:
    """Yield games matching the filter, one row at a time."""
    where, order, params = _build_query(game_filter or GameFilter())
    db = await get_db()
    async with db.execute(_SELECT + where + order, params) as cursor:
        async for row in cursor:
            yield _row_to_game(row)


async def count_games(game_filter: GameFilter | None = None) -> int:
    """Count games matching the filter."""
    where, _, params = _build_query(game_filter or GameFilter())
    db = await get_db()
    cursor = await db.execute("SELECT COUNT(*) FROM games" + where, params)
    (total,) = await cursor.fetchone()
    return total


async def list_view(
    view: CatalogView, show_hidden: bool = False
) -> AsyncIterator[GameRecord]:
    """Yield the games shown by one of the launcher's menu views.

    Hidden and missing games are left out unless ``show_hidden`` is set.
    """
    game_filter = {
        CatalogView.ALL: GameFilter(order_by=["name"]),
        CatalogView.FAVOURITE: GameFilter(favourite=True, order_by=["name"]),
        CatalogView.MOST_PLAYED: GameFilter(min_count=1, order_by=["-count", "name"]),
        CatalogView.GENRE: GameFilter(order_by=["genre", "name"]),
    }[CatalogView(view)]

    if not show_hidden:
        game_filter.hide = False
        game_filter.missing = False

    async for game in list_games(game_filter):
        yield game


async def upsert_game(record: GameRecord | Mapping[str, Any]) -> GameRecord:
    """Insert a game, or replace every field of the one with the same filename.

    Raises ValidationError for an invalid record or an unknown state_id.
    """
    raw = record.model_dump() if isinstance(record, GameRecord) else dict(record)
    try:
        game = GameRecord.model_validate(raw)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid game record: {e}") from e

    db = await get_db()
    async with get_write_lock():
        if game.state_id is not None and not await state_exists(game.state_id):
            raise ValidationError(
                f"Game {game.filename!r} references unknown state {game.state_id}"
            )

        fields = _game_to_row(game)
        columns = ", ".join(fields)
        placeholders = ", ".join(["?"] * len(fields))
        updates = ", ".join(f"{c} = excluded.{c}" for c in fields if c != "filename")

        try:
            await db.execute(
                f"""INSERT INTO games ({columns}) VALUES ({placeholders})
                    ON CONFLICT(filename) DO UPDATE SET {updates}""",
                list(fields.values()),
            )
            await db.commit()
        except aiosqlite.Error as e:
            await db.rollback()
            if isinstance(e, aiosqlite.IntegrityError):
                raise ValidationError(f"Game {game.filename!r} rejected: {e}") from e
            raise

    logger.debug("Upserted game %s", game.filename)
    return game


async def delete_game(filename: str) -> bool:
    """Delete a game. Returns False if there was nothing to delete."""
    db = await get_db()
    async with get_write_lock():
        try:
            cursor = await db.execute("DELETE FROM games WHERE filename = ?", (filename,))
            await db.commit()
        except aiosqlite.Error:
            await db.rollback()
            raise
    return cursor.rowcount > 0


async def _update_game(filename: str, sql: str, params: tuple) -> GameRecord:
    """Run a single-row UPDATE and return the fresh record."""
    db = await get_db()
    async with get_write_lock():
        try:
            cursor = await db.execute(sql, params)
            await db.commit()
        except aiosqlite.Error as e:
            await db.rollback()
            if isinstance(e, aiosqlite.IntegrityError):
                raise ValidationError(f"Update of game {filename!r} rejected: {e}") from e
            raise
    if cursor.rowcount == 0:
        raise NotFound(f"Game {filename!r} not found")
    return await get_game(filename)


async def record_play(
    filename: str, succeeded: bool, played_at: datetime | None = None
) -> GameRecord:
    """Record the outcome of launching a game.

    A clean run bumps the play count, clears ``broken`` and stamps
    ``last_played``. A failed run only marks the game broken.
    """
    if succeeded:
        played_at = played_at or datetime.now(timezone.utc)
        game = await _update_game(
            filename,
            """UPDATE games SET count = count + 1, broken = 0, last_played = ?
               WHERE filename = ?""",
            (to_utc(played_at).isoformat(), filename),
        )
        logger.info("Played %s (%d plays)", filename, game.count)
    else:
        game = await _update_game(
            filename, "UPDATE games SET broken = 1 WHERE filename = ?", (filename,)
        )
        logger.warning("Launch of %s failed, marked broken", filename)
    return game


async def set_flags(
    filename: str,
    *,
    favourite: bool | None = None,
    hide: bool | None = None,
    broken: bool | None = None,
    missing: bool | None = None,
) -> GameRecord:
    """Update game flags. Only non-None values are updated."""
    updates = {
        k: v
        for k, v in {
            "favourite": favourite,
            "hide": hide,
            "broken": broken,
            "missing": missing,
        }.items()
        if v is not None
    }
    if not updates:
        return await get_game(filename)

    set_clauses = ", ".join(f"{key} = ?" for key in updates)
    return await _update_game(
        filename,
        f"UPDATE games SET {set_clauses} WHERE filename = ?",
        (*updates.values(), filename),
    )


async def toggle_favourite(filename: str) -> GameRecord:
    """Flip the favourite flag and return the updated game."""
    return await _update_game(
        filename,
        "UPDATE games SET favourite = NOT favourite WHERE filename = ?",
        (filename,),
    )


async def assign_state(filename: str, state_id: int | None) -> GameRecord:
    """Attach a game to a state, or detach it with ``None``."""
    if state_id is not None and not await state_exists(state_id):
        raise ValidationError(f"Unknown state {state_id}")
    return await _update_game(
        filename,
        "UPDATE games SET state_id = ? WHERE filename = ?",
        (state_id, filename),
    )
