"""State service: the lookup table of classification labels games may carry."""

import logging

import aiosqlite

from lemon_catalog.database import get_db, get_write_lock
from lemon_catalog.errors import IntegrityError, NotFound
from lemon_catalog.models.state import StateRecord

logger = logging.getLogger(__name__)


async def create_state(name: str | None = None) -> StateRecord:
    """Create a state with a freshly assigned id."""
    db = await get_db()
    async with get_write_lock():
        try:
            cursor = await db.execute("INSERT INTO states (name) VALUES (?)", (name,))
            await db.commit()
        except aiosqlite.Error:
            await db.rollback()
            raise

    logger.info("Created state %d (%s)", cursor.lastrowid, name)
    return StateRecord(id=cursor.lastrowid, name=name)


async def get_state(state_id: int) -> StateRecord:
    """Get a single state by ID. Raises NotFound if absent."""
    db = await get_db()
    cursor = await db.execute(
        "SELECT id, name FROM states WHERE id = ?", (state_id,)
    )
    row = await cursor.fetchone()
    if row is None:
        raise NotFound(f"State {state_id} not found")
    return StateRecord(id=row[0], name=row[1])


async def state_exists(state_id: int) -> bool:
    """Whether a state with this ID exists."""
    db = await get_db()
    cursor = await db.execute("SELECT 1 FROM states WHERE id = ?", (state_id,))
    return await cursor.fetchone() is not None


async def list_states() -> list[StateRecord]:
    """List all states ordered by id."""
    db = await get_db()
    cursor = await db.execute("SELECT id, name FROM states ORDER BY id")
    rows = await cursor.fetchall()
    return [StateRecord(id=row[0], name=row[1]) for row in rows]


async def delete_state(state_id: int) -> bool:
    """Delete a state.

    Refuses with IntegrityError while any game still references the state;
    games are never cascaded or detached implicitly. Returns False if the
    state did not exist.
    """
    db = await get_db()
    async with get_write_lock():
        cursor = await db.execute(
            "SELECT COUNT(*) FROM games WHERE state_id = ?", (state_id,)
        )
        (references,) = await cursor.fetchone()
        if references:
            raise IntegrityError(
                f"State {state_id} is still referenced by {references} game(s)"
            )

        try:
            cursor = await db.execute("DELETE FROM states WHERE id = ?", (state_id,))
            await db.commit()
        except aiosqlite.Error as e:
            await db.rollback()
            if isinstance(e, aiosqlite.IntegrityError):
                # Another writer attached a game between the check and the delete
                raise IntegrityError(f"State {state_id} is still referenced: {e}") from e
            raise

    if cursor.rowcount == 0:
        return False
    logger.info("Deleted state %d", state_id)
    return True
