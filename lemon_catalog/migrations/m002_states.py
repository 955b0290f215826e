"""Add the states lookup table and the games.state_id reference."""

import aiosqlite


async def upgrade(db: aiosqlite.Connection) -> None:
    await db.execute("""
        CREATE TABLE states (
            id    INTEGER PRIMARY KEY AUTOINCREMENT,
            name  TEXT
        )
    """)
    # No ON DELETE action: deleting a referenced state is rejected
    await db.execute(
        "ALTER TABLE games ADD COLUMN state_id INTEGER REFERENCES states(id)"
    )
    await db.execute("CREATE INDEX idx_games_state_id ON games(state_id)")
