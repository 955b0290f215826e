"""Initial database schema: the games table, keyed by ROM filename."""

import aiosqlite


async def upgrade(db: aiosqlite.Connection) -> None:
    """Create the games table."""
    await db.execute("""
        CREATE TABLE games (
            filename      TEXT PRIMARY KEY,
            name          TEXT NOT NULL,
            genre         TEXT NOT NULL DEFAULT 'Unknown',
            clone_of      TEXT,
            manufacturer  TEXT NOT NULL DEFAULT 'Unknown',
            year          INTEGER NOT NULL DEFAULT 0,
            last_played   TEXT,
            params        TEXT,
            count         INTEGER NOT NULL DEFAULT 0,
            favourite     INTEGER NOT NULL DEFAULT 0,
            hide          INTEGER NOT NULL DEFAULT 0,
            broken        INTEGER NOT NULL DEFAULT 0,
            missing       INTEGER NOT NULL DEFAULT 1
        )
    """)
    await db.execute("CREATE INDEX idx_games_name ON games(name)")
    await db.execute("CREATE INDEX idx_games_genre ON games(genre)")
