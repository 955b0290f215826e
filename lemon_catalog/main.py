"""Lemon catalog process lifecycle."""

import logging
from contextlib import asynccontextmanager

from lemon_catalog.config import settings
from lemon_catalog.database import close_db, init_db

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # Keep noisy libraries at WARNING
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan():
    """Open the catalog for the duration of the block.

    A failed migration propagates out of startup; the catalog is never
    served from a partially migrated schema.
    """
    configure_logging()
    # Startup
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    await init_db()
    logger.info("Catalog ready at %s", settings.db_path)

    try:
        yield
    finally:
        # Shutdown
        await close_db()
