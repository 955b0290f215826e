"""Application configuration via environment variables."""

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Lemon catalog settings loaded from environment variables."""

    # Data paths
    data_dir: Path = Path.home() / ".lemonlauncher"
    db_path: Path = Path.home() / ".lemonlauncher" / "games.db"

    # SQLite tuning
    busy_timeout_ms: int = 5000

    # Logging
    log_level: str = "INFO"

    model_config = {
        "env_prefix": "LEMON_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def migration_lock_path(self) -> Path:
        return self.db_path.with_name(self.db_path.name + ".migrate.lock")


# Singleton instance
settings = Settings()
