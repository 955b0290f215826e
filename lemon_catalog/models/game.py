"""Pydantic models for games."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


def to_utc(value: datetime) -> datetime:
    """Convert to an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class GameRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    filename: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    genre: str = "Unknown"
    clone_of: str | None = None
    manufacturer: str = "Unknown"
    year: int = Field(0, ge=0)
    last_played: datetime | None = None
    params: str | None = None
    count: int = Field(0, ge=0)
    favourite: bool = False
    hide: bool = False
    broken: bool = False
    # Cataloged games stay missing until a scanner confirms the file exists
    missing: bool = True
    state_id: int | None = None

    # Stored as ISO text, so every value must share one offset to sort correctly
    @field_validator("last_played")
    @classmethod
    def _last_played_utc(cls, value: datetime | None) -> datetime | None:
        return to_utc(value) if value is not None else None


# Columns a GameFilter may sort on
SORTABLE_COLUMNS = frozenset(
    {"filename", "name", "genre", "manufacturer", "year", "last_played", "count"}
)


class GameFilter(BaseModel):
    """Equality filters plus an optional sort order.

    ``order_by`` entries are column names, prefixed with ``-`` for
    descending. Results are always tie-broken by filename. ``has_state``
    selects games with (True) or without (False) any state attached.
    """

    model_config = ConfigDict(extra="forbid")

    favourite: bool | None = None
    hide: bool | None = None
    broken: bool | None = None
    missing: bool | None = None
    genre: str | None = None
    manufacturer: str | None = None
    clone_of: str | None = None
    state_id: int | None = None
    has_state: bool | None = None
    min_count: int | None = None
    order_by: list[str] = Field(default_factory=list)


class CatalogView(str, Enum):
    """The launcher's menu listings."""

    ALL = "all"
    FAVOURITE = "favourite"
    MOST_PLAYED = "most_played"
    GENRE = "genre"
