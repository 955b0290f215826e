"""Pydantic models for game states."""

from pydantic import BaseModel


class StateRecord(BaseModel):
    id: int
    name: str | None = None
