"""Catalog error taxonomy."""


class CatalogError(Exception):
    """Base class for all catalog errors."""


class ValidationError(CatalogError):
    """A record is missing a required field or references a missing row."""


class NotFound(CatalogError):
    """A lookup by key matched nothing."""


class IntegrityError(CatalogError):
    """A delete was blocked because other rows still reference the target."""


class MigrationError(CatalogError):
    """A schema migration step failed.

    ``position`` is 1-based within the registry that was being applied.
    """

    def __init__(self, name: str, position: int, cause: Exception):
        self.name = name
        self.position = position
        self.cause = cause
        super().__init__(f"Migration {position} ({name}) failed: {cause}")
