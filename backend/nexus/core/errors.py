"""Exception hierarchy shared across the index and the domain API."""

from __future__ import annotations


class NexusError(Exception):
    """Base class for every error raised by nexus."""


class ValidationError(NexusError, ValueError):
    """A record or parameter is missing a required value or has the wrong shape."""


class MissingParameterError(ValidationError):
    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or "Missing a required parameter")
        self.missing_parameter = True


class ProfileNotFoundError(NexusError, LookupError):
    """An operation needs a profile record that the archive has not written."""


class SchemaError(NexusError):
    """Collection declarations are inconsistent or a collection is unknown."""


class QueryError(NexusError):
    """A query names an undeclared index or is composed incorrectly."""


class ArchiveNotFoundError(NexusError, LookupError):
    """No local archive backs the given URL."""


class ArchiveNotWritableError(NexusError, PermissionError):
    """The archive is owned by someone else and cannot be written."""


class SourceNotFoundError(NexusError, LookupError):
    """The archive is not currently an indexed source."""


__all__ = [
    "NexusError",
    "ValidationError",
    "MissingParameterError",
    "ProfileNotFoundError",
    "SchemaError",
    "QueryError",
    "ArchiveNotFoundError",
    "ArchiveNotWritableError",
    "SourceNotFoundError",
]
