"""Nexus: a social index over a user's own and followed archives."""

from nexus.core.errors import (
    ArchiveNotFoundError,
    ArchiveNotWritableError,
    MissingParameterError,
    NexusError,
    ProfileNotFoundError,
    QueryError,
    SchemaError,
    SourceNotFoundError,
    ValidationError,
)
from nexus.social import Nexus, Viewer

__version__ = "0.1.0"

__all__ = [
    "Nexus",
    "Viewer",
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
