"""Archive abstraction consumed by the index engine and the domain API."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(slots=True)
class ArchiveInfo:
    url: str
    title: str | None = None
    description: str | None = None
    type: list[str] = field(default_factory=list)
    writable: bool = False


@dataclass(slots=True)
class ArchiveStat:
    path: str
    is_directory: bool
    size: int
    mtime_ms: int


class Archive(ABC):
    """A versioned file tree identified by a stable URL, owned by a single writer.

    Paths are archive-absolute (``/bookmarks/x.json``).
    """

    url: str
    writable: bool = False

    @property
    def local_path(self) -> Path | None:
        """Folder backing the archive, when it can be watched on disk."""
        return None

    @abstractmethod
    async def read_file(self, path: str, encoding: str | None = "utf-8") -> str | bytes: ...

    @abstractmethod
    async def write_file(self, path: str, data: str | bytes) -> None: ...

    @abstractmethod
    async def unlink(self, path: str) -> None: ...

    @abstractmethod
    async def mkdir(self, path: str) -> None: ...

    @abstractmethod
    async def stat(self, path: str) -> ArchiveStat:
        """Raise ``FileNotFoundError`` when ``path`` does not exist."""

    @abstractmethod
    async def readdir(self, path: str) -> list[str]: ...

    @abstractmethod
    async def configure(
        self,
        title: str | None = None,
        description: str | None = None,
        type: list[str] | None = None,
    ) -> None: ...

    @abstractmethod
    async def get_info(self) -> ArchiveInfo: ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.url}>"


__all__ = ["Archive", "ArchiveInfo", "ArchiveStat"]
