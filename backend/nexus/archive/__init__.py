"""Archive collaborators: the abstract contract, local folders, and the watcher."""

from .base import Archive, ArchiveInfo, ArchiveStat
from .local import LocalArchive
from .watcher import ArchiveWatcher

__all__ = ["Archive", "ArchiveInfo", "ArchiveStat", "LocalArchive", "ArchiveWatcher"]
