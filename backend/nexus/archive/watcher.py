"""Filesystem watcher that reports record file changes inside source archives."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict

from watchdog.events import FileSystemEvent, PatternMatchingEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver, ObservedWatch

from nexus.archive.local import MANIFEST_NAME

# (archive url, archive-absolute path, deleted)
ArchiveEventCallback = Callable[[str, str, bool], None]


@dataclass
class WatchedArchive:
    url: str
    path: Path
    callback: ArchiveEventCallback


class ArchiveEventHandler(PatternMatchingEventHandler):
    """Translate filesystem events into archive-relative record paths."""

    def __init__(self, archive: WatchedArchive) -> None:
        super().__init__(
            patterns=["*.json"],
            ignore_patterns=[f"*/{MANIFEST_NAME}", "*/.*"],
            ignore_directories=True,
            case_sensitive=True,
        )
        self.archive = archive

    def relative(self, src_path: str | bytes) -> str | None:
        raw = src_path.decode() if isinstance(src_path, bytes) else src_path
        try:
            rel = Path(raw).resolve().relative_to(self.archive.path)
        except ValueError:
            return None
        return "/" + rel.as_posix()

    def dispatch_path(self, src_path: str | bytes, deleted: bool) -> None:
        path = self.relative(src_path)
        if path is not None:
            self.archive.callback(self.archive.url, path, deleted)

    def on_created(self, event: FileSystemEvent) -> None:
        self.dispatch_path(event.src_path, deleted=False)

    def on_modified(self, event: FileSystemEvent) -> None:
        self.dispatch_path(event.src_path, deleted=False)

    def on_moved(self, event: FileSystemEvent) -> None:
        self.dispatch_path(event.src_path, deleted=True)
        self.dispatch_path(event.dest_path, deleted=False)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self.dispatch_path(event.src_path, deleted=True)


class ArchiveWatcher:
    """High-level wrapper around watchdog observers, one watch per archive."""

    def __init__(self) -> None:
        self._observer: BaseObserver = Observer()
        self._lock = threading.Lock()
        self._watches: Dict[str, ObservedWatch] = {}
        self._started = False

    def add_archive(self, url: str, path: Path, callback: ArchiveEventCallback) -> None:
        normalized_path = path.expanduser().resolve()
        handler = ArchiveEventHandler(WatchedArchive(url=url, path=normalized_path, callback=callback))
        with self._lock:
            if url in self._watches:
                return
            self._watches[url] = self._observer.schedule(handler, str(normalized_path), recursive=True)

    def remove_archive(self, url: str) -> None:
        with self._lock:
            watch = self._watches.pop(url, None)
            if watch is not None:
                self._observer.unschedule(watch)

    def start(self) -> None:
        with self._lock:
            if self._started:
                return
            self._observer.start()
            self._started = True

    def stop(self) -> None:
        with self._lock:
            if not self._started:
                return
            self._observer.stop()
            self._observer.join(timeout=5)
            self._started = False

    def close(self) -> None:
        self.stop()
        with self._lock:
            self._observer.unschedule_all()
            self._watches.clear()


__all__ = ["ArchiveWatcher", "ArchiveEventHandler", "ArchiveEventCallback"]
