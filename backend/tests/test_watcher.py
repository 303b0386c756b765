"""Tests for the archive file watcher's event translation."""

from __future__ import annotations

from pathlib import Path

from nexus.archive.watcher import ArchiveEventHandler, WatchedArchive


def test_events_map_to_archive_paths(tmp_path: Path) -> None:
    root = (tmp_path / "archive").resolve()
    (root / "posts").mkdir(parents=True)
    seen: list[tuple[str, str, bool]] = []
    handler = ArchiveEventHandler(WatchedArchive(url="dat://k", path=root, callback=lambda *args: seen.append(args)))

    handler.dispatch_path(str(root / "posts" / "1.json"), deleted=False)
    handler.dispatch_path(str(root / "profile.json").encode(), deleted=True)
    handler.dispatch_path(str(tmp_path / "elsewhere.json"), deleted=False)

    assert seen == [("dat://k", "/posts/1.json", False), ("dat://k", "/profile.json", True)]
