"""The ``Nexus`` handle: opens the index and exposes the social API."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Iterable

from nexus.archive.base import Archive
from nexus.archive.local import LocalArchive
from nexus.core.config import Settings, get_settings
from nexus.core.errors import ProfileNotFoundError
from nexus.core.logging import get_logger, log_context
from nexus.db.store import SortedStore
from nexus.index.engine import ArchiveLoader, IndexEngine
from nexus.schema import build_registry, coerce
from nexus.social.bookmarks import BookmarksMixin
from nexus.social.context import ANONYMOUS, Viewer
from nexus.social.posts import PostsMixin
from nexus.social.profiles import ProfilesMixin
from nexus.social.published import PublishedArchivesMixin
from nexus.social.votes import VotesMixin

logger = get_logger(__name__)

DB_FILENAME = "index.db"


class Nexus(ProfilesMixin, BookmarksMixin, PostsMixin, PublishedArchivesMixin, VotesMixin):
    """Social index over a set of archives.

    Use ``await Nexus.open(...)`` (or ``async with await Nexus.open(...)``)
    rather than constructing it directly.
    """

    def __init__(self, engine: IndexEngine, settings: Settings, viewer: Viewer = ANONYMOUS) -> None:
        self.engine = engine
        self.settings = settings
        self.viewer = viewer
        self.home: Archive | None = None

    @classmethod
    async def open(
        cls,
        location: str | Path | None = None,
        home_archive: Any = None,
        settings: Settings | None = None,
        archive_loader: ArchiveLoader | None = None,
    ) -> "Nexus":
        """Open the index, then index the home archive before returning.

        ``location`` is a database file or a directory to hold one; it
        overrides ``settings.db_path``. Archives the home profile follows are
        indexed in the background.
        """
        settings = settings or get_settings()
        db_path = _db_path(location) if location is not None else settings.db_path
        if archive_loader is None:
            archives_dir = settings.archives_dir

            async def archive_loader(url: str) -> Archive:
                return await LocalArchive.load(url, root=archives_dir)

        engine = IndexEngine(
            SortedStore(db_path),
            build_registry(),
            archive_loader=archive_loader,
            watch=settings.watch_archives,
        )
        await engine.open()
        nexus = cls(engine, settings)
        home_archive = home_archive or settings.home_archive
        if home_archive:
            try:
                nexus.home = await engine.add_source(home_archive, prepare=True)
            except BaseException:
                await engine.close()
                raise
            nexus.viewer = Viewer(nexus.home.url)
            if settings.follow_on_open:
                engine.spawn(nexus._index_follows(nexus.home.url), name="index follows")
        logger.info("Opened index at %s (home=%s)", db_path, nexus.viewer.url)
        return nexus

    async def close(self, destroy: bool = False) -> None:
        await self.engine.close()
        if destroy:
            self.engine.store.destroy()
        logger.info("Closed index (destroy=%s)", destroy)

    async def __aenter__(self) -> "Nexus":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _index_follows(self, home_url: str) -> None:
        profile = await self.get_profile(home_url)
        if profile is None:
            return
        targets = profile.get("followUrls") or []
        results = await asyncio.gather(*(self.engine.add_source(url) for url in targets), return_exceptions=True)
        for url, result in zip(targets, results):
            if isinstance(result, BaseException):
                logger.warning("Could not index followed archive %s: %s", url, result, extra=log_context(source=url))

    # Source membership -----------------------------------------------

    async def add_archive(self, archive: Any) -> Archive:
        return await self.engine.add_source(archive, prepare=True)

    async def add_archives(self, archives: Iterable[Any]) -> list[Archive]:
        return await self.engine.add_sources(archives, prepare=True)

    async def remove_archive(self, archive: Any) -> bool:
        return await self.engine.remove_source(archive)

    def list_archives(self) -> list[Archive]:
        return self.engine.list_sources()

    async def prune_unfollowed_archives(self, home: Any = None) -> list[str]:
        """Remove every source the home profile no longer follows; never adds."""
        home_url = coerce.archive_url(home if home is not None else self.viewer.url)
        profile = await self.get_profile(home_url)
        if profile is None:
            raise ProfileNotFoundError(f"No profile record exists for {home_url}")
        keep = set(profile.get("followUrls") or []) | {home_url}
        removed: list[str] = []
        for archive in self.engine.list_sources():
            if archive.url not in keep:
                await self.engine.remove_source(archive.url)
                removed.append(archive.url)
        return removed


def _db_path(location: str | Path) -> Path:
    path = Path(location).expanduser()
    if path.is_dir() or not path.suffix:
        return path / DB_FILENAME
    return path


__all__ = ["Nexus", "DB_FILENAME"]
