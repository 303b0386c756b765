"""Bookmarks, tags and pins.

Pins live in their own namespace keyed by the raw href rather than in the
bookmark records: a pin is global, while bookmarks belong to one author.
"""

from __future__ import annotations

import asyncio
from typing import Any, Iterable

from nexus.core.errors import MissingParameterError, NexusError
from nexus.core.logging import get_logger
from nexus.db.store import Namespace
from nexus.index.query import Query
from nexus.schema import coerce
from nexus.schema.collections import BOOKMARKS
from nexus.social.context import Record, SocialBase

logger = get_logger(__name__)


class BookmarksMixin(SocialBase):
    @property
    def _bookmarks(self):
        return self._table(BOOKMARKS)

    @property
    def _pins(self) -> Namespace:
        return self.engine.internal.sublevel("pins")

    async def bookmark(
        self,
        archive: Any,
        href: str,
        title: str | None = None,
        tags: str | Iterable[str] | None = None,
        notes: str | None = None,
    ) -> str:
        """Create or update the archive's bookmark of ``href``; omitted fields keep their value."""
        href = coerce.string(href)
        if not href:
            raise MissingParameterError("Must provide bookmark URL")
        record: dict[str, Any] = {"href": href}
        if title is not None:
            record["title"] = coerce.string(title)
        if tags is not None:
            record["tags"] = coerce.string_array(list(tags) if not isinstance(tags, str) else tags)
        if notes is not None:
            record["notes"] = coerce.string(notes)
        return await self._bookmarks.upsert(archive, record)

    async def unbookmark(self, archive: Any, href: str) -> None:
        origin = coerce.archive_url(archive)
        await self._bookmarks.where("_origin+href").equals([origin, href]).delete()
        await self.set_bookmark_pinned(href, False)

    def get_bookmarks_query(
        self,
        author: Any = None,
        tag: str | Iterable[str] | None = None,
        offset: int = 0,
        limit: int | None = None,
        reverse: bool = False,
    ) -> Query:
        query = self._bookmarks.query()
        tags = coerce.string_array(list(tag) if tag is not None and not isinstance(tag, str) else tag)
        authors = _author_urls(author)
        if tags:
            query = query.where("tags").equals(tags[0])
            if len(tags) > 1:
                query = query.filter(lambda record: all(item in record.get("tags", []) for item in tags))
            if authors is not None:
                query = query.filter(lambda record: record["_origin"] in authors)
        elif authors is not None and len(authors) == 1:
            query = query.where("_origin").equals(authors[0])
        elif authors is not None:
            query = query.where("_origin").any_of(*authors)
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        if reverse:
            query = query.reverse()
        return query

    async def list_bookmarks(
        self,
        author: Any = None,
        tag: str | Iterable[str] | None = None,
        offset: int = 0,
        limit: int | None = None,
        reverse: bool = False,
        fetch_author: bool = False,
    ) -> list[Record]:
        query = self.get_bookmarks_query(author=author, tag=tag, offset=offset, limit=limit, reverse=reverse)
        bookmarks = await query.to_list()
        pinned = await asyncio.gather(*(self.is_bookmark_pinned(item["href"]) for item in bookmarks))
        for item, is_pinned in zip(bookmarks, pinned):
            item["pinned"] = is_pinned
        if fetch_author:
            await self._attach_authors(bookmarks)
        return bookmarks

    async def get_bookmark(self, archive: Any, href: str) -> Record | None:
        origin = coerce.archive_url(archive)
        record = await self._bookmarks.where("_origin+href").equals([origin, href]).first()
        if record is None:
            return None
        record["pinned"] = await self.is_bookmark_pinned(href)
        record["author"] = await self.get_profile(origin)
        return record

    async def is_bookmarked(self, archive: Any, href: str) -> bool:
        origin = coerce.archive_url(archive)
        return await self._bookmarks.where("_origin+href").equals([origin, href]).first() is not None

    async def list_bookmark_tags(self) -> list[str]:
        """Distinct tags across every indexed bookmark, in sorted order."""
        return self._bookmarks.index_keys("tags", unique=True)

    async def count_bookmark_tags(self) -> dict[str, int]:
        """How many bookmarks carry each tag."""
        return dict(self._bookmarks.count_index_keys("tags"))

    # Pins ------------------------------------------------------------

    async def is_bookmark_pinned(self, href: str) -> bool:
        return bool(self._pins.get(href, False))

    async def set_bookmark_pinned(self, href: str, pinned: bool) -> None:
        if pinned:
            self._pins.put(href, True)
        else:
            self._pins.delete(href)

    async def list_pinned_bookmarks(self, archive: Any) -> list[Record]:
        """Pinned hrefs resolved to ``archive``'s bookmarks; unresolved pins are skipped."""
        origin = coerce.archive_url(archive)
        results: list[Record] = []
        for raw in self._pins.keys():
            href = raw.decode("utf-8")
            try:
                record = await self.get_bookmark(origin, href)
            except NexusError as exc:
                logger.debug("Skipping pin %s: %s", href, exc)
                continue
            if record is not None:
                results.append(record)
        return results


def _author_urls(author: Any) -> list[str] | None:
    # an empty sequence selects no authors; None (or "") selects all of them
    if isinstance(author, (list, tuple, set)):
        return [coerce.archive_url(item) for item in author]
    if not author:
        return None
    return [coerce.archive_url(author)]


__all__ = ["BookmarksMixin"]
