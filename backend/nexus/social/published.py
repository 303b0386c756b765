"""Directory of published archives."""

from __future__ import annotations

import asyncio
from typing import Any, Mapping

from nexus.archive.base import Archive
from nexus.index.query import Query
from nexus.schema import coerce
from nexus.schema.collections import PUBLISHED_ARCHIVES
from nexus.social.context import Record, SocialBase, Viewer


class PublishedArchivesMixin(SocialBase):
    @property
    def _published_archives(self):
        return self._table(PUBLISHED_ARCHIVES)

    async def publish_archive(
        self,
        archive: Any,
        target: Any,
        title: str | None = None,
        description: str | None = None,
        type: str | list[str] | None = None,
    ) -> str:
        """List ``target`` in the archive's directory.

        ``target`` is a live archive (its current title, description and type
        are read) or a descriptor with at least a ``url``. Keyword arguments
        override either.
        """
        if isinstance(target, Archive):
            info = await target.get_info()
            record: dict[str, Any] = {
                "url": target.url,
                "title": info.title,
                "description": info.description,
                "type": info.type,
            }
        elif isinstance(target, Mapping):
            record = {key: target.get(key) for key in ("url", "title", "description", "type") if key in target}
        else:
            record = {"url": coerce.archive_url(target)}
        if title is not None:
            record["title"] = title
        if description is not None:
            record["description"] = description
        if type is not None:
            record["type"] = type
        return await self._published_archives.upsert(archive, record)

    async def unpublish_archive(self, archive: Any, target: Any) -> int:
        origin = coerce.archive_url(archive)
        target_url = coerce.archive_url(target)
        return await self._published_archives.where("_origin+url").equals([origin, target_url]).delete()

    def get_published_archives_query(
        self,
        author: Any = None,
        type: str | None = None,
        offset: int = 0,
        limit: int | None = None,
        reverse: bool = False,
    ) -> Query:
        table = self._published_archives
        if type:
            query = table.where("type").equals(type)
            if author:
                origin = coerce.archive_url(author)
                query = query.filter(lambda record: record["_origin"] == origin)
        elif author:
            query = table.where("_origin").equals(coerce.archive_url(author))
        else:
            query = table.order_by("createdAt")
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        if reverse:
            query = query.reverse()
        return query

    async def list_published_archives(
        self,
        author: Any = None,
        type: str | None = None,
        offset: int = 0,
        limit: int | None = None,
        reverse: bool = False,
        fetch_author: bool = False,
        count_votes: bool = False,
        viewer: Viewer | None = None,
    ) -> list[Record]:
        query = self.get_published_archives_query(author=author, type=type, offset=offset, limit=limit, reverse=reverse)
        entries = await query.to_list()
        jobs = []
        if fetch_author:
            jobs.append(self._attach_authors(entries))
        if count_votes:
            jobs.extend(self._attach_archive_votes(entry, viewer) for entry in entries)
        await asyncio.gather(*jobs)
        return entries

    async def count_published_archives(self, author: Any = None, type: str | None = None) -> int:
        return await self.get_published_archives_query(author=author, type=type).count()

    async def get_published_archive(self, record: Any, viewer: Viewer | None = None) -> Record | None:
        entry = await self._published_archives.get(coerce.record_url(record))
        if entry is None:
            return None
        await asyncio.gather(self._attach_authors([entry]), self._attach_archive_votes(entry, viewer))
        return entry

    async def _attach_archive_votes(self, entry: Record, viewer: Viewer | None) -> None:
        # votes target the published archive itself, not the directory entry
        entry["votes"] = await self.count_votes_for(entry["url"], viewer=viewer)  # type: ignore[attr-defined]


__all__ = ["PublishedArchivesMixin"]
