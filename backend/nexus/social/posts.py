"""Posts (formerly broadcasts) and their reply threads."""

from __future__ import annotations

import asyncio
import math
from typing import Any

from nexus.core.errors import MissingParameterError
from nexus.index.query import Query
from nexus.schema import coerce
from nexus.schema.collections import POSTS
from nexus.social.context import Record, SocialBase, Viewer
from nexus.utils.time import monotonic_ms


class PostsMixin(SocialBase):
    @property
    def _posts(self):
        return self._table(POSTS)

    async def post(
        self,
        archive: Any,
        text: str | None = None,
        thread_root: Any = None,
        thread_parent: Any = None,
    ) -> str:
        """Write a post; a reply given only a parent is rooted at that parent."""
        text = coerce.string(text)
        if not text:
            raise MissingParameterError("Must provide text")
        parent = coerce.record_url(thread_parent) if thread_parent else None
        root = coerce.record_url(thread_root) if thread_root else parent
        return await self._posts.add(
            archive,
            {"text": text, "threadRoot": root, "threadParent": parent, "createdAt": monotonic_ms()},
        )

    def get_posts_query(
        self,
        author: Any = None,
        after: int | float | None = None,
        before: int | float | None = None,
        offset: int = 0,
        limit: int | None = None,
        reverse: bool = False,
    ) -> Query:
        if author:
            origin = coerce.archive_url(author)
            query = self._posts.where("_origin+createdAt").between(
                [origin, after or 0], [origin, before or math.inf]
            )
        elif after or before:
            query = self._posts.where("createdAt").between(after or 0, before or math.inf)
        else:
            query = self._posts.order_by("createdAt")
        return _paginate(query, offset, limit, reverse)

    def get_replies_query(
        self,
        thread_root: Any,
        offset: int = 0,
        limit: int | None = None,
        reverse: bool = False,
    ) -> Query:
        root_url = coerce.url(coerce.record_url(thread_root), required=True)
        return _paginate(self._posts.where("threadRoot").equals(root_url), offset, limit, reverse)

    async def list_posts(
        self,
        author: Any = None,
        after: int | float | None = None,
        before: int | float | None = None,
        offset: int = 0,
        limit: int | None = None,
        reverse: bool = False,
        fetch_author: bool = False,
        count_votes: bool = False,
        fetch_replies: bool = False,
        viewer: Viewer | None = None,
        query: Query | None = None,
    ) -> list[Record]:
        if query is None:
            query = self.get_posts_query(
                author=author, after=after, before=before, offset=offset, limit=limit, reverse=reverse
            )
        posts = await query.to_list()
        jobs = []
        if fetch_author:
            jobs.append(self._attach_authors(posts))
        if count_votes:
            jobs.extend(self._attach_votes(post, viewer) for post in posts)
        if fetch_replies:
            jobs.extend(self._attach_replies(post, count_votes, viewer) for post in posts)
        await asyncio.gather(*jobs)
        return posts

    async def count_posts(self, query: Query | None = None, **options: Any) -> int:
        query = query or self.get_posts_query(**options)
        return await query.count()

    async def get_post(self, record: Any, viewer: Viewer | None = None) -> Record | None:
        """Fetch a post with its author, votes and one level of replies."""
        url = coerce.record_url(record)
        post = await self._posts.get(url)
        if post is None:
            return None
        post["author"], post["votes"], _ = await asyncio.gather(
            self.get_profile(post["_origin"]),  # type: ignore[attr-defined]
            self.count_votes_for(url, viewer=viewer),  # type: ignore[attr-defined]
            self._attach_replies(post, True, viewer),
        )
        return post

    async def _attach_votes(self, post: Record, viewer: Viewer | None) -> None:
        post["votes"] = await self.count_votes_for(post["_url"], viewer=viewer)  # type: ignore[attr-defined]

    async def _attach_replies(self, post: Record, count_votes: bool, viewer: Viewer | None) -> None:
        post["replies"] = await self.list_posts(
            fetch_author=True,
            count_votes=count_votes,
            viewer=viewer,
            query=self.get_replies_query(post["_url"]),
        )

    # Pre-v2 names
    broadcast = post
    get_broadcasts_query = get_posts_query
    list_broadcasts = list_posts
    count_broadcasts = count_posts
    get_broadcast = get_post


def _paginate(query: Query, offset: int, limit: int | None, reverse: bool) -> Query:
    if offset:
        query = query.offset(offset)
    if limit is not None:
        query = query.limit(limit)
    if reverse:
        query = query.reverse()
    return query


__all__ = ["PostsMixin"]
