"""Profiles and the follow graph."""

from __future__ import annotations

import asyncio
from typing import Any, Mapping

from nexus.core.errors import ProfileNotFoundError
from nexus.core.logging import get_logger
from nexus.index.query import Query
from nexus.schema import coerce
from nexus.schema.collections import PROFILE
from nexus.social.context import Record, SocialBase

logger = get_logger(__name__)


class ProfilesMixin(SocialBase):
    @property
    def _profiles(self):
        return self._table(PROFILE)

    async def get_profile(self, archive: Any) -> Record | None:
        return await self._profiles.get(coerce.archive_url(archive))

    async def set_profile(self, archive: Any, profile: Mapping[str, Any]) -> str:
        """Merge ``profile`` into the archive's profile; a name also retitles the archive."""
        profile = coerce.mapping(profile, required=True)
        url = await self._profiles.upsert(archive, profile)
        if "name" in profile:
            title = coerce.string(profile.get("name")) or "anonymous"
            await self.engine.writable_archive(archive).configure(title=f"User: {title}")
        return url

    async def set_avatar(self, archive: Any, data: bytes, extension: str) -> str:
        target = self.engine.writable_archive(archive)
        filename = f"avatar.{extension.lstrip('.')}"
        await target.write_file(f"/{filename}", data)
        return await self._profiles.upsert(target, {"avatar": filename})

    # Follow graph ----------------------------------------------------

    async def follow(self, archive: Any, target: Any, name: str | None = None) -> None:
        """Add ``target`` to the archive's follows, then index it as a source."""
        archive_url = coerce.archive_url(archive)
        target_url = coerce.archive_url(target)

        def add_follow(record: Record) -> Record:
            follows = list(record.get("follows") or [])
            if not any(entry.get("url") == target_url for entry in follows):
                follows.append({"url": target_url, "name": coerce.string(name)})
            record["follows"] = follows
            return record

        changes = await self._profiles.where("_origin").equals(archive_url).update(add_follow)
        if changes == 0:
            raise ProfileNotFoundError(
                "Failed to follow: no profile record exists. Run set_profile() before follow()."
            )
        await self.engine.add_source(target)

    async def unfollow(self, archive: Any, target: Any) -> None:
        """Drop ``target`` from the archive's follows, then stop indexing it."""
        archive_url = coerce.archive_url(archive)
        target_url = coerce.archive_url(target)

        def drop_follow(record: Record) -> Record:
            record["follows"] = [entry for entry in record.get("follows") or [] if entry.get("url") != target_url]
            return record

        changes = await self._profiles.where("_origin").equals(archive_url).update(drop_follow)
        if changes == 0:
            raise ProfileNotFoundError(
                "Failed to unfollow: no profile record exists. Run set_profile() before unfollow()."
            )
        await self.engine.remove_source(target_url)

    def get_followers_query(self, archive: Any) -> Query:
        return self._profiles.where("followUrls").equals(coerce.archive_url(archive))

    async def list_followers(self, archive: Any) -> list[Record]:
        return await self.get_followers_query(archive).to_list()

    async def count_followers(self, archive: Any) -> int:
        return await self.get_followers_query(archive).count()

    async def is_following(self, archive_a: Any, archive_b: Any) -> bool:
        profile = await self.get_profile(archive_a)
        if profile is None:
            return False
        return coerce.archive_url(archive_b) in profile.get("followUrls", [])

    async def list_friends(self, archive: Any) -> list[Record]:
        """Followers of ``archive`` that it follows back."""
        followers = await self.list_followers(archive)
        follows_back = await asyncio.gather(
            *(self.is_following(archive, follower["_origin"]) for follower in followers)
        )
        return [follower for follower, mutual in zip(followers, follows_back) if mutual]

    async def count_friends(self, archive: Any) -> int:
        return len(await self.list_friends(archive))

    async def is_friends_with(self, archive_a: Any, archive_b: Any) -> bool:
        a_follows_b, b_follows_a = await asyncio.gather(
            self.is_following(archive_a, archive_b),
            self.is_following(archive_b, archive_a),
        )
        return a_follows_b and b_follows_a


__all__ = ["ProfilesMixin"]
