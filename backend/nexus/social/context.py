"""Per-call viewer context and shared enrichment helpers."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable

if TYPE_CHECKING:
    from nexus.index.engine import IndexEngine
    from nexus.index.table import Table

Record = dict[str, Any]


@dataclass(frozen=True, slots=True)
class Viewer:
    """The identity a call is made on behalf of (e.g. for ``currentUsersVote``)."""

    url: str | None = None

    @property
    def anonymous(self) -> bool:
        return self.url is None


ANONYMOUS = Viewer()


class SocialBase:
    """State shared by the domain API mixins."""

    engine: "IndexEngine"
    viewer: Viewer

    def _table(self, name: str) -> "Table":
        return self.engine.table(name)

    def _viewer(self, viewer: Viewer | None) -> Viewer:
        return viewer if viewer is not None else self.viewer

    async def _attach_authors(self, records: Iterable[Record]) -> None:
        """Set ``author`` on each record, fetching each origin's profile once."""
        records = list(records)
        origins = sorted({record["_origin"] for record in records})
        profiles = await asyncio.gather(*(self.get_profile(origin) for origin in origins))  # type: ignore[attr-defined]
        by_origin = dict(zip(origins, profiles))
        for record in records:
            record["author"] = by_origin[record["_origin"]]


__all__ = ["Viewer", "ANONYMOUS", "SocialBase", "Record"]
