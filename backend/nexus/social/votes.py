"""Votes and vote tallies."""

from __future__ import annotations

from typing import Any

from nexus.index.query import Query
from nexus.schema import coerce
from nexus.schema.collections import VOTES
from nexus.social.context import Record, SocialBase, Viewer
from nexus.utils.time import now_ms


class VotesMixin(SocialBase):
    @property
    def _votes(self):
        return self._table(VOTES)

    async def vote(self, archive: Any, vote: Any, subject: Any, subject_type: str | None = None) -> str:
        """Cast (or replace) the archive's vote on ``subject``; the value is clamped to -1, 0 or 1."""
        subject_url = coerce.subject_url(subject, required=True)
        return await self._votes.add(
            archive,
            {
                "vote": coerce.vote(vote),
                "subject": subject_url,
                "subjectType": coerce.string(subject_type),
                "createdAt": now_ms(),
            },
        )

    def get_votes_query(self, subject: Any) -> Query:
        return self._votes.where("subject").equals(coerce.subject_url(subject, required=True))

    async def list_votes(self, subject: Any) -> list[Record]:
        return await self.get_votes_query(subject).to_list()

    async def count_votes_for(self, subject: Any, viewer: Viewer | None = None) -> dict[str, Any]:
        """Tally the votes on ``subject`` in one pass.

        ``down`` counts -1 votes (it is never negative); ``value`` is the sum
        of all polarities; ``currentUsersVote`` is the viewer's own vote.
        """
        viewer = self._viewer(viewer)
        tally: dict[str, Any] = {"up": 0, "down": 0, "value": 0, "upVoters": [], "currentUsersVote": 0}

        def add(record: Record) -> None:
            value = record["vote"]
            tally["value"] += value
            if value == 1:
                tally["up"] += 1
                tally["upVoters"].append(record["_origin"])
            elif value == -1:
                tally["down"] += 1
            if viewer.url is not None and record["_origin"] == viewer.url:
                tally["currentUsersVote"] = value

        await self.get_votes_query(subject).each(add)
        return tally

    count_votes = count_votes_for


__all__ = ["VotesMixin"]
