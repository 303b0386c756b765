"""The social collections: profile, bookmarks, posts, published archives, votes."""

from __future__ import annotations

from typing import Any, Mapping

from nexus.schema import coerce
from nexus.schema.registry import CollectionSchema, Migration, SchemaRegistry
from nexus.utils.time import now_ms

SCHEMA_VERSION = 3

PROFILE = "profile"
BOOKMARKS = "bookmarks"
POSTS = "posts"
PUBLISHED_ARCHIVES = "published_archives"
VOTES = "votes"

MIGRATIONS = (
    Migration(1, "profile, bookmarks, broadcasts and votes keyed by subject"),
    Migration(2, "bookmarks gain tags and notes; broadcasts are stored as posts"),
    Migration(3, "votes keyed per author by subject slug; published archives directory"),
)


# profile ---------------------------------------------------------------


def _validate_profile(record: Mapping[str, Any]) -> dict[str, Any]:
    follows = coerce.follows(record.get("follows"))
    return {
        "name": coerce.string(record.get("name")),
        "bio": coerce.string(record.get("bio")),
        "avatar": coerce.path(record.get("avatar")),
        "follows": follows,
        "followUrls": [entry["url"] for entry in follows],
    }


def _profile_to_file(record: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "name": record.get("name"),
        "bio": record.get("bio"),
        "avatar": record.get("avatar"),
        "follows": record.get("follows") or [],
    }


# bookmarks -------------------------------------------------------------


def _validate_bookmark(record: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "href": coerce.string(record.get("href"), required=True),
        "title": coerce.string(record.get("title")),
        "tags": coerce.string_array(record.get("tags")),
        "notes": coerce.string(record.get("notes")),
        "createdAt": coerce.number(record.get("createdAt")) or now_ms(),
    }


def _bookmark_to_file(record: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "href": record["href"],
        "title": record.get("title"),
        "tags": record.get("tags") or [],
        "notes": record.get("notes"),
        "createdAt": record["createdAt"],
    }


# posts -----------------------------------------------------------------


def _validate_post(record: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "text": coerce.string(record.get("text")),
        "threadRoot": coerce.url(record.get("threadRoot")),
        "threadParent": coerce.url(record.get("threadParent")),
        "createdAt": coerce.number(record.get("createdAt"), required=True),
        "receivedAt": now_ms(),
    }


def _post_to_file(record: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "text": record.get("text"),
        "threadRoot": record.get("threadRoot"),
        "threadParent": record.get("threadParent"),
        "createdAt": record["createdAt"],
    }


# published archives ----------------------------------------------------


def _validate_published_archive(record: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "url": coerce.archive_url(record.get("url"), required=True),
        "title": coerce.string(record.get("title")),
        "description": coerce.string(record.get("description")),
        "type": coerce.string_array(record.get("type")),
        "createdAt": coerce.number(record.get("createdAt")) or now_ms(),
    }


def _published_archive_to_file(record: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "url": record["url"],
        "title": record.get("title"),
        "description": record.get("description"),
        "type": record.get("type") or [],
        "createdAt": record["createdAt"],
    }


# votes -----------------------------------------------------------------


def _validate_vote(record: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "subject": coerce.subject_url(record.get("subject"), required=True),
        "subjectType": coerce.string(record.get("subjectType")),
        "vote": coerce.vote(record.get("vote")),
        "createdAt": coerce.number(record.get("createdAt"), required=True),
    }


def _vote_to_file(record: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "subject": record["subject"],
        "subjectType": record.get("subjectType"),
        "vote": record["vote"],
        "createdAt": record["createdAt"],
    }


def _upgrade_vote(raw: dict[str, Any], path: str) -> dict[str, Any]:
    # v1 wrote subjects as "<key>:<path segments>" with the scheme removed
    subject = raw.get("subject")
    if isinstance(subject, str) and subject and "://" not in subject:
        raw = {**raw, "subject": "dat://" + subject.replace(":", "/")}
    return raw


def build_registry() -> SchemaRegistry:
    registry = SchemaRegistry(SCHEMA_VERSION, MIGRATIONS)
    registry.register(
        CollectionSchema(
            name=PROFILE,
            path="/profile.json",
            index=("*followUrls",),
            validator=_validate_profile,
            serializer=_profile_to_file,
        )
    )
    registry.register(
        CollectionSchema(
            name=BOOKMARKS,
            directory="/bookmarks",
            primary_key="id",
            key=lambda record: coerce.slug(record.get("href")),
            index=("_origin+href", "*tags", "createdAt"),
            validator=_validate_bookmark,
            serializer=_bookmark_to_file,
        )
    )
    registry.register(
        CollectionSchema(
            name=POSTS,
            directory="/posts",
            legacy_dirs=("/broadcasts",),
            primary_key="createdAt",
            key=lambda record: coerce.number(record.get("createdAt"), required=True),
            index=("_origin+createdAt", "threadRoot", "threadParent"),
            validator=_validate_post,
            serializer=_post_to_file,
        )
    )
    registry.register(
        CollectionSchema(
            name=PUBLISHED_ARCHIVES,
            directory="/published-archives",
            primary_key="id",
            key=lambda record: coerce.slug(coerce.archive_url(record.get("url"))),
            index=("_origin+url", "url", "*type", "createdAt"),
            validator=_validate_published_archive,
            serializer=_published_archive_to_file,
        )
    )
    registry.register(
        CollectionSchema(
            name=VOTES,
            directory="/votes",
            primary_key="id",
            key=lambda record: coerce.slug(coerce.subject_url(record.get("subject"))),
            index=("subject", "_origin+subject"),
            validator=_validate_vote,
            serializer=_vote_to_file,
            upgrade=_upgrade_vote,
        )
    )
    return registry


__all__ = [
    "SCHEMA_VERSION",
    "MIGRATIONS",
    "PROFILE",
    "BOOKMARKS",
    "POSTS",
    "PUBLISHED_ARCHIVES",
    "VOTES",
    "build_registry",
]
