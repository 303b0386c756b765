"""Tests for collection schemas and the registry."""

from __future__ import annotations

import pytest

from nexus.core.errors import QueryError, SchemaError, ValidationError
from nexus.schema import CollectionSchema, IndexSpec, Migration, SchemaRegistry, build_registry
from nexus.schema.collections import BOOKMARKS, POSTS, PROFILE, SCHEMA_VERSION, VOTES


def _identity(record):
    return dict(record)


def test_index_spec_parsing() -> None:
    multi = IndexSpec.parse("*tags")
    assert multi.multi and multi.name == "tags"
    compound = IndexSpec.parse("_origin+href")
    assert compound.compound and compound.fields == ("_origin", "href")
    with pytest.raises(SchemaError):
        IndexSpec.parse("*a+b")
    with pytest.raises(SchemaError):
        IndexSpec.parse("a+")


def test_multi_index_entries_are_unique_per_value() -> None:
    spec = IndexSpec.parse("*tags")
    assert spec.entries({"tags": ["a", "b", "a"]}) == [("a",), ("b",)]
    assert spec.entries({}) == []
    assert IndexSpec.parse("_origin+href").entries({"_origin": "dat://x"}) == []


def test_implicit_indexes_are_declared() -> None:
    registry = build_registry()
    bookmarks = registry.get(BOOKMARKS)
    assert {"_origin", "id", "_origin+id", "_origin+href", "tags", "createdAt"} <= set(bookmarks.indexes)
    assert registry.get(PROFILE).singular
    with pytest.raises(QueryError):
        bookmarks.get_index("nope")
    with pytest.raises(SchemaError):
        registry.get("comments")


def test_registry_rejects_conflicting_field_shapes() -> None:
    registry = SchemaRegistry(1)
    registry.register(
        CollectionSchema(name="a", path="/a.json", index=("*tags",), validator=_identity, serializer=_identity)
    )
    with pytest.raises(SchemaError):
        registry.register(
            CollectionSchema(name="b", path="/b.json", index=("tags",), validator=_identity, serializer=_identity)
        )
    with pytest.raises(SchemaError):
        registry.register(
            CollectionSchema(name="a", path="/c.json", validator=_identity, serializer=_identity)
        )


def test_keyed_collection_requires_key_function() -> None:
    with pytest.raises(SchemaError):
        CollectionSchema(name="x", directory="/x", validator=_identity, serializer=_identity)


def test_paths_route_to_collections() -> None:
    registry = build_registry()
    assert registry.for_path("/profile.json").name == PROFILE
    assert registry.for_path("/posts/12.json").name == POSTS
    assert registry.for_path("/broadcasts/12.json").name == POSTS
    assert registry.for_path("/votes/.x.json.tmp") is None
    assert registry.for_path("/notes/1.json") is None


def test_bookmark_validation_derives_id() -> None:
    schema = build_registry().get(BOOKMARKS)
    record = schema.validate({"href": "https://beakerbrowser.com/docs", "_origin": "dat://x", "_url": "dat://x/y"})
    assert record["id"] == "https!beakerbrowser.com!docs"
    assert "_origin" not in record
    assert schema.record_path(record) == "/bookmarks/https!beakerbrowser.com!docs.json"
    with pytest.raises(ValidationError):
        schema.validate({"title": "no href"})


def test_profile_serializer_drops_derived_fields() -> None:
    schema = build_registry().get(PROFILE)
    record = schema.validate({"name": "Alice", "follows": ["ab" * 32]})
    assert record["followUrls"] == ["dat://" + "ab" * 32]
    assert "followUrls" not in schema.serialize(record)


def test_legacy_vote_subjects_are_upgraded() -> None:
    schema = build_registry().get(VOTES)
    raw = schema.upgrade({"subject": "abc:posts:1.json", "vote": 1, "createdAt": 1}, "/votes/x.json")
    assert schema.validate(raw)["subject"] == "dat://abc/posts/1.json"


def test_pending_migrations() -> None:
    registry = build_registry()
    assert registry.version == SCHEMA_VERSION
    assert [step.version for step in registry.pending(None)] == [1, 2, 3]
    assert [step.version for step in registry.pending(1)] == [2, 3]
    assert registry.pending(SCHEMA_VERSION) == []
    assert Migration(4, "noop", rebuild=False).rebuild is False
