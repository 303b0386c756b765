"""Tests for the index engine, tables and queries."""

from __future__ import annotations

import asyncio
import shutil
from pathlib import Path
from typing import Any

import orjson
import pytest
import pytest_asyncio

from nexus.archive import LocalArchive
from nexus.core.errors import (
    ArchiveNotWritableError,
    QueryError,
    SourceNotFoundError,
    ValidationError,
)
from nexus.db.store import SortedStore
from nexus.index import IndexEngine
from nexus.schema import build_registry


def write_record(archive: LocalArchive, path: str, data: Any) -> None:
    target = archive.local_path / path.lstrip("/")
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(data if isinstance(data, bytes) else orjson.dumps(data))


def make_engine(db_path: Path, archives_dir: Path) -> IndexEngine:
    async def loader(url: str) -> LocalArchive:
        return await LocalArchive.load(url, root=archives_dir)

    return IndexEngine(SortedStore(db_path), build_registry(), archive_loader=loader)


@pytest_asyncio.fixture
async def engine(tmp_path: Path, archives_dir: Path):
    engine = make_engine(tmp_path / "engine.db", archives_dir)
    await engine.open()
    yield engine
    await engine.close()


@pytest_asyncio.fixture
async def archive(engine: IndexEngine, archives_dir: Path) -> LocalArchive:
    archive = await LocalArchive.create(title="Alice", root=archives_dir)
    await engine.add_source(archive, prepare=True)
    return archive


@pytest_asyncio.fixture
async def posts(engine: IndexEngine, archive: LocalArchive):
    table = engine.table("posts")
    for created, text in ((10, "A"), (20, "B"), (30, "C"), (40, "D")):
        await table.add(archive, {"text": text, "createdAt": created})
    return table


def texts(records) -> list[str]:
    return [record["text"] for record in records]


@pytest.mark.asyncio
async def test_scan_indexes_valid_files_and_skips_invalid(engine: IndexEngine, archives_dir: Path) -> None:
    archive = await LocalArchive.create(root=archives_dir)
    write_record(archive, "/bookmarks/good.json", {"href": "https://a.com", "tags": ["x"], "createdAt": 1})
    write_record(archive, "/bookmarks/broken.json", b"{not json")
    write_record(archive, "/bookmarks/nohref.json", {"title": "no href"})
    write_record(archive, "/bookmarks/list.json", [1, 2])
    write_record(archive, "/bookmarks/.hidden.json", {"href": "https://hidden.com"})
    write_record(archive, "/broadcasts/5.json", {"text": "legacy", "createdAt": 5})

    await engine.add_source(archive.url)

    bookmarks = await engine.table("bookmarks").to_list()
    assert [record["href"] for record in bookmarks] == ["https://a.com"]
    assert bookmarks[0]["_origin"] == archive.url
    assert bookmarks[0]["_url"] == archive.url + "/bookmarks/good.json"
    legacy = await engine.table("posts").to_list()
    assert legacy[0]["_url"].endswith("/broadcasts/5.json")


@pytest.mark.asyncio
async def test_ordering_and_pagination(posts) -> None:
    assert texts(await posts.order_by("createdAt").to_list()) == ["A", "B", "C", "D"]
    assert texts(await posts.order_by("createdAt").offset(1).limit(1).to_list()) == ["B"]
    assert texts(await posts.order_by("createdAt").reverse().offset(1).limit(1).to_list()) == ["C"]
    assert texts(await posts.order_by("createdAt").reverse().to_list()) == ["D", "C", "B", "A"]
    assert await posts.order_by("createdAt").limit(0).to_list() == []
    assert (await posts.order_by("createdAt").first())["text"] == "A"
    assert await posts.count() == 4


@pytest.mark.asyncio
async def test_where_clauses(posts) -> None:
    assert texts(await posts.where("createdAt").between(20, 40).to_list()) == ["B", "C"]
    assert texts(await posts.where("createdAt").between(20, 40, include_upper=True).to_list()) == ["B", "C", "D"]
    assert texts(await posts.where("createdAt").any_of(40, 10).to_list()) == ["A", "D"]
    assert texts(await posts.where("createdAt").any_of([30, 20]).to_list()) == ["B", "C"]
    assert await posts.where("createdAt").any_of().to_list() == []
    assert await posts.where("createdAt").any_of([]).count() == 0
    assert texts(await posts.where("createdAt").equals(30).to_list()) == ["C"]
    assert texts(await posts.query().filter(lambda record: record["text"] != "B").to_list()) == ["A", "C", "D"]
    assert await posts.where("createdAt").equals(99).first() is None


@pytest.mark.asyncio
async def test_compound_index_queries(posts, archive: LocalArchive) -> None:
    query = posts.where("_origin+createdAt").between([archive.url, 15], [archive.url, 35])
    assert texts(await query.to_list()) == ["B", "C"]
    with pytest.raises(QueryError):
        posts.where("_origin+createdAt").equals(archive.url)


@pytest.mark.asyncio
async def test_undeclared_index_fails_fast(posts) -> None:
    with pytest.raises(QueryError):
        posts.where("text")
    with pytest.raises(QueryError):
        posts.where("createdAt").equals(10).where("createdAt")


@pytest.mark.asyncio
async def test_each_awaits_coroutine_visitors(posts) -> None:
    seen: list[str] = []

    async def visit(record) -> None:
        await asyncio.sleep(0)
        seen.append(record["text"])

    await posts.order_by("createdAt").each(visit)
    assert seen == ["A", "B", "C", "D"]


@pytest.mark.asyncio
async def test_update_rewrites_records_and_files(posts, archive: LocalArchive) -> None:
    def lower_a(record):
        if record["text"] != "A":
            return None
        record["text"] = "a"
        return record

    assert await posts.query().update(lower_a) == 1
    assert await posts.where("createdAt").equals(20).update({"text": "b"}) == 1
    assert texts(await posts.order_by("createdAt").to_list()) == ["a", "b", "C", "D"]
    on_disk = orjson.loads((archive.local_path / "posts" / "10.json").read_bytes())
    assert on_disk == {"text": "a", "threadRoot": None, "threadParent": None, "createdAt": 10}


@pytest.mark.asyncio
async def test_delete_removes_records_and_files(posts, archive: LocalArchive) -> None:
    assert await posts.where("createdAt").equals(30).delete() == 1
    assert not (archive.local_path / "posts" / "30.json").exists()
    assert texts(await posts.order_by("createdAt").to_list()) == ["A", "B", "D"]


@pytest.mark.asyncio
async def test_validation_fails_before_any_write(posts, archive: LocalArchive) -> None:
    with pytest.raises(ValidationError):
        await posts.add(archive, {"text": "no timestamp"})
    assert len(list((archive.local_path / "posts").iterdir())) == 4


@pytest.mark.asyncio
async def test_multi_valued_index(engine: IndexEngine, archive: LocalArchive) -> None:
    bookmarks = engine.table("bookmarks")
    await bookmarks.add(archive, {"href": "https://a.com", "tags": ["news", "tech"]})
    await bookmarks.add(archive, {"href": "https://b.com", "tags": ["tech"]})
    await bookmarks.add(archive, {"href": "https://c.com"})
    hrefs = [record["href"] for record in await bookmarks.where("tags").equals("tech").to_list()]
    assert sorted(hrefs) == ["https://a.com", "https://b.com"]
    assert await bookmarks.where("tags").any_of("news", "tech").count() == 2
    assert bookmarks.index_keys("tags") == ["news", "tech", "tech"]
    assert bookmarks.index_keys("tags", unique=True) == ["news", "tech"]


@pytest.mark.asyncio
async def test_upsert_merges_and_add_replaces(engine: IndexEngine, archive: LocalArchive) -> None:
    bookmarks = engine.table("bookmarks")
    await bookmarks.add(archive, {"href": "https://a.com", "title": "A", "tags": ["x"]})
    await bookmarks.upsert(archive, {"href": "https://a.com", "notes": "n"})
    merged = await bookmarks.get(archive, "https!a.com")
    assert (merged["title"], merged["tags"], merged["notes"]) == ("A", ["x"], "n")
    await bookmarks.add(archive, {"href": "https://a.com"})
    replaced = await bookmarks.get(archive, "https!a.com")
    assert replaced["title"] is None and replaced["tags"] == []
    assert await bookmarks.count() == 1


@pytest.mark.asyncio
async def test_writes_require_a_writable_source(engine: IndexEngine, archives_dir: Path) -> None:
    stranger = await LocalArchive.create(root=archives_dir)
    with pytest.raises(SourceNotFoundError):
        await engine.table("posts").add(stranger, {"text": "x", "createdAt": 1})
    read_only = LocalArchive(stranger.key, archives_dir, writable=False)
    await engine.add_source(read_only)
    with pytest.raises(ArchiveNotWritableError):
        await engine.table("posts").add(read_only, {"text": "x", "createdAt": 1})


@pytest.mark.asyncio
async def test_remove_source_purges_every_index(posts, engine: IndexEngine, archive: LocalArchive) -> None:
    await engine.table("bookmarks").add(archive, {"href": "https://a.com", "tags": ["t"]})
    assert await engine.remove_source(archive) is True
    assert await engine.remove_source(archive) is False
    for table in engine.tables.values():
        assert table.records.count() == 0
        for spec in table.schema.indexes.values():
            assert table.index_namespace(spec).count() == 0
    assert engine.list_sources() == []


@pytest.mark.asyncio
async def test_concurrent_add_source_is_idempotent(engine: IndexEngine, archives_dir: Path) -> None:
    archive = await LocalArchive.create(root=archives_dir)
    first, second = await asyncio.gather(engine.add_source(archive.url), engine.add_source(archive.url))
    assert first is second
    assert [source.url for source in engine.list_sources()] == [archive.url]


@pytest.mark.asyncio
async def test_file_events_reindex(engine: IndexEngine, archive: LocalArchive) -> None:
    write_record(archive, "/posts/50.json", {"text": "live", "createdAt": 50})
    await engine.handle_file_event(archive.url, "/posts/50.json", deleted=False)
    assert texts(await engine.table("posts").to_list()) == ["live"]
    (archive.local_path / "posts" / "50.json").unlink()
    await engine.handle_file_event(archive.url, "/posts/50.json", deleted=True)
    assert await engine.table("posts").count() == 0


@pytest.mark.asyncio
async def test_stale_delete_event_keeps_rewritten_record(engine: IndexEngine, archive: LocalArchive) -> None:
    write_record(archive, "/posts/60.json", {"text": "kept", "createdAt": 60})
    await engine.handle_file_event(archive.url, "/posts/60.json", deleted=False)
    await engine.handle_file_event(archive.url, "/posts/60.json", deleted=True)
    assert texts(await engine.table("posts").to_list()) == ["kept"]


@pytest.mark.asyncio
async def test_watcher_indexes_files_written_on_disk(tmp_path: Path, archives_dir: Path) -> None:
    async def loader(url: str) -> LocalArchive:
        return await LocalArchive.load(url, root=archives_dir)

    engine = IndexEngine(SortedStore(tmp_path / "watched.db"), build_registry(), archive_loader=loader, watch=True)
    await engine.open()
    try:
        archive = await LocalArchive.create(title="Watched", root=archives_dir)
        await engine.add_source(archive, prepare=True)
        posts = engine.table("posts")
        write_record(archive, "/posts/70.json", {"text": "from disk", "createdAt": 70})
        for _ in range(100):
            if await posts.count():
                break
            await asyncio.sleep(0.05)
        assert texts(await posts.to_list()) == ["from disk"]

        (archive.local_path / "posts" / "70.json").unlink()
        for _ in range(100):
            if not await posts.count():
                break
            await asyncio.sleep(0.05)
        assert await posts.count() == 0
    finally:
        await engine.close()


@pytest.mark.asyncio
async def test_membership_survives_reopen(tmp_path: Path, archives_dir: Path) -> None:
    engine = make_engine(tmp_path / "persist.db", archives_dir)
    await engine.open()
    archive = await LocalArchive.create(root=archives_dir)
    await engine.add_source(archive, prepare=True)
    await engine.table("posts").add(archive, {"text": "kept", "createdAt": 1})
    await engine.close()

    engine = make_engine(tmp_path / "persist.db", archives_dir)
    await engine.open()
    try:
        assert engine.has_source(archive.url)
        assert texts(await engine.table("posts").to_list()) == ["kept"]
    finally:
        await engine.close()


@pytest.mark.asyncio
async def test_schema_version_change_rebuilds_indexes(tmp_path: Path, archives_dir: Path) -> None:
    engine = make_engine(tmp_path / "migrate.db", archives_dir)
    await engine.open()
    archive = await LocalArchive.create(root=archives_dir)
    await engine.add_source(archive, prepare=True)
    await engine.table("posts").add(archive, {"text": "kept", "createdAt": 1})
    await engine.close()

    store = SortedStore(tmp_path / "migrate.db")
    store.sublevel("_internal").sublevel("meta").put("schema_version", 1)
    store.sublevel("records").sublevel("posts").put("dat://stale/posts/9.json", {"text": "stale"})
    store.close()

    engine = make_engine(tmp_path / "migrate.db", archives_dir)
    await engine.open()
    try:
        assert texts(await engine.table("posts").to_list()) == ["kept"]
        assert engine.table("posts").records.get("dat://stale/posts/9.json") is None
        assert engine.internal.sublevel("meta").get("schema_version") == build_registry().version
    finally:
        await engine.close()


@pytest.mark.asyncio
async def test_missing_archive_is_dropped_on_reopen(tmp_path: Path, archives_dir: Path) -> None:
    engine = make_engine(tmp_path / "drop.db", archives_dir)
    await engine.open()
    archive = await LocalArchive.create(root=archives_dir)
    await engine.add_source(archive, prepare=True)
    await engine.table("posts").add(archive, {"text": "gone", "createdAt": 1})
    await engine.close()
    shutil.rmtree(archive.local_path)

    engine = make_engine(tmp_path / "drop.db", archives_dir)
    await engine.open()
    try:
        assert engine.list_sources() == []
        assert await engine.table("posts").count() == 0
    finally:
        await engine.close()
