"""Index engine: source membership, archive scanning, and live re-indexing."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Iterable

import orjson

from nexus.archive.base import Archive
from nexus.archive.watcher import ArchiveWatcher
from nexus.core.errors import (
    ArchiveNotFoundError,
    ArchiveNotWritableError,
    SourceNotFoundError,
    ValidationError,
)
from nexus.core.logging import get_logger, log_context
from nexus.core.metrics import INVALID_RECORDS, SOURCES
from nexus.db.store import SortedStore
from nexus.index.table import Table
from nexus.schema import coerce
from nexus.schema.registry import ORIGIN, SchemaRegistry
from nexus.utils.time import now_ms

logger = get_logger(__name__)

ArchiveLoader = Callable[[str], Awaitable[Archive]]


class IndexEngine:
    """Maintain one table per collection over the union of source archives."""

    def __init__(
        self,
        store: SortedStore,
        registry: SchemaRegistry,
        archive_loader: ArchiveLoader | None = None,
        watch: bool = False,
    ) -> None:
        self.store = store
        self.registry = registry
        self.archive_loader = archive_loader
        self.records_namespace = store.sublevel("records")
        self.indexes_namespace = store.sublevel("index")
        self.internal = store.sublevel("_internal")
        self._sources_ns = self.internal.sublevel("sources")
        self._meta = self.internal.sublevel("meta")
        self.tables: dict[str, Table] = {schema.name: Table(self, schema) for schema in registry}
        self._sources: dict[str, Archive] = {}
        self._adding: dict[str, asyncio.Task[Archive]] = {}
        self._background: set[asyncio.Task[Any]] = set()
        self._watcher = ArchiveWatcher() if watch else None
        self._loop: asyncio.AbstractEventLoop | None = None

    def table(self, name: str) -> Table:
        self.registry.get(name)
        return self.tables[name]

    # Lifecycle -------------------------------------------------------

    async def open(self) -> None:
        self._loop = asyncio.get_running_loop()
        self.store.connect()
        self._apply_migrations()
        if self._watcher is not None:
            self._watcher.start()
        await self._restore_sources()

    async def close(self) -> None:
        pending = list(self._background) + list(self._adding.values())
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._background.clear()
        self._adding.clear()
        if self._watcher is not None:
            self._watcher.close()
        self._sources.clear()
        SOURCES.set(0)
        self.store.close()

    def spawn(self, coro: Awaitable[Any], name: str | None = None) -> asyncio.Task[Any]:
        """Run ``coro`` in the background; the task is cancelled on close."""
        task = asyncio.ensure_future(coro)
        if name:
            task.set_name(name)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def _apply_migrations(self) -> None:
        stored = self._meta.get("schema_version")
        if stored == self.registry.version:
            return
        steps = self.registry.pending(stored)
        for step in steps:
            logger.info("Applying schema migration v%s: %s", step.version, step.description)
        if stored is not None and any(step.rebuild for step in steps):
            logger.info("Rebuilding derived indexes (v%s -> v%s)", stored, self.registry.version)
            self.records_namespace.clear()
            self.indexes_namespace.clear()
        self._meta.put("schema_version", self.registry.version)

    async def _restore_sources(self) -> None:
        for raw in self._sources_ns.keys():
            url = raw.decode("utf-8")
            try:
                await self.add_source(url)
            except (ArchiveNotFoundError, OSError) as exc:
                logger.warning("Dropping source %s: %s", url, exc, extra=log_context(source=url))
                await self.remove_source(url)

    # Source membership -----------------------------------------------

    async def add_source(self, ref: Any, prepare: bool = False) -> Archive:
        """Index an archive; resolves once its existing records are queryable."""
        url = coerce.archive_url(ref)
        if url in self._sources:
            archive = self._sources[url]
            if prepare:
                await self._prepare(archive)
            return archive
        pending = self._adding.get(url)
        if pending is not None:
            return await pending
        task = asyncio.ensure_future(self._add_source(ref, prepare))
        self._adding[url] = task
        try:
            return await task
        finally:
            self._adding.pop(url, None)

    async def add_sources(self, refs: Iterable[Any], prepare: bool = False) -> list[Archive]:
        return list(await asyncio.gather(*(self.add_source(ref, prepare=prepare) for ref in refs)))

    async def _add_source(self, ref: Any, prepare: bool) -> Archive:
        archive = await self._resolve_archive(ref)
        if prepare:
            await self._prepare(archive)
        self._sources[archive.url] = archive
        self._sources_ns.put(archive.url, {"url": archive.url, "addedAt": now_ms()})
        SOURCES.set(len(self._sources))
        if self._watcher is not None and archive.local_path is not None:
            self._watcher.add_archive(archive.url, archive.local_path, self._on_file_event)
        try:
            indexed = await self._scan(archive)
        except BaseException:
            self._forget(archive.url)
            raise
        logger.info(
            "Indexed source %s (%s records)", archive.url, indexed, extra=log_context(source=archive.url, records=indexed)
        )
        return archive

    async def remove_source(self, ref: Any) -> bool:
        """Stop indexing an archive and drop every record it contributed."""
        url = coerce.archive_url(ref)
        pending = self._adding.get(url)
        if pending is not None:
            await asyncio.gather(pending, return_exceptions=True)
        was_source = url in self._sources
        removed = self._forget(url)
        logger.info("Removed source %s (%s records)", url, removed, extra=log_context(source=url, records=removed))
        return was_source

    def _forget(self, url: str) -> int:
        self._sources.pop(url, None)
        self._sources_ns.delete(url)
        SOURCES.set(len(self._sources))
        if self._watcher is not None:
            self._watcher.remove_archive(url)
        return sum(table.purge_origin(url) for table in self.tables.values())

    def list_sources(self) -> list[Archive]:
        return list(self._sources.values())

    def has_source(self, ref: Any) -> bool:
        return coerce.archive_url(ref) in self._sources

    def get_source(self, ref: Any) -> Archive | None:
        return self._sources.get(coerce.archive_url(ref))

    def writable_archive(self, ref: Any) -> Archive:
        """Return the source archive behind ``ref``, checking it accepts writes."""
        url = coerce.archive_url(ref)
        archive = self._sources.get(url)
        if archive is None:
            raise SourceNotFoundError(f"{url} is not an indexed source")
        if not archive.writable:
            raise ArchiveNotWritableError(f"Archive {archive.url} is not writable")
        return archive

    async def _resolve_archive(self, ref: Any) -> Archive:
        if isinstance(ref, Archive):
            return ref
        url = coerce.archive_url(ref)
        if self.archive_loader is None:
            raise ArchiveNotFoundError(f"Cannot open {url}: no archive loader configured")
        return await self.archive_loader(url)

    async def _prepare(self, archive: Archive) -> None:
        if not archive.writable:
            return
        for schema in self.registry:
            if not schema.singular:
                await archive.mkdir(schema.directory)

    # Scanning --------------------------------------------------------

    async def _scan(self, archive: Archive) -> int:
        seen: dict[str, set[str]] = {name: set() for name in self.tables}
        for table in self.tables.values():
            for path in await self._record_paths(archive, table):
                url = await self.index_file(archive, path, table)
                if url is not None:
                    seen[table.name].add(url)
        for table in self.tables.values():
            table.purge_origin(archive.url, keep=seen[table.name])
        return sum(len(urls) for urls in seen.values())

    async def _record_paths(self, archive: Archive, table: Table) -> list[str]:
        schema = table.schema
        if schema.singular:
            try:
                await archive.stat(schema.path)
            except FileNotFoundError:
                return []
            return [schema.path]
        paths: list[str] = []
        for directory in schema.directories():
            for name in await archive.readdir(directory):
                path = f"{directory}/{name}"
                if schema.owns_path(path):
                    paths.append(path)
        return paths

    async def index_file(self, archive: Archive, path: str, table: Table | None = None) -> str | None:
        """Read, validate and index one record file; invalid files are skipped."""
        table = table or self._table_for_path(path)
        if table is None:
            return None
        url = archive.url + path
        try:
            raw = await archive.read_file(path, encoding=None)
        except FileNotFoundError:
            table.unindex(url)
            return None
        try:
            data = orjson.loads(raw)
            if not isinstance(data, dict):
                raise ValidationError("Record file must hold a JSON object")
            if table.schema.upgrade is not None:
                data = table.schema.upgrade(data, path)
            record = table.schema.validate(data)
        except (orjson.JSONDecodeError, ValidationError) as exc:
            INVALID_RECORDS.labels(collection=table.name).inc()
            logger.warning(
                "Skipping invalid record %s: %s", url, exc, extra=log_context(source=archive.url, collection=table.name)
            )
            table.unindex(url)
            return None
        table.store({**record, ORIGIN: archive.url, "_url": url})
        return url

    def _table_for_path(self, path: str) -> Table | None:
        schema = self.registry.for_path(path)
        return self.tables[schema.name] if schema is not None else None

    # Live updates ----------------------------------------------------

    def _on_file_event(self, url: str, path: str, deleted: bool) -> None:
        # called from the watchdog thread
        if self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._schedule_file_event, url, path, deleted)

    def _schedule_file_event(self, url: str, path: str, deleted: bool) -> None:
        self.spawn(self.handle_file_event(url, path, deleted), name=f"reindex {url}{path}")

    async def handle_file_event(self, url: str, path: str, deleted: bool) -> None:
        archive = self._sources.get(url)
        table = self._table_for_path(path)
        if archive is None or table is None:
            return
        # the file on disk decides, whatever the event kind; a missing file is unindexed
        await self.index_file(archive, path, table)
        logger.debug("Re-indexed %s%s (deleted=%s)", url, path, deleted, extra=log_context(source=url, collection=table.name))


__all__ = ["IndexEngine", "ArchiveLoader"]
