"""One indexed table per collection, spanning every source archive."""

from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING, Any, Mapping

import orjson

from nexus.core.errors import ValidationError
from nexus.core.logging import get_logger
from nexus.core.metrics import RECORDS_INDEXED
from nexus.db.keys import decode_key, encode_key, prefix_range
from nexus.db.store import Namespace
from nexus.index.query import Query, Record, WhereClause
from nexus.schema import coerce
from nexus.schema.registry import ORIGIN, CollectionSchema, IndexSpec

if TYPE_CHECKING:
    from nexus.archive.base import Archive
    from nexus.index.engine import IndexEngine

logger = get_logger(__name__)


class Table:
    """Validated records of one collection plus their secondary indexes."""

    def __init__(self, engine: "IndexEngine", schema: CollectionSchema) -> None:
        self.engine = engine
        self.schema = schema
        self.name = schema.name
        self.records: Namespace = engine.records_namespace.sublevel(schema.name)
        self.indexes: Namespace = engine.indexes_namespace.sublevel(schema.name)

    def index_namespace(self, index: IndexSpec) -> Namespace:
        return self.indexes.sublevel(index.name)

    # Query entry points ----------------------------------------------

    def query(self) -> Query:
        return Query(self)

    def where(self, field: str) -> WhereClause:
        return Query(self).where(field)

    def order_by(self, field: str) -> Query:
        return Query(self).order_by(field)

    async def to_list(self) -> list[Record]:
        return await Query(self).to_list()

    async def count(self) -> int:
        return self.records.count()

    async def get(self, ref: Any, key: Any = None) -> Record | None:
        """Fetch one record.

        Singular collections take an archive reference. Keyed collections
        take a record URL, or an archive reference plus the primary key.
        """
        if self.schema.singular:
            origin = coerce.archive_url(ref)
            return self.load(origin + self.schema.path)
        if key is None:
            return self.load(coerce.record_url(ref))
        return self._find(coerce.archive_url(ref), key)

    def index_keys(self, field: str, unique: bool = False) -> list[Any]:
        """Index values in index order, one per entry (or per distinct value)."""
        spec = self.schema.get_index(field)
        values: list[Any] = []
        for raw in self.index_namespace(spec).keys():
            decoded = decode_key(raw)[:-1]
            value = decoded if spec.compound else decoded[0]
            if unique and values and values[-1] == value:
                continue
            values.append(value)
        return values

    def count_index_keys(self, field: str) -> Counter:
        return Counter(self.index_keys(field))

    # Writes ----------------------------------------------------------

    async def add(self, archive: Any, record: Mapping[str, Any]) -> str:
        """Validate ``record`` and write it, replacing any prior version."""
        target = self.engine.writable_archive(archive)
        validated = self.schema.validate(record)
        previous = self._existing(target.url, validated)
        return await self._write(target, validated, previous)

    put = add

    async def upsert(self, archive: Any, record: Mapping[str, Any]) -> str:
        """Merge ``record`` over the stored version (if any), then validate and write."""
        target = self.engine.writable_archive(archive)
        previous = None
        if self.schema.singular:
            previous = self.load(target.url + self.schema.path)
        else:
            try:
                key = self.schema.key_of(record)
            except ValidationError:
                key = None
            if key is not None:
                previous = self._find(target.url, key)
        merged: dict[str, Any] = {}
        if previous is not None:
            merged.update(self.schema.serialize(previous))
        merged.update(record)
        validated = self.schema.validate(merged)
        return await self._write(target, validated, previous)

    async def replace(self, record: Record, new_value: Mapping[str, Any]) -> str:
        target = self.engine.writable_archive(record[ORIGIN])
        validated = self.schema.validate(new_value)
        return await self._write(target, validated, record)

    async def remove(self, record: Record) -> None:
        target = self.engine.writable_archive(record[ORIGIN])
        path = record["_url"][len(target.url) :]
        try:
            await target.unlink(path)
        except FileNotFoundError:
            logger.debug("Record file already gone: %s", record["_url"])
        self.unindex(record["_url"])

    async def _write(self, archive: "Archive", validated: dict[str, Any], previous: Record | None) -> str:
        path = self.schema.record_path(validated)
        url = archive.url + path
        payload = orjson.dumps(self.schema.serialize(validated), option=orjson.OPT_INDENT_2)
        await archive.write_file(path, payload)
        self.store({**validated, ORIGIN: archive.url, "_url": url})
        if previous is not None and previous["_url"] != url:
            # record moved (legacy path or changed key): drop the old file
            await self.remove(previous)
        return url

    # Index maintenance -----------------------------------------------

    def load(self, url: str) -> Record | None:
        return self.records.get(url)

    def store(self, record: Record) -> None:
        url = record["_url"]
        with self.engine.store.transaction():
            previous = self.records.get(url)
            if previous is not None:
                self._drop_entries(previous)
            self.records.put(url, record)
            for spec in self.schema.indexes.values():
                namespace = self.index_namespace(spec)
                for values in spec.entries(record):
                    namespace.put(encode_key((*values, url)), url)
        RECORDS_INDEXED.labels(collection=self.name).inc()

    def unindex(self, url: str) -> bool:
        with self.engine.store.transaction():
            previous = self.records.get(url)
            if previous is None:
                return False
            self._drop_entries(previous)
            self.records.delete(url)
        return True

    def purge_origin(self, origin: str, keep: set[str] | None = None) -> int:
        """Unindex every record written by ``origin`` except URLs in ``keep``."""
        removed = 0
        for raw in self.records.keys(gte=f"{origin}/", lt=f"{origin}0"):
            url = raw.decode("utf-8")
            if keep is not None and url in keep:
                continue
            if self.unindex(url):
                removed += 1
        return removed

    def _drop_entries(self, record: Record) -> None:
        url = record["_url"]
        for spec in self.schema.indexes.values():
            namespace = self.index_namespace(spec)
            for values in spec.entries(record):
                namespace.delete(encode_key((*values, url)))

    def _find(self, origin: str, key: Any) -> Record | None:
        gte, lt = prefix_range((origin, key))
        for _key, url in self.index_namespace(self.schema.origin_key_index).items(gte=gte, lt=lt, limit=1):
            return self.load(url)
        return None

    def _existing(self, origin: str, validated: Mapping[str, Any]) -> Record | None:
        if self.schema.singular:
            return self.load(origin + self.schema.path)
        return self._find(origin, validated[self.schema.primary_key])


__all__ = ["Table"]
