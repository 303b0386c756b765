"""Compositional queries over one table's secondary indexes."""

from __future__ import annotations

import inspect
import time
from typing import TYPE_CHECKING, Any, Callable, Iterator, Mapping, Sequence

from nexus.core.errors import QueryError
from nexus.core.metrics import QUERY_LATENCY
from nexus.db.keys import between_range, encode_key, prefix_range
from nexus.schema.registry import IndexSpec

if TYPE_CHECKING:
    from nexus.index.table import Table

Record = dict[str, Any]
Predicate = Callable[[Record], bool]
Transform = Callable[[Record], Any] | Mapping[str, Any]


class WhereClause:
    """Anchors a query to one index; each method returns the query."""

    def __init__(self, query: "Query", index: IndexSpec) -> None:
        self.query = query
        self.index = index

    def equals(self, value: Any) -> "Query":
        return self.query._constrain(self.index, [prefix_range(self._values(value))])

    def any_of(self, *values: Any) -> "Query":
        if len(values) == 1 and isinstance(values[0], (list, tuple, set)) and not self.index.compound:
            values = tuple(values[0])
        ranges = {prefix_range(self._values(value)) for value in values}
        return self.query._constrain(self.index, sorted(ranges))

    def between(
        self,
        lower: Any,
        upper: Any,
        include_lower: bool = True,
        include_upper: bool = False,
    ) -> "Query":
        bounds = between_range(self._values(lower), self._values(upper), include_lower, include_upper)
        return self.query._constrain(self.index, [bounds])

    def _values(self, value: Any) -> tuple[Any, ...]:
        if self.index.compound:
            if not isinstance(value, (list, tuple)) or len(value) != len(self.index.fields):
                raise QueryError(f"Index {self.index.name!r} expects {len(self.index.fields)} values")
            values = tuple(value)
        else:
            values = (value,)
        try:
            encode_key(values)
        except TypeError as exc:
            raise QueryError(str(exc)) from exc
        return values


class Query:
    """Lazily-evaluated query; nothing touches the store until a terminal call.

    Candidates are scanned in index order (the primary key when no index is
    chosen). ``reverse()`` flips the scan direction; ``offset`` and ``limit``
    then select from the scanned order, after filters have run.
    """

    def __init__(self, table: "Table") -> None:
        self.table = table
        self._index: IndexSpec | None = None
        self._ranges: list[tuple[bytes, bytes]] | None = None
        self._filters: list[Predicate] = []
        self._offset = 0
        self._limit: int | None = None
        self._reverse = False

    # Composition -----------------------------------------------------

    def where(self, field: str) -> WhereClause:
        if self._ranges is not None:
            raise QueryError("Query is already anchored to an index")
        return WhereClause(self, self.table.schema.get_index(field))

    def order_by(self, field: str) -> "Query":
        if self._ranges is not None:
            raise QueryError("order_by() must come before where() constraints")
        self._index = self.table.schema.get_index(field)
        return self

    def filter(self, predicate: Predicate) -> "Query":
        self._filters.append(predicate)
        return self

    def offset(self, count: int) -> "Query":
        if count < 0:
            raise QueryError("offset must be >= 0")
        self._offset = count
        return self

    def limit(self, count: int) -> "Query":
        if count < 0:
            raise QueryError("limit must be >= 0")
        self._limit = count
        return self

    def reverse(self) -> "Query":
        self._reverse = not self._reverse
        return self

    def _constrain(self, index: IndexSpec, ranges: list[tuple[bytes, bytes]]) -> "Query":
        self._index = index
        self._ranges = ranges
        return self

    # Terminal operations ---------------------------------------------

    async def to_list(self) -> list[Record]:
        return self._execute()

    async def first(self) -> Record | None:
        previous = self._limit
        self._limit = 1 if previous is None else min(previous, 1)
        try:
            results = self._execute()
        finally:
            self._limit = previous
        return results[0] if results else None

    async def count(self) -> int:
        if not self._filters and not self._offset and self._limit is None:
            return sum(1 for _ in self._candidate_urls())
        return len(self._execute())

    async def urls(self) -> list[str]:
        return [record["_url"] for record in self._execute()]

    async def each(self, visitor: Callable[[Record], Any]) -> None:
        """Visit matching records one at a time, awaiting coroutine visitors."""
        for record in self._execute():
            result = visitor(record)
            if inspect.isawaitable(result):
                await result

    async def update(self, changes: Transform) -> int:
        """Rewrite each matching record and return how many were written.

        ``changes`` is either a mapping merged over the record, or a callable
        receiving a copy of the record. The callable returns the new record;
        a falsy return leaves that record untouched.
        """
        written = 0
        for record in self._execute():
            if callable(changes):
                result = changes(dict(record))
                if inspect.isawaitable(result):
                    result = await result
            else:
                result = {**record, **changes}
            if not result:
                continue
            await self.table.replace(record, result)
            written += 1
        return written

    async def delete(self) -> int:
        deleted = 0
        for record in self._execute():
            await self.table.remove(record)
            deleted += 1
        return deleted

    # Execution -------------------------------------------------------

    def _candidate_urls(self) -> Iterator[str]:
        index = self._index or self.table.schema.default_index
        namespace = self.table.index_namespace(index)
        ranges: Sequence[tuple[bytes | None, bytes | None]] = [(None, None)] if self._ranges is None else self._ranges
        if self._reverse:
            ranges = list(reversed(ranges))
        seen: set[str] = set()
        for gte, lt in ranges:
            for _key, url in namespace.items(gte=gte, lt=lt, reverse=self._reverse):
                if url in seen:
                    continue
                seen.add(url)
                yield url

    def _execute(self) -> list[Record]:
        started = time.perf_counter()
        results: list[Record] = []
        skipped = 0
        if self._limit != 0:
            for url in self._candidate_urls():
                record = self.table.load(url)
                if record is None:
                    continue
                if not all(predicate(record) for predicate in self._filters):
                    continue
                if skipped < self._offset:
                    skipped += 1
                    continue
                results.append(record)
                if self._limit is not None and len(results) >= self._limit:
                    break
        QUERY_LATENCY.labels(collection=self.table.name).observe(time.perf_counter() - started)
        return results


__all__ = ["Query", "WhereClause"]
