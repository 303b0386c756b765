"""Sorted key-value store on top of SQLite.

Every concern (record tables, secondary indexes, pin flags, source
membership) gets its own namespace; keys inside a namespace are byte
strings iterated in bytewise order.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

import orjson

DEFAULT_PRAGMAS = (
    "PRAGMA journal_mode=WAL;",
    "PRAGMA synchronous=NORMAL;",
    "PRAGMA temp_store=MEMORY;",
)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS entries (
  ns TEXT NOT NULL,
  key BLOB NOT NULL,
  value BLOB NOT NULL,
  PRIMARY KEY (ns, key)
) WITHOUT ROWID;
"""

NAMESPACE_SEPARATOR = "!"

Key = str | bytes


def _key_bytes(key: Key) -> bytes:
    if isinstance(key, bytes):
        return key
    return key.encode("utf-8")


class SortedStore:
    """Thin wrapper around sqlite3 exposing namespaced sorted key ranges."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path.expanduser()
        self._connection: sqlite3.Connection | None = None
        self._depth = 0

    def connect(self) -> sqlite3.Connection:
        if self._connection is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = sqlite3.connect(self.db_path)
            for pragma in DEFAULT_PRAGMAS:
                self._connection.execute(pragma)
            self._connection.executescript(SCHEMA_SQL)
        return self._connection

    @property
    def is_open(self) -> bool:
        return self._connection is not None

    def close(self) -> None:
        if self._connection is not None:
            self._connection.commit()
            self._connection.close()
            self._connection = None

    def destroy(self) -> None:
        """Close the store and delete its files."""
        self.close()
        for suffix in ("", "-wal", "-shm"):
            Path(f"{self.db_path}{suffix}").unlink(missing_ok=True)

    def __enter__(self) -> "SortedStore":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def commit(self) -> None:
        if self._connection is not None:
            self._connection.commit()

    def rollback(self) -> None:
        if self._connection is not None:
            self._connection.rollback()

    @contextmanager
    def transaction(self) -> Iterator["SortedStore"]:
        """Group writes into one commit; nested blocks join the outer one."""
        conn = self.connect()
        self._depth += 1
        try:
            yield self
        except Exception:
            self._depth -= 1
            if self._depth == 0:
                conn.rollback()
            raise
        self._depth -= 1
        if self._depth == 0:
            conn.commit()

    def sublevel(self, name: str) -> "Namespace":
        return Namespace(self, name)

    def _write(self, sql: str, params: list[Any]) -> int:
        cursor = self.connect().execute(sql, params)
        if self._depth == 0:
            self.commit()
        return cursor.rowcount

    def _query(self, sql: str, params: list[Any]) -> list[tuple[Any, ...]]:
        return self.connect().execute(sql, params).fetchall()


class Namespace:
    """A key range of the store addressed by a namespace name."""

    def __init__(self, store: SortedStore, name: str) -> None:
        self.store = store
        self.name = name

    def sublevel(self, name: str) -> "Namespace":
        return Namespace(self.store, f"{self.name}{NAMESPACE_SEPARATOR}{name}")

    def get(self, key: Key, default: Any = None) -> Any:
        rows = self.store._query(
            "SELECT value FROM entries WHERE ns = ? AND key = ?",
            [self.name, _key_bytes(key)],
        )
        if not rows:
            return default
        return orjson.loads(rows[0][0])

    def has(self, key: Key) -> bool:
        rows = self.store._query(
            "SELECT 1 FROM entries WHERE ns = ? AND key = ?",
            [self.name, _key_bytes(key)],
        )
        return bool(rows)

    def put(self, key: Key, value: Any) -> None:
        self.store._write(
            "INSERT OR REPLACE INTO entries (ns, key, value) VALUES (?, ?, ?)",
            [self.name, _key_bytes(key), orjson.dumps(value)],
        )

    def delete(self, key: Key) -> bool:
        """Delete ``key``; missing keys are not an error."""
        return self.store._write(
            "DELETE FROM entries WHERE ns = ? AND key = ?",
            [self.name, _key_bytes(key)],
        ) > 0

    def items(
        self,
        gte: Key | None = None,
        lt: Key | None = None,
        reverse: bool = False,
        limit: int | None = None,
    ) -> list[tuple[bytes, Any]]:
        sql, params = self._range_sql("key, value", gte, lt, reverse, limit)
        return [(bytes(key), orjson.loads(value)) for key, value in self.store._query(sql, params)]

    def keys(
        self,
        gte: Key | None = None,
        lt: Key | None = None,
        reverse: bool = False,
        limit: int | None = None,
    ) -> list[bytes]:
        sql, params = self._range_sql("key", gte, lt, reverse, limit)
        return [bytes(row[0]) for row in self.store._query(sql, params)]

    def count(self, gte: Key | None = None, lt: Key | None = None) -> int:
        sql = "SELECT COUNT(*) FROM entries WHERE ns = ?"
        params: list[Any] = [self.name]
        if gte is not None:
            sql += " AND key >= ?"
            params.append(_key_bytes(gte))
        if lt is not None:
            sql += " AND key < ?"
            params.append(_key_bytes(lt))
        return int(self.store._query(sql, params)[0][0])

    def clear(self) -> int:
        """Delete every key in this namespace and in nested namespaces."""
        return self.store._write(
            "DELETE FROM entries WHERE ns = ? OR (ns >= ? AND ns < ?)",
            [
                self.name,
                f"{self.name}{NAMESPACE_SEPARATOR}",
                f"{self.name}{chr(ord(NAMESPACE_SEPARATOR) + 1)}",
            ],
        )

    def _range_sql(
        self,
        columns: str,
        gte: Key | None,
        lt: Key | None,
        reverse: bool,
        limit: int | None,
    ) -> tuple[str, list[Any]]:
        sql = f"SELECT {columns} FROM entries WHERE ns = ?"
        params: list[Any] = [self.name]
        if gte is not None:
            sql += " AND key >= ?"
            params.append(_key_bytes(gte))
        if lt is not None:
            sql += " AND key < ?"
            params.append(_key_bytes(lt))
        sql += " ORDER BY key DESC" if reverse else " ORDER BY key ASC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return sql, params


__all__ = ["SortedStore", "Namespace"]
