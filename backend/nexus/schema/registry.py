"""Declarative collection schemas and the versioned registry that holds them."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping

from nexus.core.errors import QueryError, SchemaError

DERIVED_FIELDS = ("_origin", "_url")
ORIGIN = "_origin"

Validator = Callable[[Mapping[str, Any]], dict[str, Any]]
Serializer = Callable[[Mapping[str, Any]], dict[str, Any]]
KeyFunction = Callable[[Mapping[str, Any]], Any]
UpgradeHook = Callable[[dict[str, Any], str], dict[str, Any]]

_INDEXABLE = (str, int, float, bool)


@dataclass(frozen=True, slots=True)
class IndexSpec:
    """A secondary index: ``field``, compound ``a+b`` or multi-valued ``*field``."""

    name: str
    fields: tuple[str, ...]
    multi: bool = False

    @classmethod
    def parse(cls, spec: str) -> "IndexSpec":
        raw = spec.strip()
        multi = raw.startswith("*")
        if multi:
            raw = raw[1:]
        fields = tuple(part.strip() for part in raw.split("+"))
        if not raw or any(not part for part in fields):
            raise SchemaError(f"Malformed index spec: {spec!r}")
        if multi and len(fields) > 1:
            raise SchemaError(f"Multi-valued indexes cannot be compound: {spec!r}")
        return cls(name="+".join(fields), fields=fields, multi=multi)

    @property
    def compound(self) -> bool:
        return len(self.fields) > 1

    def entries(self, record: Mapping[str, Any]) -> list[tuple[Any, ...]]:
        """Index key tuples produced by ``record``; empty when a field is unset."""
        if self.multi:
            values = record.get(self.fields[0]) or []
            if not isinstance(values, (list, tuple)):
                values = [values]
            unique: list[tuple[Any, ...]] = []
            for value in values:
                if isinstance(value, _INDEXABLE) and (value,) not in unique:
                    unique.append((value,))
            return unique
        key = tuple(record.get(name) for name in self.fields)
        if any(not isinstance(value, _INDEXABLE) for value in key):
            return []
        return [key]


@dataclass(slots=True)
class CollectionSchema:
    """How one record collection is stored, keyed, validated and indexed.

    A singular collection stores one file per archive at ``path``. Other
    collections store ``<directory>/<primary key>.json`` files whose key is
    computed from the record content by ``key``.
    """

    name: str
    validator: Validator
    serializer: Serializer
    path: str | None = None
    directory: str | None = None
    primary_key: str | None = None
    key: KeyFunction | None = None
    index: tuple[str, ...] = ()
    legacy_dirs: tuple[str, ...] = ()
    upgrade: UpgradeHook | None = None
    indexes: dict[str, IndexSpec] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.singular:
            if self.directory or self.primary_key:
                raise SchemaError(f"{self.name}: singular collections take only a path")
        elif not (self.directory and self.primary_key and self.key):
            raise SchemaError(f"{self.name}: needs a directory, primary key and key function")
        specs = [ORIGIN]
        if not self.singular:
            specs += [self.primary_key, f"{ORIGIN}+{self.primary_key}"]
        specs += list(self.index)
        for raw in specs:
            spec = IndexSpec.parse(raw)
            existing = self.indexes.get(spec.name)
            if existing is not None and existing != spec:
                raise SchemaError(f"{self.name}: conflicting declarations for index {spec.name!r}")
            self.indexes[spec.name] = spec

    @property
    def singular(self) -> bool:
        return self.path is not None

    @property
    def default_index(self) -> IndexSpec:
        return self.indexes[ORIGIN if self.singular else self.primary_key]

    @property
    def origin_key_index(self) -> IndexSpec:
        return self.indexes[f"{ORIGIN}+{self.primary_key}"]

    def get_index(self, name: str) -> IndexSpec:
        spec = self.indexes.get(name.lstrip("*"))
        if spec is None:
            raise QueryError(f"{self.name} has no index named {name!r}")
        return spec

    def validate(self, record: Mapping[str, Any]) -> dict[str, Any]:
        data = {key: value for key, value in record.items() if key not in DERIVED_FIELDS}
        validated = self.validator(data)
        if not self.singular:
            validated[self.primary_key] = self.key(validated)
        return validated

    def serialize(self, record: Mapping[str, Any]) -> dict[str, Any]:
        return self.serializer(record)

    def key_of(self, record: Mapping[str, Any]) -> Any:
        if self.singular:
            return None
        return self.key(record)

    def record_path(self, record: Mapping[str, Any]) -> str:
        if self.singular:
            return self.path
        return f"{self.directory}/{record[self.primary_key]}.json"

    def directories(self) -> tuple[str, ...]:
        if self.singular:
            return ()
        return (self.directory, *self.legacy_dirs)

    def owns_path(self, path: str) -> bool:
        if self.singular:
            return path == self.path
        parent, _, name = path.rpartition("/")
        return parent in self.directories() and name.endswith(".json") and not name.startswith(".")


@dataclass(frozen=True, slots=True)
class Migration:
    """A schema version step; ``rebuild`` means derived indexes must be rebuilt."""

    version: int
    description: str
    rebuild: bool = True


class SchemaRegistry:
    """Process-lifetime registry of collection schemas for one schema version."""

    def __init__(self, version: int, migrations: Iterable[Migration] = ()) -> None:
        self.version = version
        self.migrations = sorted(migrations, key=lambda item: item.version)
        self._collections: dict[str, CollectionSchema] = {}
        self._field_shapes: dict[str, tuple[str, bool]] = {}

    def register(self, schema: CollectionSchema) -> CollectionSchema:
        if schema.name in self._collections:
            raise SchemaError(f"Collection {schema.name!r} is already registered")
        shapes: dict[str, tuple[str, bool]] = {}
        for spec in schema.indexes.values():
            if spec.compound:
                continue
            field_name = spec.fields[0]
            owner = self._field_shapes.get(field_name)
            if owner is not None and owner[1] != spec.multi:
                raise SchemaError(
                    f"{schema.name} indexes {field_name!r} as "
                    f"{'multi-valued' if spec.multi else 'single-valued'}, "
                    f"conflicting with {owner[0]}"
                )
            shapes[field_name] = (schema.name, spec.multi)
        for field_name, shape in shapes.items():
            self._field_shapes.setdefault(field_name, shape)
        self._collections[schema.name] = schema
        return schema

    def get(self, name: str) -> CollectionSchema:
        schema = self._collections.get(name)
        if schema is None:
            raise SchemaError(f"Unknown collection {name!r}")
        return schema

    def for_path(self, path: str) -> CollectionSchema | None:
        for schema in self._collections.values():
            if schema.owns_path(path):
                return schema
        return None

    def pending(self, stored_version: int | None) -> list[Migration]:
        """Migrations to apply to an index built with ``stored_version``."""
        start = stored_version or 0
        return [item for item in self.migrations if start < item.version <= self.version]

    def __iter__(self):
        return iter(self._collections.values())

    def __contains__(self, name: str) -> bool:
        return name in self._collections

    @property
    def names(self) -> list[str]:
        return list(self._collections)


__all__ = [
    "CollectionSchema",
    "IndexSpec",
    "Migration",
    "SchemaRegistry",
    "DERIVED_FIELDS",
    "ORIGIN",
]
