"""Record schemas: coercion, collection declarations and the registry."""

from .collections import SCHEMA_VERSION, build_registry
from .registry import CollectionSchema, IndexSpec, Migration, SchemaRegistry

__all__ = [
    "SCHEMA_VERSION",
    "build_registry",
    "CollectionSchema",
    "IndexSpec",
    "Migration",
    "SchemaRegistry",
]
