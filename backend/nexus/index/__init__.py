"""Multi-source index engine."""

from .engine import IndexEngine
from .query import Query, WhereClause
from .table import Table

__all__ = ["IndexEngine", "Query", "WhereClause", "Table"]
