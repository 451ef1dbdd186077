"""Core database functionality modules."""

from .connection import (
    ConnectionExecutor,
    DatabaseConnection,
    ExecutionResult,
    Executor,
)
from .factory import RecordAccessor
from .inspector import get_table_columns
from .query import BuiltQuery, QueryBuilder

__all__ = [
    "ConnectionExecutor",
    "DatabaseConnection",
    "ExecutionResult",
    "Executor",
    "RecordAccessor",
    "get_table_columns",
    "BuiltQuery",
    "QueryBuilder",
]
