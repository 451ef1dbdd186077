"""Pydantic models for configuration, statements and reflected tables."""

from .config import DatabaseConfig
from .statement import (
    BaseRecord,
    OrderBy,
    PaginatedResult,
    PaginateOptions,
    Row,
    Statement,
    StatementValue,
)
from .table import ColumnInfo, TableColumns

__all__ = [
    "DatabaseConfig",
    "BaseRecord",
    "OrderBy",
    "PaginateOptions",
    "PaginatedResult",
    "Row",
    "Statement",
    "StatementValue",
    "ColumnInfo",
    "TableColumns",
]
