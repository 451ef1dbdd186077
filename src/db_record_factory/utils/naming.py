"""Field-name conversion and identifier validation."""

import re
import time
from typing import Iterable, Optional

from db_record_factory.errors import InvalidFieldError

_UPPER = re.compile(r"[A-Z]")
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*\Z")


def camel_to_snake(name: str) -> str:
    """
    Convert a call-boundary field name to the storage naming convention.

    Every upper-case letter becomes an underscore followed by its lower-case
    form, so ``createdAt`` maps to ``created_at``. Names that are already
    snake_case pass through unchanged.

    Args:
        name: Field name as supplied by the caller

    Returns:
        snake_case column name
    """
    return _UPPER.sub(lambda m: f"_{m.group(0).lower()}", name)


def validate_identifier(name: str) -> str:
    """
    Ensure a name can be interpolated into SQL text as a bare identifier.

    Args:
        name: Column or table name

    Returns:
        The name, unchanged

    Raises:
        InvalidFieldError: If the name is not a plain SQL identifier
    """
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise InvalidFieldError(f"Invalid SQL identifier: {name!r}")
    return name


def validate_table_name(table: str) -> str:
    """Validate a table name, allowing a single schema qualifier."""
    parts = table.split(".") if isinstance(table, str) else [table]
    if len(parts) > 2:
        raise InvalidFieldError(f"Invalid table name: {table!r}")
    for part in parts:
        validate_identifier(part)
    return table


def normalize_columns(columns: Optional[Iterable[str]]) -> Optional[frozenset[str]]:
    """Convert an optional column allowlist to validated snake_case names."""
    if columns is None:
        return None
    return frozenset(validate_identifier(camel_to_snake(c)) for c in columns)


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)
