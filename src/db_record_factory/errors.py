"""Exceptions raised by record accessors."""

from typing import Optional


class RecordFactoryError(Exception):
    """Base class for all db_record_factory errors."""


class StoreError(RecordFactoryError):
    """
    A failure reported by, or about, the underlying data store.

    Attributes:
        table: Table the failing operation targeted
        orig: Original driver/SQLAlchemy exception, if any
    """

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        orig: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.table = table
        self.orig = orig


class ConstraintViolationError(StoreError):
    """Unique, foreign-key, not-null or check constraint rejected the write."""


class DriverError(StoreError):
    """Any other error raised by the connection or driver."""


class NotFoundError(StoreError):
    """An update matched zero rows."""


class InvalidFieldError(RecordFactoryError, ValueError):
    """A field or table name is not a valid identifier or not on the allowlist."""


class InvalidStatementError(RecordFactoryError, ValueError):
    """A statement or filter cannot be turned into a query."""
