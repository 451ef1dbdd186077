"""
db_record_factory - Generic record access over SQLAlchemy async engines

Builds parameterized create/update/upsert/get/list/find/delete/paginate
statements for any table from a field allowlist and a naming convention.
"""

__version__ = "0.1.0"

from db_record_factory.core import (
    ConnectionExecutor,
    DatabaseConnection,
    ExecutionResult,
    Executor,
    RecordAccessor,
    get_table_columns,
)
from db_record_factory.errors import (
    ConstraintViolationError,
    DriverError,
    InvalidFieldError,
    InvalidStatementError,
    NotFoundError,
    RecordFactoryError,
    StoreError,
)
from db_record_factory.models import (
    BaseRecord,
    DatabaseConfig,
    OrderBy,
    PaginatedResult,
    PaginateOptions,
    Statement,
)

__all__ = [
    "ConnectionExecutor",
    "DatabaseConnection",
    "ExecutionResult",
    "Executor",
    "RecordAccessor",
    "get_table_columns",
    "ConstraintViolationError",
    "DriverError",
    "InvalidFieldError",
    "InvalidStatementError",
    "NotFoundError",
    "RecordFactoryError",
    "StoreError",
    "BaseRecord",
    "DatabaseConfig",
    "OrderBy",
    "PaginatedResult",
    "PaginateOptions",
    "Statement",
]
