"""Utility modules for record accessors."""

from db_record_factory.utils.naming import (
    camel_to_snake,
    normalize_columns,
    now_ms,
    validate_identifier,
    validate_table_name,
)
from db_record_factory.utils.serialization import (
    convert_row_to_json_safe,
    convert_rows_to_json_safe,
    convert_value_to_json_safe,
    dumps,
    loads,
)

__all__ = [
    "camel_to_snake",
    "normalize_columns",
    "now_ms",
    "validate_identifier",
    "validate_table_name",
    "convert_value_to_json_safe",
    "convert_row_to_json_safe",
    "convert_rows_to_json_safe",
    "dumps",
    "loads",
]
