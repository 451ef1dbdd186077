"""Column reflection using SQLAlchemy's Inspector."""

import logging
from typing import Any, Optional

from sqlalchemy import JSON
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import NoSuchTableError

from db_record_factory.core.connection import DatabaseConnection
from db_record_factory.models.table import ColumnInfo, TableColumns

logger = logging.getLogger(__name__)


def _is_json_type(type_: Any) -> bool:
    """JSON and JSONB (a JSON subclass) reflect as sqlalchemy JSON types."""
    return isinstance(type_, JSON)


def _column_from_sa(col_data: dict, pk_cols: list[str]) -> ColumnInfo:
    """Convert SQLAlchemy column data to ColumnInfo."""
    return ColumnInfo(
        name=col_data["name"],
        data_type=str(col_data["type"]),
        nullable=col_data["nullable"],
        default=str(col_data["default"]) if col_data.get("default") else None,
        primary_key=col_data["name"] in pk_cols,
        is_json=_is_json_type(col_data["type"]),
        comment=col_data.get("comment"),
    )


async def get_table_columns(
    connection: DatabaseConnection, table_name: str, schema: Optional[str] = None
) -> TableColumns:
    """
    Reflect the column layout of a table.

    Args:
        connection: Initialized database connection
        table_name: Table name
        schema: Schema name (None for default)

    Returns:
        Table columns; empty when the table does not exist
    """
    async with connection.get_connection() as conn:
        # Use run_sync to execute synchronous reflection methods
        def get_table_details(sync_conn):
            inspector = sa_inspect(sync_conn)
            try:
                return {
                    "columns": inspector.get_columns(table_name, schema=schema),
                    "pk_constraint": inspector.get_pk_constraint(
                        table_name, schema=schema
                    ),
                }
            except NoSuchTableError:
                return {"columns": [], "pk_constraint": {}}

        table_data = await conn.run_sync(get_table_details)

    pk_cols = (table_data["pk_constraint"] or {}).get("constrained_columns") or []
    columns = [_column_from_sa(dict(col), pk_cols) for col in table_data["columns"]]
    if not columns:
        logger.warning(f"No columns reflected for table {table_name}")

    return TableColumns(name=table_name, table_schema=schema, columns=columns)
