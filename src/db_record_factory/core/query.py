"""Parameterized SQL construction for record accessors.

Every value reaches the driver as a bound parameter named ``p1``, ``p2``, ...
in the order it appears in the SQL text. Identifiers (table, columns) are
validated before they are interpolated.
"""

from typing import Any, Iterable, Optional, Union

from sqlalchemy import JSON, bindparam, text
from sqlalchemy.sql.elements import TextClause
from sqlalchemy.sql.selectable import TextualSelect
from sqlalchemy.sql.sqltypes import NullType

from db_record_factory.errors import InvalidFieldError, InvalidStatementError
from db_record_factory.models.statement import OrderBy, Statement
from db_record_factory.utils.naming import (
    camel_to_snake,
    normalize_columns,
    validate_identifier,
    validate_table_name,
)
from db_record_factory.utils.serialization import dumps

CONFLICT_TARGET = "id"
CREATED_AT = "created_at"
UPDATED_AT = "updated_at"
DEFAULT_ORDER = OrderBy(field=CREATED_AT, direction="DESC")


class BuiltQuery:
    """SQL text plus its positional parameters.

    Attributes:
        sql: SQL text with ``:pN`` placeholders
        params: ``(column, value)`` pairs; column is None for LIMIT/OFFSET
        returns_records: Whether result rows are table records (not counts)
    """

    def __init__(
        self,
        sql: str,
        params: Optional[list[tuple[Optional[str], Any]]] = None,
        returns_records: bool = False,
    ):
        self.sql = sql
        self.params = params or []
        self.returns_records = returns_records

    @property
    def values(self) -> list[Any]:
        """Parameter values in positional order."""
        return [value for _, value in self.params]

    @property
    def parameters(self) -> dict[str, Any]:
        """Parameter values keyed by placeholder name."""
        return {f"p{i}": value for i, (_, value) in enumerate(self.params, start=1)}

    @property
    def json_written(self) -> frozenset[str]:
        """Columns this query binds a dict or list value to."""
        return frozenset(
            column
            for column, value in self.params
            if column is not None and isinstance(value, (dict, list))
        )

    def to_statement(
        self,
        json_fields: frozenset[str] = frozenset(),
        json_columns: Iterable[str] = (),
    ) -> Union[TextClause, TextualSelect]:
        """
        Build the executable SQLAlchemy clause.

        Values for JSON columns, and any dict/list value, are encoded with
        orjson before binding. Parameters carry no SQL type so the server
        infers each one from its column instead of a rendered cast.

        Args:
            json_fields: Storage column names holding JSON documents
            json_columns: Result columns decoded through the JSON type

        Returns:
            text() clause with bound parameters and typed JSON result columns
        """
        binds = []
        for i, (column, value) in enumerate(self.params, start=1):
            if isinstance(value, (dict, list)) or (
                column in json_fields and value is not None
            ):
                value = dumps(value)
            binds.append(bindparam(f"p{i}", value, type_=NullType()))

        clause = text(self.sql)
        if binds:
            clause = clause.bindparams(*binds)
        json_columns = tuple(json_columns)
        if json_columns:
            return clause.columns(**{name: JSON for name in json_columns})
        return clause

    def __repr__(self) -> str:
        return f"BuiltQuery({self.sql!r}, {self.values!r})"


class QueryBuilder:
    """Builds the statements of one table under a fixed field policy."""

    def __init__(
        self,
        table: str,
        return_fields: Iterable[str] = ("*",),
        columns: Optional[Iterable[str]] = None,
        json_fields: Iterable[str] = (),
    ):
        """
        Initialize the builder and validate its static configuration.

        Args:
            table: Table name, optionally schema-qualified
            return_fields: Columns for SELECT/RETURNING, or ``*``
            columns: Column allowlist; None accepts any valid identifier
            json_fields: Columns holding JSON documents

        Raises:
            InvalidFieldError: If any configured name is invalid or not allowed
        """
        self.table = validate_table_name(table)
        self.columns = normalize_columns(columns)

        fields = list(return_fields) or ["*"]
        if "*" in fields:
            if len(fields) > 1:
                raise InvalidFieldError("'*' cannot be combined with other return fields")
            self.return_fields: tuple[str, ...] = ("*",)
        else:
            self.return_fields = tuple(self.column(f) for f in fields)

        self.json_fields = frozenset(self.column(f) for f in json_fields)

    @property
    def returning(self) -> str:
        return ", ".join(self.return_fields)

    @property
    def result_json_columns(self) -> tuple[str, ...]:
        """Configured JSON columns that appear in the result set."""
        return self.json_result_columns(self.json_fields)

    def json_result_columns(self, json_fields: Iterable[str]) -> tuple[str, ...]:
        """The subset of ``json_fields`` the return fields select."""
        if self.return_fields == ("*",):
            return tuple(sorted(json_fields))
        return tuple(f for f in self.return_fields if f in json_fields)

    def column(self, field: str) -> str:
        """
        Map a caller field name to a permitted storage column.

        Raises:
            InvalidFieldError: If the name is not an identifier or not allowlisted
        """
        name = validate_identifier(camel_to_snake(validate_identifier(field)))
        if self.columns is not None and name not in self.columns:
            raise InvalidFieldError(
                f"Field {field!r} is not a column of table {self.table}"
            )
        return name

    def to_storage(self, stmt: Optional[Statement]) -> dict[str, Any]:
        """Convert statement keys to storage column names."""
        converted: dict[str, Any] = {}
        for field, value in (stmt or {}).items():
            name = self.column(field)
            if name in converted:
                raise InvalidStatementError(
                    f"Fields map to the same column {name!r} in table {self.table}"
                )
            converted[name] = value
        return converted

    def _where(
        self, where: dict[str, Any], start: int
    ) -> tuple[str, list[tuple[Optional[str], Any]]]:
        """AND of equalities over already-converted fields; None becomes IS NULL."""
        conditions = []
        params: list[tuple[Optional[str], Any]] = []
        for name, value in where.items():
            if value is None:
                conditions.append(f"{name} IS NULL")
            else:
                params.append((name, value))
                conditions.append(f"{name} = :p{start + len(params)}")
        return " AND ".join(conditions), params

    def _require_where(self, where: Optional[Statement], op: str) -> dict[str, Any]:
        converted = self.to_storage(where)
        if not converted:
            raise InvalidStatementError(
                f"{op} on table {self.table} requires a non-empty filter"
            )
        return converted

    def _insert_head(self, values: dict[str, Any]) -> str:
        if not values:
            raise InvalidStatementError(f"Nothing to insert into table {self.table}")
        placeholders = ", ".join(f":p{i}" for i in range(1, len(values) + 1))
        return f"INSERT INTO {self.table} ({', '.join(values)}) VALUES ({placeholders})"

    def insert(self, values: dict[str, Any]) -> BuiltQuery:
        """INSERT ... VALUES ... RETURNING over converted values."""
        sql = f"{self._insert_head(values)} RETURNING {self.returning}"
        return BuiltQuery(sql, list(values.items()), returns_records=True)

    def upsert(self, values: dict[str, Any]) -> BuiltQuery:
        """INSERT ... ON CONFLICT (id) DO UPDATE ... RETURNING."""
        head = self._insert_head(values)
        # updated_at is assigned exactly once, after the other columns
        assignments = [
            f"{f} = EXCLUDED.{f}"
            for f in values
            if f not in (CONFLICT_TARGET, CREATED_AT, UPDATED_AT)
        ]
        assignments.append(f"{UPDATED_AT} = EXCLUDED.{UPDATED_AT}")
        sql = (
            f"{head} ON CONFLICT ({CONFLICT_TARGET}) "
            f"DO UPDATE SET {', '.join(assignments)} "
            f"RETURNING {self.returning}"
        )
        return BuiltQuery(sql, list(values.items()), returns_records=True)

    def update(self, values: dict[str, Any], where: Optional[Statement]) -> BuiltQuery:
        """UPDATE ... SET ... WHERE ... RETURNING; params are [set..., where...]."""
        converted_where = self._require_where(where, "Update")
        set_clause = ", ".join(
            f"{f} = :p{i}" for i, f in enumerate(values, start=1)
        )
        where_clause, where_params = self._where(converted_where, len(values))
        sql = (
            f"UPDATE {self.table} SET {set_clause} "
            f"WHERE {where_clause} "
            f"RETURNING {self.returning}"
        )
        return BuiltQuery(
            sql, list(values.items()) + where_params, returns_records=True
        )

    def select(
        self,
        where: Optional[Statement] = None,
        *,
        required: bool = False,
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> BuiltQuery:
        """
        SELECT <return fields> with optional filter, order, limit and offset.

        Args:
            where: Equality filter; ignored when empty unless ``required``
            required: Reject an empty filter
            order_by: Sort order
            limit: Row limit, bound as a parameter
            offset: Rows to skip, bound as a parameter

        Returns:
            Built query
        """
        if required:
            converted = self._require_where(where, "Select")
        else:
            converted = self.to_storage(where)

        parts = [f"SELECT {self.returning} FROM {self.table}"]
        where_clause, params = self._where(converted, 0)
        if where_clause:
            parts.append(f"WHERE {where_clause}")
        if order_by is not None:
            parts.append(f"ORDER BY {self.column(order_by.field)} {order_by.direction}")
        if limit is not None:
            params.append((None, limit))
            parts.append(f"LIMIT :p{len(params)}")
        if offset is not None:
            params.append((None, offset))
            parts.append(f"OFFSET :p{len(params)}")
        return BuiltQuery(" ".join(parts), params, returns_records=True)

    def count(self, where: Optional[Statement] = None) -> BuiltQuery:
        """SELECT COUNT(*) AS count with the same filter rules as select()."""
        parts = [f"SELECT COUNT(*) AS count FROM {self.table}"]
        where_clause, params = self._where(self.to_storage(where), 0)
        if where_clause:
            parts.append(f"WHERE {where_clause}")
        return BuiltQuery(" ".join(parts), params)

    def delete(self, where: Optional[Statement]) -> BuiltQuery:
        """DELETE ... WHERE ...; an empty filter is rejected."""
        where_clause, params = self._where(self._require_where(where, "Delete"), 0)
        return BuiltQuery(f"DELETE FROM {self.table} WHERE {where_clause}", params)
