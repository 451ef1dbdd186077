"""Generic record access for a single table."""

import logging
from typing import (
    Any,
    Callable,
    Generic,
    Iterable,
    List,
    Mapping,
    Optional,
    TypeVar,
    Union,
)

from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from db_record_factory.core.connection import (
    DatabaseConnection,
    ExecutionResult,
    Executor,
)
from db_record_factory.core.inspector import get_table_columns
from db_record_factory.core.query import (
    CREATED_AT,
    DEFAULT_ORDER,
    UPDATED_AT,
    BuiltQuery,
    QueryBuilder,
)
from db_record_factory.errors import (
    ConstraintViolationError,
    DriverError,
    NotFoundError,
    StoreError,
)
from db_record_factory.models.statement import (
    PaginatedResult,
    PaginateOptions,
    Row,
    Statement,
)
from db_record_factory.utils.naming import now_ms

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT")

ExtensionsFactory = Callable[
    [Executor, str, list[str]], Mapping[str, Callable[..., Any]]
]

CORE_OPERATIONS = frozenset(
    {"create", "update", "upsert", "get", "list", "find", "delete", "paginate"}
)


class RecordAccessor(Generic[RecordT]):
    """
    Record operations for one table over a shared executor.

    Statements are mappings of camelCase (or snake_case) field names to
    values. Keys become snake_case column names; values are always bound as
    parameters. Returned rows keep the store's column names.

    Columns the accessor writes a dict or list into are remembered and read
    back as JSON, alongside the configured ``json_fields``. That set only
    grows; apart from it the accessor holds no mutable state after
    construction and can be shared by concurrent callers. Concurrency limits
    belong to the connection pool.

    Type Parameters:
        RecordT: Row type; ``dict`` unless a pydantic ``model`` is given
    """

    def __init__(
        self,
        connection: Executor,
        table: str,
        return_fields: Iterable[str] = ("*",),
        extensions_factory: Optional[ExtensionsFactory] = None,
        *,
        columns: Optional[Iterable[str]] = None,
        json_fields: Iterable[str] = (),
        model: Optional[type[BaseModel]] = None,
        clock: Callable[[], int] = now_ms,
    ):
        """
        Initialize the accessor and validate its static configuration.

        Args:
            connection: Executor (DatabaseConnection or ConnectionExecutor)
            table: Table name, optionally schema-qualified
            return_fields: Columns returned by every SELECT/RETURNING
            extensions_factory: Builds extra named operations from
                ``(connection, table, return_fields)``
            columns: Column allowlist; statement keys and sort fields outside
                it are rejected before any SQL runs
            json_fields: Columns holding JSON documents
            model: Pydantic model each returned row is validated into
            clock: Source of epoch-millisecond timestamps

        Raises:
            InvalidFieldError: If table, return fields or allowlist are invalid
            ValueError: If an extension would shadow a built-in operation
        """
        self.connection = connection
        self.builder = QueryBuilder(table, return_fields, columns, json_fields)
        self.model = model
        self.clock = clock
        self._extensions_factory = extensions_factory
        self.extensions: dict[str, Callable[..., Any]] = {}
        self._written_json: set[str] = set()

        if extensions_factory is not None:
            extensions = dict(
                extensions_factory(connection, self.table, list(self.return_fields))
            )
            for name in extensions:
                if name in CORE_OPERATIONS or name.startswith("_") or hasattr(self, name):
                    raise ValueError(
                        f"Extension {name!r} conflicts with an accessor attribute"
                    )
            self.extensions = extensions

    def __getattr__(self, name: str) -> Any:
        extensions = self.__dict__.get("extensions", {})
        if name in extensions:
            return extensions[name]
        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

    @classmethod
    async def from_table(
        cls,
        connection: DatabaseConnection,
        table: str,
        return_fields: Iterable[str] = ("*",),
        extensions_factory: Optional[ExtensionsFactory] = None,
        *,
        schema: Optional[str] = None,
        model: Optional[type[BaseModel]] = None,
        clock: Callable[[], int] = now_ms,
    ) -> "RecordAccessor[RecordT]":
        """
        Build an accessor whose allowlist and JSON columns come from the live table.

        Args:
            connection: Initialized database connection used for reflection
            table: Table name
            return_fields: Columns returned by every SELECT/RETURNING
            extensions_factory: Builds extra named operations
            schema: Schema name (None for default)
            model: Pydantic model each returned row is validated into
            clock: Source of epoch-millisecond timestamps

        Returns:
            Configured accessor

        Raises:
            StoreError: If the table does not exist or has no columns
        """
        layout = await get_table_columns(connection, table, schema)
        if not layout.columns:
            raise StoreError(f"Table {table} not found or has no columns", table=table)

        return cls(
            connection,
            f"{schema}.{table}" if schema else table,
            return_fields,
            extensions_factory,
            columns=layout.column_names,
            json_fields=layout.json_columns,
            model=model,
            clock=clock,
        )

    def with_connection(self, connection: Executor) -> "RecordAccessor[RecordT]":
        """
        Clone this accessor onto another executor.

        Used to run several operations inside one transaction::

            async with db.transaction() as tx:
                users_tx = users.with_connection(tx)
                ...

        Args:
            connection: Executor the clone should use

        Returns:
            Accessor with identical configuration
        """
        clone = type(self)(
            connection,
            self.table,
            self.return_fields,
            self._extensions_factory,
            columns=self.builder.columns,
            json_fields=self.builder.json_fields,
            model=self.model,
            clock=self.clock,
        )
        clone._written_json = self._written_json
        return clone

    @property
    def table(self) -> str:
        return self.builder.table

    @property
    def return_fields(self) -> tuple[str, ...]:
        return self.builder.return_fields

    @property
    def json_fields(self) -> frozenset[str]:
        """Configured JSON columns plus those this accessor has written JSON into."""
        return self.builder.json_fields | self._written_json

    async def _execute(self, query: BuiltQuery, op: str) -> ExecutionResult:
        self._written_json.update(query.json_written)
        json_fields = self.json_fields
        json_columns = (
            self.builder.json_result_columns(json_fields)
            if query.returns_records
            else ()
        )
        statement = query.to_statement(json_fields, json_columns)
        logger.debug(f"{op} on {self.table}: {query.sql} {query.values!r}")
        try:
            return await self.connection.execute(statement)
        except IntegrityError as e:
            logger.warning(f"{op} on {self.table} violated a constraint: {e.orig}")
            raise ConstraintViolationError(
                f"{op} on table {self.table} violated a constraint: {e.orig}",
                table=self.table,
                orig=e,
            ) from e
        except (SQLAlchemyError, OSError) as e:
            logger.warning(f"{op} on {self.table} failed: {e}")
            raise DriverError(
                f"{op} on table {self.table} failed: {e}",
                table=self.table,
                orig=e,
            ) from e

    def _record(self, row: Row) -> RecordT:
        if self.model is not None:
            return self.model.model_validate(row)  # type: ignore[return-value]
        return row  # type: ignore[return-value]

    def _single(self, result: ExecutionResult, op: str) -> RecordT:
        if not result.rows:
            raise StoreError(f"{op} on table {self.table} returned no row", table=self.table)
        return self._record(result.rows[0])

    def _stamped(self, stmt: Statement) -> dict[str, Any]:
        """Storage values with created_at (kept when supplied) and updated_at set."""
        values = self.builder.to_storage(stmt)
        now = self.clock()
        if values.get(CREATED_AT) is None:
            values[CREATED_AT] = now
        values[UPDATED_AT] = now
        return values

    async def create(self, stmt: Statement) -> RecordT:
        """
        Insert one record.

        ``createdAt`` is kept when the statement supplies it (backfills),
        otherwise set to now; ``updatedAt`` is always now.

        Args:
            stmt: Field values to write

        Returns:
            The inserted row, restricted to the return fields

        Raises:
            ConstraintViolationError: If a constraint rejects the row
            DriverError: On any other store failure
        """
        query = self.builder.insert(self._stamped(stmt))
        result = await self._execute(query, "Create")
        return self._single(result, "Create")

    async def update(self, stmt: Statement, where: Statement) -> RecordT:
        """
        Update the records matching ``where`` and return the first of them.

        Args:
            stmt: Field values to set; ``updatedAt`` is always refreshed
            where: Equality filter (ANDed), must not be empty

        Returns:
            The updated row

        Raises:
            NotFoundError: If no row matches ``where``
            InvalidStatementError: If ``where`` is empty
            ConstraintViolationError: If a constraint rejects the change
        """
        values = self.builder.to_storage(stmt)
        values[UPDATED_AT] = self.clock()
        query = self.builder.update(values, where)
        result = await self._execute(query, "Update")
        if not result.rows:
            raise NotFoundError(
                f"Update failed: No rows found matching criteria in table {self.table}.",
                table=self.table,
            )
        return self._record(result.rows[0])

    async def upsert(self, stmt: Statement) -> RecordT:
        """
        Insert a record, or update the existing row with the same ``id``.

        On conflict every supplied column except ``id`` and ``created_at`` is
        overwritten and ``updated_at`` refreshed.

        Args:
            stmt: Field values to write

        Returns:
            The inserted or updated row
        """
        query = self.builder.upsert(self._stamped(stmt))
        result = await self._execute(query, "Upsert")
        return self._single(result, "Upsert")

    async def get(self, where: Statement) -> Optional[RecordT]:
        """
        Fetch the first record matching ``where``.

        Returns:
            The row, or None if nothing matches
        """
        query = self.builder.select(where, required=True, limit=1)
        result = await self._execute(query, "Get")
        return self._record(result.rows[0]) if result.rows else None

    async def list(self, where: Optional[Statement] = None) -> List[RecordT]:
        """Fetch all records, filtered by ``where`` when it is given and non-empty."""
        result = await self._execute(self.builder.select(where), "List")
        return [self._record(row) for row in result.rows]

    async def find(self, where: Statement) -> List[RecordT]:
        """Fetch all records matching ``where``; the filter is mandatory."""
        query = self.builder.select(where, required=True)
        result = await self._execute(query, "Find")
        return [self._record(row) for row in result.rows]

    async def delete(self, where: Statement) -> int:
        """
        Delete the records matching ``where``.

        Returns:
            Number of rows removed (0 when nothing matched)
        """
        result = await self._execute(self.builder.delete(where), "Delete")
        return result.row_count

    async def paginate(
        self,
        options: Union[PaginateOptions, Mapping[str, Any], None] = None,
        **kwargs: Any,
    ) -> PaginatedResult[RecordT]:
        """
        Fetch one page of records plus totals for the whole filtered set.

        Runs a COUNT(*) query, then the page query, with the same filter.
        The two are not isolated from concurrent writers unless the accessor
        is bound to a transaction (see with_connection).

        Args:
            options: PaginateOptions, or a mapping of its fields
            **kwargs: PaginateOptions fields when ``options`` is omitted
                (``page``, ``page_size``/``pageSize``, ``where``, ``order_by``/``orderBy``)

        Returns:
            Page envelope; ordered by ``created_at DESC`` unless ``order_by`` is set

        Raises:
            TypeError: If both ``options`` and keyword arguments are given
        """
        if options is not None and kwargs:
            raise TypeError(
                "paginate() takes options or keyword arguments, not both"
            )
        if options is None:
            options = PaginateOptions.model_validate(kwargs)
        elif not isinstance(options, PaginateOptions):
            options = PaginateOptions.model_validate(options)

        count_query = self.builder.count(options.where)
        data_query = self.builder.select(
            options.where,
            order_by=options.order_by or DEFAULT_ORDER,
            limit=options.page_size,
            offset=options.offset,
        )

        count_result = await self._execute(count_query, "Count")
        total_count = int(count_result.rows[0]["count"])
        data_result = await self._execute(data_query, "Paginate")

        return PaginatedResult.build(
            data=[self._record(row) for row in data_result.rows],
            total_count=total_count,
            page=options.page,
            page_size=options.page_size,
        )
