"""Database connection management with SQLAlchemy."""

import asyncio
import logging
from contextlib import asynccontextmanager, nullcontext
from typing import Any, AsyncGenerator, NamedTuple, Optional, Protocol

from sqlalchemy import text
from sqlalchemy.engine.url import make_url
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool
from sqlalchemy.sql import Executable

from db_record_factory.models.config import DatabaseConfig
from db_record_factory.utils.serialization import dumps, loads

logger = logging.getLogger(__name__)


class ExecutionResult(NamedTuple):
    """Rows returned by a statement plus the number of rows it touched."""

    rows: list[dict[str, Any]]
    row_count: int


class Executor(Protocol):
    """Anything that can run one SQL statement with bound parameters."""

    async def execute(self, statement: Executable) -> ExecutionResult: ...


async def _run(conn: AsyncConnection, statement: Executable) -> ExecutionResult:
    result = await conn.execute(statement)
    if result.returns_rows:
        rows = [dict(row) for row in result.mappings().all()]
        return ExecutionResult(rows=rows, row_count=len(rows))
    return ExecutionResult(rows=[], row_count=max(result.rowcount, 0))


class ConnectionExecutor:
    """Executor bound to one open connection, typically inside a transaction."""

    def __init__(self, conn: AsyncConnection):
        """
        Initialize with an open async connection.

        Args:
            conn: Connection whose transaction the caller manages
        """
        self.conn = conn

    async def execute(self, statement: Executable) -> ExecutionResult:
        """Execute statement on the bound connection without committing."""
        return await _run(self.conn, statement)


class DatabaseConnection:
    """Manages SQLAlchemy async engine and connection pool."""

    def __init__(self, config: DatabaseConfig):
        """
        Initialize database connection.

        Args:
            config: Database configuration with connection URL and pool settings
        """
        self.config = config
        self.engine: Optional[AsyncEngine] = None
        self._lock: Optional[asyncio.Lock] = None
        self._dialect = config.dialect
        self._driver = config.driver

    async def initialize(self) -> None:
        """Create the async engine for the configured dialect."""
        if self.engine is not None:
            return  # Already initialized

        url = self.config.url
        engine_kwargs: dict[str, Any] = {
            "echo": self.config.echo_sql,
            "json_serializer": dumps,
            "json_deserializer": loads,
        }

        if self._dialect == "sqlite":
            # One shared connection keeps an in-memory database alive
            if self.config.is_memory:
                engine_kwargs["poolclass"] = StaticPool
                # Callers take turns on the single shared connection
                self._lock = asyncio.Lock()
            else:
                engine_kwargs["poolclass"] = NullPool
        else:
            connect_args: dict[str, Any] = {}
            url_obj = make_url(url)

            # asyncpg expects 'ssl' in connect_args, not in the URL
            if self._driver == "asyncpg" and url_obj.query:
                if "sslmode" in url_obj.query:
                    sslmode = url_obj.query["sslmode"]
                    if sslmode in ["require", "prefer", "allow"]:
                        connect_args["ssl"] = sslmode
                    elif sslmode == "disable":
                        connect_args["ssl"] = False
                    url_obj = url_obj.difference_update_query(["sslmode"])
                elif "ssl" in url_obj.query:
                    ssl_value = url_obj.query["ssl"]
                    if ssl_value in ["require", "true", "1"]:
                        connect_args["ssl"] = "require"
                    elif ssl_value in ["false", "0", "disable"]:
                        connect_args["ssl"] = False
                    url_obj = url_obj.difference_update_query(["ssl"])
                url = url_obj.render_as_string(hide_password=False)

            engine_kwargs.update(
                pool_size=self.config.pool_size,
                max_overflow=self.config.max_overflow,
                pool_timeout=self.config.pool_timeout,
                pool_pre_ping=True,  # Verify connections before using
                connect_args=connect_args,
            )

        self.engine = create_async_engine(url, **engine_kwargs)
        logger.info(
            f"Created async engine for {self._dialect}+{self._driver} "
            f"(database={self.config.database})"
        )

    async def dispose(self) -> None:
        """Dispose of the connection pool and cleanup resources."""
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            self._lock = None

    @asynccontextmanager
    async def get_connection(self) -> AsyncGenerator[AsyncConnection, None]:
        """
        Get a connection from the pool as an async context manager.

        For in-memory SQLite every caller shares one connection, so callers
        are admitted one at a time until the block exits. Do not call back
        into this object from inside such a block (use the yielded
        connection, or the executor from transaction()).

        Yields:
            AsyncConnection for executing queries

        Raises:
            RuntimeError: If engine not initialized
        """
        if self.engine is None:
            raise RuntimeError(
                "DatabaseConnection not initialized. Call initialize() first."
            )

        async with self._lock if self._lock is not None else nullcontext():
            async with self.engine.connect() as conn:
                if self.config.statement_timeout and self._dialect == "postgresql":
                    await self._set_timeout(conn, self.config.statement_timeout)
                yield conn

    async def _set_timeout(self, conn: AsyncConnection, timeout: int) -> None:
        """Set session statement timeout (PostgreSQL)."""
        timeout_ms = timeout * 1000
        await conn.execute(text(f"SET statement_timeout = {timeout_ms}"))
        # Session-level SET survives the commit; leaves the connection idle
        await conn.commit()

    async def execute(self, statement: Executable) -> ExecutionResult:
        """
        Execute one statement in its own transaction.

        Commits on success; the connection context rolls back on error.

        Args:
            statement: SQLAlchemy executable (usually a text() clause with bound parameters)

        Returns:
            Result rows as dicts and the affected row count
        """
        async with self.get_connection() as conn:
            result = await _run(conn, statement)
            await conn.commit()
            return result

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[ConnectionExecutor, None]:
        """
        Open a transaction and yield an executor bound to it.

        Everything executed through the yielded executor commits together when
        the block exits normally and rolls back if it raises.

        Yields:
            ConnectionExecutor bound to the transaction's connection
        """
        async with self.get_connection() as conn:
            async with conn.begin():
                yield ConnectionExecutor(conn)

    @property
    def dialect(self) -> str:
        """Get database dialect name."""
        return self._dialect

    @property
    def driver(self) -> str:
        """Get database driver name."""
        return self._driver

    @property
    def is_initialized(self) -> bool:
        """Check if engine is initialized."""
        return self.engine is not None

    async def test_connection(self) -> bool:
        """
        Test database connectivity.

        Returns:
            True if connection successful, False otherwise
        """
        try:
            async with self.get_connection() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning(f"Connection test failed: {e}")
            return False

    async def get_version(self) -> str:
        """
        Get database version string.

        Returns:
            Database version string
        """
        version_query = {
            "postgresql": "SELECT version()",
            "sqlite": "SELECT sqlite_version()",
        }

        query = version_query.get(self._dialect, "SELECT version()")

        async with self.get_connection() as conn:
            result = await conn.execute(text(query))
            row = result.fetchone()
            return str(row[0]) if row else "Unknown"

    async def __aenter__(self) -> "DatabaseConnection":
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.dispose()
