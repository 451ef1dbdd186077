"""Pytest configuration and shared fixtures for record accessor tests"""

import os
import sys
from typing import AsyncGenerator, Optional

import pytest
from dotenv import load_dotenv
from sqlalchemy import text

from db_record_factory.core import DatabaseConnection
from db_record_factory.models.config import DatabaseConfig

# Load environment variables
load_dotenv()

# Fix for Windows: asyncpg requires SelectorEventLoop on Windows
if sys.platform == "win32":
    import asyncio

    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())  # type: ignore[attr-defined]


SQLITE_USERS_DDL = """
CREATE TABLE users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    email TEXT UNIQUE NOT NULL,
    is_active BOOLEAN NOT NULL DEFAULT 1,
    meta JSON,
    created_at BIGINT NOT NULL,
    updated_at BIGINT NOT NULL
)
"""


class FakeClock:
    """Deterministic epoch-millisecond clock advancing one second per call."""

    def __init__(self, start: int = 1_700_000_000_000, step: int = 1000):
        self.current = start
        self.step = step

    def __call__(self) -> int:
        value = self.current
        self.current += self.step
        return value


@pytest.fixture
def clock() -> FakeClock:
    """Fresh deterministic clock"""
    return FakeClock()


# ==================== Configuration Fixtures ====================


@pytest.fixture(scope="session")
def pg_database_url() -> Optional[str]:
    """PostgreSQL test database URL from environment"""
    return os.getenv("PG_TEST_DATABASE_URL")


# ==================== SQLite Fixtures ====================


@pytest.fixture
def sqlite_config() -> DatabaseConfig:
    """In-memory SQLite configuration"""
    return DatabaseConfig(url="sqlite+aiosqlite:///:memory:")


@pytest.fixture
async def sqlite_connection(
    sqlite_config: DatabaseConfig,
) -> AsyncGenerator[DatabaseConnection, None]:
    """In-memory SQLite connection with a users table and proper cleanup"""
    connection = DatabaseConnection(sqlite_config)
    await connection.initialize()
    try:
        async with connection.get_connection() as conn:
            await conn.execute(text(SQLITE_USERS_DDL))
            await conn.commit()
        yield connection
    finally:
        await connection.dispose()


# ==================== PostgreSQL Fixtures ====================


@pytest.fixture
async def pg_config(pg_database_url: Optional[str]) -> DatabaseConfig:
    """PostgreSQL database configuration"""
    if not pg_database_url:
        pytest.skip("PG_TEST_DATABASE_URL not set in environment")
    return DatabaseConfig(url=pg_database_url)


@pytest.fixture
async def pg_connection(
    pg_config: DatabaseConfig,
) -> AsyncGenerator[DatabaseConnection, None]:
    """PostgreSQL database connection with proper cleanup"""
    connection = DatabaseConnection(pg_config)
    await connection.initialize()
    try:
        yield connection
    finally:
        await connection.dispose()


# ==================== Pytest Configuration ====================


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "postgresql: PostgreSQL-specific tests")
    config.addinivalue_line("markers", "sqlite: SQLite-backed tests")
    config.addinivalue_line(
        "markers", "integration: Integration tests requiring database"
    )
