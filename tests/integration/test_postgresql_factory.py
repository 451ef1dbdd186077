"""PostgreSQL integration tests for RecordAccessor

Runs against PG_TEST_DATABASE_URL and is skipped when it is not set. Each test
gets a fresh table with a BIGSERIAL id and a JSONB meta column.
"""

import uuid
from typing import AsyncGenerator

import pytest
from sqlalchemy import text

from db_record_factory import (
    ConstraintViolationError,
    DatabaseConnection,
    NotFoundError,
    RecordAccessor,
)
from db_record_factory.core.inspector import get_table_columns

# Mark all tests in this module as PostgreSQL and integration tests
pytestmark = [pytest.mark.postgresql, pytest.mark.integration]


@pytest.fixture
async def pg_table(pg_connection: DatabaseConnection) -> AsyncGenerator[str, None]:
    """Create a uniquely named users table and drop it afterwards"""
    table = f"rf_users_{uuid.uuid4().hex[:8]}"
    async with pg_connection.get_connection() as conn:
        await conn.execute(
            text(
                f"""
                CREATE TABLE {table} (
                    id BIGSERIAL PRIMARY KEY,
                    name TEXT NOT NULL,
                    email TEXT UNIQUE NOT NULL,
                    is_active BOOLEAN NOT NULL DEFAULT TRUE,
                    meta JSONB,
                    created_at BIGINT NOT NULL,
                    updated_at BIGINT NOT NULL
                )
                """
            )
        )
        await conn.commit()
    try:
        yield table
    finally:
        async with pg_connection.get_connection() as conn:
            await conn.execute(text(f"DROP TABLE IF EXISTS {table}"))
            await conn.commit()


@pytest.fixture
async def pg_users(
    pg_connection: DatabaseConnection, pg_table: str, clock
) -> RecordAccessor:
    """Accessor configured from the live table layout"""
    return await RecordAccessor.from_table(pg_connection, pg_table, clock=clock)


class TestPostgreSQLReflection:
    """Test reflection of PostgreSQL tables"""

    @pytest.mark.asyncio
    async def test_jsonb_detected(self, pg_connection: DatabaseConnection, pg_table: str):
        """JSONB columns are flagged as JSON"""
        layout = await get_table_columns(pg_connection, pg_table)

        assert layout.primary_key == ["id"]
        assert layout.json_columns == ["meta"]

    @pytest.mark.asyncio
    async def test_accessor_allowlist(self, pg_users: RecordAccessor):
        assert pg_users.builder.columns is not None
        assert "email" in pg_users.builder.columns
        assert pg_users.builder.json_fields == frozenset({"meta"})


class TestPostgreSQLWrites:
    """Test create, update, upsert and delete on PostgreSQL"""

    @pytest.mark.asyncio
    async def test_create_and_get_with_jsonb(self, pg_users: RecordAccessor):
        """Nested JSONB values round-trip"""
        meta = {"roles": ["admin"], "prefs": {"theme": "dark"}}
        created = await pg_users.create(
            {"name": "Ann", "email": "ann@example.com", "meta": meta}
        )

        fetched = await pg_users.get({"id": created["id"]})

        assert created["created_at"] == created["updated_at"]
        assert fetched is not None
        assert fetched["meta"] == meta
        assert fetched["is_active"] is True

    @pytest.mark.asyncio
    async def test_jsonb_decoded_without_json_fields(
        self, pg_connection: DatabaseConnection, pg_table: str, clock
    ):
        """JSONB comes back decoded for an accessor that never wrote it"""
        writer = RecordAccessor(pg_connection, pg_table, clock=clock)
        reader = RecordAccessor(pg_connection, pg_table, clock=clock)
        meta = {"roles": ["admin"], "n": 1}

        created = await writer.create({"name": "Ann", "email": "ann@example.com", "meta": meta})
        fetched = await reader.get({"id": created["id"]})

        assert created["meta"] == meta
        assert reader.json_fields == frozenset()
        assert fetched is not None
        assert fetched["meta"] == meta

    @pytest.mark.asyncio
    async def test_unique_violation(self, pg_users: RecordAccessor):
        await pg_users.create({"name": "A", "email": "dup@example.com"})

        with pytest.raises(ConstraintViolationError):
            await pg_users.create({"name": "B", "email": "dup@example.com"})

    @pytest.mark.asyncio
    async def test_update_and_missing_update(self, pg_users: RecordAccessor):
        created = await pg_users.create({"name": "Ann", "email": "ann@example.com"})

        updated = await pg_users.update({"isActive": False}, {"id": created["id"]})

        assert updated["is_active"] is False
        assert updated["updated_at"] > created["updated_at"]
        with pytest.raises(NotFoundError):
            await pg_users.update({"name": "X"}, {"id": created["id"] + 1000})

    @pytest.mark.asyncio
    async def test_upsert_conflict_keeps_created_at(self, pg_users: RecordAccessor):
        first = await pg_users.upsert(
            {"id": 1000, "name": "Ann", "email": "ann@example.com"}
        )
        second = await pg_users.upsert(
            {"id": 1000, "name": "Ann B", "email": "ann@example.com"}
        )

        assert second["id"] == 1000
        assert second["name"] == "Ann B"
        assert second["created_at"] == first["created_at"]
        assert second["updated_at"] > first["updated_at"]
        assert len(await pg_users.list()) == 1

    @pytest.mark.asyncio
    async def test_delete_counts(self, pg_users: RecordAccessor):
        await pg_users.create({"name": "A", "email": "a@example.com"})
        await pg_users.create({"name": "B", "email": "b@example.com"})

        assert await pg_users.delete({"name": "missing"}) == 0
        assert await pg_users.delete({"isActive": True}) == 2


class TestPostgreSQLPagination:
    """Test pagination with bound LIMIT/OFFSET on PostgreSQL"""

    @pytest.mark.asyncio
    async def test_pages(self, pg_users: RecordAccessor):
        for i in range(5):
            await pg_users.create({"name": f"User {i}", "email": f"u{i}@example.com"})

        page = await pg_users.paginate(
            page=2, page_size=2, order_by={"field": "name", "direction": "ASC"}
        )

        assert page.total_count == 5
        assert page.total_pages == 3
        assert [row["name"] for row in page.data] == ["User 2", "User 3"]

    @pytest.mark.asyncio
    async def test_transaction_rollback(
        self, pg_connection: DatabaseConnection, pg_users: RecordAccessor
    ):
        with pytest.raises(ConstraintViolationError):
            async with pg_connection.transaction() as tx:
                bound = pg_users.with_connection(tx)
                await bound.create({"name": "A", "email": "same@example.com"})
                await bound.create({"name": "B", "email": "same@example.com"})

        page = await pg_users.paginate(page=1, page_size=10)
        assert page.total_count == 0
