from unittest.mock import AsyncMock, MagicMock

import pytest

from ticketing.services import postgres
from ticketing.services.postgres import PostgresPool


class DummyAcquire:
    def __init__(self, connection):
        self._connection = connection

    async def __aenter__(self):
        return self._connection

    async def __aexit__(self, exc_type, exc, tb):
        return False


@pytest.mark.asyncio
async def test_pool_is_created_once_and_closed(monkeypatch):
    connection = AsyncMock()
    pool = MagicMock()
    pool.acquire = MagicMock(return_value=DummyAcquire(connection))
    pool.close = AsyncMock()
    create_pool = AsyncMock(return_value=pool)
    monkeypatch.setattr(postgres.asyncpg, "create_pool", create_pool)

    holder = PostgresPool(dsn="postgresql://example/db", min_size=2, max_size=4)

    assert await holder.test_connection() is True
    assert await holder.get_pool() is pool
    create_pool.assert_awaited_once_with(dsn="postgresql://example/db", min_size=2, max_size=4)
    connection.execute.assert_awaited_with("SELECT 1")

    await holder.close()
    pool.close.assert_awaited_once()
    await holder.close()
    pool.close.assert_awaited_once()
