"""
Tests for the asyncpg-backed execution interface (pool mocked).
"""

import logging
from unittest.mock import AsyncMock, MagicMock, patch

import asyncpg
import pytest

from schema_engine.config import DatabaseConfig
from schema_engine.database import DatabaseConnection, QueryResult, close_database, get_database, init_database


def _connected(rows=None):
    """DatabaseConnection whose pool hands out one mocked connection."""
    conn = AsyncMock()
    conn.fetch.return_value = rows or []
    pool = MagicMock()
    pool.acquire.return_value.__aenter__.return_value = conn
    db = DatabaseConnection(DatabaseConfig.for_testing())
    db.pool = pool
    return db, conn


class TestExecute:
    @pytest.mark.asyncio
    async def test_rows_and_params_passed_through(self):
        db, conn = _connected([{"id": 1}, {"id": 2}])

        result = await db.execute("SELECT id FROM contacts WHERE status = $1", ["active"])

        assert result == QueryResult(rows=[{"id": 1}, {"id": 2}], row_count=2)
        conn.fetch.assert_awaited_once_with("SELECT id FROM contacts WHERE status = $1", "active")

    @pytest.mark.asyncio
    async def test_failed_statement_resets_connection(self):
        db, conn = _connected()
        conn.fetch.side_effect = RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            await db.execute("SELECT 1", [])

        conn.reset.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_constraint_violation_not_logged_as_error(self, caplog):
        db, conn = _connected()
        conn.fetch.side_effect = asyncpg.UniqueViolationError("duplicate key value")

        with caplog.at_level(logging.DEBUG, logger="schema_engine.database"):
            with pytest.raises(asyncpg.UniqueViolationError):
                await db.execute("INSERT INTO contacts (email) VALUES ($1) RETURNING *", ["ann@example.com"])

        assert not [r for r in caplog.records if r.levelno >= logging.ERROR]
        assert "Constraint violation" in caplog.text

    @pytest.mark.asyncio
    async def test_not_connected(self):
        db = DatabaseConnection(DatabaseConfig.for_testing())
        with pytest.raises(RuntimeError, match="not connected"):
            await db.execute("SELECT 1", [])


class TestPoolLifecycle:
    @pytest.mark.asyncio
    async def test_connect_maps_ssl_mode(self):
        config = DatabaseConfig.for_testing()
        config.ssl_mode = "require"
        db = DatabaseConnection(config)

        with patch("schema_engine.database.asyncpg.create_pool", new=AsyncMock(return_value=MagicMock())) as create:
            await db.connect()
            await db.connect()

        create.assert_awaited_once()
        assert create.call_args.kwargs["ssl"] is True
        assert create.call_args.kwargs["database"] == "schema_engine_test"

    @pytest.mark.asyncio
    async def test_disconnect_closes_pool(self):
        db, _ = _connected()
        pool = db.pool
        pool.close = AsyncMock()

        await db.disconnect()

        pool.close.assert_awaited_once()
        assert db.pool is None

    @pytest.mark.asyncio
    async def test_check_connection_reports_failure(self):
        db, _ = _connected()
        with patch.object(db, "fetchval", new=AsyncMock(side_effect=OSError("refused"))):
            assert await db.check_connection() is False

    @pytest.mark.asyncio
    async def test_pool_stats_when_disconnected(self):
        db = DatabaseConnection(DatabaseConfig.for_testing())
        assert await db.get_pool_stats() == {'status': 'disconnected', 'size': 0, 'freesize': 0}


class TestSharedConnection:
    @pytest.mark.asyncio
    async def test_init_and_close(self):
        config = DatabaseConfig.for_local_development()
        with patch("schema_engine.database._db_instance", None), \
                patch("schema_engine.database.asyncpg.create_pool", new=AsyncMock(return_value=MagicMock())):
            db = await init_database(config)
            assert get_database() is db
            assert db.config.database == "schema_engine"

            db.pool.close = AsyncMock()
            await close_database()

            assert db.pool is None
            assert get_database(config) is not db
