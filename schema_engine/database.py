"""
Database connection management
Async PostgreSQL execution interface using asyncpg
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

import asyncpg

from .config import DatabaseConfig

logger = logging.getLogger(__name__)


@dataclass
class QueryResult:
    """Rows returned by one statement."""
    rows: List[Any] = field(default_factory=list)
    row_count: int = 0


class ExecutionInterface(Protocol):
    """The minimal contract the engine needs from a relational store."""

    async def execute(self, sql: str, params: Sequence[Any]) -> QueryResult:
        ...


class DatabaseConnection:
    """
    Manages the PostgreSQL connection pool and runs engine statements
    """

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self.pool: Optional[asyncpg.Pool] = None

    async def connect(self):
        """Initialize connection pool"""
        if self.pool is not None:
            logger.warning("Connection pool already initialized")
            return

        try:
            self.pool = await asyncpg.create_pool(**self.config.pool_options())
        except (OSError, asyncio.TimeoutError, asyncpg.PostgresError) as e:
            logger.error(f"❌ Failed to connect to {self.config.database} at {self.config.host}:{self.config.port}: {e}")
            raise

        logger.info(
            f"✅ Connected to PostgreSQL {self.config.database} at {self.config.host}:{self.config.port} "
            f"(pool {self.config.min_pool_size}-{self.config.max_pool_size})"
        )

    async def disconnect(self):
        """Close connection pool"""
        if self.pool is not None:
            await self.pool.close()
            self.pool = None
            logger.info("Database connection pool closed")

    @asynccontextmanager
    async def acquire(self):
        """
        Acquire a connection from the pool.

        Usage:
            async with db.acquire() as conn:
                rows = await conn.fetch("SELECT * FROM contacts")

        The connection goes back to the pool when the block exits, even on error.
        """
        if self.pool is None:
            raise RuntimeError("Database not connected. Call connect() first.")

        async with self.pool.acquire() as connection:
            try:
                yield connection
            except asyncpg.IntegrityConstraintViolationError as e:
                # Constraint violations are translated and logged by the caller
                logger.debug(f"Constraint violation during database operation: {e}")
                raise
            except Exception as e:
                logger.error(f"Error during database operation: {e}", exc_info=True)
                # Reset to a clean state before the pool takes it back
                try:
                    await connection.reset()
                except Exception as reset_error:
                    logger.error(f"Failed to reset connection: {reset_error}")
                raise

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> QueryResult:
        """
        Run one engine statement and return its rows.

        Every engine statement returns rows (SELECT or ... RETURNING *); the
        connection is held only for this statement.
        """
        async with self.acquire() as conn:
            rows = await conn.fetch(sql, *params)
        return QueryResult(rows=list(rows), row_count=len(rows))

    async def execute_script(self, sql: str) -> str:
        """
        Run DDL or multi-statement SQL without parameters.

        Returns:
            Status string (e.g., "CREATE TABLE")
        """
        async with self.acquire() as conn:
            return await conn.execute(sql)

    async def fetchval(self, query: str, *args, timeout: Optional[float] = None) -> Any:
        """Fetch a single value"""
        async with self.acquire() as conn:
            return await conn.fetchval(query, *args, timeout=timeout)

    async def check_connection(self) -> bool:
        """
        Check if database connection is healthy

        Returns:
            True if connection is healthy
        """
        try:
            result = await self.fetchval("SELECT 1")
            return result == 1
        except (OSError, RuntimeError, asyncpg.PostgresError) as e:
            logger.error(f"Connection check failed: {e}")
            return False

    async def get_pool_stats(self) -> Dict[str, Any]:
        """
        Get connection pool statistics for monitoring.

        Returns:
            Dictionary with pool stats (size, free connections, etc.)
        """
        if self.pool is None:
            return {
                'status': 'disconnected',
                'size': 0,
                'freesize': 0
            }

        return {
            'status': 'connected',
            'size': self.pool.get_size(),
            'freesize': self.pool.get_idle_size(),
            'min_size': self.config.min_pool_size,
            'max_size': self.config.max_pool_size
        }


# Singleton instance
_db_instance: Optional[DatabaseConnection] = None


def get_database(config: Optional[DatabaseConfig] = None) -> DatabaseConnection:
    """
    Get or create database connection instance

    Args:
        config: Database configuration (uses environment if not provided)
    """
    global _db_instance

    if _db_instance is None:
        if config is None:
            config = DatabaseConfig.from_environment()
        _db_instance = DatabaseConnection(config)

    return _db_instance


async def init_database(config: Optional[DatabaseConfig] = None) -> DatabaseConnection:
    """Initialize the shared database connection"""
    db = get_database(config)
    await db.connect()
    return db


async def close_database():
    """Close the shared database connection"""
    global _db_instance

    if _db_instance is not None:
        await _db_instance.disconnect()
        _db_instance = None
