"""
Async database connection pooling for long-running callers.

Wraps psycopg_pool.AsyncConnectionPool so that concurrent retrievals share a
bounded set of PostgreSQL connections instead of connecting per request.
Callers own the lifecycle: open() the pool, pass it to
FaqStore(connection_pool=...), close() it on shutdown. FaqStore connects
directly when no pool is given.
"""

from typing import Optional

from psycopg.conninfo import make_conninfo
from psycopg_pool import AsyncConnectionPool

from core.config import get_database_settings
from utils.logger import get_logger

logger = get_logger(__name__)


class DatabaseConnectionPool:
    """
    Async connection pool wrapper for PostgreSQL using psycopg3.

    Example:
        >>> pool = DatabaseConnectionPool(min_size=1, max_size=10)
        >>> await pool.open()
        >>> async with pool.get_connection() as conn:
        ...     await conn.execute("SELECT 1")
        >>> await pool.close()
    """

    def __init__(
        self,
        min_size: Optional[int] = None,
        max_size: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        """
        Create the pool (connections are opened by open()).

        Args:
            min_size: Connections kept warm (default: DB_POOL_MIN_SIZE)
            max_size: Maximum connections (default: DB_POOL_MAX_SIZE)
            timeout: Seconds to wait for a free connection (default: DB_POOL_TIMEOUT)
        """
        settings = get_database_settings()
        self.min_size = settings.POOL_MIN_SIZE if min_size is None else min_size
        self.max_size = settings.POOL_MAX_SIZE if max_size is None else max_size
        self.timeout = settings.POOL_TIMEOUT if timeout is None else timeout

        conninfo = make_conninfo(
            host=settings.HOST,
            port=settings.PORT,
            dbname=settings.NAME,
            user=settings.USER,
            password=settings.PASSWORD.get_secret_value(),
        )

        self.pool = AsyncConnectionPool(
            conninfo=conninfo,
            min_size=self.min_size,
            max_size=self.max_size,
            timeout=self.timeout,
            open=False,
        )

    async def open(self) -> None:
        await self.pool.open()
        logger.info(
            f"Connection pool opened: min={self.min_size}, max={self.max_size}, "
            f"timeout={self.timeout}s"
        )

    def get_connection(self):
        """
        Get a connection from the pool (async context manager).

        Raises:
            PoolTimeout: If no connection is available within timeout period
        """
        return self.pool.connection()

    async def close(self) -> None:
        await self.pool.close()
        logger.info("Connection pool closed")

    def get_stats(self) -> dict:
        stats = self.pool.get_stats()
        return {
            "pool_size": stats.get("pool_size", 0),
            "pool_available": stats.get("pool_available", 0),
            "requests_waiting": stats.get("requests_waiting", 0),
        }

