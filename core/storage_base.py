"""
Base storage module for async PostgreSQL access.

Provides connection management, error translation and logging shared by the
store clients. Rows are fetched as dicts (psycopg.rows.dict_row).
"""

from contextlib import asynccontextmanager
from typing import Optional

import psycopg
from psycopg.rows import dict_row

from core.config import get_database_settings
from utils.connection_pool import DatabaseConnectionPool
from utils.logger import get_logger

logger = get_logger(__name__)


class BaseStorageClient:
    """
    Base class for PostgreSQL storage clients.

    Uses a shared DatabaseConnectionPool when one is given (service mode),
    otherwise opens one connection per operation (CLI mode).
    """

    def __init__(self, connection_pool: Optional[DatabaseConnectionPool] = None):
        """
        Initialize the storage client.

        Args:
            connection_pool: Optional open DatabaseConnectionPool

        Raises:
            ValueError: If required database configuration is missing
        """
        logger.info(f"Initializing {self.__class__.__name__}")
        self._connection_pool = connection_pool

        if self._connection_pool is not None:
            logger.info(f"{self.__class__.__name__} configured with connection pool")
            return

        settings = get_database_settings()
        if not settings.HOST:
            raise ValueError("DB_HOST is not configured")
        if not settings.USER:
            raise ValueError("DB_USER is not configured")
        if not settings.NAME:
            raise ValueError("DB_NAME is not configured")

        self.db_host = settings.HOST
        self.db_port = settings.PORT
        self.db_name = settings.NAME
        self._connection_params = {
            "host": settings.HOST,
            "port": settings.PORT,
            "user": settings.USER,
            "password": settings.PASSWORD.get_secret_value(),
            "dbname": settings.NAME,
        }
        logger.info(
            f"{self.__class__.__name__} configured for "
            f"{self.db_host}:{self.db_port}/{self.db_name} (direct connections)"
        )

    @asynccontextmanager
    async def get_connection(self):
        """
        Get a database connection with automatic cleanup.

        Yields:
            psycopg.AsyncConnection returning dict rows

        Raises:
            ConnectionError: If the database is unreachable or a query fails

        Example:
            >>> async with client.get_connection() as conn:
            ...     async with conn.cursor() as cur:
            ...         await cur.execute("SELECT 1")
        """
        if self._connection_pool is not None:
            async with self._connection_pool.get_connection() as conn:
                conn.row_factory = dict_row
                try:
                    yield conn
                    await conn.commit()
                except psycopg.Error as e:
                    await conn.rollback()
                    logger.error(f"Database error: {e}")
                    raise ConnectionError(f"Database error: {e}") from e
            return

        conn = None
        try:
            conn = await psycopg.AsyncConnection.connect(
                **self._connection_params, row_factory=dict_row
            )
            logger.debug(f"Connected to {self.db_name}@{self.db_host}")
            yield conn
            await conn.commit()
        except psycopg.OperationalError as e:
            logger.error(f"Database connection error: {e}")
            raise ConnectionError(f"Unable to connect to database: {e}") from e
        except psycopg.Error as e:
            if conn is not None:
                await conn.rollback()
                logger.warning("Transaction rolled back due to error")
            logger.error(f"Database error: {e}")
            raise ConnectionError(f"Database error: {e}") from e
        finally:
            if conn is not None and not conn.closed:
                await conn.close()

    async def fetch_all(self, sql: str, params: Optional[dict] = None) -> list:
        """Run a read query and return every row as a dict."""
        async with self.get_connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(sql, params or {})
                return await cur.fetchall()

    async def health_check(self) -> bool:
        """True if a trivial query succeeds."""
        try:
            rows = await self.fetch_all("SELECT 1 AS ok")
        except ConnectionError as e:
            logger.warning(f"{self.__class__.__name__} health check failed: {e}")
            return False
        return bool(rows) and rows[0].get("ok") == 1
