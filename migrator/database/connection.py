"""
PostgreSQL connection provider for the migration engine.

Wraps an asyncpg pool and gives the engine three ways in: pooled one-off
queries (``execute_query``), a callback run inside one transaction
(``transaction``) and a raw connection for statements that must run
outside any transaction (``acquire``).
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
import logging
import time
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar
from urllib.parse import urlparse

import asyncpg

from ..core.exceptions import MigratorError

T = TypeVar("T")

# asyncio.TimeoutError only became an OSError subclass in Python 3.11
DRIVER_ERRORS = (OSError, asyncio.TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError)


class DatabaseError(MigratorError):
    """Base exception for database operations."""
    pass


class DatabaseConnectionError(DatabaseError):
    """Exception raised for connection-related errors."""
    pass


@dataclass
class ConnectionStats:
    """Counters kept by DatabaseManager for diagnostics."""

    checkouts: int = 0
    active_connections: int = 0
    query_count: int = 0
    failed_queries: int = 0
    slow_queries: int = 0
    total_query_time: float = 0.0

    @property
    def avg_query_time(self) -> float:
        return self.total_query_time / self.query_count if self.query_count else 0.0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["avg_query_time"] = self.avg_query_time
        return data


class DatabaseManager:
    """
    Owns the asyncpg pool used by one migration run.

    Usage:
        db = DatabaseManager("postgresql://app@localhost/app", logger)
        await db.initialize()
        try:
            rows = await db.execute_query("SELECT version FROM schema_migrations")
        finally:
            await db.close()
    """

    SLOW_QUERY_SECONDS = 1.0

    def __init__(
        self,
        database_url: str,
        logger: Optional[logging.Logger] = None,
        pool_size: int = 5,
        min_pool_size: int = 1,
        query_timeout: float = 60.0,
        application_name: str = "migrator",
    ):
        """
        Args:
            database_url: PostgreSQL connection URL
            logger: Logger instance for database operations
            pool_size: Maximum number of pooled connections
            min_pool_size: Connections opened up front, capped at ``pool_size``
            query_timeout: Timeout in seconds for ``execute_query``; statements
                run through ``acquire`` or ``transaction`` have no client-side
                timeout
            application_name: Reported to the server as ``application_name``
        """
        self.database_url = database_url
        self.logger = logger or logging.getLogger(__name__)
        self.pool_size = pool_size
        self.min_pool_size = min(min_pool_size, pool_size)
        self.query_timeout = query_timeout
        self.application_name = application_name

        self.connection_pool: Optional[asyncpg.Pool] = None
        self.stats = ConnectionStats()
        self.is_healthy = False
        self.last_health_check: Optional[float] = None

        self.db_params = self._describe_url(database_url)

    @staticmethod
    def _describe_url(database_url: str) -> Dict[str, Any]:
        """Connection target without credentials, for log lines and error context."""
        url = urlparse(database_url)
        return {
            "host": url.hostname or "localhost",
            "port": url.port or 5432,
            "database": url.path.lstrip("/") or "postgres",
            "user": url.username or "postgres",
        }

    async def initialize(self) -> None:
        """
        Create the pool and check that it answers.

        Raises:
            DatabaseConnectionError: If the server is unreachable, rejects
                the login, or the pool fails its health check
        """
        target = self.db_params
        self.logger.info(f"Connecting to database {target['database']} at {target['host']}:{target['port']}")

        try:
            self.connection_pool = await asyncpg.create_pool(
                self.database_url,
                min_size=self.min_pool_size,
                max_size=self.pool_size,
                server_settings={"application_name": self.application_name},
            )
        except DRIVER_ERRORS as e:
            self.logger.error(f"Could not connect to database: {e}")
            raise DatabaseConnectionError(
                "Database initialization failed",
                context={"host": target["host"], "database": target["database"]},
                cause=e,
            ) from e

        if not await self.health_check():
            raise DatabaseConnectionError("Database health check failed")

        self.logger.info("Database connection pool ready")

    async def close(self) -> None:
        """Close the pool; safe to call more than once."""
        pool, self.connection_pool = self.connection_pool, None
        if pool is not None:
            await pool.close()
            self.is_healthy = False
            self.logger.info("Database connections closed")

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[asyncpg.Connection]:
        """
        Check out a raw connection for manual statement control.

        The caller owns transaction handling on the yielded connection; the
        connection goes back to the pool when the block exits, however it
        exits.
        """
        if self.connection_pool is None:
            raise DatabaseConnectionError("Database not initialized")

        async with self.connection_pool.acquire() as connection:
            self.stats.checkouts += 1
            self.stats.active_connections += 1
            try:
                yield connection
            finally:
                self.stats.active_connections -= 1

    async def execute_query(
        self,
        query: str,
        params: Optional[Sequence[Any]] = None,
        timeout: Optional[float] = None,
    ) -> List[asyncpg.Record]:
        """
        Execute a single statement outside any explicit transaction.

        Args:
            query: SQL query string with ``$n`` placeholders
            params: Positional query parameters
            timeout: Statement timeout in seconds

        Returns:
            Rows returned by the statement (empty for commands)

        Raises:
            DatabaseConnectionError: If the pool is not initialized
            DatabaseError: If the driver reports an error
        """
        started = time.monotonic()

        try:
            async with self.acquire() as conn:
                rows = await conn.fetch(query, *(params or ()), timeout=timeout or self.query_timeout)
        except DatabaseConnectionError:
            raise
        except DRIVER_ERRORS as e:
            self.stats.failed_queries += 1
            self.logger.error(f"Query failed: {e}")
            raise DatabaseError("Query execution failed", context={"query": _truncate(query)}, cause=e) from e

        self._record_query(query, time.monotonic() - started)
        return rows

    async def transaction(self, fn: Callable[[asyncpg.Connection], Awaitable[T]]) -> T:
        """
        Run ``fn`` inside one transaction on one connection.

        Commits when ``fn`` returns and rolls back when it raises; the
        original exception is re-raised unchanged.

        Args:
            fn: Coroutine function receiving the transactional connection

        Returns:
            Whatever ``fn`` returns
        """
        async with self.acquire() as conn:
            try:
                async with conn.transaction():
                    return await fn(conn)
            except Exception as e:
                self.logger.debug(f"Transaction rolled back: {e}")
                raise

    def _record_query(self, query: str, elapsed: float) -> None:
        self.stats.query_count += 1
        self.stats.total_query_time += elapsed

        if elapsed > self.SLOW_QUERY_SECONDS:
            self.stats.slow_queries += 1
            self.logger.warning(f"Slow query ({elapsed:.2f}s): {_truncate(query)}")

    async def health_check(self) -> bool:
        """Run ``SELECT 1`` on a pooled connection; never raises."""
        try:
            async with self.acquire() as conn:
                await conn.fetchval("SELECT 1")
        except (DatabaseConnectionError,) + DRIVER_ERRORS as e:
            self.is_healthy = False
            self.logger.error(f"Database health check failed: {e}")
            return False

        self.is_healthy = True
        self.last_health_check = time.time()
        return True

    def get_connection_stats(self) -> Dict[str, Any]:
        """Counters plus pool occupancy and health."""
        report = self.stats.to_dict()
        pool = self.connection_pool
        if pool is not None:
            report["pool_size"] = pool.get_size()
            report["pool_idle"] = pool.get_idle_size()
        report["is_healthy"] = self.is_healthy
        report["last_health_check"] = self.last_health_check
        return report


def _truncate(query: str, limit: int = 100) -> str:
    query = " ".join(query.split())
    return query if len(query) <= limit else query[:limit] + "..."
