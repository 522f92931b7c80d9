"""Shared asyncpg pool for the PostgreSQL backend.

Both scorers and the document store read from the same ``documents`` table,
so they share one lazily created pool. The pgvector codec is registered on
every connection so embeddings travel as ``numpy`` arrays.

Connection management
- The pool is created on first use and reused across calls
- Queries are funneled through ``execute`` for uniform error handling
"""

import asyncio
from typing import Any, Optional

import asyncpg
import structlog
from asyncpg import Connection, Pool
from pgvector.asyncpg import register_vector

from .base import IndexUnavailable, Source

logger = structlog.get_logger("indexes.postgres")

# Driver, transport and timeout failures surfaced as IndexUnavailable.
DATABASE_ERRORS = (
    OSError,
    asyncio.TimeoutError,
    asyncpg.InterfaceError,
    asyncpg.PostgresError,
)


class PgPool:
    """Lazily created asyncpg pool with the pgvector codec installed."""

    def __init__(
        self,
        dsn: str,
        pool_size: int = 10,
        command_timeout: float = 30.0,
    ):
        """Configure the pool.

        Parameters
        - dsn: PostgreSQL DSN including database and credentials
        - pool_size: Max size of the asyncpg connection pool
        - command_timeout: Seconds to allow per DB command
        """
        self.dsn = dsn
        self.pool_size = pool_size
        self.command_timeout = command_timeout
        self._pool: Optional[Pool] = None
        self._lock = asyncio.Lock()

    async def _init_connection(self, conn: Connection) -> None:
        await register_vector(conn)

    async def get_pool(self, source: Optional[Source] = None) -> Pool:
        """Get or create the connection pool."""
        if self._pool is not None:
            return self._pool

        async with self._lock:
            if self._pool is None:
                try:
                    self._pool = await asyncpg.create_pool(
                        self.dsn,
                        min_size=1,
                        max_size=self.pool_size,
                        command_timeout=self.command_timeout,
                        init=self._init_connection,
                    )
                    logger.info("Created PostgreSQL connection pool", pool_size=self.pool_size)
                except DATABASE_ERRORS as e:
                    logger.error("Failed to create PostgreSQL connection pool", error=str(e))
                    raise IndexUnavailable(source, f"failed to create connection pool: {e}") from e
        return self._pool

    async def execute(
        self,
        query: str,
        *args: Any,
        source: Optional[Source] = None,
        fetch: bool = False,
        fetch_val: bool = False,
    ) -> Any:
        """Execute a query with error handling.

        Every database failure is wrapped in ``IndexUnavailable`` tagged with
        ``source`` so callers never see raw driver exceptions.
        """
        pool = await self.get_pool(source)
        try:
            async with pool.acquire() as conn:
                if fetch:
                    return await conn.fetch(query, *args)
                if fetch_val:
                    return await conn.fetchval(query, *args)
                return await conn.execute(query, *args)
        except DATABASE_ERRORS as e:
            logger.error("Query execution failed", source=getattr(source, "value", None), error=str(e))
            raise IndexUnavailable(source, str(e)) from e

    async def close(self) -> None:
        """Close the connection pool."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("Closed PostgreSQL connection pool")
