"""Shared PostgreSQL connection pool.

The pool is opened on first use and kept for the process lifetime.
Reconnecting dropped connections is left to ``psycopg_pool``.
"""

import asyncio
import logging

from psycopg_pool import AsyncConnectionPool

logger = logging.getLogger("bookgate.db")


class Database:
    def __init__(self, dsn: str | None, max_size: int = 20, timeout_s: float = 10.0):
        self._dsn = dsn
        self._max_size = max_size
        self._timeout_s = timeout_s
        self._pool: AsyncConnectionPool | None = None
        self._open_lock = asyncio.Lock()

    @property
    def configured(self) -> bool:
        return bool(self._dsn)

    async def pool(self) -> AsyncConnectionPool:
        if not self._dsn:
            raise RuntimeError("Database URL is not configured")
        async with self._open_lock:
            if self._pool is None:
                pool = AsyncConnectionPool(
                    self._dsn,
                    min_size=1,
                    max_size=self._max_size,
                    timeout=self._timeout_s,
                    open=False,
                )
                await pool.open()
                self._pool = pool
                logger.info("database_pool_opened")
        return self._pool

    async def ping(self) -> str:
        if not self.configured:
            return "not_configured"
        try:
            pool = await self.pool()
            async with pool.connection() as conn:
                await conn.execute("SELECT 1")
        except Exception as exc:
            logger.warning("database_ping_failed", extra={"error_code": type(exc).__name__})
            return "unavailable"
        return "ok"

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
