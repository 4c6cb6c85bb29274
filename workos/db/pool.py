"""
PostgreSQL connection pool for the work item store.

Every pooled session is pinned to UTC so that source_date and created_at
comparisons line up with the day boundaries computed in Python.
"""

import asyncio
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from workos.config import settings
from workos.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SESSION_SETTINGS = (
    "SET timezone = 'UTC'",
    "SET statement_timeout = '60s'",
)


class DatabasePoolManager:
    """Owns the AsyncConnectionPool for the API process or a worker run."""

    def __init__(self):
        self.pool: AsyncConnectionPool | None = None
        self._initialized = False
        self._closed = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        if self._initialized:
            logger.warning("Work item pool already open")
            return
        if self._closed:
            raise RuntimeError("Cannot reopen a closed work item pool")

        config = settings.get_db_pool_config()
        logger.info("Opening work item pool", min_size=config["min_size"], max_size=config["max_size"])

        self.pool = AsyncConnectionPool(
            conninfo=settings.DATABASE_URL,
            open=False,
            check=AsyncConnectionPool.check_connection,
            configure=self._prepare_session,
            **config,
        )
        try:
            await self.pool.open()
            await self.pool.wait()
            self._initialized = True
            await self._ping()
        except Exception as e:
            self._initialized = False
            logger.error("Work item pool failed to open", error=str(e))
            await self._discard_pool()
            raise RuntimeError(f"Database pool initialization failed: {e}") from e

        logger.info("Work item pool ready", timeout=config["timeout"])

    async def _discard_pool(self) -> None:
        pool, self.pool = self.pool, None
        if pool is None:
            return
        try:
            await pool.close()
        except psycopg.Error as e:
            logger.warning("Error closing pool after failed open", error=str(e))

    async def _prepare_session(self, conn: psycopg.AsyncConnection) -> None:
        conn.row_factory = dict_row
        # Repository statements are single-shot; autocommit keeps idle connections out of INTRANS
        await conn.set_autocommit(True)

        await conn.execute(
            sql.SQL("SET application_name = {}").format(sql.Literal(f"workos-{settings.environment}"))
        )
        for statement in SESSION_SETTINGS:
            await conn.execute(statement)

    async def _ping(self) -> None:
        async with self.connection() as conn:
            cursor = await conn.execute("SELECT 1 AS ok")
            row = await cursor.fetchone()
        if not row or row["ok"] != 1:
            raise RuntimeError(f"Unexpected ping result: {row!r}")

    async def close(self) -> None:
        if not self._initialized or self._closed:
            return

        logger.info("Closing work item pool")
        self._initialized = False
        self._closed = True
        try:
            await asyncio.wait_for(self.pool.close(), timeout=30.0)
        except TimeoutError:
            logger.warning("Work item pool close timed out")
            return
        except psycopg.Error as e:
            logger.error("Error closing work item pool", error=str(e))
            return
        logger.info("Work item pool closed")

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """
        Borrow a connection. Rows come back as dicts.

            async with db_pool.connection() as conn:
                cursor = await conn.execute("SELECT count(*) AS n FROM work_items")
        """
        if self._closed:
            raise RuntimeError("Database pool is closed")
        if not self._initialized:
            raise RuntimeError("Database pool not initialized. Call initialize() first.")

        async with self.pool.connection() as conn:
            yield conn

    async def health_check(self) -> dict[str, Any]:
        report: dict[str, Any] = {"service": "database_pool", "healthy": False}
        if self._closed:
            report["error"] = "Pool is closed"
            return report
        if not self._initialized:
            report["error"] = "Pool not initialized"
            return report

        started = time.perf_counter()
        try:
            await self._ping()
        except (psycopg.Error, RuntimeError) as e:
            report["error"] = f"Connection test failed: {e}"
            report["error_type"] = type(e).__name__
            return report

        stats = self.pool.get_stats()
        report.update(
            healthy=True,
            connection_time_ms=round((time.perf_counter() - started) * 1000, 2),
            pool_stats={
                key: stats.get(key, 0) for key in ("pool_size", "pool_available", "requests_waiting")
            },
        )
        return report


db_pool = DatabasePoolManager()


def get_db_connection():
    return db_pool.connection()


async def db_health_check() -> dict[str, Any]:
    return await db_pool.health_check()
