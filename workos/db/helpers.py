"""
Query helpers shared by the work item repositories.

Every psycopg failure is wrapped in DatabaseError so callers handle one
exception type; with_db_retry retries only the transient ones.
"""

import asyncio
import functools
from typing import Any, Literal

import psycopg

from workos.db.pool import get_db_connection
from workos.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

Params = tuple | list


class DatabaseError(Exception):
    """A repository query failed."""

    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


async def _fetch(
    mode: Literal["one", "all"],
    query: str,
    params: Params,
    connection: psycopg.AsyncConnection | None,
) -> Any:
    async def read(conn: psycopg.AsyncConnection) -> Any:
        cursor = await conn.execute(query, params)
        return await cursor.fetchone() if mode == "one" else await cursor.fetchall()

    operation = f"fetch_{mode}"
    try:
        if connection is not None:
            return await read(connection)
        async with get_db_connection() as conn:
            return await read(conn)
    except psycopg.Error as e:
        logger.error("Database query failed", operation=operation, query=query[:100], error=str(e))
        raise DatabaseError(f"Query failed: {e}", operation=operation) from e


async def fetch_one(
    query: str, params: Params = (), *, connection: psycopg.AsyncConnection | None = None
) -> dict[str, Any] | None:
    """Run query and return the first row as a dict, or None."""
    return await _fetch("one", query, params, connection)


async def fetch_all(
    query: str, params: Params = (), *, connection: psycopg.AsyncConnection | None = None
) -> list[dict[str, Any]]:
    """Run query and return every row as a dict."""
    return await _fetch("all", query, params, connection)


def with_db_retry(max_retries: int = 3, base_delay: float = 0.1):
    """
    Decorator to retry database operations on temporary failures.

    Only DatabaseErrors caused by psycopg.OperationalError are retried;
    integrity and data errors are permanent.

    Args:
        max_retries: Maximum number of retry attempts
        base_delay: Base delay between retries (exponential backoff)
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)

                except DatabaseError as e:
                    transient = isinstance(e.__cause__, psycopg.OperationalError)
                    if not transient:
                        raise

                    if attempt >= max_retries:
                        logger.error(
                            "Database operation failed after all retries",
                            operation=func.__name__,
                            attempts=max_retries + 1,
                            error=str(e),
                        )
                        raise DatabaseError(
                            f"Operation failed after {max_retries} retries: {e}",
                            operation=func.__name__,
                            recoverable=False,
                        ) from e

                    delay = base_delay * (2**attempt)
                    logger.warning(
                        "Database operation failed, retrying",
                        operation=func.__name__,
                        attempt=attempt + 1,
                        max_retries=max_retries,
                        delay=delay,
                        error=str(e),
                    )
                    await asyncio.sleep(delay)

        return wrapper

    return decorator
