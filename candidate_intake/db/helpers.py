# candidate_intake/db/helpers.py
"""
Database helper functions for common patterns.
Reduces boilerplate in the repository layer.
"""

from typing import Any

import psycopg
from psycopg import errors as pg_errors

from candidate_intake.db.pool import db_pool
from candidate_intake.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DatabaseError(Exception):
    """Custom exception for database operations."""

    def __init__(self, message: str, operation: str = "unknown"):
        super().__init__(message)
        self.operation = operation


class UniqueViolationError(DatabaseError):
    """Raised when an insert collides with a unique constraint."""


def _wrap_error(e: psycopg.Error, query: str, operation: str) -> DatabaseError:
    logger.error(f"Database {operation} error", query=query[:100], error=str(e))
    if isinstance(e, pg_errors.UniqueViolation):
        return UniqueViolationError(f"Unique constraint violated: {e}", operation=operation)
    return DatabaseError(f"Query failed: {e}", operation=operation)


async def fetch_one(query: str, params: tuple | dict = ()) -> dict[str, Any] | None:
    """
    Execute query and return single row as dict.

    Args:
        query: SQL query with %s placeholders
        params: Query parameters

    Returns:
        Dict with row data or None if no results
    """
    try:
        async with db_pool.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                return await cur.fetchone()
    except psycopg.Error as e:
        raise _wrap_error(e, query, "fetch_one") from e


async def fetch_all(query: str, params: tuple | dict = ()) -> list[dict[str, Any]]:
    """Execute query and return all rows as list of dicts."""
    try:
        async with db_pool.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                return await cur.fetchall()
    except psycopg.Error as e:
        raise _wrap_error(e, query, "fetch_all") from e


async def fetch_val(query: str, params: tuple | dict = ()) -> Any:
    """Execute query and return the first column of the first row."""
    row = await fetch_one(query, params)
    return next(iter(row.values())) if row else None


async def execute_query(query: str, params: tuple | dict = ()) -> int:
    """Execute query and return number of affected rows."""
    try:
        async with db_pool.connection() as conn:
            cursor = await conn.execute(query, params)
            return cursor.rowcount
    except psycopg.Error as e:
        raise _wrap_error(e, query, "execute") from e
