"""
Centralized MariaDB access utilities.

Provides a lazily created connection pool, small query helpers returning
dict rows, and test override support.
"""

import json
import os
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, List, NamedTuple, Optional, Sequence, Tuple

import mysql.connector
from mysql.connector import pooling

from .errors import AppError, ErrorCode
from .logging import get_logger


LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "host.docker.internal"})

# Module-level pool and test override
_pool: Optional[pooling.MySQLConnectionPool] = None
_connection_override: Optional[Any] = None


class ExecuteResult(NamedTuple):
    rowcount: int
    lastrowid: Optional[int]


def get_required_env(name: str, default: Optional[str] = None) -> str:
    """Get a required environment variable.

    In Lambda/production, the env var must be set. For tests, a default can be
    provided to allow the code to run in mocked environments.

    Args:
        name: Environment variable name
        default: Optional default for local runs

    Returns:
        The environment variable value

    Raises:
        ValueError: If the env var is not set and no default is provided
    """
    value = os.getenv(name, default)
    if value is None:
        raise ValueError(f"Required environment variable '{name}' is not set")
    return value


def _pool_config() -> Dict[str, Any]:
    host = os.getenv("DB_HOST", "localhost")
    return {
        "pool_name": "cachao",
        "pool_size": int(os.getenv("DB_POOL_SIZE", "5")),
        "host": host,
        "port": int(os.getenv("DB_PORT", "3306")),
        "user": get_required_env("DB_USER", "admin"),
        "password": os.getenv("DB_PASSWORD", ""),
        "database": os.getenv("DB_NAME", "cachao"),
        "autocommit": True,
        "connection_timeout": 10,
        "ssl_disabled": host in LOCAL_HOSTS,
    }


def _get_pool() -> pooling.MySQLConnectionPool:
    """Create the pool on first use; reused across warm invocations."""
    global _pool
    if _pool is None:
        _pool = pooling.MySQLConnectionPool(**_pool_config())
    return _pool


@contextmanager
def get_connection() -> Iterator[Any]:
    """Yield a pooled connection and always hand it back to the pool."""
    if _connection_override is not None:
        yield _connection_override
        return

    try:
        connection = _get_pool().get_connection()
    except mysql.connector.Error as e:
        get_logger(__name__).error("Database connection failed", error=str(e))
        raise AppError(ErrorCode.DATABASE_ERROR, "Database connection failed")

    try:
        yield connection
    finally:
        connection.close()


def _run(connection: Any, sql: str, params: Sequence[Any]) -> Tuple[List[Dict[str, Any]], int, Optional[int]]:
    cursor = connection.cursor(dictionary=True)
    try:
        cursor.execute(sql, tuple(params))
        rows = cursor.fetchall() if cursor.with_rows else []
        return rows, cursor.rowcount, cursor.lastrowid
    finally:
        cursor.close()


def fetch_all(connection: Any, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
    """Run a SELECT and return every row as a dict."""
    rows, _, _ = _run(connection, sql, params)
    return rows


def fetch_one(connection: Any, sql: str, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
    """Run a SELECT and return the first row or None."""
    rows = fetch_all(connection, sql, params)
    return rows[0] if rows else None


def execute(connection: Any, sql: str, params: Sequence[Any] = ()) -> ExecuteResult:
    """Run an INSERT/UPDATE/DELETE and report affected rows and the new id."""
    _, rowcount, lastrowid = _run(connection, sql, params)
    return ExecuteResult(rowcount=rowcount, lastrowid=lastrowid)


@contextmanager
def transaction(connection: Any) -> Iterator[Any]:
    """Group statements atomically: commit on success, roll back on error."""
    connection.start_transaction()
    try:
        yield connection
        connection.commit()
    except Exception:
        connection.rollback()
        raise


def build_update(
    fields: Iterable[str],
    body: Dict[str, Any],
    json_fields: Iterable[str] = (),
) -> Tuple[str, List[Any]]:
    """
    Build a SET clause for the whitelisted keys present in a request body.

    Returns an empty clause when nothing updatable was sent; otherwise the
    clause always ends with ``updated_at = NOW()``.
    """
    json_fields = set(json_fields)
    assignments: List[str] = []
    values: List[Any] = []
    for field in fields:
        if field not in body:
            continue
        value = body[field]
        if field in json_fields and value is not None:
            value = json.dumps(value)
        assignments.append(f"{field} = %s")
        values.append(value)

    if not assignments:
        return "", []

    assignments.append("updated_at = NOW()")
    return ", ".join(assignments), values


# Test utilities
def override_connection(connection: Optional[Any]) -> None:
    """Override the database connection for testing. Set to None to clear."""
    global _connection_override
    _connection_override = connection


def clear_override() -> None:
    """Clear the connection override (call in test teardown)."""
    override_connection(None)


def reset_pool() -> None:
    """Drop the cached pool (for testing isolation)."""
    global _pool
    _pool = None
