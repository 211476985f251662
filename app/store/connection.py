"""SQLite connection management for the embedded vector store.

One connection per operation: ``sqlite_connection()`` opens the database,
applies per-connection pragmas, loads the native distance extension when
enabled, and closes on exit. Any ``sqlite3.Error`` escaping the block is
re-raised as ``StorageError``.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from typing import Generator

import sqlite_vec

from app.config import settings
from app.errors import StorageError
from app.store import queries as Q

logger = logging.getLogger(__name__)

_extension_warned = False
_extension_warn_lock = threading.Lock()


def _warn_extension_once(exc: Exception) -> None:
    global _extension_warned
    with _extension_warn_lock:
        if _extension_warned:
            return
        _extension_warned = True
    logger.warning("Failed to load vector extension, search will use fallback: %s", exc)


def _load_vector_extension(conn: sqlite3.Connection) -> bool:
    """Load sqlite-vec (or the configured loadable library) into *conn*."""
    if not settings.vector_extension_enabled:
        return False
    try:
        conn.enable_load_extension(True)
        try:
            if settings.vector_extension_path:
                conn.load_extension(settings.vector_extension_path)
            else:
                sqlite_vec.load(conn)
        finally:
            conn.enable_load_extension(False)
    except (AttributeError, sqlite3.Error) as exc:
        # AttributeError: interpreter built without loadable-extension support
        _warn_extension_once(exc)
        return False
    return True


@contextmanager
def sqlite_connection(path: str | None = None) -> Generator[sqlite3.Connection, None, None]:
    """Yield a configured SQLite connection in autocommit mode."""
    db_path = path or settings.database_path
    try:
        conn = sqlite3.connect(
            db_path,
            timeout=settings.busy_timeout_seconds,
            isolation_level=None,
        )
    except sqlite3.Error as exc:
        raise StorageError("Could not open database", f"{db_path}: {exc}") from exc

    conn.row_factory = sqlite3.Row
    try:
        conn.execute(Q.PRAGMA_SYNCHRONOUS)
        _load_vector_extension(conn)
        yield conn
    except sqlite3.Error as exc:
        raise StorageError("Database operation failed", str(exc)) from exc
    finally:
        conn.close()


@contextmanager
def transaction(
    conn: sqlite3.Connection, immediate: bool = True
) -> Generator[sqlite3.Connection, None, None]:
    """Run the block inside one transaction; roll back on any exception.

    ``immediate=True`` takes the write lock up front so concurrent writers
    queue on ``busy_timeout`` instead of failing mid-batch. Read-only callers
    pass ``immediate=False`` to get a consistent WAL snapshot.
    """
    conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
    try:
        yield conn
    except BaseException:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
    try:
        conn.execute("COMMIT")
    except sqlite3.Error:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise


def ping() -> None:
    """Raise StorageError if the database cannot answer a trivial query."""
    with sqlite_connection() as conn:
        conn.execute("SELECT 1").fetchone()
