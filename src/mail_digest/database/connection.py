"""Thread-local SQLite connections for the message and digest store."""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..config import DatabaseConfig

logger = logging.getLogger(__name__)

_local = threading.local()
_db_path: Path | None = None


def _connect(path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.execute("PRAGMA busy_timeout=5000")
    return conn


def init_database(config: DatabaseConfig) -> None:
    """Point the store at ``config.path``, creating its directory if needed.

    Must be called before any repository is used. Switching to a different
    path closes this thread's open connection.
    """
    global _db_path
    path = Path(config.path)
    if _db_path is not None and path != _db_path:
        close_connection()
    path.parent.mkdir(parents=True, exist_ok=True)
    _db_path = path
    logger.info("Database initialized at: %s", _db_path)


def get_connection() -> sqlite3.Connection:
    """Return this thread's connection, opening it on first use.

    Raises:
        RuntimeError: If init_database() hasn't been called.
    """
    if _db_path is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")

    conn = getattr(_local, "connection", None)
    if conn is None:
        conn = _connect(_db_path)
        _local.connection = conn
        logger.debug("Opened database connection for thread %s", threading.current_thread().name)
    return conn


def close_connection() -> None:
    conn = getattr(_local, "connection", None)
    if conn is not None:
        conn.close()
        _local.connection = None
        logger.debug("Closed database connection for thread %s", threading.current_thread().name)
