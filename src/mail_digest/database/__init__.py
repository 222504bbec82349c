"""Database layer for the mail digest."""

from .connection import close_connection, get_connection, init_database
from .migrations import get_current_version, run_migrations

__all__ = [
    "get_connection",
    "init_database",
    "close_connection",
    "run_migrations",
    "get_current_version",
]
