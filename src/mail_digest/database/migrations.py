"""Database schema migrations for the mail digest."""

from __future__ import annotations

import logging
from typing import Callable

from .connection import get_connection

logger = logging.getLogger(__name__)

Migration = Callable[[], None]

MIGRATIONS: list[tuple[int, str, Migration]] = []


def migration(version: int, description: str):
    """Decorator to register a migration function."""
    def decorator(func: Migration) -> Migration:
        MIGRATIONS.append((version, description, func))
        return func
    return decorator


@migration(1, "Create messages table")
def migration_001_create_messages_table() -> None:
    """Create the messages table for mailbox messages."""
    conn = get_connection()
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS messages (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            message_id TEXT UNIQUE NOT NULL,
            thread_id TEXT NOT NULL,
            sender TEXT NOT NULL,
            recipients TEXT NOT NULL,
            cc TEXT,
            bcc TEXT,
            subject TEXT,
            snippet TEXT,
            body TEXT NOT NULL,
            html_body TEXT,
            received_at TIMESTAMP NOT NULL,
            labels TEXT,
            attachments TEXT,
            is_processed BOOLEAN DEFAULT 0,
            is_summarized BOOLEAN DEFAULT 0,
            metadata TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );

        CREATE INDEX IF NOT EXISTS idx_messages_thread_id ON messages(thread_id);
        CREATE INDEX IF NOT EXISTS idx_messages_received_at ON messages(received_at);
        CREATE INDEX IF NOT EXISTS idx_messages_received_summarized
            ON messages(received_at, is_summarized);
    """)
    conn.commit()


@migration(2, "Create digests table")
def migration_002_create_digests_table() -> None:
    """Create the digests table; one row per calendar date."""
    conn = get_connection()
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS digests (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            digest_date DATE UNIQUE NOT NULL,
            content TEXT NOT NULL,
            topic_categories TEXT,
            email_count INTEGER NOT NULL,
            email_ids TEXT,
            metadata TEXT,
            is_distributed BOOLEAN DEFAULT 0,
            distributed_at TIMESTAMP,
            distribution_recipients TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );

        CREATE INDEX IF NOT EXISTS idx_digests_distributed ON digests(is_distributed);
    """)
    conn.commit()


def _ensure_migration_table() -> None:
    """Ensure the schema_migrations table exists."""
    conn = get_connection()
    conn.execute("""
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version INTEGER PRIMARY KEY,
            description TEXT NOT NULL,
            applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)
    conn.commit()


def get_current_version() -> int:
    """Get the current schema version from the database."""
    _ensure_migration_table()
    conn = get_connection()
    cursor = conn.execute("SELECT MAX(version) FROM schema_migrations")
    result = cursor.fetchone()[0]
    return result if result is not None else 0


def run_migrations(target_version: int | None = None) -> int:
    """Run all pending migrations up to the target version.

    Args:
        target_version: The version to migrate to. If None, runs all migrations.

    Returns:
        The number of migrations applied.
    """
    _ensure_migration_table()
    current = get_current_version()

    if target_version is None:
        target_version = max(v for v, _, _ in MIGRATIONS) if MIGRATIONS else 0

    applied = 0
    for version, description, migration_func in sorted(MIGRATIONS, key=lambda item: item[0]):
        if current < version <= target_version:
            logger.info("Applying migration %d: %s", version, description)
            migration_func()

            conn = get_connection()
            conn.execute(
                "INSERT INTO schema_migrations (version, description) VALUES (?, ?)",
                (version, description)
            )
            conn.commit()
            applied += 1
            logger.info("Migration %d applied successfully", version)

    if applied == 0:
        logger.info("Database schema is up to date (version %d)", current)
    else:
        logger.info("Applied %d migration(s), now at version %d", applied, get_current_version())

    return applied
