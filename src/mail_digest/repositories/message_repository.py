"""Repository for mailbox message CRUD operations."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Iterable, List

from ..database.connection import get_connection
from ..models import Attachment, Message

logger = logging.getLogger(__name__)

# SQLite caps bound parameters per statement; stay well below the limit.
_MAX_PARAMS = 500


def to_db_timestamp(value: datetime) -> str:
    """Render a timestamp so that lexical order matches chronological order."""
    return value.isoformat(sep=" ", timespec="microseconds")


def from_db_timestamp(raw: str | None) -> datetime | None:
    if not raw:
        return None
    return datetime.fromisoformat(raw)


class MessageRepository:
    """Repository for managing stored mailbox messages."""

    def insert(self, message: Message) -> int:
        """Insert a new message into the database.

        Returns:
            The database ID of the inserted message.

        Raises:
            sqlite3.IntegrityError: If a message with the same message_id already exists.
        """
        conn = get_connection()
        cursor = conn.execute(
            """
            INSERT INTO messages (
                message_id, thread_id, sender, recipients, cc, bcc,
                subject, snippet, body, html_body, received_at,
                labels, attachments, is_processed, is_summarized, metadata
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                message.message_id,
                message.thread_id,
                message.sender,
                message.recipients,
                message.cc or None,
                message.bcc or None,
                message.subject,
                message.snippet or None,
                message.body,
                message.html_body or None,
                to_db_timestamp(message.received_at),
                json.dumps(message.labels),
                json.dumps([attachment.to_dict() for attachment in message.attachments]),
                1 if message.is_processed else 0,
                1 if message.is_summarized else 0,
                json.dumps(message.metadata) if message.metadata else None,
            ),
        )
        conn.commit()
        row_id = cursor.lastrowid
        logger.debug("Inserted message %s with id %d", message.message_id, row_id)
        return row_id

    def exists(self, message_id: str) -> bool:
        """Check if a message with the given external ID is already stored."""
        conn = get_connection()
        cursor = conn.execute(
            "SELECT 1 FROM messages WHERE message_id = ?",
            (message_id,),
        )
        return cursor.fetchone() is not None

    def find_by_id(self, row_id: int) -> Message | None:
        conn = get_connection()
        cursor = conn.execute("SELECT * FROM messages WHERE id = ?", (row_id,))
        row = cursor.fetchone()
        return self._row_to_message(row) if row else None

    def find_by_message_id(self, message_id: str) -> Message | None:
        conn = get_connection()
        cursor = conn.execute("SELECT * FROM messages WHERE message_id = ?", (message_id,))
        row = cursor.fetchone()
        return self._row_to_message(row) if row else None

    def find_unsummarized(self, start: datetime, end: datetime) -> List[Message]:
        """Find messages received in ``[start, end]`` not yet part of a digest.

        Results are ordered by received time, oldest first.
        """
        conn = get_connection()
        cursor = conn.execute(
            """
            SELECT * FROM messages
            WHERE received_at BETWEEN ? AND ?
              AND is_summarized = 0
            ORDER BY received_at ASC, id ASC
            """,
            (to_db_timestamp(start), to_db_timestamp(end)),
        )
        return [self._row_to_message(row) for row in cursor.fetchall()]

    def find_in_range(self, start: datetime, end: datetime) -> List[Message]:
        """Find every message received in ``[start, end]``, summarized or not."""
        conn = get_connection()
        cursor = conn.execute(
            """
            SELECT * FROM messages
            WHERE received_at BETWEEN ? AND ?
            ORDER BY received_at ASC, id ASC
            """,
            (to_db_timestamp(start), to_db_timestamp(end)),
        )
        return [self._row_to_message(row) for row in cursor.fetchall()]

    def find_from_senders(
        self,
        senders: Iterable[str],
        start: datetime,
        end: datetime,
        limit: int,
    ) -> List[Message]:
        """Find the newest ``limit`` messages whose sender contains any of ``senders``.

        Matching is case-insensitive on the raw From header, so display names
        are tolerated. Results come back oldest first.
        """
        patterns = [f"%{sender.strip().lower()}%" for sender in senders if sender.strip()]
        if not patterns:
            return []

        conn = get_connection()
        sender_clause = " OR ".join("LOWER(sender) LIKE ?" for _ in patterns)
        cursor = conn.execute(
            f"""
            SELECT * FROM messages
            WHERE received_at BETWEEN ? AND ?
              AND ({sender_clause})
            ORDER BY received_at DESC, id DESC
            LIMIT ?
            """,
            (to_db_timestamp(start), to_db_timestamp(end), *patterns, limit),
        )
        messages = [self._row_to_message(row) for row in cursor.fetchall()]
        messages.reverse()
        return messages

    def mark_summarized(self, ids: Iterable[int]) -> int:
        """Flag the given messages as summarized.

        Returns:
            Number of rows that actually changed state.
        """
        id_list = [row_id for row_id in ids if row_id is not None]
        if not id_list:
            return 0

        conn = get_connection()
        updated = 0
        for offset in range(0, len(id_list), _MAX_PARAMS):
            chunk = id_list[offset:offset + _MAX_PARAMS]
            placeholders = ",".join("?" for _ in chunk)
            cursor = conn.execute(
                f"""
                UPDATE messages
                SET is_summarized = 1, updated_at = CURRENT_TIMESTAMP
                WHERE id IN ({placeholders}) AND is_summarized = 0
                """,
                chunk,
            )
            updated += cursor.rowcount
        conn.commit()
        logger.info("Marked %d message(s) as summarized", updated)
        return updated

    def count_all(self) -> int:
        conn = get_connection()
        cursor = conn.execute("SELECT COUNT(*) FROM messages")
        return cursor.fetchone()[0]

    def count_summarized(self) -> int:
        conn = get_connection()
        cursor = conn.execute("SELECT COUNT(*) FROM messages WHERE is_summarized = 1")
        return cursor.fetchone()[0]

    def get_received_range(self) -> tuple[datetime | None, datetime | None]:
        """Return (earliest, latest) received timestamps, or (None, None) if empty."""
        conn = get_connection()
        cursor = conn.execute("SELECT MIN(received_at), MAX(received_at) FROM messages")
        row = cursor.fetchone()
        return from_db_timestamp(row[0]), from_db_timestamp(row[1])

    @staticmethod
    def _row_to_message(row) -> Message:
        """Convert a database row to a Message."""
        return Message(
            message_id=row["message_id"],
            thread_id=row["thread_id"],
            sender=row["sender"],
            recipients=row["recipients"],
            cc=row["cc"] or "",
            bcc=row["bcc"] or "",
            subject=row["subject"] or "",
            snippet=row["snippet"] or "",
            body=row["body"],
            html_body=row["html_body"] or "",
            received_at=from_db_timestamp(row["received_at"]),
            labels=json.loads(row["labels"]) if row["labels"] else [],
            attachments=[
                Attachment.from_dict(item)
                for item in (json.loads(row["attachments"]) if row["attachments"] else [])
            ],
            is_processed=bool(row["is_processed"]),
            is_summarized=bool(row["is_summarized"]),
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            db_id=row["id"],
        )


__all__ = ["MessageRepository", "from_db_timestamp", "to_db_timestamp"]
