"""Repository for daily digest records."""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import date, datetime
from typing import List

from ..database.connection import get_connection
from ..models import Digest, TopicCategory
from .message_repository import from_db_timestamp, to_db_timestamp

logger = logging.getLogger(__name__)


class DuplicateDigestError(RuntimeError):
    """Raised when a digest already exists for the calendar date being saved."""

    def __init__(self, digest_date: date) -> None:
        super().__init__(f"A digest already exists for {digest_date.isoformat()}")
        self.digest_date = digest_date


class DigestRepository:
    """Repository for managing digests in the database."""

    def save(self, digest: Digest) -> Digest:
        """Insert a new digest.

        The ``digest_date`` column is UNIQUE, so at most one digest per day can
        ever be stored; a concurrent writer that loses the race gets
        DuplicateDigestError.

        Returns:
            The same digest with ``db_id`` and ``created_at`` populated.
        """
        conn = get_connection()
        try:
            cursor = conn.execute(
                """
                INSERT INTO digests (
                    digest_date, content, topic_categories, email_count,
                    email_ids, metadata, is_distributed, distributed_at,
                    distribution_recipients
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    digest.date.isoformat(),
                    digest.content,
                    json.dumps([category.to_dict() for category in digest.topic_categories]),
                    digest.email_count,
                    json.dumps(digest.email_ids),
                    json.dumps(digest.metadata) if digest.metadata else None,
                    1 if digest.is_distributed else 0,
                    to_db_timestamp(digest.distributed_at) if digest.distributed_at else None,
                    json.dumps(digest.distribution_recipients),
                ),
            )
        except sqlite3.IntegrityError as exc:
            conn.rollback()
            raise DuplicateDigestError(digest.date) from exc
        conn.commit()

        digest.db_id = cursor.lastrowid
        stored = self.find_by_id(digest.db_id)
        if stored is not None:
            digest.created_at = stored.created_at
        logger.debug("Inserted digest for %s with id %d", digest.date, digest.db_id)
        return digest

    def find_by_id(self, digest_id: int) -> Digest | None:
        conn = get_connection()
        cursor = conn.execute("SELECT * FROM digests WHERE id = ?", (digest_id,))
        row = cursor.fetchone()
        return self._row_to_digest(row) if row else None

    def find_by_date(self, digest_date: date) -> Digest | None:
        conn = get_connection()
        cursor = conn.execute(
            "SELECT * FROM digests WHERE digest_date = ?",
            (digest_date.isoformat(),),
        )
        row = cursor.fetchone()
        return self._row_to_digest(row) if row else None

    def find_latest(self) -> Digest | None:
        """Return the most recently created digest."""
        conn = get_connection()
        cursor = conn.execute(
            "SELECT * FROM digests ORDER BY created_at DESC, id DESC LIMIT 1"
        )
        row = cursor.fetchone()
        return self._row_to_digest(row) if row else None

    def mark_distributed(
        self,
        digest_id: int,
        distributed_at: datetime,
        recipients: List[str],
    ) -> bool:
        """Record a distribution.

        Only a not-yet-distributed digest is updated.

        Returns:
            True when this call flipped the flag.
        """
        conn = get_connection()
        cursor = conn.execute(
            """
            UPDATE digests
            SET is_distributed = 1,
                distributed_at = ?,
                distribution_recipients = ?,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND is_distributed = 0
            """,
            (to_db_timestamp(distributed_at), json.dumps(recipients), digest_id),
        )
        conn.commit()
        return cursor.rowcount == 1

    def list_digests(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
        distributed: bool | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> List[Digest]:
        """List digests newest first, optionally filtered by date range and distribution state."""
        where, params = self._build_filter(start_date, end_date, distributed)
        conn = get_connection()
        cursor = conn.execute(
            f"SELECT * FROM digests {where} ORDER BY digest_date DESC LIMIT ? OFFSET ?",
            [*params, limit, offset],
        )
        return [self._row_to_digest(row) for row in cursor.fetchall()]

    def count(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
        distributed: bool | None = None,
    ) -> int:
        where, params = self._build_filter(start_date, end_date, distributed)
        conn = get_connection()
        cursor = conn.execute(f"SELECT COUNT(*) FROM digests {where}", params)
        return cursor.fetchone()[0]

    @staticmethod
    def _build_filter(
        start_date: date | None,
        end_date: date | None,
        distributed: bool | None,
    ) -> tuple[str, list]:
        clauses: list[str] = []
        params: list = []
        if start_date is not None:
            clauses.append("digest_date >= ?")
            params.append(start_date.isoformat())
        if end_date is not None:
            clauses.append("digest_date <= ?")
            params.append(end_date.isoformat())
        if distributed is not None:
            clauses.append("is_distributed = ?")
            params.append(1 if distributed else 0)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params

    @staticmethod
    def _row_to_digest(row) -> Digest:
        """Convert a database row to a Digest."""
        categories = json.loads(row["topic_categories"]) if row["topic_categories"] else []
        return Digest(
            date=date.fromisoformat(row["digest_date"]),
            content=row["content"],
            email_count=row["email_count"],
            topic_categories=[
                TopicCategory(name=item.get("name", ""), description=item.get("description", ""))
                for item in categories
            ],
            email_ids=json.loads(row["email_ids"]) if row["email_ids"] else [],
            is_distributed=bool(row["is_distributed"]),
            distributed_at=from_db_timestamp(row["distributed_at"]),
            distribution_recipients=(
                json.loads(row["distribution_recipients"])
                if row["distribution_recipients"]
                else []
            ),
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            db_id=row["id"],
            created_at=from_db_timestamp(row["created_at"]),
        )


__all__ = ["DigestRepository", "DuplicateDigestError"]
