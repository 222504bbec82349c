"""Store freshly fetched mailbox messages, skipping ones already known."""

from __future__ import annotations

import logging
import sqlite3
from datetime import date
from typing import TYPE_CHECKING, List, Sequence

from ..models import Message
from ..repositories.message_repository import MessageRepository

if TYPE_CHECKING:
    from ..mail_fetcher import MailFetcher

logger = logging.getLogger(__name__)


class IngestionService:
    """Service for deduplicating and storing mailbox messages."""

    def __init__(self, fetcher: MailFetcher | None = None, repository: MessageRepository | None = None) -> None:
        self._fetcher = fetcher
        self._repository = repository or MessageRepository()

    def fetch_and_store(self, since: date) -> List[Message]:
        """Fetch messages received since ``since`` and store the new ones."""
        if self._fetcher is None:
            raise RuntimeError("IngestionService was created without a mail fetcher")
        return self.store_new(self._fetcher.fetch_recent(since))

    def store_new(self, messages: Sequence[Message]) -> List[Message]:
        """Insert messages whose message_id is not stored yet.

        A message that fails to store is logged and skipped.

        Returns:
            The newly stored messages, with ``db_id`` set.
        """
        stored: List[Message] = []
        skipped = 0

        for message in messages:
            if self._repository.exists(message.message_id):
                skipped += 1
                logger.debug("Message %s already stored. Skipping.", message.message_id)
                continue
            try:
                message.db_id = self._repository.insert(message)
            except sqlite3.IntegrityError:
                skipped += 1
                logger.warning("Race condition inserting message %s; already stored", message.message_id)
                continue
            except sqlite3.Error:
                logger.exception("Failed to store message %s", message.message_id)
                continue
            stored.append(message)

        logger.info("Ingestion complete: %d new, %d skipped (already stored)", len(stored), skipped)
        return stored

    def get_stats(self) -> dict:
        """Get message store statistics."""
        total = self._repository.count_all()
        summarized = self._repository.count_summarized()
        earliest, latest = self._repository.get_received_range()

        return {
            "total_messages": total,
            "summarized_messages": summarized,
            "unsummarized_messages": total - summarized,
            "earliest_received": earliest.isoformat(sep=" ") if earliest else None,
            "latest_received": latest.isoformat(sep=" ") if latest else None,
        }


__all__ = ["IngestionService"]
