"""Digest orchestration: fetch, batch, summarize, categorize, merge, persist.

Besides the persisted per-day digest, the service builds two transient
digests that are never stored and never flag messages as summarized: a
newsletter digest over allow-listed senders and a digest over a fixed
overnight window.
"""

from __future__ import annotations

import logging
import math
import sqlite3
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Sequence

from ..config import SummaryConfig, parse_clock
from ..digest.batching import summarize_batches
from ..digest.categorizer import categorize_messages
from ..digest.merger import merge_summaries
from ..llm_client import LLMClient
from ..llm_providers import LLMProviderError
from ..models import Batch, Digest, Message, TopicCategory
from ..repositories.digest_repository import DigestRepository, DuplicateDigestError
from ..repositories.message_repository import MessageRepository, to_db_timestamp

logger = logging.getLogger(__name__)

# Outcome of the most recent digest build, see SummaryService.last_status
STATUS_CREATED = "created"
STATUS_EXISTING = "existing"
STATUS_NO_MESSAGES = "no_messages"
STATUS_ALL_BATCHES_FAILED = "all_batches_failed"


class DigestGenerationError(RuntimeError):
    """Raised when the consolidated digest could not be generated.

    Nothing has been persisted or marked when this is raised, so the run can
    simply be retried.
    """


@dataclass
class DigestPage:
    items: List[Digest]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


def day_bounds(target: date | datetime) -> tuple[date, datetime, datetime]:
    """Normalize ``target`` to its calendar day and return (day, start, end)."""
    day = target.date() if isinstance(target, datetime) else target
    return day, datetime.combine(day, time.min), datetime.combine(day, time.max)


def window_ending(day: date, start: time, end: time) -> tuple[datetime, datetime]:
    """Return the window that closes at ``end`` on ``day``.

    The window opens at ``start`` on the same day when that is earlier,
    otherwise on the previous day (07:15 to 06:45 spans midnight).
    """
    window_end = datetime.combine(day, end)
    window_start = datetime.combine(day, start)
    if window_start >= window_end:
        window_start -= timedelta(days=1)
    return window_start, window_end


def latest_window(now: datetime, start: time, end: time) -> tuple[datetime, datetime]:
    """Return the most recent window that has fully closed by ``now``."""
    end_day = now.date()
    if now < datetime.combine(end_day, end):
        end_day -= timedelta(days=1)
    return window_ending(end_day, start, end)


class SummaryService:
    """Builds at most one digest per calendar day from unsummarized messages.

    ``last_status`` holds the outcome of the latest build (one of the
    ``STATUS_*`` constants) so callers can tell an empty day from a day where
    every batch failed.
    """

    def __init__(
        self,
        llm_client: LLMClient | None,
        config: SummaryConfig,
        messages: MessageRepository | None = None,
        digests: DigestRepository | None = None,
    ) -> None:
        self._llm = llm_client
        self._config = config
        self._messages = messages or MessageRepository()
        self._digests = digests or DigestRepository()
        self.last_status: str | None = None

    def create_daily_summary(self, target: date | datetime | None = None) -> Digest | None:
        """Create (or return the existing) digest for the day of ``target``.

        Returns None when there is nothing to summarize for that day, or when
        every batch failed to summarize; ``last_status`` tells the two apart.

        Raises:
            DigestGenerationError: if the merge step fails. No state is changed.
        """
        self._require_llm()
        self.last_status = None
        day, start, end = day_bounds(target or datetime.now())

        existing = self._digests.find_by_date(day)
        if existing is not None:
            logger.info("Digest already exists for %s (id=%s)", day, existing.db_id)
            self.last_status = STATUS_EXISTING
            return existing

        messages = self._messages.find_unsummarized(start, end)
        if not messages:
            logger.info("No messages to summarize for %s", day)
            self.last_status = STATUS_NO_MESSAGES
            return None

        logger.info("Generating digest for %d message(s) from %s", len(messages), day)

        batch_size = self._config.batch_size
        composed = self._compose(messages, batch_size, str(day))
        if composed is None:
            return None
        batches, categories, content = composed

        mark_ids = self._ids_to_mark(messages, batches)
        metadata = self._batch_metadata(messages, batches, batch_size)
        metadata["mark_policy"] = self._config.mark_policy
        if self._config.mark_policy == "summarized":
            marked = set(mark_ids)
            metadata["unmarked_ids"] = [
                message.db_id for message in messages if message.db_id not in marked
            ]

        digest = Digest(
            date=day,
            content=content,
            email_count=len(messages),
            topic_categories=categories,
            email_ids=[message.db_id for message in messages],
            metadata=metadata,
        )

        try:
            saved = self._digests.save(digest)
        except DuplicateDigestError:
            logger.warning("Digest for %s was created concurrently; returning the stored one", day)
            stored = self._digests.find_by_date(day)
            if stored is None:
                raise
            self.last_status = STATUS_EXISTING
            return stored

        self._mark_consumed(day, mark_ids)
        self.last_status = STATUS_CREATED
        logger.info(
            "Daily digest created for %s with %d message(s) (id=%s)", day, len(messages), saved.db_id
        )
        return saved

    def summarize_window(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        now: datetime | None = None,
    ) -> Digest | None:
        """Summarize every message received in ``[start, end]``.

        Without explicit bounds the most recently closed configured window is
        used. Messages are included whether or not they were already counted
        into a daily digest. The result is not persisted and nothing is marked.

        Raises:
            DigestGenerationError: if the merge step fails.
        """
        self._require_llm()
        self.last_status = None
        if start is None or end is None:
            start, end = latest_window(
                now or datetime.now(),
                parse_clock(self._config.window_start),
                parse_clock(self._config.window_end),
            )

        messages = self._messages.find_in_range(start, end)
        label = f"window {start:%Y-%m-%d %H:%M} to {end:%Y-%m-%d %H:%M}"
        if not messages:
            logger.info("No messages in %s", label)
            self.last_status = STATUS_NO_MESSAGES
            return None

        logger.info("Generating digest for %d message(s) in %s", len(messages), label)
        batch_size = self._config.batch_size
        composed = self._compose(messages, batch_size, label)
        if composed is None:
            return None
        batches, categories, content = composed

        metadata = self._batch_metadata(messages, batches, batch_size)
        metadata.update(
            kind="window",
            window_start=to_db_timestamp(start),
            window_end=to_db_timestamp(end),
        )
        self.last_status = STATUS_CREATED
        return Digest(
            date=end.date(),
            content=content,
            email_count=len(messages),
            topic_categories=categories,
            email_ids=[message.db_id for message in messages],
            metadata=metadata,
        )

    def summarize_newsletters(
        self,
        sources: Sequence[str] | None = None,
        days_back: int | None = None,
        max_results: int | None = None,
        now: datetime | None = None,
    ) -> Digest | None:
        """Summarize the newest stored messages from allow-listed newsletter senders.

        Looks back ``days_back`` days from ``now`` and takes at most
        ``max_results`` messages. The result is not persisted and nothing is
        marked.

        Raises:
            DigestGenerationError: if the merge step fails.
        """
        self._require_llm()
        self.last_status = None
        sources = list(sources if sources is not None else self._config.newsletter_sources)
        days_back = days_back if days_back is not None else self._config.newsletter_days_back
        max_results = (
            max_results if max_results is not None else self._config.newsletter_max_results
        )
        now = now or datetime.now()

        messages = self._messages.find_from_senders(
            sources, now - timedelta(days=days_back), now, max_results
        )
        if not messages:
            logger.info("No newsletters from %s in the last %d day(s)", sources, days_back)
            self.last_status = STATUS_NO_MESSAGES
            return None

        logger.info("Generating newsletter digest for %d message(s)", len(messages))
        batch_size = self._config.newsletter_batch_size
        composed = self._compose(messages, batch_size, "newsletters")
        if composed is None:
            return None
        batches, categories, content = composed

        metadata = self._batch_metadata(messages, batches, batch_size)
        metadata.update(kind="newsletter", sources=sources, days_back=days_back)
        self.last_status = STATUS_CREATED
        return Digest(
            date=now.date(),
            content=content,
            email_count=len(messages),
            topic_categories=categories,
            email_ids=[message.db_id for message in messages],
            metadata=metadata,
        )

    def _require_llm(self) -> None:
        if self._llm is None:
            raise RuntimeError("SummaryService needs an LLM client to create digests")

    def _compose(
        self, messages: Sequence[Message], batch_size: int, label: str
    ) -> tuple[List[Batch], List[TopicCategory], str] | None:
        """Run the batch, categorize and merge steps over ``messages``.

        Returns None (and sets ``last_status``) when every batch failed.
        """
        batches = summarize_batches(self._llm, messages, batch_size)
        if not batches:
            logger.error(
                "All %d batch(es) failed to summarize for %s; no digest produced",
                math.ceil(len(messages) / batch_size),
                label,
            )
            self.last_status = STATUS_ALL_BATCHES_FAILED
            return None

        categories = categorize_messages(
            self._llm, messages, max_tokens=self._config.category_max_tokens
        )

        try:
            content = merge_summaries(
                self._llm,
                [batch.summary for batch in batches],
                max_tokens=self._config.merge_max_tokens,
            )
        except LLMProviderError as exc:
            logger.error(
                "Merging %d batch summaries failed for %s; nothing persisted: %s",
                len(batches),
                label,
                exc,
            )
            raise DigestGenerationError(f"Failed to merge batch summaries for {label}: {exc}") from exc
        return batches, categories, content

    @staticmethod
    def _batch_metadata(
        messages: Sequence[Message], batches: Sequence[Batch], batch_size: int
    ) -> Dict[str, Any]:
        total_batches = math.ceil(len(messages) / batch_size)
        succeeded = {batch.index for batch in batches}
        return {
            "batch_size": batch_size,
            "batch_count": total_batches,
            "failed_batches": [i for i in range(total_batches) if i not in succeeded],
        }

    def _ids_to_mark(self, messages: Sequence[Message], batches: Sequence[Batch]) -> List[int]:
        if self._config.mark_policy == "summarized":
            return [message.db_id for batch in batches for message in batch.messages]
        return [message.db_id for message in messages]

    def _mark_consumed(self, day: date, ids: List[int]) -> None:
        try:
            self._messages.mark_summarized(ids)
        except sqlite3.Error:
            # The digest stays; the date check keeps a later run from re-counting these.
            logger.exception(
                "Failed to mark %d message(s) as summarized for %s; ids=%s", len(ids), day, ids
            )

    def get_summary(self, digest_id: int) -> Digest | None:
        return self._digests.find_by_id(digest_id)

    def latest_summary(self) -> Digest | None:
        return self._digests.find_latest()

    def list_summaries(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
        distributed: bool | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> DigestPage:
        """Page through digests, newest first."""
        page = max(page, 1)
        limit = max(limit, 1)
        items = self._digests.list_digests(
            start_date=start_date,
            end_date=end_date,
            distributed=distributed,
            limit=limit,
            offset=(page - 1) * limit,
        )
        total = self._digests.count(
            start_date=start_date, end_date=end_date, distributed=distributed
        )
        return DigestPage(items=items, total=total, page=page, limit=limit)


__all__ = [
    "DigestGenerationError",
    "DigestPage",
    "STATUS_ALL_BATCHES_FAILED",
    "STATUS_CREATED",
    "STATUS_EXISTING",
    "STATUS_NO_MESSAGES",
    "SummaryService",
    "day_bounds",
    "latest_window",
    "window_ending",
]
