"""The scheduled job: ingest mail, build yesterday's digest, and send it."""

from __future__ import annotations

import logging
from datetime import date, timedelta

from .config import Settings
from .llm_client import LLMClient
from .mail_sender import MailSender
from .models import Digest


LOGGER = logging.getLogger(__name__)


def init_storage(settings: Settings) -> None:
    """Initialize database connection and run pending migrations."""
    from .database import init_database, run_migrations

    init_database(settings.database)
    run_migrations()


def ingest_mailbox(settings: Settings, since: date) -> int:
    """Pull messages received since ``since`` into the store.

    Returns the number of newly stored messages.
    """
    from .mail_fetcher import MailFetcher
    from .services import IngestionService

    settings.mailbox.validate()
    service = IngestionService(MailFetcher(settings.mailbox))
    return len(service.fetch_and_store(since))


def run_pipeline(settings: Settings, target_date: date | None = None) -> Digest | None:
    """Fetch new mail, create the digest for ``target_date`` and distribute it.

    ``target_date`` defaults to ``SUMMARY_DAYS_BACK`` days ago (yesterday).

    Raises:
        DigestGenerationError: when messages exist but no digest could be built.
    """
    from .services import DigestGenerationError, DistributionService, SummaryService
    from .services.summary_service import STATUS_ALL_BATCHES_FAILED

    if target_date is None:
        target_date = date.today() - timedelta(days=settings.summary.days_back)
    LOGGER.info("Preparing mail digest for %s", target_date.isoformat())

    init_storage(settings)

    if settings.mailbox.imap_host:
        stored = ingest_mailbox(settings, since=target_date)
        LOGGER.info("Stored %d new message(s) before summarizing", stored)
    else:
        LOGGER.warning("IMAP_HOST not set; summarizing messages already in the store")

    summary_service = SummaryService(LLMClient(settings.llm), settings.summary)
    digest = summary_service.create_daily_summary(target_date)
    if digest is None:
        if summary_service.last_status == STATUS_ALL_BATCHES_FAILED:
            raise DigestGenerationError(
                f"Every batch failed to summarize for {target_date.isoformat()}"
            )
        LOGGER.info("No digest produced for %s", target_date.isoformat())
        return None

    if digest.is_distributed:
        LOGGER.info("Digest for %s was already distributed", digest.date)
        return digest

    settings.outbox.validate()
    distribution = DistributionService(MailSender(settings.outbox), settings.summary.recipient)
    return distribution.distribute(digest.db_id)


__all__ = ["ingest_mailbox", "init_storage", "run_pipeline"]
