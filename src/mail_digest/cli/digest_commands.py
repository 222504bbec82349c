"""CLI helpers for digest commands."""

from __future__ import annotations

import argparse
import logging
from datetime import date, datetime, timedelta

from ..config import ConfigurationError, Settings, parse_clock


def _parse_date(raw: str) -> date:
    try:
        return datetime.fromisoformat(raw).date()
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid date: {raw} (expected YYYY-MM-DD)") from exc


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    raise argparse.ArgumentTypeError(f"Invalid boolean: {raw}")


def attach_digest_subparser(subparsers: argparse._SubParsersAction) -> None:
    """Register digest-related subcommands."""
    digest_parser = subparsers.add_parser("digest", help="Generate, inspect and send daily digests")
    digest_sub = digest_parser.add_subparsers(dest="digest_command", help="Digest sub-commands")

    generate_parser = digest_sub.add_parser("generate", help="Generate the digest for a day")
    generate_parser.add_argument(
        "--date",
        type=_parse_date,
        default=None,
        help="Day to summarize (YYYY-MM-DD). Default: yesterday.",
    )
    generate_parser.add_argument(
        "--distribute",
        action="store_true",
        help="Email the digest once it exists.",
    )

    distribute_parser = digest_sub.add_parser("distribute", help="Email a stored digest")
    distribute_parser.add_argument("--id", type=int, required=True, help="Digest id")

    list_parser = digest_sub.add_parser("list", help="List stored digests")
    list_parser.add_argument("--start", type=_parse_date, help="Earliest digest date")
    list_parser.add_argument("--end", type=_parse_date, help="Latest digest date")
    list_parser.add_argument("--distributed", type=_parse_bool, help="Filter by distribution state")
    list_parser.add_argument("--page", type=int, default=1, help="Page number (1-based)")
    list_parser.add_argument("--limit", type=int, default=10, help="Digests per page")

    show_parser = digest_sub.add_parser("show", help="Show one digest")
    show_parser.add_argument("--id", type=int, required=True, help="Digest id")

    latest_parser = digest_sub.add_parser("send-latest", help="Re-send the newest digest as a test")
    latest_parser.add_argument("--email", help="Recipient (default: SUMMARY_RECIPIENT_EMAIL)")

    newsletter_parser = digest_sub.add_parser(
        "newsletter", help="Summarize recent mail from the newsletter senders and email it"
    )
    newsletter_parser.add_argument(
        "--days-back",
        type=int,
        default=None,
        help="Days to look back (default: NEWSLETTER_DAYS_BACK)",
    )
    newsletter_parser.add_argument(
        "--max-results",
        type=int,
        default=None,
        help="Newest newsletters to include (default: NEWSLETTER_MAX_RESULTS)",
    )
    newsletter_parser.add_argument("--email", help="Recipient (default: SUMMARY_RECIPIENT_EMAIL)")
    newsletter_parser.add_argument(
        "--no-send", action="store_true", help="Print the digest instead of emailing it"
    )

    window_parser = digest_sub.add_parser(
        "window", help="Summarize every message in the overnight window and email it"
    )
    window_parser.add_argument(
        "--date",
        type=_parse_date,
        default=None,
        help="Day the window closes on (YYYY-MM-DD). Default: the last closed window.",
    )
    window_parser.add_argument("--start", help="Opening time HH:MM (default: SUMMARY_WINDOW_START)")
    window_parser.add_argument("--end", help="Closing time HH:MM (default: SUMMARY_WINDOW_END)")
    window_parser.add_argument("--email", help="Recipient (default: SUMMARY_RECIPIENT_EMAIL)")
    window_parser.add_argument(
        "--no-send", action="store_true", help="Print the digest instead of emailing it"
    )


def _distribution_service(settings: Settings):
    from ..mail_sender import MailSender
    from ..services import DistributionService

    settings.outbox.validate()
    return DistributionService(MailSender(settings.outbox), settings.summary.recipient)


def _print_digest(digest) -> None:
    if digest.db_id is not None:
        print(f"Id: {digest.db_id}")
    print(f"Date: {digest.date.isoformat()}")
    print(f"Emails: {digest.email_count}")
    if digest.topic_categories:
        print("Topics:")
        for category in digest.topic_categories:
            print(f"  - {category.description}")
    if digest.is_distributed:
        recipients = ", ".join(digest.distribution_recipients)
        print(f"Distributed: {digest.distributed_at} to {recipients}")
    else:
        print("Distributed: no")
    print("")
    print(digest.content)


def _report_missing(service, what: str) -> int:
    """Explain why no digest was built; a total batch failure is an error."""
    from ..services.summary_service import STATUS_ALL_BATCHES_FAILED

    if service.last_status == STATUS_ALL_BATCHES_FAILED:
        print(f"Digest generation failed for {what}: every batch failed to summarize (see log).")
        return 1
    print(f"No messages found for {what}; no digest produced.")
    return 0


def _deliver_unsaved(settings: Settings, digest, recipient: str | None, no_send: bool) -> None:
    if no_send:
        _print_digest(digest)
        return
    receipt = _distribution_service(settings).send_digest(digest, recipient)
    print(f"Sent to {recipient or settings.summary.recipient} (message id {receipt.id})")


def _ingest_newsletters(settings: Settings, sources, days_back: int, max_results: int) -> None:
    from ..mail_fetcher import MailFetcher
    from ..services import IngestionService

    settings.mailbox.validate()
    fetcher = MailFetcher(settings.mailbox)
    since = date.today() - timedelta(days=days_back)
    fetched = fetcher.fetch_from_senders(sources, since, max_results)
    stored = IngestionService(fetcher).store_new(fetched)
    logging.info("Fetched %d newsletter(s), %d new", len(fetched), len(stored))


def handle_digest_command(args: argparse.Namespace, settings: Settings) -> int:
    """Dispatch digest commands."""
    from ..database import init_database, run_migrations
    from ..llm_client import LLMClient
    from ..services import SummaryService
    from ..services.summary_service import latest_window, window_ending

    init_database(settings.database)
    run_migrations()

    try:
        if args.digest_command == "generate":
            settings.llm.validate()
            settings.summary.validate()
            target = args.date or (date.today() - timedelta(days=settings.summary.days_back))
            service = SummaryService(LLMClient(settings.llm), settings.summary)
            digest = service.create_daily_summary(target)
            if digest is None:
                return _report_missing(service, target.isoformat())
            print(f"Digest {digest.db_id} for {digest.date.isoformat()}:")
            print(f"- Email count: {digest.email_count}")
            print(f"- Topic categories: {len(digest.topic_categories)}")
            print(f"- Content length: {len(digest.content)} characters")
            if args.distribute:
                distributed = _distribution_service(settings).distribute(digest.db_id)
                print(f"Distributed to: {', '.join(distributed.distribution_recipients)}")
            else:
                print("To email this digest, run with --distribute")
            return 0

        if args.digest_command == "distribute":
            digest = _distribution_service(settings).distribute(args.id)
            print(
                f"Digest {digest.db_id} distributed at {digest.distributed_at} "
                f"to {', '.join(digest.distribution_recipients)}"
            )
            return 0

        if args.digest_command in {"list", "show"}:
            service = SummaryService(None, settings.summary)

            if args.digest_command == "show":
                digest = service.get_summary(args.id)
                if digest is None:
                    print(f"Digest not found: {args.id}")
                    return 1
                _print_digest(digest)
                return 0

            page = service.list_summaries(
                start_date=args.start,
                end_date=args.end,
                distributed=args.distributed,
                page=args.page,
                limit=args.limit,
            )
            if not page.items:
                print("No digests found.")
                return 0
            for digest in page.items:
                status = "sent" if digest.is_distributed else "pending"
                print(f"- [{digest.db_id}] {digest.date.isoformat()} emails={digest.email_count} [{status}]")
            print(f"Page {page.page}/{page.pages} ({page.total} total)")
            return 0

        if args.digest_command == "send-latest":
            digest = _distribution_service(settings).send_latest(args.email)
            if digest is None:
                print("No digests found in the database.")
                return 0
            print(f"Sent digest for {digest.date.isoformat()}")
            return 0
        if args.digest_command == "newsletter":
            settings.llm.validate()
            settings.summary.validate()
            sources = settings.summary.newsletter_sources
            if not sources:
                raise ConfigurationError("NEWSLETTER_SOURCES lists no sender addresses")
            days_back = (
                args.days_back if args.days_back is not None else settings.summary.newsletter_days_back
            )
            max_results = (
                args.max_results
                if args.max_results is not None
                else settings.summary.newsletter_max_results
            )
            if days_back < 1 or max_results < 1:
                raise ConfigurationError("--days-back and --max-results must be >= 1")

            if settings.mailbox.imap_host:
                _ingest_newsletters(settings, sources, days_back, max_results)
            service = SummaryService(LLMClient(settings.llm), settings.summary)
            digest = service.summarize_newsletters(sources, days_back, max_results)
            if digest is None:
                return _report_missing(service, f"newsletters from the last {days_back} day(s)")
            print(f"Newsletter digest: {digest.email_count} newsletter(s) from {', '.join(sources)}")
            _deliver_unsaved(settings, digest, args.email, args.no_send)
            return 0

        if args.digest_command == "window":
            settings.llm.validate()
            settings.summary.validate()
            start_clock = parse_clock(args.start or settings.summary.window_start)
            end_clock = parse_clock(args.end or settings.summary.window_end)
            if args.date is not None:
                start, end = window_ending(args.date, start_clock, end_clock)
            else:
                start, end = latest_window(datetime.now(), start_clock, end_clock)

            label = f"{start:%Y-%m-%d %H:%M} to {end:%Y-%m-%d %H:%M}"
            service = SummaryService(LLMClient(settings.llm), settings.summary)
            digest = service.summarize_window(start, end)
            if digest is None:
                return _report_missing(service, f"the window {label}")
            print(f"Window digest {label}: {digest.email_count} email(s)")
            _deliver_unsaved(settings, digest, args.email, args.no_send)
            return 0
    except ConfigurationError as exc:
        logging.error("Configuration error: %s", exc)
        return 1
    except Exception:  # pragma: no cover - CLI error surface
        logging.exception("Digest command '%s' failed", args.digest_command)
        return 1

    print("Missing digest sub-command. Use --help for options.")
    return 1


__all__ = ["attach_digest_subparser", "handle_digest_command"]
