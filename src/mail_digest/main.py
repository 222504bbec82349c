"""CLI entry-point for the mail digest."""

from __future__ import annotations

import argparse
import logging
import shutil
import sys
from datetime import date, datetime, timedelta
from pathlib import Path

from dotenv import load_dotenv

from .config import ConfigurationError, Settings
from .cli.digest_commands import attach_digest_subparser, handle_digest_command


def _parse_date(raw: str) -> date:
    try:
        return datetime.fromisoformat(raw).date()
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid date: {raw} (expected YYYY-MM-DD)") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Poll a mailbox, summarize each day's mail with an LLM, and email the digest."
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity",
    )

    subparsers = parser.add_subparsers(dest="command", help="Sub-commands")

    db_parser = subparsers.add_parser("db", help="Database management commands")
    db_subparsers = db_parser.add_subparsers(dest="db_command", help="Database sub-commands")

    db_subparsers.add_parser("init", help="Initialize the database")
    db_subparsers.add_parser("status", help="Show database status")

    backup_parser = db_subparsers.add_parser("backup", help="Backup the database")
    backup_parser.add_argument(
        "--output",
        "-o",
        type=str,
        help="Output path for backup file (default: ./data/backups/)",
    )

    fetch_parser = subparsers.add_parser("fetch", help="Pull mailbox messages into the store")
    fetch_parser.add_argument(
        "--since",
        type=_parse_date,
        default=None,
        help="Fetch messages received on or after this day (YYYY-MM-DD). Default: yesterday.",
    )

    attach_digest_subparser(subparsers)

    return parser


def cmd_db_init(settings: Settings) -> int:
    """Initialize the database and run migrations."""
    from .database import get_current_version, init_database, run_migrations

    init_database(settings.database)
    applied = run_migrations()

    if applied > 0:
        logging.info("Database initialized with %d migration(s)", applied)
    else:
        logging.info("Database already up to date (version %d)", get_current_version())

    return 0


def cmd_db_status(settings: Settings) -> int:
    """Show database status and statistics."""
    from .database import get_current_version, init_database
    from .repositories import DigestRepository
    from .services import IngestionService

    db_path = Path(settings.database.path)
    if not db_path.exists():
        print(f"Database file: {db_path} (not created yet)")
        print("Run 'mail-digest db init' to initialize the database.")
        return 0

    init_database(settings.database)

    stats = IngestionService().get_stats()
    digests = DigestRepository()
    version = get_current_version()

    print(f"Database file: {db_path}")
    print(f"Schema version: {version}")
    print(f"Total messages: {stats['total_messages']}")
    print(f"Summarized messages: {stats['summarized_messages']}")
    print(f"Unsummarized messages: {stats['unsummarized_messages']}")
    if stats["earliest_received"]:
        print(f"Received range: {stats['earliest_received']} to {stats['latest_received']}")
    print(f"Digests: {digests.count()} ({digests.count(distributed=True)} distributed)")

    return 0


def cmd_db_backup(settings: Settings, output: str | None = None) -> int:
    """Backup the database to a file."""
    db_path = Path(settings.database.path)
    if not db_path.exists():
        logging.error("Database file not found: %s", db_path)
        return 1

    if output:
        backup_path = Path(output)
    else:
        backup_dir = db_path.parent / "backups"
        backup_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        backup_path = backup_dir / f"mail_digest_{timestamp}.db"

    shutil.copy2(db_path, backup_path)
    print(f"Database backed up to: {backup_path}")

    return 0


def cmd_fetch(settings: Settings, since: date | None = None) -> int:
    """Ingest mailbox messages into the local store."""
    from .pipeline import ingest_mailbox, init_storage

    if since is None:
        since = date.today() - timedelta(days=settings.summary.days_back)

    init_storage(settings)
    try:
        stored = ingest_mailbox(settings, since)
    except ConfigurationError as exc:
        logging.error("Configuration error: %s", exc)
        return 1
    print(f"Fetched {stored} new message(s) since {since.isoformat()}")
    return 0


def main(argv: list[str] | None = None) -> int:
    load_dotenv()

    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    settings = Settings()

    if args.command == "db":
        if args.db_command is None:
            parser.parse_args(["db", "--help"])
            return 1
        try:
            if args.db_command == "init":
                return cmd_db_init(settings)
            elif args.db_command == "status":
                return cmd_db_status(settings)
            return cmd_db_backup(settings, args.output)
        except Exception:  # pragma: no cover - top-level guard
            logging.exception("Database command '%s' failed", args.db_command)
            return 1
    elif args.command == "fetch":
        try:
            return cmd_fetch(settings, args.since)
        except Exception:  # pragma: no cover - top-level guard
            logging.exception("Failed to fetch mailbox messages")
            return 1
    elif args.command == "digest":
        return handle_digest_command(args, settings)

    # Default: run the scheduled job
    try:
        settings.validate()
    except ConfigurationError as exc:
        logging.error("Configuration error: %s", exc)
        return 1

    try:
        from .pipeline import run_pipeline

        run_pipeline(settings)
    except ConfigurationError as exc:
        logging.error("Configuration error: %s", exc)
        return 1
    except Exception:  # pragma: no cover - top-level guard
        logging.exception("Failed to complete mail digest run")
        return 1

    logging.info("Mail digest run completed successfully")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
