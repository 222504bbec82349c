"""Email digests to the configured recipient."""

from __future__ import annotations

import html
import logging
from datetime import datetime
from typing import TYPE_CHECKING

from ..config import ConfigurationError
from ..models import Digest
from ..repositories.digest_repository import DigestRepository

if TYPE_CHECKING:
    from ..mail_sender import DeliveryReceipt, MailSender

logger = logging.getLogger(__name__)


class DigestNotFoundError(LookupError):
    """Raised when no digest exists for the requested id."""


def display_date(digest: Digest) -> str:
    return digest.date.strftime("%a %b %d %Y")


# (heading, subject, count label) per digest kind; stored digests carry no kind
_LAYOUTS = {
    "daily": (
        "Daily Email Summary - {date}",
        "Email Summary for {date}",
        "Total Emails Processed",
    ),
    "window": (
        "Morning Email Summary - {date}",
        "Morning Email Summary for {date}",
        "Total Emails Processed",
    ),
    "newsletter": (
        "Newsletter Summary - {date}",
        "Newsletter Summary - {date}",
        "Newsletters Processed",
    ),
}


def _layout(digest: Digest) -> tuple[str, str, str]:
    heading, subject, count_label = _LAYOUTS.get(digest.metadata.get("kind"), _LAYOUTS["daily"])
    when = display_date(digest)
    return heading.format(date=when), subject.format(date=when), count_label


def digest_subject(digest: Digest) -> str:
    return _layout(digest)[1]


def render_digest_html(digest: Digest) -> str:
    """Render the digest as the HTML email body."""
    heading, _, count_label = _layout(digest)
    parts = [
        f"<h1>{heading}</h1>",
        f"<p><strong>{count_label}:</strong> {digest.email_count}</p>",
    ]
    if digest.topic_categories:
        parts.append("<h2>Topics Overview</h2><ul>")
        for category in digest.topic_categories:
            parts.append(f"<li>{html.escape(category.description or category.name)}</li>")
        parts.append("</ul>")
    parts.append("<h2>Summary</h2>")
    parts.append(f"<div>{html.escape(digest.content).replace(chr(10), '<br>')}</div>")
    return "".join(parts)


def render_digest_text(digest: Digest) -> str:
    heading, _, count_label = _layout(digest)
    lines = [
        heading,
        f"{count_label}: {digest.email_count}",
        "",
    ]
    if digest.topic_categories:
        lines.append("Topics Overview")
        lines.extend(f"- {category.description or category.name}" for category in digest.topic_categories)
        lines.append("")
    lines.append("Summary")
    lines.append(digest.content)
    return "\n".join(lines)


class DistributionService:
    """Deliver digests by email, at most once per digest."""

    def __init__(
        self,
        sender: MailSender,
        recipient: str,
        digests: DigestRepository | None = None,
    ) -> None:
        self._sender = sender
        self._recipient = recipient.strip()
        self._digests = digests or DigestRepository()

    def distribute(self, digest_id: int) -> Digest:
        """Send digest ``digest_id`` to the configured recipient.

        An already distributed digest is returned untouched. Delivery errors
        propagate and leave the digest unchanged.

        Raises:
            DigestNotFoundError: if the id is unknown.
            ConfigurationError: if no recipient is configured.
        """
        digest = self._digests.find_by_id(digest_id)
        if digest is None:
            raise DigestNotFoundError(f"Digest with id {digest_id} not found")

        if digest.is_distributed:
            logger.info("Digest %d already distributed on %s", digest_id, digest.distributed_at)
            return digest

        if not self._recipient:
            raise ConfigurationError("Recipient email not configured (SUMMARY_RECIPIENT_EMAIL)")

        receipt = self._sender.send(
            to=self._recipient,
            subject=digest_subject(digest),
            html=render_digest_html(digest),
            text=render_digest_text(digest),
        )

        distributed_at = datetime.now()
        if not self._digests.mark_distributed(digest_id, distributed_at, [self._recipient]):
            logger.warning("Digest %d was marked distributed by another run", digest_id)
            return self._digests.find_by_id(digest_id) or digest

        digest.is_distributed = True
        digest.distributed_at = distributed_at
        digest.distribution_recipients = [self._recipient]
        logger.info("Digest %d distributed to %s (message id %s)", digest_id, self._recipient, receipt.id)
        return digest

    def send_latest(self, recipient: str | None = None) -> Digest | None:
        """Re-send the newest digest as a test message.

        Distribution fields are left alone. Returns None when no digest exists.
        """
        to = (recipient or self._recipient).strip()
        if not to:
            raise ConfigurationError("No recipient given and SUMMARY_RECIPIENT_EMAIL is not set")

        digest = self._digests.find_latest()
        if digest is None:
            logger.info("No digests stored yet; nothing to send")
            return None

        self._sender.send(
            to=to,
            subject=f"{digest_subject(digest)} [Test]",
            html=render_digest_html(digest),
            text=render_digest_text(digest),
        )
        logger.info("Sent latest digest (%s) to %s", digest.date, to)
        return digest

    def send_digest(self, digest: Digest, recipient: str | None = None) -> DeliveryReceipt:
        """Email a digest that is not in the store (newsletter or window digest).

        Nothing is recorded; delivery errors propagate.
        """
        to = (recipient or self._recipient).strip()
        if not to:
            raise ConfigurationError("No recipient given and SUMMARY_RECIPIENT_EMAIL is not set")

        receipt = self._sender.send(
            to=to,
            subject=digest_subject(digest),
            html=render_digest_html(digest),
            text=render_digest_text(digest),
        )
        logger.info(
            "Sent %s digest for %s to %s", digest.metadata.get("kind", "daily"), digest.date, to
        )
        return receipt


__all__ = [
    "DigestNotFoundError",
    "DistributionService",
    "digest_subject",
    "render_digest_html",
    "render_digest_text",
]
