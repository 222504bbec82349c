"""IMAP helper utilities for pulling mailbox messages."""

from __future__ import annotations

import hashlib
import imaplib
import logging
import re
from datetime import date, datetime
from email import message_from_bytes, policy
from email.message import EmailMessage
from email.utils import parsedate_to_datetime
from typing import List, Sequence

from bs4 import BeautifulSoup

from .config import MailboxConfig
from .models import Attachment, Message


LOGGER = logging.getLogger(__name__)
SNIPPET_LENGTH = 200


def html_to_text(html: str) -> str:
    """Extract readable text from an HTML body, dropping scripts and styles."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "head"]):
        tag.decompose()
    return re.sub(r"\s+", " ", soup.get_text(separator=" ")).strip()


def _received_at(message: EmailMessage) -> datetime:
    raw = message.get("Date")
    if raw:
        try:
            parsed = parsedate_to_datetime(str(raw))
        except (TypeError, ValueError):
            parsed = None
        if parsed is not None:
            if parsed.tzinfo is not None:
                # Stored timestamps are local wall-clock time
                parsed = parsed.astimezone().replace(tzinfo=None)
            return parsed
    LOGGER.debug("Message without usable Date header; using current time")
    return datetime.now()


def _thread_id(message: EmailMessage, message_id: str) -> str:
    references = str(message.get("References", "")).split()
    if references:
        return references[0]
    in_reply_to = str(message.get("In-Reply-To", "")).strip()
    return in_reply_to or message_id


def _extract_bodies(message: EmailMessage) -> tuple[str, str, List[Attachment]]:
    plain_parts: List[str] = []
    html_parts: List[str] = []
    attachments: List[Attachment] = []

    for part in message.walk():
        if part.is_multipart():
            continue
        filename = part.get_filename()
        if filename:
            payload = part.get_payload(decode=True) or b""
            attachments.append(
                Attachment(
                    filename=filename,
                    mime_type=part.get_content_type(),
                    size=len(payload),
                    attachment_id=str(part.get("Content-ID", "")).strip("<>"),
                )
            )
            continue

        content_type = part.get_content_type()
        if content_type not in {"text/plain", "text/html"}:
            continue
        try:
            content = part.get_content()
        except (LookupError, UnicodeDecodeError):
            payload = part.get_payload(decode=True) or b""
            content = payload.decode("utf-8", errors="ignore")
        if content_type == "text/plain":
            plain_parts.append(content)
        else:
            html_parts.append(content)

    return "".join(plain_parts), "".join(html_parts), attachments


def parse_message(raw_message: bytes, folder: str = "INBOX") -> Message:
    """Parse an RFC822 payload into a Message record."""
    email_message = message_from_bytes(raw_message, policy=policy.default)

    message_id = str(email_message.get("Message-ID", "")).strip()
    if not message_id:
        message_id = "<sha256:" + hashlib.sha256(raw_message).hexdigest() + ">"

    body, html_body, attachments = _extract_bodies(email_message)
    if not body.strip() and html_body:
        body = html_to_text(html_body)

    return Message(
        message_id=message_id,
        thread_id=_thread_id(email_message, message_id),
        sender=str(email_message.get("From", "")),
        recipients=str(email_message.get("To", "")),
        cc=str(email_message.get("Cc", "")),
        bcc=str(email_message.get("Bcc", "")),
        subject=str(email_message.get("Subject", "")),
        snippet=re.sub(r"\s+", " ", body).strip()[:SNIPPET_LENGTH],
        body=body,
        html_body=html_body,
        received_at=_received_at(email_message),
        labels=[folder],
        attachments=attachments,
    )


def sender_criteria(senders: Sequence[str]) -> str:
    """Build an IMAP search key matching any of ``senders``.

    IMAP ``OR`` takes exactly two keys, so longer lists nest to the right.
    """
    keys = [f'FROM "{sender}"' for sender in senders]
    criteria = keys[-1]
    for key in reversed(keys[:-1]):
        criteria = f"OR {key} {criteria}"
    return criteria


class MailFetcher:
    """Fetch recent emails from an IMAP inbox."""

    def __init__(self, config: MailboxConfig) -> None:
        self._config = config

    def _connect(self) -> imaplib.IMAP4_SSL:
        LOGGER.debug(
            "Connecting to IMAP server %s:%s", self._config.imap_host, self._config.imap_port
        )
        client = imaplib.IMAP4_SSL(self._config.imap_host, self._config.imap_port)
        client.login(self._config.imap_user, self._config.imap_password)
        client.select(self._config.imap_folder, readonly=True)
        return client

    def fetch_recent(self, since: date) -> List[Message]:
        """Return messages received on or after ``since`` (newest ``max_messages`` only)."""
        search_terms = [f"SINCE {since.strftime('%d-%b-%Y')}"]
        if self._config.sender_filter:
            search_terms.append(f'FROM "{self._config.sender_filter}"')
        return self._search("(" + " ".join(search_terms) + ")", self._config.max_messages)

    def fetch_from_senders(
        self, senders: Sequence[str], since: date, limit: int | None = None
    ) -> List[Message]:
        """Return messages from any of ``senders`` received on or after ``since``."""
        if not senders:
            return []
        criteria = f"(SINCE {since.strftime('%d-%b-%Y')} {sender_criteria(senders)})"
        return self._search(criteria, limit or self._config.max_messages)

    def _search(self, criteria: str, limit: int) -> List[Message]:
        LOGGER.info("Searching IMAP folder=%s with criteria=%s", self._config.imap_folder, criteria)

        with self._connect() as client:
            status, response = client.search(None, criteria)
            if status != "OK":
                LOGGER.warning("IMAP search failed with status %s: %s", status, response)
                return []

            message_ids = response[0].decode().split()[-limit:]
            messages: List[Message] = []

            for msg_id in message_ids:
                status, data = client.fetch(msg_id, "(BODY.PEEK[])")
                if status != "OK" or not data or data[0] is None:
                    LOGGER.warning("Failed to fetch message id=%s", msg_id)
                    continue

                _, raw_message = data[0]
                messages.append(parse_message(raw_message, folder=self._config.imap_folder))

            LOGGER.info("Fetched %d message(s)", len(messages))
            return messages


__all__ = ["MailFetcher", "html_to_text", "parse_message", "sender_criteria"]
