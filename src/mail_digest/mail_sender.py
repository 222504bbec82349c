"""SMTP helpers for delivering digests."""

from __future__ import annotations

import logging
import smtplib
import socket
import time
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import make_msgid

from .config import OutboxConfig


LOGGER = logging.getLogger(__name__)

# Failures worth another attempt; authentication errors are handled first.
_TRANSIENT_ERRORS = (socket.timeout, TimeoutError, smtplib.SMTPException, OSError)


class DeliveryError(RuntimeError):
    """Raised when a message could not be handed to the SMTP server."""


@dataclass(frozen=True)
class DeliveryReceipt:
    id: str


class MailSender:
    """Send emails via SMTP."""

    def __init__(self, config: OutboxConfig) -> None:
        self._config = config

    def send(self, to: str, subject: str, html: str, text: str | None = None) -> DeliveryReceipt:
        """Compose and send a message with an HTML body.

        Transient SMTP and network failures are retried with exponential
        backoff, up to ``smtp_retry_attempts`` extra attempts.

        Returns:
            Receipt carrying the generated Message-ID.

        Raises:
            DeliveryError: when every attempt failed or authentication was refused.
        """
        message = self._compose(to, subject, html, text)
        attempts = self._config.smtp_retry_attempts + 1
        LOGGER.info("Sending '%s' to %s", subject, to)

        for attempt in range(attempts):
            try:
                self._deliver_once(message)
            except smtplib.SMTPAuthenticationError as exc:
                LOGGER.error("SMTP authentication failed: %s", exc)
                raise DeliveryError(f"SMTP authentication failed: {exc}") from exc
            except _TRANSIENT_ERRORS as exc:
                LOGGER.warning(
                    "Delivery attempt %d/%d to %s failed: %s", attempt + 1, attempts, to, exc
                )
                if attempt + 1 == attempts:
                    raise DeliveryError(
                        f"Failed to send email after {attempts} attempts: {exc}"
                    ) from exc
                delay = self._config.smtp_retry_base_delay * (2 ** attempt)
                LOGGER.info("Retrying in %.1f seconds...", delay)
                time.sleep(delay)
            else:
                LOGGER.info("Delivered '%s' to %s (attempt %d)", subject, to, attempt + 1)
                return DeliveryReceipt(id=message["Message-ID"])

        raise DeliveryError("No delivery attempt was made")

    def _compose(self, to: str, subject: str, html: str, text: str | None) -> EmailMessage:
        message = EmailMessage()
        message["Message-ID"] = make_msgid(domain=self._sender_domain())
        message["From"] = self._config.from_address
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text or "Please view this message in an HTML-capable mail client.\n")
        message.add_alternative(html, subtype="html")
        return message

    def _deliver_once(self, message: EmailMessage) -> None:
        # STARTTLS on a plain connection, otherwise implicit TLS
        factory = smtplib.SMTP if self._config.use_tls else smtplib.SMTP_SSL
        with factory(
            self._config.smtp_host, self._config.smtp_port, timeout=self._config.smtp_timeout
        ) as smtp:
            if self._config.use_tls:
                smtp.starttls()
            smtp.login(self._config.smtp_user, self._config.smtp_password)
            smtp.send_message(message)

    def _sender_domain(self) -> str | None:
        address = self._config.from_address.strip().rstrip(">")
        if "@" not in address:
            return None
        return address.rsplit("@", 1)[1]


__all__ = ["DeliveryError", "DeliveryReceipt", "MailSender"]
