"""Data access repositories for the mail digest."""

from .digest_repository import DigestRepository, DuplicateDigestError
from .message_repository import MessageRepository

__all__ = [
    "DigestRepository",
    "DuplicateDigestError",
    "MessageRepository",
]
