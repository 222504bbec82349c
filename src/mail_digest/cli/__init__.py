"""CLI helpers for the mail digest."""

from .digest_commands import attach_digest_subparser, handle_digest_command

__all__ = [
    "attach_digest_subparser",
    "handle_digest_command",
]
