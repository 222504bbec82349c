"""Configuration management for the mail digest application."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import time


MARK_POLICIES = {"all", "summarized"}

# Used when neither LLM_MODEL nor OPENAI_MODEL is set
DEFAULT_MODELS = {
    "openai": "gpt-3.5-turbo",
    "deepseek": "deepseek-chat",
    "claude": "claude-3-5-haiku-latest",
    "anthropic": "claude-3-5-haiku-latest",
    "qwen": "qwen-plus",
    "bytedance": "doubao-1-5-pro-32k-250115",
}

DEFAULT_NEWSLETTER_SOURCES = "news@daily.therundown.ai"


class ConfigurationError(ValueError):
    """Raised when a required setting is missing or invalid."""


def _get_env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _get_env_list(name: str, default: str) -> tuple[str, ...]:
    raw = os.getenv(name, default)
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def parse_clock(raw: str) -> time:
    """Parse ``HH:MM`` into a time of day."""
    try:
        hours, minutes = raw.strip().split(":")
        return time(int(hours), int(minutes))
    except ValueError as exc:
        raise ConfigurationError(f"Invalid time of day '{raw}' (expected HH:MM)") from exc


@dataclass(frozen=True)
class MailboxConfig:
    imap_host: str = field(default_factory=lambda: os.getenv("IMAP_HOST", ""))
    imap_port: int = field(
        default_factory=lambda: int(os.getenv("IMAP_PORT", "993"))
    )
    imap_user: str = field(default_factory=lambda: os.getenv("IMAP_USER", ""))
    imap_password: str = field(
        default_factory=lambda: os.getenv("IMAP_PASSWORD", "")
    )
    imap_folder: str = field(default_factory=lambda: os.getenv("IMAP_FOLDER", "INBOX"))
    sender_filter: str = field(
        default_factory=lambda: os.getenv("MAIL_SENDER_FILTER", "")
    )
    max_messages: int = field(
        default_factory=lambda: int(os.getenv("IMAP_MAX_MESSAGES", "100"))
    )

    def validate(self) -> None:
        required = {
            "IMAP_HOST": self.imap_host,
            "IMAP_USER": self.imap_user,
            "IMAP_PASSWORD": self.imap_password,
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise ConfigurationError(
                f"Missing required IMAP configuration: {', '.join(sorted(missing))}"
            )
        if self.max_messages < 1:
            raise ConfigurationError("IMAP_MAX_MESSAGES must be >= 1")


@dataclass(frozen=True)
class OutboxConfig:
    smtp_host: str = field(default_factory=lambda: os.getenv("SMTP_HOST", ""))
    smtp_port: int = field(
        default_factory=lambda: int(os.getenv("SMTP_PORT", "587"))
    )
    smtp_user: str = field(default_factory=lambda: os.getenv("SMTP_USER", ""))
    smtp_password: str = field(
        default_factory=lambda: os.getenv("SMTP_PASSWORD", "")
    )
    use_tls: bool = field(
        default_factory=lambda: _get_env_bool("SMTP_USE_TLS", True)
    )
    from_address: str = field(
        default_factory=lambda: os.getenv(
            "MAIL_FROM_ADDRESS", "Email Summary Service <summary@example.com>"
        )
    )
    smtp_timeout: int = field(
        default_factory=lambda: int(os.getenv("SMTP_TIMEOUT", "30"))
    )
    smtp_retry_attempts: int = field(
        default_factory=lambda: int(os.getenv("SMTP_RETRY_ATTEMPTS", "3"))
    )
    smtp_retry_base_delay: float = field(
        default_factory=lambda: float(os.getenv("SMTP_RETRY_BASE_DELAY", "2.0"))
    )

    def validate(self) -> None:
        required = {
            "SMTP_HOST": self.smtp_host,
            "SMTP_USER": self.smtp_user,
            "SMTP_PASSWORD": self.smtp_password,
            "MAIL_FROM_ADDRESS": self.from_address,
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise ConfigurationError(
                f"Missing required SMTP configuration: {', '.join(sorted(missing))}"
            )
        if self.smtp_timeout <= 0:
            raise ConfigurationError("SMTP_TIMEOUT must be > 0")
        if self.smtp_retry_attempts < 0:
            raise ConfigurationError("SMTP_RETRY_ATTEMPTS must be >= 0")
        if self.smtp_retry_base_delay <= 0:
            raise ConfigurationError("SMTP_RETRY_BASE_DELAY must be > 0")


@dataclass(frozen=True)
class DatabaseConfig:
    """Configuration for SQLite database storage."""

    path: str = field(
        default_factory=lambda: os.getenv("DATABASE_PATH", "./data/mail_digest.db")
    )

    def validate(self) -> None:
        if not self.path:
            raise ConfigurationError("DATABASE_PATH must be provided")


@dataclass(frozen=True)
class LLMConfig:
    provider: str = field(default_factory=lambda: os.getenv("LLM_PROVIDER", "openai"))
    api_key: str = field(
        default_factory=lambda: os.getenv("LLM_API_KEY", os.getenv("OPENAI_API_KEY", ""))
    )
    model: str = field(
        default_factory=lambda: os.getenv("LLM_MODEL", os.getenv("OPENAI_MODEL", ""))
    )
    endpoint: str = field(
        default_factory=lambda: os.getenv(
            "LLM_BASE_URL", os.getenv("OPENAI_BASE_URL", "https://api.openai.com")
        )
    )
    max_tokens: int = field(
        default_factory=lambda: int(os.getenv("SUMMARY_MAX_TOKENS", "1000"))
    )
    temperature: float = field(
        default_factory=lambda: float(os.getenv("LLM_TEMPERATURE", "0.3"))
    )
    request_timeout: int = field(
        default_factory=lambda: int(os.getenv("LLM_REQUEST_TIMEOUT", "60"))
    )
    anthropic_version: str = field(
        default_factory=lambda: os.getenv("ANTHROPIC_VERSION", "2023-06-01")
    )
    rate_limit_rpm: int = field(
        default_factory=lambda: int(os.getenv("LLM_RATE_LIMIT_RPM", "20"))
    )
    retry_on_rate_limit: bool = field(
        default_factory=lambda: _get_env_bool("LLM_RETRY_ON_RATE_LIMIT", True)
    )
    retry_attempts: int = field(
        default_factory=lambda: int(os.getenv("LLM_RETRY_ATTEMPTS", "3"))
    )
    retry_base_delay: float = field(
        default_factory=lambda: float(os.getenv("LLM_RETRY_BASE_DELAY", "1.0"))
    )

    def __post_init__(self) -> None:
        if not self.model:
            default = DEFAULT_MODELS.get(self.provider.strip().lower(), DEFAULT_MODELS["openai"])
            object.__setattr__(self, "model", default)

    def validate(self) -> None:
        if not self.api_key:
            raise ConfigurationError(
                "OPENAI_API_KEY (or generic LLM_API_KEY) must be provided for summarization."
            )
        provider = self.provider.lower()
        if provider not in {"openai", "deepseek", "claude", "anthropic", "qwen", "bytedance"}:
            raise ConfigurationError(
                f"Unsupported LLM provider '{self.provider}'. "
                "Valid options: openai, deepseek, claude, anthropic, qwen, bytedance."
            )
        if self.max_tokens < 1:
            raise ConfigurationError("SUMMARY_MAX_TOKENS must be >= 1.")
        if not (0.0 <= self.temperature <= 2.0):
            raise ConfigurationError("LLM_TEMPERATURE must be in [0, 2].")
        if self.rate_limit_rpm < 0:
            raise ConfigurationError("LLM_RATE_LIMIT_RPM must be >= 0.")
        if self.retry_attempts < 0:
            raise ConfigurationError("LLM_RETRY_ATTEMPTS must be >= 0.")
        if self.retry_base_delay <= 0:
            raise ConfigurationError("LLM_RETRY_BASE_DELAY must be > 0.")


@dataclass(frozen=True)
class SummaryConfig:
    """Knobs for the daily digest run."""

    batch_size: int = field(
        default_factory=lambda: int(os.getenv("EMAILS_BATCH_SIZE", "50"))
    )
    recipient: str = field(
        default_factory=lambda: os.getenv("SUMMARY_RECIPIENT_EMAIL", "")
    )
    merge_max_tokens: int = field(
        default_factory=lambda: int(os.getenv("SUMMARY_MERGE_MAX_TOKENS", "2000"))
    )
    category_max_tokens: int = field(
        default_factory=lambda: int(os.getenv("SUMMARY_CATEGORY_MAX_TOKENS", "500"))
    )
    # "all" marks every fetched message. "summarized" marks only messages from
    # successful batches; the rest stay unsummarized and are listed in the
    # digest metadata under "unmarked_ids".
    mark_policy: str = field(
        default_factory=lambda: os.getenv("SUMMARY_MARK_POLICY", "all").strip().lower()
    )
    days_back: int = field(
        default_factory=lambda: int(os.getenv("SUMMARY_DAYS_BACK", "1"))
    )
    newsletter_sources: tuple[str, ...] = field(
        default_factory=lambda: _get_env_list("NEWSLETTER_SOURCES", DEFAULT_NEWSLETTER_SOURCES)
    )
    newsletter_days_back: int = field(
        default_factory=lambda: int(os.getenv("NEWSLETTER_DAYS_BACK", "7"))
    )
    newsletter_max_results: int = field(
        default_factory=lambda: int(os.getenv("NEWSLETTER_MAX_RESULTS", "100"))
    )
    newsletter_batch_size: int = field(
        default_factory=lambda: int(os.getenv("NEWSLETTER_BATCH_SIZE", "3"))
    )
    window_start: str = field(
        default_factory=lambda: os.getenv("SUMMARY_WINDOW_START", "07:15")
    )
    window_end: str = field(
        default_factory=lambda: os.getenv("SUMMARY_WINDOW_END", "06:45")
    )

    def validate(self) -> None:
        if self.batch_size < 1:
            raise ConfigurationError("EMAILS_BATCH_SIZE must be >= 1.")
        if self.merge_max_tokens < 1:
            raise ConfigurationError("SUMMARY_MERGE_MAX_TOKENS must be >= 1.")
        if self.category_max_tokens < 1:
            raise ConfigurationError("SUMMARY_CATEGORY_MAX_TOKENS must be >= 1.")
        if self.mark_policy not in MARK_POLICIES:
            raise ConfigurationError(
                f"SUMMARY_MARK_POLICY must be one of: {', '.join(sorted(MARK_POLICIES))}."
            )
        if self.days_back < 0:
            raise ConfigurationError("SUMMARY_DAYS_BACK must be >= 0.")
        if self.newsletter_days_back < 1:
            raise ConfigurationError("NEWSLETTER_DAYS_BACK must be >= 1.")
        if self.newsletter_max_results < 1:
            raise ConfigurationError("NEWSLETTER_MAX_RESULTS must be >= 1.")
        if self.newsletter_batch_size < 1:
            raise ConfigurationError("NEWSLETTER_BATCH_SIZE must be >= 1.")
        parse_clock(self.window_start)
        parse_clock(self.window_end)


@dataclass(frozen=True)
class Settings:
    mailbox: MailboxConfig = field(default_factory=MailboxConfig)
    outbox: OutboxConfig = field(default_factory=OutboxConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    summary: SummaryConfig = field(default_factory=SummaryConfig)

    def validate(self) -> None:
        self.llm.validate()
        self.database.validate()
        self.summary.validate()


__all__ = [
    "ConfigurationError",
    "DatabaseConfig",
    "DEFAULT_MODELS",
    "LLMConfig",
    "MailboxConfig",
    "MARK_POLICIES",
    "OutboxConfig",
    "Settings",
    "SummaryConfig",
    "parse_clock",
]
