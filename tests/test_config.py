from __future__ import annotations

import pytest

from mail_digest.config import (
    ConfigurationError,
    LLMConfig,
    MailboxConfig,
    OutboxConfig,
    SummaryConfig,
)


def test_summary_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("EMAILS_BATCH_SIZE", "SUMMARY_MARK_POLICY", "SUMMARY_DAYS_BACK"):
        monkeypatch.delenv(name, raising=False)

    config = SummaryConfig()

    assert config.batch_size == 50
    assert config.mark_policy == "all"
    assert config.days_back == 1
    config.validate()


def test_summary_config_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EMAILS_BATCH_SIZE", "20")
    monkeypatch.setenv("SUMMARY_MARK_POLICY", " Summarized ")
    monkeypatch.setenv("SUMMARY_RECIPIENT_EMAIL", "me@example.com")

    config = SummaryConfig()

    assert config.batch_size == 20
    assert config.mark_policy == "summarized"
    assert config.recipient == "me@example.com"


@pytest.mark.parametrize(
    "overrides",
    [{"batch_size": 0}, {"mark_policy": "some"}, {"days_back": -1}, {"merge_max_tokens": 0}],
)
def test_summary_config_rejects_invalid_values(overrides: dict) -> None:
    with pytest.raises(ConfigurationError):
        SummaryConfig(**overrides).validate()


def test_llm_config_requires_api_key() -> None:
    with pytest.raises(ConfigurationError):
        LLMConfig(api_key="").validate()


def test_llm_config_rejects_unknown_provider() -> None:
    with pytest.raises(ConfigurationError):
        LLMConfig(api_key="key", provider="parrot").validate()


def test_mailbox_and_outbox_report_missing_settings() -> None:
    with pytest.raises(ConfigurationError, match="IMAP_HOST"):
        MailboxConfig(imap_host="", imap_user="u", imap_password="p").validate()
    with pytest.raises(ConfigurationError, match="SMTP_PASSWORD"):
        OutboxConfig(smtp_host="smtp", smtp_user="u", smtp_password="").validate()


@pytest.mark.parametrize(
    ("provider", "expected"),
    [
        ("openai", "gpt-3.5-turbo"),
        ("anthropic", "claude-3-5-haiku-latest"),
        ("Claude", "claude-3-5-haiku-latest"),
        ("deepseek", "deepseek-chat"),
        ("qwen", "qwen-plus"),
    ],
)
def test_llm_model_defaults_follow_provider(
    monkeypatch: pytest.MonkeyPatch, provider: str, expected: str
) -> None:
    monkeypatch.delenv("LLM_MODEL", raising=False)
    monkeypatch.delenv("OPENAI_MODEL", raising=False)

    assert LLMConfig(provider=provider).model == expected


def test_llm_model_from_environment_wins_over_provider_default(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("LLM_MODEL", "claude-sonnet-4-0")

    assert LLMConfig(provider="anthropic").model == "claude-sonnet-4-0"
    assert LLMConfig(provider="anthropic", model="custom").model == "custom"


def test_window_and_newsletter_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NEWSLETTER_SOURCES", "news@a.example, digest@b.example ,")
    monkeypatch.setenv("SUMMARY_WINDOW_START", "08:00")
    monkeypatch.delenv("SUMMARY_WINDOW_END", raising=False)

    config = SummaryConfig()

    assert config.newsletter_sources == ("news@a.example", "digest@b.example")
    assert (config.window_start, config.window_end) == ("08:00", "06:45")
    config.validate()


@pytest.mark.parametrize(
    "overrides",
    [{"window_start": "7.15"}, {"window_end": "25:00"}, {"newsletter_max_results": 0}],
)
def test_window_and_newsletter_settings_are_validated(overrides: dict) -> None:
    with pytest.raises(ConfigurationError):
        SummaryConfig(**overrides).validate()
