from __future__ import annotations

from datetime import datetime

from conftest import FakeLLMClient, make_message
from mail_digest.digest.categorizer import (
    CATEGORIZE_SYSTEM_PROMPT,
    categorize_messages,
    parse_categories,
)
from mail_digest.models import TopicCategory


def test_parse_categories_splits_name_on_first_separator() -> None:
    categories = parse_categories("Work: meetings and deadlines\nSocial: weekend plans\n")

    assert categories == [
        TopicCategory(name="Work", description="Work: meetings and deadlines"),
        TopicCategory(name="Social", description="Social: weekend plans"),
    ]


def test_parse_categories_skips_blank_lines_and_list_markers() -> None:
    text = "\n  - Finance: invoices: Q3\n\n2. **Travel**: flights\n"

    categories = parse_categories(text)

    assert [category.name for category in categories] == ["Finance", "Travel"]
    assert categories[0].description == "- Finance: invoices: Q3"


def test_parse_categories_line_without_separator_is_its_own_name() -> None:
    assert parse_categories("Newsletters") == [
        TopicCategory(name="Newsletters", description="Newsletters")
    ]


def test_parse_categories_of_empty_text_is_empty() -> None:
    assert parse_categories("") == []


def test_categorize_messages_sends_subjects_and_senders() -> None:
    client = FakeLLMClient()
    messages = [
        make_message(1, datetime(2026, 10, 19, 9), subject="Quarterly report", sender="cfo@example.com"),
        make_message(2, datetime(2026, 10, 19, 10), subject="", sender="friend@example.com"),
    ]

    categories = categorize_messages(client, messages, max_tokens=321)

    assert [category.name for category in categories] == ["Work", "Social"]
    (call,) = client.calls
    assert call["system"] == CATEGORIZE_SYSTEM_PROMPT
    assert call["max_tokens"] == 321
    assert call["temperature"] == 0.2
    assert "Quarterly report (from cfo@example.com)" in call["prompt"]
    assert "No Subject (from friend@example.com)" in call["prompt"]
    assert "Body of message" not in call["prompt"]


def test_categorize_messages_returns_empty_list_on_backend_failure() -> None:
    client = FakeLLMClient(fail_categorize=True)

    categories = categorize_messages(client, [make_message(1, datetime(2026, 10, 19, 9))])

    assert categories == []


def test_categorize_messages_without_messages_makes_no_call() -> None:
    client = FakeLLMClient()

    assert categorize_messages(client, []) == []
    assert client.calls == []
