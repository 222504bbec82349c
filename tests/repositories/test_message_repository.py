from __future__ import annotations

import sqlite3
from datetime import datetime

import pytest

from conftest import make_message
from mail_digest.models import Attachment
from mail_digest.repositories import MessageRepository


def test_insert_round_trips_json_columns(db_path) -> None:
    repository = MessageRepository()
    message = make_message(
        1,
        datetime(2026, 10, 19, 8, 15, 30, 250),
        labels=["INBOX"],
        attachments=[Attachment(filename="report.pdf", mime_type="application/pdf", size=42)],
        metadata={"folder": "INBOX"},
    )

    row_id = repository.insert(message)
    stored = repository.find_by_message_id("<msg-1@example.com>")

    assert stored.db_id == row_id
    assert stored.received_at == datetime(2026, 10, 19, 8, 15, 30, 250)
    assert stored.labels == ["INBOX"]
    assert stored.attachments[0].filename == "report.pdf"
    assert stored.metadata == {"folder": "INBOX"}
    assert not stored.is_summarized


def test_message_id_is_unique(db_path) -> None:
    repository = MessageRepository()
    repository.insert(make_message(1, datetime(2026, 10, 19, 9)))

    with pytest.raises(sqlite3.IntegrityError):
        repository.insert(make_message(1, datetime(2026, 10, 19, 10)))

    assert repository.exists("<msg-1@example.com>")
    assert not repository.exists("<msg-2@example.com>")


def test_find_unsummarized_is_bounded_and_ordered(db_path) -> None:
    repository = MessageRepository()
    repository.insert(make_message(1, datetime(2026, 10, 19, 18)))
    repository.insert(make_message(2, datetime(2026, 10, 19, 0, 0)))
    repository.insert(make_message(3, datetime(2026, 10, 19, 23, 59, 59, 999999)))
    repository.insert(make_message(4, datetime(2026, 10, 20, 0, 0)))
    repository.insert(make_message(5, datetime(2026, 10, 18, 23, 59)))

    found = repository.find_unsummarized(
        datetime(2026, 10, 19, 0, 0), datetime(2026, 10, 19, 23, 59, 59, 999999)
    )

    assert [message.message_id for message in found] == [
        "<msg-2@example.com>",
        "<msg-1@example.com>",
        "<msg-3@example.com>",
    ]


def test_mark_summarized_only_counts_state_changes(db_path) -> None:
    repository = MessageRepository()
    ids = [repository.insert(make_message(i, datetime(2026, 10, 19, 9, i))) for i in range(3)]

    assert repository.mark_summarized(ids[:2]) == 2
    assert repository.mark_summarized(ids) == 1
    assert repository.mark_summarized([]) == 0
    assert repository.count_summarized() == 3


def test_mark_summarized_handles_more_ids_than_one_statement_allows(db_path) -> None:
    repository = MessageRepository()
    ids = [repository.insert(make_message(i, datetime(2026, 10, 19, 9))) for i in range(1200)]

    assert repository.mark_summarized(ids) == 1200
    assert repository.count_summarized() == repository.count_all() == 1200


def test_received_range(db_path) -> None:
    repository = MessageRepository()
    assert repository.get_received_range() == (None, None)

    repository.insert(make_message(1, datetime(2026, 10, 19, 9)))
    repository.insert(make_message(2, datetime(2026, 10, 17, 7)))

    assert repository.get_received_range() == (
        datetime(2026, 10, 17, 7),
        datetime(2026, 10, 19, 9),
    )


def test_find_in_range_ignores_summarized_flag(db_path) -> None:
    repository = MessageRepository()
    ids = [
        repository.insert(make_message(i, datetime(2026, 10, 19, 9 + i)))
        for i in range(4)
    ]
    repository.mark_summarized([ids[1]])

    found = repository.find_in_range(datetime(2026, 10, 19, 10), datetime(2026, 10, 19, 11))

    assert [message.db_id for message in found] == [ids[1], ids[2]]
    assert found[0].is_summarized


def test_find_from_senders_matches_case_insensitively_and_keeps_newest(db_path) -> None:
    repository = MessageRepository()
    senders = [
        "The Rundown <News@Daily.TheRundown.ai>",
        "someone@example.com",
        "news@daily.therundown.ai",
        "Weekly <digest@letters.example>",
        "news@daily.therundown.ai",
    ]
    ids = [
        repository.insert(make_message(i, datetime(2026, 10, 19, 9 + i), sender=sender))
        for i, sender in enumerate(senders)
    ]

    found = repository.find_from_senders(
        ["news@daily.therundown.ai", " digest@letters.example "],
        datetime(2026, 10, 19),
        datetime(2026, 10, 20),
        limit=3,
    )

    assert [message.db_id for message in found] == [ids[2], ids[3], ids[4]]


def test_find_from_senders_without_sources_returns_nothing(db_path) -> None:
    repository = MessageRepository()
    repository.insert(make_message(1, datetime(2026, 10, 19, 9)))

    found = repository.find_from_senders(["", " "], datetime(2026, 10, 1), datetime(2026, 11, 1), 10)

    assert found == []
