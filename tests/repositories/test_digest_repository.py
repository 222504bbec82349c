from __future__ import annotations

from datetime import date, datetime

import pytest

from mail_digest.models import Digest, TopicCategory
from mail_digest.repositories import DigestRepository, DuplicateDigestError


def _digest(day: date, **overrides) -> Digest:
    fields = {"date": day, "content": f"Digest for {day}", "email_count": 3}
    fields.update(overrides)
    return Digest(**fields)


def test_save_populates_id_and_round_trips_fields(db_path) -> None:
    repository = DigestRepository()
    digest = _digest(
        date(2026, 10, 19),
        topic_categories=[TopicCategory(name="Work", description="Work: meetings")],
        email_ids=[4, 5, 6],
        metadata={"batch_count": 1},
    )

    saved = repository.save(digest)
    stored = repository.find_by_date(date(2026, 10, 19))

    assert saved.db_id is not None
    assert saved.created_at is not None
    assert stored.db_id == saved.db_id
    assert stored.topic_categories == [TopicCategory(name="Work", description="Work: meetings")]
    assert stored.email_ids == [4, 5, 6]
    assert stored.metadata == {"batch_count": 1}
    assert not stored.is_distributed


def test_one_digest_per_date(db_path) -> None:
    repository = DigestRepository()
    repository.save(_digest(date(2026, 10, 19)))

    with pytest.raises(DuplicateDigestError) as excinfo:
        repository.save(_digest(date(2026, 10, 19), content="again"))

    assert excinfo.value.digest_date == date(2026, 10, 19)
    assert repository.count() == 1
    assert repository.find_by_date(date(2026, 10, 19)).content == "Digest for 2026-10-19"


def test_mark_distributed_only_flips_once(db_path) -> None:
    repository = DigestRepository()
    saved = repository.save(_digest(date(2026, 10, 19)))
    first_at = datetime(2026, 10, 20, 6, 0)

    assert repository.mark_distributed(saved.db_id, first_at, ["me@example.com"])
    assert not repository.mark_distributed(saved.db_id, datetime(2026, 10, 20, 7, 0), ["other@example.com"])

    stored = repository.find_by_id(saved.db_id)
    assert stored.distributed_at == first_at
    assert stored.distribution_recipients == ["me@example.com"]


def test_list_filters_by_date_range_and_distribution(db_path) -> None:
    repository = DigestRepository()
    for day in range(15, 20):
        repository.save(_digest(date(2026, 10, day)))
    sent = repository.find_by_date(date(2026, 10, 17))
    repository.mark_distributed(sent.db_id, datetime(2026, 10, 18, 6), ["me@example.com"])

    in_range = repository.list_digests(start_date=date(2026, 10, 16), end_date=date(2026, 10, 18))
    pending = repository.list_digests(distributed=False)

    assert [digest.date.day for digest in in_range] == [18, 17, 16]
    assert [digest.date.day for digest in pending] == [19, 18, 16, 15]
    assert repository.count(distributed=True) == 1
    assert repository.count(start_date=date(2026, 10, 18)) == 2
    assert [digest.date.day for digest in repository.list_digests(limit=2, offset=1)] == [18, 17]
