from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import DIGEST_DAY, FakeSender
from mail_digest.config import ConfigurationError
from mail_digest.mail_sender import DeliveryError
from mail_digest.models import Digest, TopicCategory
from mail_digest.repositories import DigestRepository
from mail_digest.services import DigestNotFoundError, DistributionService
from mail_digest.services.distribution_service import digest_subject, render_digest_html


def _saved_digest(**overrides) -> Digest:
    fields = {
        "date": DIGEST_DAY,
        "content": "Line one\nLine <two>",
        "email_count": 12,
        "topic_categories": [TopicCategory(name="Work", description="Work: meetings")],
    }
    fields.update(overrides)
    return DigestRepository().save(Digest(**fields))


def test_digest_subject_uses_readable_date() -> None:
    digest = Digest(date=DIGEST_DAY, content="", email_count=0)

    assert digest_subject(digest) == "Email Summary for Mon Oct 19 2026"


def test_render_digest_html_escapes_content_and_keeps_line_breaks() -> None:
    digest = Digest(
        date=DIGEST_DAY,
        content="Line one\nLine <two>",
        email_count=12,
        topic_categories=[TopicCategory(name="Work", description="Work: meetings & calls")],
    )

    body = render_digest_html(digest)

    assert body.startswith("<h1>Daily Email Summary - Mon Oct 19 2026</h1>")
    assert "<strong>Total Emails Processed:</strong> 12" in body
    assert "<li>Work: meetings &amp; calls</li>" in body
    assert "Line one<br>Line &lt;two&gt;" in body


def test_render_digest_html_omits_topics_when_there_are_none() -> None:
    body = render_digest_html(Digest(date=DIGEST_DAY, content="x", email_count=1))

    assert "Topics Overview" not in body


def test_distribute_sends_once_and_records_recipient(db_path) -> None:
    digest = _saved_digest()
    sender = FakeSender()
    service = DistributionService(sender, "me@example.com")

    result = service.distribute(digest.db_id)

    assert len(sender.sent) == 1
    assert sender.sent[0]["to"] == "me@example.com"
    assert sender.sent[0]["subject"] == "Email Summary for Mon Oct 19 2026"
    assert result.is_distributed
    assert result.distribution_recipients == ["me@example.com"]

    stored = DigestRepository().find_by_id(digest.db_id)
    assert stored.is_distributed
    assert stored.distributed_at is not None
    assert stored.distribution_recipients == ["me@example.com"]


def test_distribute_twice_sends_only_once(db_path) -> None:
    digest = _saved_digest()
    sender = FakeSender()
    service = DistributionService(sender, "me@example.com")

    first = service.distribute(digest.db_id)
    second = service.distribute(digest.db_id)

    assert len(sender.sent) == 1
    assert second.distributed_at == first.distributed_at


def test_distribute_unknown_digest_raises(db_path) -> None:
    service = DistributionService(FakeSender(), "me@example.com")

    with pytest.raises(DigestNotFoundError):
        service.distribute(999)


def test_distribute_without_recipient_is_a_configuration_error(db_path) -> None:
    digest = _saved_digest()
    sender = FakeSender()

    with pytest.raises(ConfigurationError):
        DistributionService(sender, "  ").distribute(digest.db_id)

    assert sender.sent == []
    assert not DigestRepository().find_by_id(digest.db_id).is_distributed


def test_delivery_failure_leaves_digest_undistributed(db_path) -> None:
    digest = _saved_digest()
    sender = FakeSender(error=DeliveryError("connection refused"))

    with pytest.raises(DeliveryError):
        DistributionService(sender, "me@example.com").distribute(digest.db_id)

    stored = DigestRepository().find_by_id(digest.db_id)
    assert not stored.is_distributed
    assert stored.distributed_at is None
    assert stored.distribution_recipients == []


def test_send_latest_marks_subject_as_test_and_keeps_state(db_path) -> None:
    _saved_digest(date=DIGEST_DAY - timedelta(days=1))
    latest = _saved_digest()
    sender = FakeSender()

    result = DistributionService(sender, "me@example.com").send_latest("qa@example.com")

    assert result.db_id == latest.db_id
    assert sender.sent[0]["to"] == "qa@example.com"
    assert sender.sent[0]["subject"] == "Email Summary for Mon Oct 19 2026 [Test]"
    assert not DigestRepository().find_by_id(latest.db_id).is_distributed


def test_send_latest_without_digests_returns_none(db_path) -> None:
    sender = FakeSender()

    assert DistributionService(sender, "me@example.com").send_latest() is None
    assert sender.sent == []


@pytest.mark.parametrize(
    ("kind", "subject", "heading", "count_label"),
    [
        (
            "newsletter",
            "Newsletter Summary - Mon Oct 19 2026",
            "<h1>Newsletter Summary - Mon Oct 19 2026</h1>",
            "Newsletters Processed:",
        ),
        (
            "window",
            "Morning Email Summary for Mon Oct 19 2026",
            "<h1>Morning Email Summary - Mon Oct 19 2026</h1>",
            "Total Emails Processed:",
        ),
    ],
)
def test_send_digest_uses_layout_of_the_digest_kind(
    db_path, kind: str, subject: str, heading: str, count_label: str
) -> None:
    digest = Digest(date=DIGEST_DAY, content="Body", email_count=4, metadata={"kind": kind})
    sender = FakeSender()

    receipt = DistributionService(sender, "me@example.com").send_digest(digest)

    (sent,) = sender.sent
    assert receipt.id == "<fake-1@example.com>"
    assert sent["to"] == "me@example.com"
    assert sent["subject"] == subject
    assert sent["html"].startswith(heading)
    assert count_label in sent["html"]
    assert DigestRepository().count() == 0


def test_send_digest_prefers_explicit_recipient_and_requires_one(db_path) -> None:
    digest = Digest(date=DIGEST_DAY, content="Body", email_count=1, metadata={"kind": "window"})
    sender = FakeSender()

    DistributionService(sender, "").send_digest(digest, "other@example.com")
    with pytest.raises(ConfigurationError):
        DistributionService(sender, " ").send_digest(digest)

    assert [message["to"] for message in sender.sent] == ["other@example.com"]
