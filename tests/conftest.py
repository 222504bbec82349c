from __future__ import annotations

from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Callable, Iterator, List

import pytest

from mail_digest.config import DatabaseConfig
from mail_digest.database import close_connection, init_database, run_migrations
from mail_digest.digest.batching import SUMMARY_INSTRUCTION
from mail_digest.digest.categorizer import CATEGORIZE_SYSTEM_PROMPT
from mail_digest.digest.merger import MERGE_INSTRUCTION
from mail_digest.llm_providers import LLMProviderError
from mail_digest.mail_sender import DeliveryReceipt
from mail_digest.models import Message
from mail_digest.repositories import MessageRepository


DIGEST_DAY = date(2026, 10, 19)


class FakeLLMClient:
    """Scripted stand-in for LLMClient that records every generation call."""

    def __init__(
        self,
        *,
        fail_batches: tuple[int, ...] = (),
        fail_categorize: bool = False,
        fail_merge: bool = False,
        categories: str = "Work: meetings and deadlines\nSocial: weekend plans",
        digest: str = "Consolidated digest",
    ) -> None:
        self.calls: List[dict] = []
        self.batch_calls = 0
        self._fail_batches = set(fail_batches)
        self._fail_categorize = fail_categorize
        self._fail_merge = fail_merge
        self._categories = categories
        self._digest = digest

    def generate(self, prompt, *, system=None, model=None, max_tokens=None, temperature=None):
        call = {
            "prompt": prompt,
            "system": system,
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if prompt.startswith(SUMMARY_INSTRUCTION):
            index = self.batch_calls
            self.batch_calls += 1
            self.calls.append({"kind": "batch", **call})
            if index in self._fail_batches:
                raise LLMProviderError(f"batch {index} failed", status_code=500)
            return f"summary-{index}"
        if system == CATEGORIZE_SYSTEM_PROMPT:
            self.calls.append({"kind": "categorize", **call})
            if self._fail_categorize:
                raise LLMProviderError("categorization failed", status_code=503)
            return self._categories
        if prompt.startswith(MERGE_INSTRUCTION):
            self.calls.append({"kind": "merge", **call})
            if self._fail_merge:
                raise LLMProviderError("merge failed", status_code=500)
            return self._digest
        raise AssertionError(f"Unexpected prompt: {prompt[:80]!r}")

    def calls_of(self, kind: str) -> List[dict]:
        return [call for call in self.calls if call["kind"] == kind]


class FakeSender:
    def __init__(self, error: Exception | None = None) -> None:
        self.sent: List[dict] = []
        self._error = error

    def send(self, to, subject, html, text=None):
        if self._error is not None:
            raise self._error
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})
        return DeliveryReceipt(id=f"<fake-{len(self.sent)}@example.com>")


def make_message(index: int, received_at: datetime, **overrides) -> Message:
    fields = {
        "message_id": f"<msg-{index}@example.com>",
        "thread_id": f"<msg-{index}@example.com>",
        "sender": f"sender{index}@example.com",
        "recipients": "me@example.com",
        "subject": f"Subject {index}",
        "body": f"Body of message {index}",
        "received_at": received_at,
    }
    fields.update(overrides)
    return Message(**fields)


@pytest.fixture
def db_path(tmp_path: Path) -> Iterator[Path]:
    path = tmp_path / "mail_digest.db"
    init_database(DatabaseConfig(path=str(path)))
    run_migrations()
    yield path
    close_connection()


@pytest.fixture
def store_messages(db_path: Path) -> Callable[..., List[Message]]:
    """Insert ``count`` messages received a minute apart from 09:00 on ``day``."""
    repository = MessageRepository()

    def _store(count: int, day: date = DIGEST_DAY, start_index: int = 0) -> List[Message]:
        start = datetime.combine(day, datetime.min.time()).replace(hour=9)
        stored = []
        for offset in range(count):
            index = start_index + offset
            message = make_message(index, start + timedelta(minutes=offset))
            message.db_id = repository.insert(message)
            stored.append(message)
        return stored

    return _store
