"""Split a day's messages into bounded batches and summarize each one."""

from __future__ import annotations

import logging
from typing import Iterator, List, Sequence, TypeVar

from ..llm_client import LLMClient
from ..llm_providers import LLMProviderError
from ..models import Batch, Message

logger = logging.getLogger(__name__)

T = TypeVar("T")

MESSAGE_DELIMITER = "\n\n---\n\n"
SUMMARY_INSTRUCTION = "Summarize the following email content:"


def partition(items: Sequence[T], batch_size: int) -> Iterator[List[T]]:
    """Yield contiguous chunks of ``batch_size`` items; the last chunk holds the remainder.

    An empty input yields nothing.
    """
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    for start in range(0, len(items), batch_size):
        yield list(items[start:start + batch_size])


def render_message(message: Message) -> str:
    content = message.body or message.snippet
    received = message.received_at.isoformat() if message.received_at else "unknown"
    return (
        f"From: {message.sender}\n"
        f"Subject: {message.subject}\n"
        f"Date: {received}\n\n"
        f"{content}{MESSAGE_DELIMITER}"
    )


def render_batch(messages: Sequence[Message]) -> str:
    """Render a batch as one text block for the backend."""
    return "".join(render_message(message) for message in messages)


def summarize_batches(
    client: LLMClient,
    messages: Sequence[Message],
    batch_size: int,
) -> List[Batch]:
    """Summarize ``messages`` batch by batch.

    Batches are sent one after another. A batch whose generation call fails is
    logged and left out of the result; the remaining batches still run.

    Returns:
        Successfully summarized batches, in their original order.
    """
    summarized: List[Batch] = []
    total = 0
    for index, chunk in enumerate(partition(messages, batch_size)):
        total += 1
        batch = Batch(index=index, messages=chunk)
        prompt = f"{SUMMARY_INSTRUCTION}\n\n{render_batch(chunk)}"
        try:
            batch.summary = client.generate(prompt)
        except LLMProviderError as exc:
            logger.error(
                "Failed to summarize batch %d (%d message(s), ids=%s): %s",
                index,
                len(chunk),
                batch.message_ids,
                exc,
            )
            continue
        logger.debug("Summarized batch %d with %d message(s)", index, len(chunk))
        summarized.append(batch)

    logger.info("Summarized %d/%d batch(es)", len(summarized), total)
    return summarized


__all__ = ["MESSAGE_DELIMITER", "partition", "render_batch", "render_message", "summarize_batches"]
