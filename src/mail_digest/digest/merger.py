"""Merge batch summaries into the consolidated daily digest text."""

from __future__ import annotations

import logging
from typing import Sequence

from ..llm_client import LLMClient

logger = logging.getLogger(__name__)

BATCH_SEPARATOR = "\n\n===BATCH SEPARATOR===\n\n"
MERGE_INSTRUCTION = (
    "Please create a consolidated daily email summary from the following batch summaries. "
    "Group related items by topic, keep important details and action items, "
    "and drop repetition between batches."
)


def combine_summaries(summaries: Sequence[str]) -> str:
    return BATCH_SEPARATOR.join(summaries)


def merge_summaries(
    client: LLMClient,
    summaries: Sequence[str],
    max_tokens: int = 2000,
) -> str:
    """Produce one digest from the batch summaries, in batch order.

    Backend errors are not caught here.
    """
    combined = combine_summaries(summaries)
    logger.info(
        "Merging %d batch summaries (%d characters)", len(summaries), len(combined)
    )
    return client.generate(f"{MERGE_INSTRUCTION}\n\n{combined}", max_tokens=max_tokens)


__all__ = ["BATCH_SEPARATOR", "combine_summaries", "merge_summaries"]
