"""Digest generation steps: batching, categorization and merging."""

from .batching import partition, render_batch, summarize_batches
from .categorizer import categorize_messages, parse_categories
from .merger import BATCH_SEPARATOR, merge_summaries

__all__ = [
    "BATCH_SEPARATOR",
    "categorize_messages",
    "merge_summaries",
    "parse_categories",
    "partition",
    "render_batch",
    "summarize_batches",
]
