"""Topic categorization of a day's messages."""

from __future__ import annotations

import logging
import re
from typing import List, Sequence

from ..llm_client import LLMClient
from ..llm_providers import LLMProviderError
from ..models import Message, TopicCategory

logger = logging.getLogger(__name__)

CATEGORY_SEPARATOR = ":"
CATEGORIZE_SYSTEM_PROMPT = (
    "You are an assistant that categorizes email subjects into logical topic groups. "
    "Identify 3-7 key topics. Answer with one topic per line, formatted as "
    "'Topic name: short description'."
)
_LIST_MARKER = re.compile(r"^(?:[-*•]+|\d+[.)])\s*")


def build_categorize_prompt(messages: Sequence[Message]) -> str:
    # Subject and sender only
    lines = [
        f"{message.subject or 'No Subject'} (from {message.sender or 'unknown sender'})"
        for message in messages
    ]
    return "Categorize these emails into logical topic groups:\n\n" + "\n".join(lines)


def parse_categories(text: str) -> List[TopicCategory]:
    """Turn free-form model output into categories, one per non-blank line.

    For ``"Work: meetings"`` the name is ``"Work"`` and the whole line is the
    description; a line without a separator is both name and description.
    List markers are dropped from the name.
    """
    categories: List[TopicCategory] = []
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        if CATEGORY_SEPARATOR in line:
            name = line.split(CATEGORY_SEPARATOR, 1)[0].strip()
        else:
            name = line
        name = _LIST_MARKER.sub("", name).strip("*_ ").strip()
        categories.append(TopicCategory(name=name or line, description=line))
    return categories


def categorize_messages(
    client: LLMClient,
    messages: Sequence[Message],
    max_tokens: int = 500,
) -> List[TopicCategory]:
    """Ask the backend for topic groups covering ``messages``.

    Returns an empty list when the backend call fails.
    """
    if not messages:
        return []

    try:
        text = client.generate(
            build_categorize_prompt(messages),
            system=CATEGORIZE_SYSTEM_PROMPT,
            max_tokens=max_tokens,
            temperature=0.2,
        )
    except LLMProviderError as exc:
        logger.warning(
            "Categorization failed for %d message(s); continuing without categories: %s",
            len(messages),
            exc,
        )
        return []

    categories = parse_categories(text)
    logger.info("Derived %d topic categories", len(categories))
    return categories


__all__ = ["build_categorize_prompt", "categorize_messages", "parse_categories"]
