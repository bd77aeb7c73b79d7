"""Near-duplicate removal for Screenpipe captures.

Cheap by intent: exact match, containment, or a single shared long word is
enough to call two captures the same. First-seen wins, so results depend on
input order.
"""

from __future__ import annotations

import logging
from typing import Iterable

from screensense.capture.models import ActivityItem
from screensense.common.text import normalize_capture_text

logger = logging.getLogger("screensense.capture.dedup")

MIN_TEXT_LENGTH = 10
MIN_FUZZY_LENGTH = 20
MIN_WORD_LENGTH = 5


def is_similar(a: str, b: str) -> bool:
    """Return True if two normalised strings share a significant amount of content."""
    if len(a) > len(b):
        longer, shorter = a, b
    else:
        longer, shorter = b, a

    # Very short strings need an exact match
    if len(shorter) < MIN_FUZZY_LENGTH:
        return a == b

    if shorter in longer:
        return True
    return any(
        word in longer
        for word in shorter.split(" ")
        if len(word) >= MIN_WORD_LENGTH
    )


def dedupe(items: Iterable[ActivityItem]) -> list[ActivityItem]:
    """Drop short and near-duplicate captures, preserving order."""
    items = list(items)
    result: list[ActivityItem] = []
    seen: list[str] = []
    seen_exact: set[str] = set()

    for item in items:
        text = normalize_capture_text(item.primary_text())
        if len(text) < MIN_TEXT_LENGTH or text in seen_exact:
            continue
        if any(is_similar(existing, text) for existing in seen):
            continue
        seen.append(text)
        seen_exact.add(text)
        result.append(item)

    logger.info("Deduplication: %d -> %d captures", len(items), len(result))
    return result
