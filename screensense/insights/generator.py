"""Turn captured activity into a short insight and persist it."""

from __future__ import annotations

import json
import logging
from typing import Any, NamedTuple

from screensense.capture.models import ActivityItem
from screensense.common.errors import StoreError
from screensense.common.text import clean_ocr_text
from screensense.insights.llm_provider import SYSTEM_PROMPT, CompletionSettings, Sleep, complete
from screensense.store.models import CATEGORIES, DEFAULT_CATEGORY
from screensense.store.repositories import SAMPLE_INSIGHTS as CANNED_INSIGHTS
from screensense.store.repositories import InsightRepository

logger = logging.getLogger("screensense.insights")


class InsightResult(NamedTuple):
    text: str
    category: str
    source: str  # "live" or "mock"
    metadata: dict[str, Any]
    insight_id: str | None


def build_prompt(items: list[ActivityItem], category: str) -> list[dict[str, str]]:
    activity_data = []
    for item in items:
        entry = item.to_dict()
        entry["content"]["text" if item.kind != "Audio" else "transcription"] = clean_ocr_text(item.primary_text())
        entry["content"].pop("frame", None)
        activity_data.append(entry)

    payload = {
        "task": "analyze_screen_activity",
        "activity_data": activity_data,
        "request": f"Analyze this screen activity data and provide {category} insights.",
    }
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": json.dumps(payload, default=str)},
    ]


async def request_insight(
    items: list[ActivityItem],
    category: str,
    settings: CompletionSettings,
    insights: InsightRepository | None = None,
    sleep: Sleep | None = None,
) -> InsightResult:
    """Ask the completion endpoint for a *category* insight about *items*.

    Falls back to the canned text for *category* whenever the endpoint gives
    no answer; ``source`` and ``metadata`` tell the two apart. The insight is
    saved when a repository is given, and a failed save is only logged.
    """
    if category not in CATEGORIES:
        logger.warning("Unknown insight category %r, using %s", category, DEFAULT_CATEGORY)
        category = DEFAULT_CATEGORY

    messages = build_prompt(items, category)
    if sleep is None:
        result = await complete(messages, settings)
    else:
        result = await complete(messages, settings, sleep=sleep)

    if result.ok:
        text = result.text or ""
    else:
        text = CANNED_INSIGHTS[category]
    metadata = dict(result.metadata)
    if any(item.synthetic for item in items):
        metadata["synthetic_activity"] = True

    insight_id = None
    if insights is not None:
        try:
            saved = insights.save_insight(text, category, items, metadata=metadata)
            insight_id = saved.id
        except StoreError as exc:
            logger.error("Failed to save insight to database: %s", exc)

    return InsightResult(
        text=text,
        category=category,
        source=result.source,
        metadata=metadata,
        insight_id=insight_id,
    )
