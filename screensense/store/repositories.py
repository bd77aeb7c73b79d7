"""Activity and insight persistence on top of the document store."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, NamedTuple

from screensense.capture.models import ActivityItem
from screensense.store.documents import DocumentStore
from screensense.store.models import CATEGORIES, Insight, validate_transition

logger = logging.getLogger("screensense.store.repositories")

SAMPLE_INSIGHTS: dict[str, str] = {
    "productivity": (
        "You've been using multiple applications frequently. Consider using keyboard "
        "shortcuts to switch between them more efficiently."
    ),
    "automation": (
        "I noticed you copy and paste text frequently. Consider using a clipboard "
        "manager to store multiple items."
    ),
    "recommendation": (
        "Based on your recent activity, you might want to take a short break every "
        "30 minutes to reduce eye strain."
    ),
    "reminder": (
        "Don't forget to save your work periodically. I noticed you haven't saved in "
        "the last 15 minutes."
    ),
}


class InsightPage(NamedTuple):
    items: list[Insight]
    source: str  # "database" or "mock"


class ActivityRepository:
    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def save_activities(self, items: list[ActivityItem]) -> list[dict[str, Any]]:
        """Persist captures as-is; raises StoreError when the write fails."""
        if not items:
            return []
        docs = [item.to_document() for item in items]
        ids = self.store.insert_many("activities", docs)
        logger.info("Saved %d activity records to database", len(ids))
        return [dict(doc, id=doc_id) for doc_id, doc in zip(ids, docs)]

    def list_activities(
        self,
        minutes: int | None = None,
        kind: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        since = None
        if minutes:
            since = (datetime.now(timezone.utc) - timedelta(minutes=minutes)).isoformat()
        filters = {"kind": kind} if kind else None
        return self.store.find("activities", filters, since=since, offset=offset, limit=limit)

    def mark_processed(self, activity_id: str, processed: bool = True) -> dict[str, Any] | None:
        return self.store.update_fields("activities", activity_id, {"processed": bool(processed)})


class InsightRepository:
    """Stores generated insights and serves canned samples while the store is empty."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store
        self._samples = _build_samples()

    def save_insight(
        self,
        text: str,
        category: str,
        related: list[ActivityItem],
        metadata: dict[str, Any] | None = None,
        priority: int = 0,
    ) -> Insight:
        meta = dict(metadata or {})
        meta.setdefault("activity_count", len(related))
        meta.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        insight = Insight(id="", text=text, category=category, priority=priority, metadata=meta)
        insight.id = self.store.insert("insights", insight.to_document())
        logger.info("Saved new insight %s (%s)", insight.id, category)
        return insight

    def list_insights(
        self,
        status: str | None = None,
        category: str | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> InsightPage:
        filters: dict[str, Any] = {}
        if status:
            filters["status"] = status
        if category:
            filters["category"] = category

        if self.store.count("insights", filters) == 0:
            logger.info("No insights found in database, returning sample insights")
            samples = [
                s for s in self._samples.values()
                if (not status or s.status == status) and (not category or s.category == category)
            ]
            return InsightPage(items=samples[:limit], source="mock")

        docs = self.store.find("insights", filters, offset=offset, limit=limit)
        return InsightPage(items=[Insight.from_document(d) for d in docs], source="database")

    def get(self, insight_id: str) -> Insight | None:
        if insight_id in self._samples:
            return self._samples[insight_id]
        doc = self.store.get("insights", insight_id)
        return Insight.from_document(doc) if doc else None

    def update_status(self, insight_id: str, status: str) -> Insight | None:
        """Move an insight to *status*. Returns None when the id is unknown.

        Raises InvalidTransition for moves the lifecycle does not allow.
        """
        sample = self._samples.get(insight_id)
        if sample is not None:
            validate_transition(sample.status, status)
            sample.status = status
            logger.info("Sample insight %s status updated to %s (in memory)", insight_id, status)
            return sample

        current = self.get(insight_id)
        if current is None:
            return None
        validate_transition(current.status, status)
        if current.status != status:
            self.store.update_fields("insights", insight_id, {"status": status})
            current.status = status
        return current


def _build_samples() -> dict[str, Insight]:
    now = datetime.now(timezone.utc)
    samples: dict[str, Insight] = {}
    for index, category in enumerate(CATEGORIES):
        sample = Insight(
            id=f"sample-{category}",
            text=SAMPLE_INSIGHTS[category],
            category=category,
            priority=index % 3,
            created_at=now,
            metadata={"sample": True},
            source="mock",
        )
        samples[sample.id] = sample
    return samples
