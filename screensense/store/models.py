"""Insight records and their status lifecycle."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from screensense.common.errors import InvalidTransition

CATEGORIES = ("productivity", "automation", "recommendation", "reminder")
STATUSES = ("new", "viewed", "implemented", "dismissed")
PRIORITIES = (0, 1, 2)  # normal, important, critical
SOURCES = ("mock", "database")  # canned in-memory sample vs stored record

DEFAULT_CATEGORY = "recommendation"

# new -> viewed -> {implemented, dismissed}; new may skip straight to a terminal state
_TRANSITIONS: dict[str, frozenset[str]] = {
    "new": frozenset({"viewed", "implemented", "dismissed"}),
    "viewed": frozenset({"implemented", "dismissed"}),
    "implemented": frozenset(),
    "dismissed": frozenset(),
}


def validate_transition(current: str, target: str) -> None:
    """Raise InvalidTransition unless *current* may move to *target*.

    Re-applying the current status is allowed and changes nothing.
    """
    if target not in STATUSES:
        raise ValueError(f"Unknown insight status: {target!r}")
    if current == target:
        return
    if target not in _TRANSITIONS.get(current, frozenset()):
        raise InvalidTransition(current, target)


@dataclass
class Insight:
    id: str
    text: str
    category: str = DEFAULT_CATEGORY
    priority: int = 0
    status: str = "new"
    related_activity_ids: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: dict[str, Any] = field(default_factory=dict)
    source: str = "database"

    def __post_init__(self) -> None:
        if self.category not in CATEGORIES:
            raise ValueError(f"Unknown insight category: {self.category!r}")
        if self.status not in STATUSES:
            raise ValueError(f"Unknown insight status: {self.status!r}")
        if self.priority not in PRIORITIES:
            raise ValueError(f"Insight priority must be 0, 1 or 2, got {self.priority!r}")
        if self.source not in SOURCES:
            raise ValueError(f"Unknown insight source: {self.source!r}")

    def to_document(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "category": self.category,
            "priority": self.priority,
            "status": self.status,
            "related_activity_ids": list(self.related_activity_ids),
            "created_at": self.created_at.isoformat(),
            "metadata": self.metadata,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Insight":
        created = doc.get("created_at")
        return cls(
            id=doc["id"],
            text=doc["text"],
            category=doc.get("category", DEFAULT_CATEGORY),
            priority=doc.get("priority", 0),
            status=doc.get("status", "new"),
            related_activity_ids=list(doc.get("related_activity_ids") or []),
            created_at=datetime.fromisoformat(created) if created else datetime.now(timezone.utc),
            metadata=doc.get("metadata") or {},
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON shape served by the dashboard API."""
        return {
            "id": self.id,
            "insight": self.text,
            "insightType": self.category,
            "priority": self.priority,
            "status": self.status,
            "relatedActivities": list(self.related_activity_ids),
            "createdAt": self.created_at.isoformat(),
            "metadata": self.metadata,
            "source": self.source,
        }
