"""Data structures for Screenpipe captures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, NamedTuple

from screensense.common.errors import CaptureError

KINDS = ("OCR", "Audio", "UI")

_CONTENT_TYPES = {"ocr", "audio", "ui", "all"}


def parse_ts(ts: Any) -> datetime:
    """Parse an ISO 8601 timestamp from Screenpipe (may have tz offset) into UTC."""
    if isinstance(ts, datetime):
        dt = ts
    else:
        from dateutil import parser as dtparser
        dt = dtparser.isoparse(str(ts))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class ActivityItem:
    """One OCR frame, audio transcription or UI element captured by Screenpipe."""

    kind: str
    timestamp: datetime
    text: str = ""
    transcription: str = ""
    app_name: str = ""
    window_name: str = ""
    browser_url: str = ""
    frame: str = ""
    speaker_id: int | None = None
    element_type: str = ""
    synthetic: bool = False
    content: dict[str, Any] = field(default_factory=dict, compare=False)

    def primary_text(self) -> str:
        if self.kind == "OCR":
            return self.text
        if self.kind == "Audio":
            return self.transcription
        return self.text

    @classmethod
    def from_screenpipe(cls, raw: dict[str, Any], synthetic: bool = False) -> "ActivityItem":
        """Build an item from Screenpipe's ``{type, content: {...}}`` search result shape."""
        if not isinstance(raw, dict):
            raise CaptureError(f"Expected an object per search result, got {type(raw).__name__}")
        kind = raw.get("type")
        content = raw.get("content")
        if kind not in KINDS or not isinstance(content, dict):
            raise CaptureError(f"Malformed Screenpipe item: type={kind!r}")
        if "timestamp" not in content:
            raise CaptureError("Screenpipe item is missing a timestamp")
        try:
            timestamp = parse_ts(content["timestamp"])
        except (ValueError, OverflowError) as exc:
            raise CaptureError(f"Bad Screenpipe timestamp {content['timestamp']!r}: {exc}") from exc

        return cls(
            kind=kind,
            timestamp=timestamp,
            text=content.get("text") or "",
            transcription=content.get("transcription") or "",
            app_name=content.get("app_name") or "",
            window_name=content.get("window_name") or "",
            browser_url=content.get("browser_url") or content.get("browserUrl") or "",
            frame=content.get("frame") or "",
            speaker_id=_speaker_id(content),
            element_type=content.get("element_type") or "",
            synthetic=synthetic,
            content=dict(content),
        )

    def to_document(self) -> dict[str, Any]:
        """Flatten the item for the activities collection.

        Only OCR items carry app/window/url/frame in the indexed fields.
        """
        is_ocr = self.kind == "OCR"
        return {
            "kind": self.kind,
            "content": self.to_content(),
            "app_name": self.app_name if is_ocr else "",
            "window_name": self.window_name if is_ocr else "",
            "browser_url": self.browser_url if is_ocr else "",
            "frame_data": self.frame if is_ocr else "",
            "timestamp": self.timestamp.isoformat(),
            "processed": False,
            "source": "mock" if self.synthetic else "live",
        }

    def to_content(self) -> dict[str, Any]:
        """Screenpipe-style content dict, as served back to dashboard clients."""
        content = dict(self.content)
        content["timestamp"] = self.timestamp.isoformat()
        if self.kind == "Audio":
            content["transcription"] = self.transcription
            if self.speaker_id is not None:
                content["speaker_id"] = self.speaker_id
        else:
            content["text"] = self.text
        for key, value in (
            ("app_name", self.app_name),
            ("window_name", self.window_name),
            ("browser_url", self.browser_url),
            ("element_type", self.element_type),
        ):
            if value:
                content[key] = value
        return content

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.kind, "content": self.to_content(), "synthetic": self.synthetic}


def _speaker_id(content: dict[str, Any]) -> int | None:
    value = content.get("speaker_id")
    if value is None:
        speaker = content.get("speaker")
        if isinstance(speaker, dict):
            value = speaker.get("id")
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


@dataclass
class ActivityQuery:
    """Filters accepted by Screenpipe's ``/search`` endpoint."""

    minutes: int | None = 60
    content_type: str = "all"
    app_name: str | None = None
    window_name: str | None = None
    browser_url: str | None = None
    speaker_ids: list[int] | None = None
    min_length: int | None = None
    max_length: int | None = None
    offset: int = 0
    limit: int = 50

    def __post_init__(self) -> None:
        if self.content_type not in _CONTENT_TYPES:
            raise ValueError(f"Unknown content type: {self.content_type!r}")
        if self.limit <= 0 or self.offset < 0:
            raise ValueError("limit must be positive and offset non-negative")
        if self.minutes is not None and self.minutes <= 0:
            raise ValueError("minutes must be positive")


class SearchPage(NamedTuple):
    items: list[ActivityItem]
    total: int


class NotificationResult(NamedTuple):
    success: bool
    simulated: bool
    message: str
