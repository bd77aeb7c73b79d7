"""Screenpipe capture adapter.

Queries the local Screenpipe HTTP API for recent OCR / audio / UI captures.
The capture path never fails: timeouts, connection errors, malformed
payloads and empty results all degrade to a fixed two-item synthetic
sample so the insight pipeline always has input.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from screensense.capture.dedup import dedupe
from screensense.capture.models import (
    ActivityItem,
    ActivityQuery,
    NotificationResult,
    SearchPage,
)
from screensense.common.errors import CaptureError

logger = logging.getLogger("screensense.capture")

QUERY_TIMEOUT = 15.0
HEALTH_TIMEOUT = 3.0

MOCK_ACTIVITY: tuple[dict[str, Any], ...] = (
    {
        "type": "OCR",
        "content": {
            "text": "Demo text from a screen capture",
            "app_name": "DemoApp",
            "window_name": "MainWindow",
        },
    },
    {
        "type": "Audio",
        "content": {
            "transcription": "This is a sample transcript from an audio capture",
            "speaker_id": 1,
        },
    },
)

# (substring, operator hint) pairs for failures worth explaining in the log
_FAILURE_HINTS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("ffmpeg", "mp4", "moov atom"),
     "Screenpipe failed on video files; clear the .mp4 files under ~/.screenpipe/data"),
    (("connection refused", "connection reset", "connecterror", "readerror"),
     "Screenpipe refused or reset the connection; restart it with `screenpipe`"),
)


def mock_activity() -> list[ActivityItem]:
    """Return the fixed synthetic sample, stamped with the current time."""
    now = datetime.now(timezone.utc).isoformat()
    items = []
    for raw in MOCK_ACTIVITY:
        content = dict(raw["content"], timestamp=now)
        items.append(ActivityItem.from_screenpipe({"type": raw["type"], "content": content}, synthetic=True))
    return items


def is_synthetic(items: list[ActivityItem]) -> bool:
    return bool(items) and all(item.synthetic for item in items)


class ScreenpipeClient:
    """Async client for the Screenpipe search and notification endpoints."""

    def __init__(
        self,
        base_url: str = "http://localhost:3030",
        notify_url: str = "http://localhost:11435/notify",
        http_timeout: float = 20.0,
        health_timeout: float = HEALTH_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.notify_url = notify_url
        self.health_timeout = health_timeout
        self._http = httpx.AsyncClient(timeout=http_timeout, transport=transport)

    async def aclose(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search(self, query: ActivityQuery) -> SearchPage:
        """Run one ``/search`` query. Raises on HTTP errors and malformed payloads."""
        params = _search_params(query)
        logger.debug("Screenpipe search: %s", params)
        resp = await self._http.get(f"{self.base_url}/search", params=params)
        resp.raise_for_status()

        try:
            payload = resp.json()
        except ValueError as exc:
            raise CaptureError(f"Screenpipe returned non-JSON body: {exc}") from exc
        if not isinstance(payload, dict):
            raise CaptureError("Screenpipe search response is not an object")

        data = payload.get("data") or []
        if not isinstance(data, list):
            raise CaptureError("Screenpipe search 'data' is not a list")
        items = [ActivityItem.from_screenpipe(raw) for raw in data]

        pagination = payload.get("pagination") or {}
        total = pagination.get("total", len(items)) if isinstance(pagination, dict) else len(items)
        return SearchPage(items=items, total=int(total))

    async def is_available(self) -> bool:
        """Minimal 1-item query; False on any error or after the health timeout."""
        try:
            await asyncio.wait_for(
                self.search(ActivityQuery(minutes=None, limit=1)),
                timeout=self.health_timeout,
            )
            return True
        except asyncio.TimeoutError:
            logger.info("Screenpipe health check timed out after %.1fs", self.health_timeout)
            return False
        except Exception as exc:
            logger.info("Screenpipe health check failed: %s", exc)
            return False

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    async def notify(self, title: str, body: str) -> NotificationResult:
        """Send a desktop notification; simulated when Screenpipe is down."""
        try:
            if not await self.is_available():
                logger.info("Screenpipe unavailable, simulating notification: %s", title)
                return NotificationResult(
                    success=True,
                    simulated=True,
                    message="Notification simulated because Screenpipe is not running",
                )
            try:
                resp = await self._http.post(self.notify_url, json={"title": title, "body": body})
                resp.raise_for_status()
            except httpx.HTTPError as exc:
                logger.warning("Screenpipe notification failed: %s", exc)
                logger.info("Notification would have been sent with title: %s", title)
                return NotificationResult(
                    success=True,
                    simulated=True,
                    message="Notification simulated due to Screenpipe error",
                )
            logger.info("Desktop notification sent: %s", title)
            return NotificationResult(success=True, simulated=False, message="Notification sent successfully")
        except Exception:
            logger.exception("Error sending desktop notification")
            return NotificationResult(
                success=False,
                simulated=True,
                message="Error occurred, notification could not be sent",
            )


def _search_params(query: ActivityQuery) -> dict[str, Any]:
    params: dict[str, Any] = {
        "content_type": query.content_type,
        "limit": query.limit,
        "offset": query.offset,
        "include_frames": "false",
    }
    if query.minutes is not None:
        now = datetime.now(timezone.utc)
        params["start_time"] = (now - timedelta(minutes=query.minutes)).isoformat()
        params["end_time"] = now.isoformat()
    if query.app_name:
        params["app_name"] = query.app_name
    if query.window_name:
        params["window_name"] = query.window_name
    if query.browser_url:
        params["browser_url"] = query.browser_url
    if query.speaker_ids:
        params["speaker_ids"] = ",".join(str(s) for s in query.speaker_ids)
    if query.min_length:
        params["min_length"] = query.min_length
    if query.max_length:
        params["max_length"] = query.max_length
    return params


def _log_failure(exc: BaseException) -> None:
    logger.error("Screenpipe service error: %s", exc)
    message = f"{type(exc).__name__} {exc}".lower()
    for needles, hint in _FAILURE_HINTS:
        if any(n in message for n in needles):
            logger.info(hint)
            break


def _discard_late_result(task: asyncio.Future) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("Late Screenpipe query failed after timeout: %s", exc)
    else:
        logger.debug("Discarding Screenpipe result that arrived after the timeout")


# ── Capture entry points ─────────────────────────────────────────────────────

async def fetch_recent_activity(
    client: ScreenpipeClient,
    minutes: int = 5,
    timeout: float = QUERY_TIMEOUT,
    limit: int = 50,
) -> list[ActivityItem]:
    """Return deduplicated OCR captures from the last *minutes*, never raising.

    The query races a *timeout*-second timer. A query that loses the race is
    left running and its result discarded.
    """
    logger.info("Querying Screenpipe for activity in the last %d minutes", minutes)
    try:
        query = ActivityQuery(minutes=minutes, content_type="ocr", limit=limit)
        task = asyncio.ensure_future(client.search(query))
        done, _ = await asyncio.wait({task}, timeout=timeout)
        if not done:
            task.add_done_callback(_discard_late_result)
            logger.warning("Screenpipe query timed out after %.0fs, using mock data", timeout)
            return mock_activity()
        page = task.result()
    except Exception as exc:
        _log_failure(exc)
        logger.info("Using mock data since Screenpipe is not available")
        return mock_activity()

    if not page.items:
        logger.info("No results found from Screenpipe, using mock data")
        return mock_activity()

    logger.info("Found %d activity items", page.total)
    unique = dedupe(page.items)
    logger.info("Returned %d unique items after deduplication", len(unique))
    return unique


async def query_specific_activity(client: ScreenpipeClient, query: ActivityQuery) -> list[ActivityItem]:
    """Filtered capture query with the same fallback policy, without the timeout race."""
    try:
        page = await client.search(query)
    except Exception as exc:
        _log_failure(exc)
        logger.info("Using mock data since Screenpipe is not available")
        return mock_activity()

    if not page.items:
        logger.info("No specific results found with the given parameters")
        return mock_activity()

    logger.info("Found %d specific activity items", page.total)
    if len(page.items) > 3:
        return dedupe(page.items)
    return page.items
