"""Process-wide state handed to request handlers.

Holds the lazily-connected document store, the Screenpipe client, the
completion settings and the rate-limit counters, so none of them live in
module globals.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from screensense.capture.screenpipe import ScreenpipeClient
from screensense.common.config import resolve_path
from screensense.dashboard.ratelimit import RateLimiter
from screensense.insights.llm_provider import CompletionSettings, Sleep
from screensense.store.documents import DocumentStore
from screensense.store.repositories import ActivityRepository, InsightRepository


@dataclass
class AppContext:
    cfg: dict[str, Any]
    store: DocumentStore
    screenpipe: ScreenpipeClient
    llm: CompletionSettings
    rate_limiter: RateLimiter
    activities: ActivityRepository = field(init=False)
    insights: InsightRepository = field(init=False)
    sleep: Sleep = asyncio.sleep

    def __post_init__(self) -> None:
        self.activities = ActivityRepository(self.store)
        self.insights = InsightRepository(self.store)

    @property
    def query_timeout(self) -> float:
        return float(self.cfg["screenpipe"]["query_timeout"])

    @property
    def capture_limit(self) -> int:
        return int(self.cfg["screenpipe"]["limit"])

    @property
    def api_secret(self) -> str | None:
        return self.cfg["api"].get("secret_key") or None

    async def aclose(self) -> None:
        await self.screenpipe.aclose()
        self.store.close()


def build_context(cfg: dict[str, Any], **overrides: Any) -> AppContext:
    """Wire an AppContext from a loaded config; *overrides* replace any component."""
    sp_cfg = cfg["screenpipe"]
    limits = cfg["api"]["rate_limit"]

    parts: dict[str, Any] = {
        "cfg": cfg,
        "store": DocumentStore(resolve_path(cfg["store"]["db_path"])),
        "llm": CompletionSettings.from_config(cfg["llm"]),
        "rate_limiter": RateLimiter(limits["max_requests"], limits["window_seconds"]),
    }
    if "screenpipe" not in overrides:
        parts["screenpipe"] = ScreenpipeClient(
            base_url=sp_cfg["base_url"],
            notify_url=sp_cfg["notify_url"],
            http_timeout=sp_cfg["http_timeout"],
            health_timeout=sp_cfg["health_timeout"],
        )
    parts.update(overrides)
    return AppContext(**parts)
