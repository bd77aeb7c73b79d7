"""Fixed-window per-client request limiter."""

from __future__ import annotations

import time
from typing import Callable


class RateLimiter:
    """Allow *max_requests* per client key per *window_seconds*.

    A window opens on a client's first request and is reset lazily by the
    first request that arrives after it has ended. At most once per
    window, opening a window also drops every expired window, so idle
    clients do not accumulate.
    """

    def __init__(
        self,
        max_requests: int = 10,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, tuple[int, float]] = {}  # key -> (count, reset_at)
        self._next_prune = 0.0

    def check(self, key: str) -> bool:
        now = self._clock()
        entry = self._windows.get(key)
        if entry is None or now > entry[1]:
            self._prune(now)
            self._windows[key] = (1, now + self.window_seconds)
            return True

        count = entry[0] + 1
        self._windows[key] = (count, entry[1])
        return count <= self.max_requests

    def reset(self) -> None:
        self._windows.clear()

    def __len__(self) -> int:
        return len(self._windows)

    def _prune(self, now: float) -> None:
        if now < self._next_prune:
            return
        self._next_prune = now + self.window_seconds
        expired = [k for k, (_, reset_at) in self._windows.items() if now > reset_at]
        for k in expired:
            del self._windows[k]
