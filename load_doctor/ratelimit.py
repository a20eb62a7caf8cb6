"""Soft per-identity rate limit over a sliding window."""

from __future__ import annotations

import time
from collections import defaultdict, deque
from typing import Callable


class SlidingWindowLimiter:
    def __init__(
        self,
        cap: int,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if cap < 1:
            raise ValueError("Rate limit cap must be at least 1.")
        self.cap = cap
        self.window_seconds = window_seconds
        self.clock = clock
        self._hits: dict[str, deque[float]] = defaultdict(deque)

    def allow(self, identity: str) -> bool:
        """Record an attempt for ``identity`` unless the window is already full."""
        now = self.clock()
        hits = self._hits[identity]
        while hits and now - hits[0] >= self.window_seconds:
            hits.popleft()
        if len(hits) >= self.cap:
            return False
        hits.append(now)
        return True

    def remaining(self, identity: str) -> int:
        now = self.clock()
        recent = [hit for hit in self._hits.get(identity, ()) if now - hit < self.window_seconds]
        return max(self.cap - len(recent), 0)
