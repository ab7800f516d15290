"""
In-Memory Sliding Window Limiter

Per-process limiter for development and tests. Each key keeps the
timestamps of the hits inside the current window.
"""

import asyncio
import time
from collections import deque
from typing import Callable

from orderpay.services.rate_limit.base import BaseRateLimiter, RateLimitInfo


class InMemoryRateLimiter(BaseRateLimiter):
    """
    Sliding window over a deque of hit timestamps per key.

    For development and testing only; counts are not shared between
    worker processes. Use RedisRateLimiter in staging/production.
    """

    def __init__(
        self,
        rate: int = 60,
        window: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(rate=rate, window=window)
        self.clock = clock
        self._hits: dict[str, deque] = {}
        self._lock = asyncio.Lock()
        self._last_sweep = clock()

    @property
    def backend_name(self) -> str:
        return "memory"

    def _sweep(self, window_start: float) -> None:
        """Drop keys whose newest hit has left the window."""
        idle = [key for key, hits in self._hits.items() if not hits or hits[-1] <= window_start]
        for key in idle:
            del self._hits[key]

    async def hit(self, key: str) -> RateLimitInfo:
        async with self._lock:
            now = self.clock()
            window_start = now - self.window

            # Once per window, so the key space stays bounded by recent callers
            if now - self._last_sweep >= self.window:
                self._sweep(window_start)
                self._last_sweep = now

            hits = self._hits.get(key)
            if hits is not None:
                while hits and hits[0] <= window_start:
                    hits.popleft()

            if hits and len(hits) >= self.rate:
                retry_after = max(1, int(hits[0] + self.window - now))
                return RateLimitInfo(
                    allowed=False,
                    remaining=0,
                    limit=self.rate,
                    reset_at=int(time.time()) + retry_after,
                    retry_after=retry_after,
                )

            if hits is None:
                hits = self._hits[key] = deque()
            hits.append(now)
            return RateLimitInfo(
                allowed=True,
                remaining=self.rate - len(hits),
                limit=self.rate,
                reset_at=int(time.time() + self.window),
            )

    def tracked_keys(self) -> int:
        return len(self._hits)

    def reset(self) -> None:
        self._hits.clear()
