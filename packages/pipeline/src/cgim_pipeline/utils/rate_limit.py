"""
utils/rate_limit.py — Async sliding-window rate limiter.

ComexStat starts answering 429 when a browser or script fans out too many
requests per second. Every request made by ComexStatSource goes through
acquire() first.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque

import structlog

log = structlog.get_logger(__name__)


class RateLimiter:
    """Async rate limiter: max N calls per second (0 disables limiting)."""

    def __init__(self, per_second: int = 2) -> None:
        self._per_second = per_second
        self._timestamps: deque[float] = deque()
        self._lock = asyncio.Lock()
        self._total_calls = 0

    async def acquire(self) -> None:
        """Wait until a request slot is available."""
        if self._per_second <= 0:
            self._total_calls += 1
            return

        async with self._lock:
            while True:
                now = time.monotonic()
                while self._timestamps and now - self._timestamps[0] > 1.0:
                    self._timestamps.popleft()

                if len(self._timestamps) >= self._per_second:
                    wait = 1.0 - (now - self._timestamps[0]) + 0.05
                    if wait > 0:
                        log.debug("rate_limit_second", wait_s=round(wait, 2))
                        await asyncio.sleep(wait)
                        continue

                self._timestamps.append(now)
                self._total_calls += 1
                return

    @property
    def total_calls(self) -> int:
        return self._total_calls
