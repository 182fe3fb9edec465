"""
tests/test_utils/test_rate_limit.py — Sliding-window rate limiter.
"""

from __future__ import annotations

import pytest

from cgim_pipeline.utils.rate_limit import RateLimiter


class TestRateLimiter:
    @pytest.mark.asyncio
    async def test_disabled_counts_calls(self):
        limiter = RateLimiter(per_second=0)
        for _ in range(5):
            await limiter.acquire()
        assert limiter.total_calls == 5

    @pytest.mark.asyncio
    async def test_waits_when_window_full(self, monkeypatch):
        sleeps: list[float] = []
        clock = {"t": 100.0}

        async def fake_sleep(seconds):
            sleeps.append(seconds)
            clock["t"] += seconds

        monkeypatch.setattr("cgim_pipeline.utils.rate_limit.time.monotonic", lambda: clock["t"])
        monkeypatch.setattr("cgim_pipeline.utils.rate_limit.asyncio.sleep", fake_sleep)

        limiter = RateLimiter(per_second=2)
        for _ in range(3):
            await limiter.acquire()

        assert limiter.total_calls == 3
        assert len(sleeps) == 1
        assert sleeps[0] == pytest.approx(1.05)
