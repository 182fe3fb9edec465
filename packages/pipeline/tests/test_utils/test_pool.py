"""
tests/test_utils/test_pool.py — Bounded worker pool.
"""

from __future__ import annotations

import asyncio

import pytest

from cgim_pipeline.utils.pool import run_pool


class TestRunPool:
    @pytest.mark.asyncio
    async def test_results_in_input_order(self):
        async def worker(n):
            await asyncio.sleep(0.001 * (5 - n))
            return n * 10

        assert await run_pool([1, 2, 3, 4], 4, worker) == [10, 20, 30, 40]

    @pytest.mark.asyncio
    async def test_concurrency_bound(self):
        in_flight = 0
        peak = 0

        async def worker(n):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.001)
            in_flight -= 1
            return n

        await run_pool(list(range(10)), 3, worker)
        assert peak <= 3

    @pytest.mark.asyncio
    async def test_serialized_with_zero_concurrency(self):
        in_flight = 0
        peak = 0

        async def worker(n):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0)
            in_flight -= 1

        await run_pool([1, 2, 3], 0, worker)
        assert peak == 1

    @pytest.mark.asyncio
    async def test_empty(self):
        async def worker(n):
            raise AssertionError("not called")

        assert await run_pool([], 4, worker) == []
