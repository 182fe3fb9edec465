"""
tests/test_pipelines/test_annual_series.py — Basket-level annual series consolidator.

ComexStat is faked by the comex_stub fixture (see conftest.py); a small
BatchPlan forces several chunks per year without any delay.
"""

from __future__ import annotations

import pytest

from cgim_pipeline.pipelines.annual_series import (
    BatchPlan,
    fetch_basket_annual_series,
    plan_batches,
    series_cache_key,
)

PLAN = BatchPlan(chunk_size=2, concurrency=2)
CODES = ["87082990", "87083090", "87084080", "40111000", "72081000"]


# ---------------------------------------------------------------------------
# Planning / keys
# ---------------------------------------------------------------------------

class TestPlanBatches:
    def test_small_basket(self):
        plan = plan_batches(25)
        assert (plan.chunk_size, plan.concurrency, plan.delay_s) == (100, 4, 0.0)

    def test_large_basket_serialized(self):
        plan = plan_batches(26)
        assert (plan.chunk_size, plan.concurrency) == (40, 1)
        assert plan.delay_s == pytest.approx(0.35)


class TestSeriesCacheKey:
    def test_order_and_spelling_independent(self):
        a = series_cache_key("import", 2020, 2023, ["87082990", "40111000"])
        b = series_cache_key("import", 2020, 2023, ["4011.10.00", "87082990", "87082990"])
        assert a == b
        assert a.startswith("cgim:basket:annual:import:2020-2023:")
        assert a.endswith(":2")

    def test_flow_and_range_matter(self):
        base = series_cache_key("import", 2020, 2023, ["1"])
        assert base != series_cache_key("export", 2020, 2023, ["1"])
        assert base != series_cache_key("import", 2020, 2024, ["1"])


# ---------------------------------------------------------------------------
# fetch_basket_annual_series
# ---------------------------------------------------------------------------

class TestFetchBasketAnnualSeries:
    @pytest.mark.asyncio
    async def test_every_year_present_and_ordered(self, mock_comex, comex_stub, comex_client):
        comex_stub.add("import", 2021, "87082990", 2000, 500)
        points = await fetch_basket_annual_series(
            comex_client, "import", 2020, 2023, CODES, plan=PLAN
        )
        assert [p.year for p in points] == [2020, 2021, 2022, 2023]
        assert points[0].is_zero and points[2].is_zero and points[3].is_zero
        assert points[1].value == 2000
        assert points[1].unit_price == pytest.approx(4000.0)

    @pytest.mark.asyncio
    async def test_sums_across_chunks(self, mock_comex, comex_stub, comex_client):
        for i, code in enumerate(CODES, start=1):
            comex_stub.add("export", 2024, code, 100 * i, 10 * i)
        points = await fetch_basket_annual_series(
            comex_client, "export", 2024, 2024, CODES, plan=PLAN
        )
        assert len(comex_stub.calls) == 3
        assert points[0].value == 1500
        assert points[0].weight == 150
        assert all(len(c["filters"][0]["values"]) <= 2 for c in comex_stub.calls)
        assert all(c["details"] == [] for c in comex_stub.calls)

    @pytest.mark.asyncio
    async def test_cache_hit_skips_network(self, mock_comex, comex_stub, comex_client, memory_cache):
        comex_stub.add("import", 2023, "87082990", 10, 1)
        first = await fetch_basket_annual_series(
            comex_client, "import", 2022, 2023, CODES, cache=memory_cache, plan=PLAN
        )
        calls = len(comex_stub.calls)
        second = await fetch_basket_annual_series(
            comex_client, "import", 2022, 2023, list(reversed(CODES)), cache=memory_cache, plan=PLAN
        )
        assert len(comex_stub.calls) == calls
        assert second == first

    @pytest.mark.asyncio
    async def test_all_zero_result_not_cached(self, mock_comex, comex_stub, comex_client, memory_cache):
        await fetch_basket_annual_series(
            comex_client, "import", 2020, 2021, CODES, cache=memory_cache, plan=PLAN
        )
        calls = len(comex_stub.calls)
        assert len(memory_cache) == 0

        points = await fetch_basket_annual_series(
            comex_client, "import", 2020, 2021, CODES, cache=memory_cache, plan=PLAN
        )
        assert len(comex_stub.calls) == 2 * calls
        assert all(p.is_zero for p in points)

    @pytest.mark.asyncio
    async def test_use_cache_false_ignores_cache(self, mock_comex, comex_stub, comex_client, memory_cache):
        comex_stub.add("import", 2024, "87082990", 10, 1)
        await fetch_basket_annual_series(
            comex_client, "import", 2024, 2024, CODES, cache=memory_cache, plan=PLAN
        )
        calls = len(comex_stub.calls)
        await fetch_basket_annual_series(
            comex_client, "import", 2024, 2024, CODES, cache=memory_cache, use_cache=False, plan=PLAN
        )
        assert len(comex_stub.calls) == 2 * calls

    @pytest.mark.asyncio
    async def test_failed_year_contributes_zero(self, mock_comex, comex_stub, comex_client):
        comex_stub.add("import", 2020, "87082990", 10, 1)
        comex_stub.add("import", 2021, "87082990", 20, 2)
        comex_stub.fail_years = {2021}
        points = await fetch_basket_annual_series(
            comex_client, "import", 2020, 2021, CODES, plan=PLAN
        )
        assert points[0].value == 10
        assert points[1].is_zero

    @pytest.mark.asyncio
    async def test_empty_basket_no_io(self, mock_comex, comex_stub, comex_client):
        points = await fetch_basket_annual_series(
            comex_client, "import", 2020, 2022, ["", "abc"], plan=PLAN
        )
        assert [p.year for p in points] == [2020, 2021, 2022]
        assert all(p.is_zero for p in points)
        assert comex_stub.calls == []

    @pytest.mark.asyncio
    async def test_stale_cache_shape_refetched(self, mock_comex, comex_stub, comex_client, memory_cache):
        from cgim_pipeline.utils.cache import write_cached

        key = series_cache_key("import", 2020, 2021, CODES)
        write_cached(memory_cache, key, [{"year": 2020, "value": 1}])
        comex_stub.add("import", 2021, "87082990", 10, 1)
        points = await fetch_basket_annual_series(
            comex_client, "import", 2020, 2021, CODES, cache=memory_cache, plan=PLAN
        )
        assert comex_stub.calls
        assert points[1].value == 10
