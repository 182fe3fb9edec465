"""
pipelines/annual_series.py — Basket-level annual FOB/kg series from ComexStat.

For a set of NCM codes and an inclusive year range, issues one aggregated
ComexStat request per (year, code chunk), sums the chunk totals per year
and returns one AnnualPoint per year, ascending, zero-filled.

Throttling:
  ≤ basket_large_threshold codes  → chunks of 100, 4 requests in flight
  >  basket_large_threshold codes → chunks of 40, serialized, 0.35 s apart

Caching:
  key = cgim:basket:annual:<flow>:<start>-<end>:<sha1(sorted codes)>:<n>
  Results are written only when some year is non-zero, so a rate-limited
  (all-zero) answer is never served from cache later.

Failed chunk requests contribute zero; the call itself never raises for
upstream problems.

Usage:
    from cgim_pipeline.pipelines.annual_series import fetch_basket_annual_series

    async with ComexStatSource() as client:
        points = await fetch_basket_annual_series(
            client, "import", 2020, 2024, codes, cache=FileCacheStore(path)
        )
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from cgim_shared.codes import chunked, normalize_codes
from cgim_shared.config import settings
from cgim_shared.constants import SERIES_CACHE_PREFIX, Flow
from cgim_shared.models.trade import AnnualPoint, Metrics
from cgim_pipeline.sources.comexstat import ComexStatSource
from cgim_pipeline.transforms.annual import series_from_totals, year_range
from cgim_pipeline.utils.cache import CacheStore, read_cached, write_cached
from cgim_pipeline.utils.logging import get_logger
from cgim_pipeline.utils.pool import run_pool

log = get_logger(__name__, pipeline="annual_series")


@dataclass(frozen=True)
class BatchPlan:
    """How a basket is split and paced against the upstream."""

    chunk_size: int
    concurrency: int
    delay_s: float = 0.0


def plan_batches(n_codes: int) -> BatchPlan:
    """Throttling plan for a basket of n_codes codes."""
    if n_codes > settings.basket_large_threshold:
        return BatchPlan(
            chunk_size=settings.basket_large_chunk_size,
            concurrency=settings.basket_large_concurrency,
            delay_s=settings.basket_large_delay_s,
        )
    return BatchPlan(
        chunk_size=settings.basket_small_chunk_size,
        concurrency=settings.basket_small_concurrency,
    )


def series_cache_key(flow: Flow, year_start: int, year_end: int, codes: Iterable[Any]) -> str:
    """Cache key that ignores code order and duplicates."""
    canonical = sorted(normalize_codes(codes))
    digest = hashlib.sha1(",".join(canonical).encode("utf-8")).hexdigest()
    return f"{SERIES_CACHE_PREFIX}:{flow}:{year_start}-{year_end}:{digest}:{len(canonical)}"


def _points_from_cache(data: Any, years: list[int]) -> list[AnnualPoint] | None:
    if not isinstance(data, list):
        return None
    try:
        points = [AnnualPoint.model_validate(p) for p in data]
    except (ValueError, TypeError):
        return None
    if [p.year for p in points] != years:
        return None
    return points


async def fetch_basket_annual_series(
    client: ComexStatSource,
    flow: Flow,
    year_start: int,
    year_end: int,
    codes: Iterable[Any],
    *,
    cache: CacheStore | None = None,
    use_cache: bool = True,
    ttl_hours: float | None = None,
    plan: BatchPlan | None = None,
) -> list[AnnualPoint]:
    """
    Annual totals of a code basket for every year in [year_start, year_end].

    Args:
        client:     ComexStatSource used for the aggregated requests.
        flow:       "import" or "export".
        year_start: First year (inclusive).
        year_end:   Last year (inclusive).
        codes:      Raw codes; normalized, invalid ones dropped.
        cache:      Optional store for the whole series.
        use_cache:  Read and write the cache when a store is given.
        ttl_hours:  Cache freshness (default settings.series_cache_ttl_hours).
        plan:       Override the throttling plan (tests, tuning).

    Returns:
        AnnualPoint list, one per year, ascending.
    """
    years = year_range(year_start, year_end)
    basket = sorted(normalize_codes(codes))
    ttl = settings.series_cache_ttl_hours if ttl_hours is None else ttl_hours

    if not basket:
        return series_from_totals(year_start, year_end)

    key = series_cache_key(flow, years[0], years[-1], basket)
    if use_cache:
        cached = _points_from_cache(read_cached(cache, key, ttl), years)
        if cached is not None:
            log.info("series_cache_hit", flow=flow, key=key)
            return cached

    plan = plan or plan_batches(len(basket))
    tasks = [(year, chunk) for year in years for chunk in chunked(basket, plan.chunk_size)]
    log.info(
        "series_fetch_start",
        flow=flow,
        years=len(years),
        codes=len(basket),
        requests=len(tasks),
        chunk_size=plan.chunk_size,
        concurrency=plan.concurrency,
    )

    async def _fetch(task: tuple[int, list[str]]) -> tuple[int, Metrics, bool]:
        year, chunk = task
        totals, ok = await client.fetch_year_totals(flow, year, chunk)
        return year, totals, ok

    results = await run_pool(tasks, plan.concurrency, _fetch, delay_s=plan.delay_s)

    totals_by_year: dict[int, Metrics] = {year: Metrics() for year in years}
    failed = 0
    for year, totals, ok in results:
        totals_by_year[year].add(totals.value, totals.weight)
        if not ok:
            failed += 1

    points = series_from_totals(years[0], years[-1], totals_by_year)
    all_zero = all(p.is_zero for p in points)

    if failed:
        log.warning("series_partial_failure", flow=flow, failed_requests=failed, requests=len(tasks))
    if use_cache and not all_zero:
        write_cached(cache, key, [p.model_dump() for p in points])
    elif all_zero:
        log.warning("series_all_zero", flow=flow, codes=len(basket), years=len(years))

    return points
