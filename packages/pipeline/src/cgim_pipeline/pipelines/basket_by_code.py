"""
pipelines/basket_by_code.py — Per-NCM annual values for a code basket.

Used to build hierarchy trees: a tree for (entity, year, flow) needs one
measurement per dictionary code. Each (code, year) pair is cached on its
own under cgim:comex:<flow>:<code>:<year> (72 h by default), so switching
between years or entities only fetches what is missing.

Cache misses for a year are grouped into chunks and requested with
details=["ncm"], one request per chunk. Values from failed requests are
returned as zero but are not cached; the rest of a chunk is cached with
a single store write.

Usage:
    async with ComexStatSource() as client:
        rows = await fetch_year_measurements(client, "import", 2024, codes, cache=store)
        tree = build_hierarchy_tree(dict_rows=rows_dict, measurements=rows)
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from cgim_shared.codes import chunked, normalize_code
from cgim_shared.config import settings
from cgim_shared.constants import CODE_CACHE_PREFIX, Flow
from cgim_shared.models.trade import CodeSeries, Metrics, TradeMeasurement
from cgim_pipeline.sources.comexstat import ComexStatSource
from cgim_pipeline.utils.cache import CacheStore, read_cached, write_cached_many
from cgim_pipeline.utils.logging import get_logger
from cgim_pipeline.utils.pool import run_pool

log = get_logger(__name__, pipeline="basket_by_code")


@dataclass
class BasketProgress:
    """Progress snapshot; total and done count (code, year) pairs."""

    total: int
    done: int
    stage: str
    current: tuple[str, int] | None = None


ProgressCallback = Callable[[BasketProgress], None]


def code_cache_key(flow: Flow, code: str, year: int) -> str:
    return f"{CODE_CACHE_PREFIX}:{flow}:{code}:{year}"


def _metrics_from_cache(data: Any) -> Metrics | None:
    if not isinstance(data, dict):
        return None
    return Metrics(value=data.get("value"), weight=data.get("weight"))


async def fetch_basket_annual_by_code(
    client: ComexStatSource,
    codes: Iterable[Any],
    flow: Flow,
    years: Iterable[int],
    *,
    cache: CacheStore | None = None,
    use_cache: bool = True,
    ttl_hours: float | None = None,
    concurrency: int | None = None,
    chunk_size: int | None = None,
    on_progress: ProgressCallback | None = None,
) -> list[CodeSeries]:
    """
    Fetch value/weight for every (code, year) pair of a basket.

    Args:
        client:      ComexStatSource for the per-code requests.
        codes:       Raw codes; invalid ones are dropped, repeats collapsed
                     (the first raw spelling is kept as raw_code).
        flow:        "import" or "export".
        years:       Years to fetch.
        cache:       Optional per-code-per-year store.
        use_cache:   Read/write the store when given.
        ttl_hours:   Freshness (default settings.code_cache_ttl_hours).
        concurrency: Requests in flight (default settings.basket_small_concurrency).
        chunk_size:  Codes per request (default settings.basket_small_chunk_size).
        on_progress: Called with BasketProgress at init, per result and done.

    Returns:
        One CodeSeries per valid code, in first-seen order, with every
        requested year present.
    """
    ttl = settings.code_cache_ttl_hours if ttl_hours is None else ttl_hours
    concurrency = concurrency or settings.basket_small_concurrency
    chunk_size = chunk_size or settings.basket_small_chunk_size
    year_list = sorted({int(y) for y in years})

    series: dict[str, CodeSeries] = {}
    for raw in codes or []:
        code = normalize_code(raw)
        if code is not None and code not in series:
            series[code] = CodeSeries(code=code, raw_code=str(raw))

    total = len(series) * len(year_list)
    done = 0

    def report(stage: str, current: tuple[str, int] | None = None) -> None:
        if on_progress is not None:
            on_progress(BasketProgress(total=total, done=done, stage=stage, current=current))

    report("init")

    # 1. Serve what the cache already has
    misses: dict[int, list[str]] = {year: [] for year in year_list}
    for year in year_list:
        for code, entry in series.items():
            hit = (
                _metrics_from_cache(read_cached(cache, code_cache_key(flow, code, year), ttl))
                if use_cache
                else None
            )
            if hit is None:
                misses[year].append(code)
                continue
            entry.years[year] = hit
            done += 1
            report("cache_hit", (code, year))

    # 2. Fetch the rest, chunked per year
    tasks = [(year, chunk) for year, missing in misses.items() for chunk in chunked(missing, chunk_size)]
    log.info(
        "basket_fetch_start",
        flow=flow,
        codes=len(series),
        years=len(year_list),
        cache_hits=done,
        requests=len(tasks),
    )

    async def _fetch(task: tuple[int, list[str]]) -> None:
        nonlocal done
        year, chunk = task
        report("fetch", (chunk[0], year))
        by_code, ok = await client.fetch_year_by_code(flow, year, chunk)
        fresh: dict[str, dict[str, float]] = {}
        for code in chunk:
            value = by_code.get(code) or Metrics()
            series[code].years[year] = value
            if ok and use_cache:
                fresh[code_cache_key(flow, code, year)] = {"value": value.value, "weight": value.weight}
            done += 1
            report("fetched", (code, year))
        # one store write per chunk, off the event loop
        if fresh:
            await asyncio.to_thread(write_cached_many, cache, fresh)

    await run_pool(tasks, concurrency, _fetch)

    report("done")
    return list(series.values())


async def fetch_year_measurements(
    client: ComexStatSource,
    flow: Flow,
    year: int,
    codes: Iterable[Any],
    **kwargs: Any,
) -> list[TradeMeasurement]:
    """One TradeMeasurement per valid code for a single year (tree input)."""
    series = await fetch_basket_annual_by_code(client, codes, flow, [year], **kwargs)
    return [
        TradeMeasurement(code=s.code, value=s.for_year(year).value, weight=s.for_year(year).weight)
        for s in series
    ]
