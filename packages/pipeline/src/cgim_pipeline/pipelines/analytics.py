"""
pipelines/analytics.py — Entity-level loads: trees, dual-flow trees, annual series.

AnalyticsSession wires the dictionary source, the ComexStat client and the
cache together the way an interactive dashboard uses them:

  load_tree(entity, year, flow)        — seeded hierarchy tree + diagnostics
  load_dual_flow(entity, year)         — import and export trees merged by id
  load_annual(entity, start, end, ...) — basket series for both flows + balance

Every load takes a generation token from LoadGuard before its first await.
When a newer load starts before an older one finishes, the older result is
discarded and the call returns None instead of overwriting newer state.

Usage:
    session = AnalyticsSession(CsvDictionarySource(path), client, cache=store)
    result = await session.load_tree("ABAL", 2024, "import", subcategory_depth=2)
    if result is not None and result.diagnostics.api_likely_down:
        ...
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from cgim_shared.constants import Flow
from cgim_shared.models.dictionary import DictionaryRow
from cgim_shared.models.hierarchy import CategoryNode, MergedNode
from cgim_shared.models.trade import AnnualPoint, BalancePoint, TradeMeasurement
from cgim_pipeline.pipelines.annual_series import fetch_basket_annual_series
from cgim_pipeline.pipelines.basket_by_code import fetch_year_measurements
from cgim_pipeline.sources.comexstat import ComexStatSource
from cgim_pipeline.sources.dictionary import require_dictionary_source
from cgim_pipeline.transforms.annual import trade_balance
from cgim_pipeline.transforms.basket import select_codes
from cgim_pipeline.transforms.dictionary_index import (
    DictionaryIndex,
    build_dictionary_index,
    dedupe_rows,
)
from cgim_pipeline.transforms.flow_merge import merge_flow_trees
from cgim_pipeline.transforms.hierarchy import HierarchyBuild, build_hierarchy
from cgim_pipeline.utils.cache import CacheStore
from cgim_pipeline.utils.logging import get_logger, load_context

log = get_logger(__name__, pipeline="analytics")


# ---------------------------------------------------------------------------
# Supersession
# ---------------------------------------------------------------------------

class LoadGuard:
    """Hands out increasing tokens; only the newest token is current."""

    def __init__(self) -> None:
        self._generation = 0

    def begin(self) -> int:
        self._generation += 1
        return self._generation

    def is_current(self, token: int) -> bool:
        return token == self._generation

    def cancel(self) -> None:
        """Invalidate every load in flight."""
        self._generation += 1


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class LoadDiagnostics:
    """Side-channel data-quality counters for one load."""

    duplicates: int = 0
    conflicts: int = 0
    unmapped_codes: int = 0
    invalid_rows: int = 0
    zero_rows: int = 0
    total_rows: int = 0
    api_likely_down: bool = False
    represented_codes: int = 0

    @classmethod
    def from_build(
        cls, index: DictionaryIndex, builds: Iterable[HierarchyBuild]
    ) -> "LoadDiagnostics":
        builds = list(builds)
        zero_rows = sum(b.zero_rows for b in builds)
        total_rows = sum(b.input_rows for b in builds)
        unmapped: set[str] = set()
        represented: set[str] = set()
        for b in builds:
            unmapped.update(b.unmapped_codes)
            represented |= b.represented_codes
        return cls(
            duplicates=index.duplicates,
            conflicts=index.conflicts,
            unmapped_codes=len(unmapped),
            invalid_rows=index.invalid_rows + sum(b.invalid_rows for b in builds),
            zero_rows=zero_rows,
            total_rows=total_rows,
            api_likely_down=total_rows > 0 and zero_rows == total_rows,
            represented_codes=len(represented),
        )


@dataclass
class TreeLoad:
    entity: str
    year: int
    flow: Flow
    tree: list[CategoryNode]
    diagnostics: LoadDiagnostics


@dataclass
class DualFlowLoad:
    entity: str
    year: int
    import_tree: list[CategoryNode]
    export_tree: list[CategoryNode]
    merged: list[MergedNode]
    diagnostics: LoadDiagnostics


@dataclass
class AnnualLoad:
    entity: str
    year_start: int
    year_end: int
    codes: list[str] = field(default_factory=list)
    import_points: list[AnnualPoint] = field(default_factory=list)
    export_points: list[AnnualPoint] = field(default_factory=list)
    balance: list[BalancePoint] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

class AnalyticsSession:
    """Stateful loader for one user session (one dictionary, one client)."""

    def __init__(
        self,
        dictionary_source: Any,
        client: ComexStatSource,
        cache: CacheStore | None = None,
        *,
        use_cache: bool = True,
    ) -> None:
        self._dictionary = require_dictionary_source(dictionary_source)
        self._client = client
        self._cache = cache
        self._use_cache = use_cache
        self.guard = LoadGuard()

    def cancel(self) -> None:
        """Drop every load in flight; each returns None when it finishes."""
        self.guard.cancel()
        log.info("loads_cancelled")

    async def entities(self) -> list[str]:
        return await self._dictionary.entities()

    async def _entity_rows(self, entity: str, depth: int) -> tuple[list[DictionaryRow], DictionaryIndex]:
        rows = await self._dictionary.load_entity(entity)
        return rows, build_dictionary_index(rows, depth=depth)

    async def _measurements(self, flow: Flow, year: int, codes: list[str]) -> list[TradeMeasurement]:
        return await fetch_year_measurements(
            self._client, flow, year, codes, cache=self._cache, use_cache=self._use_cache
        )

    @staticmethod
    def _build(
        rows: list[DictionaryRow],
        index: DictionaryIndex,
        measurements: list[TradeMeasurement],
        depth: int,
    ) -> HierarchyBuild:
        # mapping comes from the first occurrence of each code; seeding uses
        # every row so taxonomy shape survives duplicate codes
        return build_hierarchy(
            dict_rows=dedupe_rows(rows),
            seed_rows=rows,
            measurements=measurements,
            index=index,
            include_unmapped=True,
            seed_groups_from_dictionary=True,
            subcategory_depth=depth,
        )

    def _superseded(self, token: int, **context: Any) -> bool:
        if self.guard.is_current(token):
            return False
        log.info("load_superseded", **context)
        return True

    async def load_tree(
        self,
        entity: str,
        year: int,
        flow: Flow = "import",
        subcategory_depth: int = 1,
    ) -> TreeLoad | None:
        """Seeded tree for one entity/year/flow; None when superseded."""
        token = self.guard.begin()
        with load_context(entity=entity, year=year, flow=flow):
            rows, index = await self._entity_rows(entity, subcategory_depth)
            measurements = await self._measurements(flow, year, index.codes)
            if self._superseded(token, entity=entity, year=year, flow=flow):
                return None

            build = self._build(rows, index, measurements, subcategory_depth)
            diagnostics = LoadDiagnostics.from_build(index, [build])
            if diagnostics.api_likely_down:
                log.warning("api_likely_down", entity=entity, year=year, flow=flow, rows=diagnostics.total_rows)
            log.info(
                "tree_load_complete",
                entity=entity,
                year=year,
                flow=flow,
                categories=len(build.tree),
                leaves=build.leaf_count,
                duplicates=diagnostics.duplicates,
                conflicts=diagnostics.conflicts,
            )
            return TreeLoad(entity=entity, year=year, flow=flow, tree=build.tree, diagnostics=diagnostics)

    async def load_dual_flow(
        self, entity: str, year: int, subcategory_depth: int = 1
    ) -> DualFlowLoad | None:
        """Import and export trees for one year, merged on the import shape."""
        token = self.guard.begin()
        with load_context(entity=entity, year=year, flow="both"):
            rows, index = await self._entity_rows(entity, subcategory_depth)
            import_rows, export_rows = await asyncio.gather(
                self._measurements("import", year, index.codes),
                self._measurements("export", year, index.codes),
            )
            if self._superseded(token, entity=entity, year=year, flow="both"):
                return None

            import_build = self._build(rows, index, import_rows, subcategory_depth)
            export_build = self._build(rows, index, export_rows, subcategory_depth)
            merged = merge_flow_trees(import_build.tree, export_build.tree)
            diagnostics = LoadDiagnostics.from_build(index, [import_build, export_build])
            if diagnostics.api_likely_down:
                log.warning("api_likely_down", entity=entity, year=year, flow="both", rows=diagnostics.total_rows)
            return DualFlowLoad(
                entity=entity,
                year=year,
                import_tree=import_build.tree,
                export_tree=export_build.tree,
                merged=merged,
                diagnostics=diagnostics,
            )

    async def load_annual(
        self,
        entity: str,
        year_start: int,
        year_end: int,
        categories: Iterable[str] | None = None,
        subcategories: Iterable[str] | None = None,
        subcategory_depth: int = 1,
    ) -> AnnualLoad | None:
        """Annual import/export series of the filtered basket plus trade balance."""
        token = self.guard.begin()
        with load_context(entity=entity, year_start=year_start, year_end=year_end):
            rows = await self._dictionary.load_entity(entity)
            codes = sorted(select_codes(rows, categories, subcategories, depth=subcategory_depth))
            import_points, export_points = await asyncio.gather(
                fetch_basket_annual_series(
                    self._client, "import", year_start, year_end, codes,
                    cache=self._cache, use_cache=self._use_cache,
                ),
                fetch_basket_annual_series(
                    self._client, "export", year_start, year_end, codes,
                    cache=self._cache, use_cache=self._use_cache,
                ),
            )
            if self._superseded(token, entity=entity, year_start=year_start, year_end=year_end):
                return None

            return AnnualLoad(
                entity=entity,
                year_start=year_start,
                year_end=year_end,
                codes=codes,
                import_points=import_points,
                export_points=export_points,
                balance=trade_balance(import_points, export_points),
            )
