"""
transforms/hierarchy.py — Category → subcategory → NCM tree with summed totals.

Combines an entity dictionary with one year/flow of per-code measurements
into a three-level tree. Pure and synchronous: no I/O, never raises on
malformed rows (they are skipped and counted).

Node ids come from node_id(), a pure function of (category, subcategory,
code) labels. Trees built for different flows from the same dictionary
therefore share ids, which is what merge_flow_trees() relies on.

Usage:
    from cgim_pipeline.transforms.hierarchy import build_hierarchy_tree

    tree = build_hierarchy_tree(
        dict_rows=deduped_rows,
        seed_rows=all_rows,
        measurements=rows_2024_import,
        seed_groups_from_dictionary=True,
    )
"""

from __future__ import annotations

import math
import re
import unicodedata
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import polars as pl
import structlog

from cgim_shared.codes import normalize_code
from cgim_shared.constants import NO_SUBCATEGORY, UNMAPPED_CATEGORY
from cgim_shared.models.dictionary import DictionaryRow
from cgim_shared.models.hierarchy import (
    CategoryNode,
    HierarchyNode,
    NodeMeta,
    ProductNode,
    SubcategoryNode,
)
from cgim_shared.models.trade import Metrics, TradeMeasurement
from cgim_pipeline.transforms.dictionary_index import (
    DictionaryIndex,
    build_dictionary_index,
    category_label,
    subcategory_label,
)

log = structlog.get_logger(__name__)

_WHITESPACE = re.compile(r"\s+")
_NON_SLUG = re.compile(r"[^\w-]+", re.ASCII)


# ---------------------------------------------------------------------------
# Node identity
# ---------------------------------------------------------------------------

def slugify(label: Any) -> str:
    """'Autopeças Leves' → 'autopecas-leves'."""
    s = unicodedata.normalize("NFD", str(label if label is not None else ""))
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    s = _WHITESPACE.sub("-", s.lower().strip())
    return _NON_SLUG.sub("", s)


def node_id(category: str, subcategory: str | None = None, code: str | None = None) -> str:
    """Deterministic id for a node path; shared by every tree builder."""
    cat = slugify(category)
    if subcategory is None:
        return f"cat:{cat}"
    sub = slugify(subcategory)
    if code is None:
        return f"sub:{cat}:{sub}"
    return f"ncm:{cat}:{sub}:{code}"


def _meta_subcategory(label: str) -> str | None:
    return None if label == NO_SUBCATEGORY else label


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

@dataclass
class HierarchyBuild:
    """A built tree plus what was skipped while building it."""

    tree: list[CategoryNode] = field(default_factory=list)
    input_rows: int = 0
    invalid_rows: int = 0
    zero_rows: int = 0
    skipped_zero_rows: int = 0
    unmapped_codes: list[str] = field(default_factory=list)
    dropped_unmapped_rows: int = 0
    represented_codes: set[str] = field(default_factory=set)

    @property
    def leaf_count(self) -> int:
        return sum(len(sub.children) for cat in self.tree for sub in cat.children)


class _TreeAccumulator:
    """
    Find-or-create bookkeeping keyed by node id, in first-seen order.

    Labels that slugify alike ("Aço" / "ACO", "Motores" / "motores") share
    one node; the first label seen becomes its name.
    """

    def __init__(self) -> None:
        self.categories: dict[str, CategoryNode] = {}
        self._subs: dict[str, SubcategoryNode] = {}
        self._leaves: dict[str, ProductNode] = {}

    def category(self, cat: str) -> CategoryNode:
        key = node_id(cat)
        node = self.categories.get(key)
        if node is None:
            node = CategoryNode(id=key, name=cat, meta=NodeMeta(category=cat))
            self.categories[key] = node
        return node

    def subcategory(self, cat: str, sub: str) -> SubcategoryNode:
        key = node_id(cat, sub)
        node = self._subs.get(key)
        if node is None:
            parent = self.category(cat)
            node = SubcategoryNode(
                id=key,
                name=sub,
                meta=NodeMeta(category=parent.name, subcategory=_meta_subcategory(sub)),
            )
            parent.children.append(node)
            self._subs[key] = node
        return node

    def leaf(self, cat: str, sub: str, code: str) -> ProductNode:
        key = node_id(cat, sub, code)
        node = self._leaves.get(key)
        if node is None:
            parent = self.subcategory(cat, sub)
            node = ProductNode(
                id=key,
                name=code,
                meta=parent.meta.model_copy(update={"code": code}),
            )
            parent.children.append(node)
            self._leaves[key] = node
        return node


def _as_measurement(row: TradeMeasurement | Mapping[str, Any]) -> TradeMeasurement | None:
    if isinstance(row, TradeMeasurement):
        return row
    try:
        return TradeMeasurement.model_validate(row)
    except (ValueError, TypeError):
        return None


def _sort_desc(nodes: list) -> list:
    return sorted(nodes, key=lambda n: -n.metrics.value)


def build_hierarchy(
    *,
    dict_rows: Iterable[DictionaryRow],
    measurements: Iterable[TradeMeasurement | Mapping[str, Any]],
    seed_rows: Iterable[DictionaryRow] | None = None,
    index: DictionaryIndex | None = None,
    include_unmapped: bool = True,
    include_all_zero: bool = False,
    include_zero_leaves: bool = False,
    seed_groups_from_dictionary: bool = False,
    subcategory_depth: int = 1,
) -> HierarchyBuild:
    """
    Build the category → subcategory → NCM tree and report what was skipped.

    Args:
        dict_rows:        Rows used for code → taxonomy mapping (first wins).
        measurements:     Per-code value/weight rows for one year and flow.
        seed_rows:        Rows used only to pre-create groups; defaults to
                          dict_rows.
        index:            Prebuilt index over dict_rows (skips rebuilding).
        include_unmapped: Keep codes missing from the dictionary under the
                          "não mapeado" category instead of dropping them.
        include_all_zero / include_zero_leaves:
                          Materialize leaves whose value and weight are 0.
        seed_groups_from_dictionary:
                          Pre-create every category/subcategory from
                          seed_rows with zero metrics; seeded groups are
                          never pruned.
        subcategory_depth: Number of subcategory slots joined into labels.

    Returns:
        HierarchyBuild with the sorted tree and counters.
    """
    dict_rows = list(dict_rows or [])
    mapping_index = index if index is not None else build_dictionary_index(
        dict_rows, depth=subcategory_depth
    )
    acc = _TreeAccumulator()
    result = HierarchyBuild()

    # 1. Seed the taxonomy so groups survive all-zero years
    if seed_groups_from_dictionary:
        rows_for_seed = dict_rows if seed_rows is None else list(seed_rows)
        for row in rows_for_seed:
            cat = category_label(row.category)
            sub = subcategory_label(row.subcategories, subcategory_depth) or NO_SUBCATEGORY
            acc.subcategory(cat, sub)

    # 2. Fold measurements into leaves and group totals
    unmapped_seen: set[str] = set()
    for raw in measurements or []:
        result.input_rows += 1
        row = _as_measurement(raw)
        code = normalize_code(row.code) if row is not None else None
        if row is None or code is None:
            result.invalid_rows += 1
            continue

        if row.is_zero:
            result.zero_rows += 1
            if not include_all_zero and not include_zero_leaves:
                result.skipped_zero_rows += 1
                continue

        mapping = mapping_index.lookup(code)
        if mapping is None:
            if code not in unmapped_seen:
                unmapped_seen.add(code)
                result.unmapped_codes.append(code)
            if not include_unmapped:
                result.dropped_unmapped_rows += 1
                continue
            cat, sub = UNMAPPED_CATEGORY, NO_SUBCATEGORY
        else:
            cat, sub = mapping.category, mapping.subcategory or NO_SUBCATEGORY

        leaf = acc.leaf(cat, sub, code)
        leaf.metrics.add(row.value, row.weight)
        acc.subcategory(cat, sub).metrics.add(row.value, row.weight)
        acc.category(cat).metrics.add(row.value, row.weight)
        result.represented_codes.add(code)

    # 3. Without seeding, groups exist only where data landed
    categories = list(acc.categories.values())
    if not seed_groups_from_dictionary:
        for cat_node in categories:
            cat_node.children = [s for s in cat_node.children if s.children]
        categories = [c for c in categories if c.children]

    # 4. Descending by value at every level (stable for ties)
    tree = _sort_desc(categories)
    for cat_node in tree:
        cat_node.children = _sort_desc(cat_node.children)
        for sub_node in cat_node.children:
            sub_node.children = _sort_desc(sub_node.children)

    result.tree = tree
    log.debug(
        "tree_built",
        categories=len(tree),
        leaves=result.leaf_count,
        input_rows=result.input_rows,
        invalid_rows=result.invalid_rows,
        skipped_zero_rows=result.skipped_zero_rows,
        unmapped_codes=len(result.unmapped_codes),
    )
    return result


def build_hierarchy_tree(**kwargs: Any) -> list[CategoryNode]:
    """Same arguments as build_hierarchy(); returns only the tree."""
    return build_hierarchy(**kwargs).tree


# ---------------------------------------------------------------------------
# Tree helpers
# ---------------------------------------------------------------------------

def compute_total(tree: Sequence[CategoryNode]) -> Metrics:
    total = Metrics()
    for node in tree or []:
        total.add(node.metrics.value, node.metrics.weight)
    return total


def list_categories(tree: Sequence[CategoryNode]) -> list[str]:
    return [n.name for n in tree or []]


def _collation_key(label: str) -> tuple[str, str]:
    folded = unicodedata.normalize("NFD", label)
    folded = "".join(ch for ch in folded if not unicodedata.combining(ch))
    return folded.casefold(), label


def list_subcategories(
    tree: Sequence[CategoryNode],
    selected_categories: Iterable[str] | None = None,
) -> list[str]:
    """Distinct subcategory names under the selected categories (all when empty)."""
    cat_set = {c for c in (selected_categories or []) if c}
    subs: set[str] = set()
    for cat in tree or []:
        if cat_set and cat.name not in cat_set:
            continue
        subs.update(sub.name for sub in cat.children)
    return sorted(subs, key=_collation_key)


def iter_nodes(
    tree: Sequence[HierarchyNode], depth: int = 0
) -> Iterator[tuple[HierarchyNode, int]]:
    """Depth-first (node, depth) pairs, parents before children."""
    for node in tree or []:
        yield node, depth
        yield from iter_nodes(node.children, depth + 1)


def collect_ids(tree: Sequence[HierarchyNode]) -> set[str]:
    return {node.id for node, _ in iter_nodes(tree)}


def find_sum_violations(tree: Sequence[HierarchyNode], rel_tol: float = 1e-9) -> list[str]:
    """Ids of group nodes whose metrics differ from the sum of their children."""
    bad: list[str] = []
    for node, _ in iter_nodes(tree):
        if node.level == "ncm":
            continue
        value = math.fsum(c.metrics.value for c in node.children)
        weight = math.fsum(c.metrics.weight for c in node.children)
        if not (
            math.isclose(node.metrics.value, value, rel_tol=rel_tol, abs_tol=1e-9)
            and math.isclose(node.metrics.weight, weight, rel_tol=rel_tol, abs_tol=1e-9)
        ):
            bad.append(node.id)
    return bad


def tree_to_frame(tree: Sequence[CategoryNode]) -> pl.DataFrame:
    """One row per node, depth-first, with unit price; handy for CSV export."""
    rows = [
        {
            "id": node.id,
            "level": node.level,
            "depth": depth,
            "name": node.name,
            "category": node.meta.category,
            "subcategory": node.meta.subcategory,
            "code": node.meta.code,
            "value": node.metrics.value,
            "weight": node.metrics.weight,
            "unit_price": node.metrics.unit_price,
        }
        for node, depth in iter_nodes(tree)
    ]
    return pl.DataFrame(
        rows,
        schema={
            "id": pl.String,
            "level": pl.String,
            "depth": pl.Int32,
            "name": pl.String,
            "category": pl.String,
            "subcategory": pl.String,
            "code": pl.String,
            "value": pl.Float64,
            "weight": pl.Float64,
            "unit_price": pl.Float64,
        },
    )
