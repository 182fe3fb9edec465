"""
transforms/composition.py — Top-N share breakdown of a tree level.

Feeds the donut chart: the largest ``max_items`` positive entries at the
chosen level, with everything else folded into a single "Outros" slice.

Usage:
    slices = composition(tree, level="subcategory", metric="value", max_items=8)
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

from cgim_shared.constants import OTHERS_LABEL, HierarchyLevel
from cgim_shared.models.hierarchy import CategoryNode
from cgim_pipeline.transforms.hierarchy import iter_nodes

Metric = Literal["value", "weight"]


@dataclass
class CompositionSlice:
    label: str
    amount: float
    share: float
    node_id: str | None = None


def composition(
    tree: Sequence[CategoryNode],
    level: HierarchyLevel = "category",
    metric: Metric = "value",
    max_items: int = 8,
) -> list[CompositionSlice]:
    if metric not in ("value", "weight"):
        raise ValueError(f"metric must be 'value' or 'weight', got {metric!r}")

    entries = [
        (node, float(getattr(node.metrics, metric)))
        for node, _ in iter_nodes(tree)
        if node.level == level
    ]
    entries = [(node, amount) for node, amount in entries if amount > 0]
    if not entries:
        return []

    entries.sort(key=lambda e: -e[1])
    head = entries[: max(max_items, 1)]
    tail = entries[len(head):]
    total = sum(amount for _, amount in entries)

    slices = [
        CompositionSlice(label=node.name, amount=amount, share=amount / total, node_id=node.id)
        for node, amount in head
    ]
    rest = sum(amount for _, amount in tail)
    if rest > 0:
        slices.append(CompositionSlice(label=OTHERS_LABEL, amount=rest, share=rest / total))
    return slices
