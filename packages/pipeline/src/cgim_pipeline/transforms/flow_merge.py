"""
transforms/flow_merge.py — Merge an import tree and an export tree by node id.

The merge is shaped by the primary tree: every primary node appears once
with its own metrics in ``primary`` and the matching secondary node's
metrics (or zeros) in ``secondary``. Secondary-only nodes are dropped so
the displayed hierarchy always follows one canonical flow.

Alignment relies on both trees being built with node_id() over the same
taxonomy; check_id_alignment() makes that assumption observable.

Usage:
    from cgim_pipeline.transforms.flow_merge import merge_flow_trees

    merged = merge_flow_trees(import_tree, export_tree)
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field

import structlog

from cgim_shared.models.hierarchy import CategoryNode, HierarchyNode, MergedNode
from cgim_shared.models.trade import Metrics
from cgim_pipeline.transforms.hierarchy import collect_ids, iter_nodes

log = structlog.get_logger(__name__)


@dataclass
class IdAlignment:
    shared: set[str] = field(default_factory=set)
    primary_only: set[str] = field(default_factory=set)
    secondary_only: set[str] = field(default_factory=set)
    # ids carried by more than one node inside the same tree
    duplicate_ids: set[str] = field(default_factory=set)

    @property
    def is_aligned(self) -> bool:
        """True when both trees have exactly the same, unique node ids."""
        return not self.primary_only and not self.secondary_only and not self.duplicate_ids


def _duplicate_ids(tree: Sequence[HierarchyNode]) -> set[str]:
    counts = Counter(node.id for node, _ in iter_nodes(tree))
    return {id_ for id_, n in counts.items() if n > 1}


def check_id_alignment(
    primary: Sequence[HierarchyNode], secondary: Sequence[HierarchyNode]
) -> IdAlignment:
    p_ids = collect_ids(primary)
    s_ids = collect_ids(secondary)
    return IdAlignment(
        shared=p_ids & s_ids,
        primary_only=p_ids - s_ids,
        secondary_only=s_ids - p_ids,
        duplicate_ids=_duplicate_ids(primary) | _duplicate_ids(secondary),
    )


def _copy_metrics(m: Metrics | None) -> Metrics:
    return Metrics(value=m.value, weight=m.weight) if m is not None else Metrics()


def _merge_node(node: HierarchyNode, secondary_by_id: dict[str, HierarchyNode]) -> MergedNode:
    other = secondary_by_id.get(node.id)
    return MergedNode(
        id=node.id,
        level=node.level,
        name=node.name,
        primary=_copy_metrics(node.metrics),
        secondary=_copy_metrics(other.metrics if other is not None else None),
        meta=node.meta.model_copy(),
        children=[_merge_node(child, secondary_by_id) for child in node.children],
    )


def merge_flow_trees(
    primary: Sequence[CategoryNode], secondary: Sequence[CategoryNode]
) -> list[MergedNode]:
    """
    Pair each primary node with the secondary node that has the same id.

    Args:
        primary:   Tree whose shape the result follows (usually imports).
        secondary: Tree providing the second metrics channel.

    Returns:
        MergedNode tree with exactly the primary tree's ids.
    """
    primary = list(primary or [])
    secondary = list(secondary or [])
    secondary_by_id = {node.id: node for node, _ in iter_nodes(secondary)}

    if primary and secondary:
        p_cats = {n.id for n in primary}
        s_cats = {n.id for n in secondary}
        if not p_cats & s_cats:
            log.warning(
                "flow_trees_not_aligned",
                primary_categories=len(p_cats),
                secondary_categories=len(s_cats),
            )

    return [_merge_node(node, secondary_by_id) for node in primary]
