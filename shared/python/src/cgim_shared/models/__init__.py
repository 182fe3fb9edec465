"""
cgim_shared.models — Pydantic models shared by the pipeline and the CLI.

  trade       — Metrics, TradeMeasurement, AnnualPoint, CodeSeries, BalancePoint
  dictionary  — DictionaryRow, DictionaryMapping, SourceLocation
  hierarchy   — CategoryNode, SubcategoryNode, ProductNode, MergedNode
"""

from cgim_shared.models.dictionary import DictionaryMapping, DictionaryRow, SourceLocation
from cgim_shared.models.hierarchy import (
    CategoryNode,
    HierarchyNode,
    MergedNode,
    NodeMeta,
    ProductNode,
    SubcategoryNode,
)
from cgim_shared.models.trade import (
    AnnualPoint,
    BalancePoint,
    CodeSeries,
    Metrics,
    TradeMeasurement,
    unit_price,
)

__all__ = [
    "AnnualPoint",
    "BalancePoint",
    "CategoryNode",
    "CodeSeries",
    "DictionaryMapping",
    "DictionaryRow",
    "HierarchyNode",
    "MergedNode",
    "Metrics",
    "NodeMeta",
    "ProductNode",
    "SourceLocation",
    "SubcategoryNode",
    "TradeMeasurement",
    "unit_price",
]
