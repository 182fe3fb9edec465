"""
constants.py — shared constants used across the pipeline and CLI.

Sentinel taxonomy labels, code width and the unit-price scale are defined
here so tree building, merging and basket selection stay in sync.
"""

from __future__ import annotations

from typing import Final, Literal

# ---------------------------------------------------------------------------
# Product codes
# ---------------------------------------------------------------------------
CODE_WIDTH: Final[int] = 8

# ---------------------------------------------------------------------------
# Sentinel labels (data labels shown to end users, kept in Portuguese)
# ---------------------------------------------------------------------------
UNMAPPED_CATEGORY: Final[str] = "Sem categoria (não mapeado)"
INCOMPLETE_CATEGORY: Final[str] = "Sem categoria (mapeamento incompleto)"
NO_SUBCATEGORY: Final[str] = "Sem subcategoria"
OTHERS_LABEL: Final[str] = "Outros"

SUBCATEGORY_SEPARATOR: Final[str] = " > "

# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------
# value is US$ FOB and weight is net kg, so value * 1000 / weight is US$/t
UNIT_PRICE_SCALE: Final[float] = 1000.0

# ---------------------------------------------------------------------------
# Trade flows
# ---------------------------------------------------------------------------
Flow = Literal["import", "export"]
FLOWS: Final[tuple[str, ...]] = ("import", "export")

HierarchyLevel = Literal["category", "subcategory", "ncm"]

# ---------------------------------------------------------------------------
# Cache key prefixes
# ---------------------------------------------------------------------------
CODE_CACHE_PREFIX: Final[str] = "cgim:comex"
SERIES_CACHE_PREFIX: Final[str] = "cgim:basket:annual"
