"""
transforms/dictionary_index.py — NCM → (category, subcategory) index.

Dictionaries are assembled by hand in spreadsheets and the same NCM often
appears more than once, sometimes under different categories. The index
keeps the first mapping seen for each code and never overwrites it; later
occurrences only feed the duplicate/conflict counters.

Usage:
    from cgim_pipeline.transforms.dictionary_index import build_dictionary_index

    index = build_dictionary_index(rows, depth=2)
    index.lookup("87082990")       # DictionaryMapping(category=..., subcategory=...)
    index.duplicates, index.conflicts
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

import structlog

from cgim_shared.codes import normalize_code
from cgim_shared.constants import INCOMPLETE_CATEGORY, SUBCATEGORY_SEPARATOR
from cgim_shared.models.dictionary import DictionaryMapping, DictionaryRow, is_empty_label

log = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Label helpers
# ---------------------------------------------------------------------------

def subcategory_label(subcategories: Sequence[str | None], depth: int = 1) -> str | None:
    """
    Join the first ``depth`` subcategory slots into one label.

    Empty/zero slots are skipped: ["Motores", None, "Pistões"] at depth 3
    gives "Motores > Pistões". Returns None when every slot is empty.
    """
    parts = [
        str(s).strip()
        for s in list(subcategories or [])[: max(depth, 0)]
        if not is_empty_label(s)
    ]
    return SUBCATEGORY_SEPARATOR.join(parts) if parts else None


def category_label(category: str | None) -> str:
    """Category label, or the incomplete-mapping sentinel when empty."""
    return INCOMPLETE_CATEGORY if is_empty_label(category) else str(category).strip()


def max_subcategory_depth(rows: Iterable[DictionaryRow]) -> int:
    """Deepest non-empty subcategory slot used by any row (at least 1)."""
    deepest = 1
    for row in rows:
        for i, sub in enumerate(row.subcategories, start=1):
            if not is_empty_label(sub):
                deepest = max(deepest, i)
    return deepest


def row_mapping(row: DictionaryRow, depth: int = 1) -> DictionaryMapping:
    return DictionaryMapping(
        category=category_label(row.category),
        subcategory=subcategory_label(row.subcategories, depth),
    )


# ---------------------------------------------------------------------------
# Index
# ---------------------------------------------------------------------------

@dataclass
class DictionaryIndex:
    """First-wins code index plus ingestion counters."""

    mappings: dict[str, DictionaryMapping] = field(default_factory=dict)
    duplicates: int = 0
    conflicts: int = 0
    invalid_rows: int = 0
    total_rows: int = 0
    conflict_codes: list[str] = field(default_factory=list)

    def lookup(self, code: str) -> DictionaryMapping | None:
        return self.mappings.get(code)

    def __contains__(self, code: object) -> bool:
        return code in self.mappings

    def __len__(self) -> int:
        return len(self.mappings)

    @property
    def codes(self) -> list[str]:
        return list(self.mappings)


def build_dictionary_index(rows: Iterable[DictionaryRow], *, depth: int = 1) -> DictionaryIndex:
    """
    Scan rows in order and keep the first mapping per normalized code.

    Args:
        rows:  Dictionary rows in source order.
        depth: Subcategory depth used to resolve (and compare) subcategories.

    Returns:
        DictionaryIndex with duplicate/conflict/invalid counters.
    """
    index = DictionaryIndex()
    conflicted: set[str] = set()

    for row in rows:
        index.total_rows += 1
        code = normalize_code(row.code)
        if code is None:
            index.invalid_rows += 1
            continue

        mapping = row_mapping(row, depth)
        kept = index.mappings.get(code)
        if kept is None:
            index.mappings[code] = mapping
            continue

        index.duplicates += 1
        if kept.category != mapping.category or kept.subcategory != mapping.subcategory:
            index.conflicts += 1
            if code not in conflicted:
                conflicted.add(code)
                index.conflict_codes.append(code)

    if index.duplicates or index.invalid_rows:
        log.info(
            "dictionary_index_built",
            codes=len(index.mappings),
            duplicates=index.duplicates,
            conflicts=index.conflicts,
            invalid_rows=index.invalid_rows,
        )
    return index


def dedupe_rows(rows: Iterable[DictionaryRow]) -> list[DictionaryRow]:
    """Drop invalid codes and every repeat of an already-seen code (first wins)."""
    seen: set[str] = set()
    out: list[DictionaryRow] = []
    for row in rows:
        code = normalize_code(row.code)
        if code is None or code in seen:
            continue
        seen.add(code)
        out.append(row)
    return out
