"""
transforms/basket.py — Pick the NCM basket for a category/subcategory filter.

Works on dictionary rows only, so a basket can be chosen before any trade
data has been loaded.
"""

from __future__ import annotations

from collections.abc import Iterable

from cgim_shared.codes import normalize_code
from cgim_shared.constants import NO_SUBCATEGORY
from cgim_shared.models.dictionary import DictionaryRow
from cgim_pipeline.transforms.dictionary_index import category_label, subcategory_label


def select_codes(
    rows: Iterable[DictionaryRow],
    selected_categories: Iterable[str] | None = None,
    selected_subcategories: Iterable[str] | None = None,
    *,
    depth: int = 1,
) -> set[str]:
    """
    Canonical codes of rows matching the selection.

    An empty selection on either axis lets every row through on that axis.
    Rows without subcategory compare as "Sem subcategoria".
    """
    cats = {c for c in (selected_categories or []) if c}
    subs = {s for s in (selected_subcategories or []) if s}
    out: set[str] = set()
    for row in rows or []:
        if cats and category_label(row.category) not in cats:
            continue
        if subs:
            sub = subcategory_label(row.subcategories, depth) or NO_SUBCATEGORY
            if sub not in subs:
                continue
        code = normalize_code(row.code)
        if code is not None:
            out.add(code)
    return out
