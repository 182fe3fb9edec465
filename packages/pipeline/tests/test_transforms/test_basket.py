"""
tests/test_transforms/test_basket.py — Basket selection from dictionary rows.
"""

from __future__ import annotations

import pytest

from cgim_shared.constants import NO_SUBCATEGORY
from cgim_shared.models.dictionary import DictionaryRow
from cgim_pipeline.transforms.basket import select_codes


@pytest.fixture
def rows() -> list[DictionaryRow]:
    return [
        DictionaryRow(code="87082990", category="Autopeças", subcategories=["Motores", "Pistões"]),
        DictionaryRow(code="8708.29.90", category="Autopeças", subcategories=["Motores"]),
        DictionaryRow(code="87083090", category="Autopeças", subcategories=["Freios"]),
        DictionaryRow(code="40111000", category="Pneus", subcategories=[]),
        DictionaryRow(code="bad", category="Pneus", subcategories=[]),
    ]


class TestSelectCodes:
    def test_empty_selection_selects_all_valid(self, rows):
        assert select_codes(rows, [], []) == {"87082990", "87083090", "40111000"}

    def test_category_filter(self, rows):
        assert select_codes(rows, ["Pneus"], []) == {"40111000"}

    def test_subcategory_filter(self, rows):
        assert select_codes(rows, [], ["Freios"]) == {"87083090"}

    def test_no_subcategory_sentinel(self, rows):
        assert select_codes(rows, [], [NO_SUBCATEGORY]) == {"40111000"}

    def test_depth_label(self, rows):
        assert select_codes(rows, [], ["Motores > Pistões"], depth=2) == {"87082990"}

    def test_no_match(self, rows):
        assert select_codes(rows, ["Inexistente"], []) == set()

    def test_none_selection(self, rows):
        assert len(select_codes(rows, None, None)) == 3
