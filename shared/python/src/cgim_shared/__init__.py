"""
cgim_shared — shared utilities, models, and configuration for the CGIM engine.

Usage:
    from cgim_shared.config import settings
    from cgim_shared.codes import normalize_code
    from cgim_shared.models import DictionaryRow, TradeMeasurement, CategoryNode
    from cgim_shared.constants import UNMAPPED_CATEGORY, NO_SUBCATEGORY
"""

__version__ = "0.1.0"
