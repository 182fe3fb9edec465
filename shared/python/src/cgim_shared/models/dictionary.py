"""
models/dictionary.py — Pydantic models for entity dictionaries.

A dictionary maps NCM codes to an entity's category / subcategory
taxonomy. Rows come from the dictionary source collaborator; the index is
built by cgim_pipeline.transforms.dictionary_index.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator


class SourceLocation(BaseModel):
    """Where a dictionary row was read from (diagnostics only)."""

    file_name: str | None = None
    sheet_name: str | None = None
    row_number: int | None = None   # 1-based


def is_empty_label(v: Any) -> bool:
    """Empty, None and the literal zero all mean 'absent' in dictionary cells."""
    if v is None:
        return True
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return v == 0
    s = str(v).strip()
    return s == "" or s == "0"


def clean_label(v: Any) -> str | None:
    return None if is_empty_label(v) else str(v).strip()


class DictionaryRow(BaseModel):
    """One (code → category, subcategories) line of an entity dictionary."""

    code: str | None
    category: str | None = None
    subcategories: list[str | None] = Field(default_factory=list)
    entity: str | None = None
    raw_code: str | None = None
    source: SourceLocation | None = None

    @field_validator("code", "raw_code", mode="before")
    @classmethod
    def _code(cls, v: Any) -> str | None:
        if v is None:
            return None
        if isinstance(v, float) and v.is_integer():
            return str(int(v))
        return str(v)

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, v: Any) -> str | None:
        return clean_label(v)

    @field_validator("subcategories", mode="before")
    @classmethod
    def _subcategories(cls, v: Any) -> list[str | None]:
        if v is None:
            return []
        if isinstance(v, (str, int, float)):
            v = [v]
        return [clean_label(s) for s in v]


class DictionaryMapping(BaseModel):
    """Resolved taxonomy position of one code."""

    category: str
    subcategory: str | None = None
