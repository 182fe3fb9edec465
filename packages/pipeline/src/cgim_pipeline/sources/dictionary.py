"""
sources/dictionary.py — Entity dictionary sources (NCM → category/subcategory).

Every dictionary collaborator implements the DictionarySource contract:

  entities()            — sorted entity names available
  load_entity(entity)   — DictionaryRow list for that entity, in file order

CsvDictionarySource reads a long-format CSV (one row per entity/code) with
polars. Expected headers (case/accent-insensitive):

  entidade | entity          — entity name (optional: single-entity files)
  ncm | codigo ncm          — product code
  categoria | category      — category label
  subcategoria, subcategoria (1), subcategoria (2), ...  — depth slots

Usage:
    source = require_dictionary_source(CsvDictionarySource("dict.csv"))
    rows = await source.load_entity("ABAL")
"""

from __future__ import annotations

import io
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import polars as pl
import structlog

from cgim_shared.config import settings
from cgim_shared.errors import ConfigurationError, DictionaryContractError
from cgim_shared.models.dictionary import DictionaryRow, SourceLocation
from cgim_pipeline.sources.base import BaseSource

log = structlog.get_logger(__name__)

DEFAULT_ENTITY = "default"

_ENTITY_HEADERS = ("entidade", "entity")
_CODE_HEADERS = ("ncm", "codigo ncm", "cod ncm", "code")
_CATEGORY_HEADERS = ("categoria", "category")
_SUBCATEGORY_PREFIXES = ("subcategoria", "subcategory")


class DictionarySource(ABC):
    """Contract every dictionary collaborator must implement."""

    @abstractmethod
    async def entities(self) -> list[str]: ...

    @abstractmethod
    async def load_entity(self, entity: str) -> list[DictionaryRow]: ...


def require_dictionary_source(source: Any) -> DictionarySource:
    """Return source when it implements DictionarySource, else fail loudly."""
    if not isinstance(source, DictionarySource):
        raise DictionaryContractError(
            f"{type(source).__name__} does not implement DictionarySource "
            "(entities() / load_entity(entity))"
        )
    return source


class InMemoryDictionarySource(DictionarySource):
    """Dictionary rows already held in memory, grouped by entity."""

    def __init__(self, rows_by_entity: dict[str, list[DictionaryRow]]) -> None:
        self._rows = {k: list(v) for k, v in rows_by_entity.items()}

    async def entities(self) -> list[str]:
        return sorted(self._rows, key=str.casefold)

    async def load_entity(self, entity: str) -> list[DictionaryRow]:
        return list(self._rows.get(entity, []))


class CsvDictionarySource(BaseSource, DictionarySource):
    """Long-format CSV dictionary loaded once with polars."""

    name = "CGIM-Dictionary"
    required_columns = ("entity", "code", "category", "row_number")

    def __init__(self, path: str | Path | None = None) -> None:
        super().__init__()
        self._path = Path(path or settings.dictionary_path)
        self._frame: pl.DataFrame | None = None

    # ------------------------------------------------------------------
    # BaseSource interface
    # ------------------------------------------------------------------

    async def extract(self, **kwargs: Any) -> pl.DataFrame:
        if not self._path.is_file():
            raise ConfigurationError(f"Dictionary file not found: {self._path}")
        raw_bytes = self._path.read_bytes()
        if raw_bytes.startswith(b"\xef\xbb\xbf"):
            raw_bytes = raw_bytes[3:]
        return pl.read_csv(
            io.BytesIO(raw_bytes),
            infer_schema_length=0,
            truncate_ragged_lines=True,
        )

    def transform(self, raw: pl.DataFrame) -> pl.DataFrame:
        """
        Map free-form headers onto entity / code / category / sub_<n> columns.

        Output columns:
            entity, code, category, sub_1 ... sub_n, row_number
        """
        headers = {col: self._normalize_header(col) for col in raw.columns}

        def find(candidates: tuple[str, ...]) -> str | None:
            for cand in candidates:
                for col, h in headers.items():
                    if h == cand:
                        return col
            return None

        code_col = find(_CODE_HEADERS) or next(
            (c for c, h in headers.items() if "ncm" in h), None
        )
        if code_col is None:
            raise ConfigurationError(
                f"Dictionary {self._path} has no NCM column. Columns: {raw.columns}"
            )
        entity_col = find(_ENTITY_HEADERS)
        category_col = find(_CATEGORY_HEADERS)
        sub_cols = [
            c for c, h in headers.items()
            if any(h.startswith(p) for p in _SUBCATEGORY_PREFIXES)
        ]

        exprs: list[pl.Expr] = [
            (pl.col(entity_col) if entity_col else pl.lit(DEFAULT_ENTITY))
            .cast(pl.String)
            .str.strip_chars()
            .alias("entity"),
            pl.col(code_col).cast(pl.String).alias("code"),
            (pl.col(category_col) if category_col else pl.lit(None))
            .cast(pl.String)
            .alias("category"),
        ]
        for i, col in enumerate(sub_cols, start=1):
            exprs.append(pl.col(col).cast(pl.String).alias(f"sub_{i}"))

        df = raw.with_row_index("row_number", offset=2).select(
            *exprs, pl.col("row_number").cast(pl.Int64)
        )

        # Drop fully blank lines (no code, no category, no subcategory)
        label_cols = ["code", "category", *[f"sub_{i}" for i in range(1, len(sub_cols) + 1)]]
        df = df.filter(
            pl.any_horizontal(
                [pl.col(c).is_not_null() & (pl.col(c).str.strip_chars() != "") for c in label_cols]
            )
        )
        self._log.info(
            "dictionary_transform_complete",
            path=str(self._path),
            rows=len(df),
            subcategory_slots=len(sub_cols),
        )
        return df

    async def get_metadata(self) -> dict[str, Any]:
        frame = await self._load()
        return {
            "source_name": self.name,
            "path": str(self._path),
            "entities": frame["entity"].n_unique() if not frame.is_empty() else 0,
            "total_rows": len(frame),
        }

    # ------------------------------------------------------------------
    # DictionarySource contract
    # ------------------------------------------------------------------

    async def _load(self) -> pl.DataFrame:
        if self._frame is None:
            self._frame = await self.fetch()
        return self._frame

    async def entities(self) -> list[str]:
        frame = await self._load()
        names = [e for e in frame["entity"].unique().to_list() if e]
        return sorted(names, key=str.casefold)

    async def load_entity(self, entity: str) -> list[DictionaryRow]:
        frame = await self._load()
        sub_cols = sorted(
            (c for c in frame.columns if c.startswith("sub_")),
            key=lambda c: int(c.split("_", 1)[1]),
        )
        rows: list[DictionaryRow] = []
        for rec in frame.filter(pl.col("entity") == entity).iter_rows(named=True):
            rows.append(
                DictionaryRow(
                    code=rec["code"],
                    raw_code=rec["code"],
                    category=rec["category"],
                    subcategories=[rec[c] for c in sub_cols],
                    entity=entity,
                    source=SourceLocation(
                        file_name=self._path.name,
                        sheet_name=entity,
                        row_number=rec["row_number"],
                    ),
                )
            )
        log.info("dictionary_entity_loaded", entity=entity, rows=len(rows))
        return rows
