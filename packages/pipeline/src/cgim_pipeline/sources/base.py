"""
sources/base.py — Common contract for the ComexStat and dictionary sources.

A source turns one external input (the ComexStat API, a dictionary CSV)
into a polars frame with a fixed set of columns:

  extract(**params)  — raw frame, columns as the upstream spells them
  transform(raw)     — frame holding at least ``required_columns``
  get_metadata()     — small dict describing the source, for diagnostics

fetch() chains the two steps, times them and checks that the transformed
frame carries every required column, so downstream code can select
columns by name without guarding.

Usage:
    frame = await CsvDictionarySource(path).fetch()
    frame = await client.fetch(flow="export", year=2024, codes=["87082990"])
"""

from __future__ import annotations

import re
import time
import unicodedata
from abc import ABC, abstractmethod
from typing import Any, ClassVar

import polars as pl

from cgim_shared.errors import ConfigurationError
from cgim_pipeline.utils.logging import get_logger


class BaseSource(ABC):
    """Base for sources that produce a polars frame."""

    name: ClassVar[str] = "unknown"
    required_columns: ClassVar[tuple[str, ...]] = ()

    def __init__(self) -> None:
        self._log = get_logger(f"cgim_pipeline.sources.{self.name.lower()}", source_name=self.name)

    @abstractmethod
    async def extract(self, **params: Any) -> pl.DataFrame:
        ...

    @abstractmethod
    def transform(self, raw: pl.DataFrame) -> pl.DataFrame:
        ...

    @abstractmethod
    async def get_metadata(self) -> dict[str, Any]:
        ...

    async def fetch(self, **params: Any) -> pl.DataFrame:
        """
        extract() then transform(), with one timed log line per call.

        Scalar params (flow, year, entity) are bound to the log context;
        code lists are logged by length only.

        Raises:
            ConfigurationError: transform() dropped a required column.
        """
        context = {
            k: (len(v) if isinstance(v, (list, tuple, set)) else v)
            for k, v in params.items()
        }
        t0 = time.monotonic()
        raw = await self.extract(**params)
        frame = self.transform(raw)

        missing = [c for c in self.required_columns if c not in frame.columns]
        if missing:
            raise ConfigurationError(f"{self.name} frame is missing columns {missing}")

        self._log.debug(
            "source_fetch_complete",
            raw_rows=len(raw),
            rows=len(frame),
            duration_ms=int((time.monotonic() - t0) * 1000),
            **context,
        )
        return frame

    @staticmethod
    def _normalize_header(name: Any) -> str:
        """'Código NCM ' → 'codigo ncm' (lowercase, accents stripped)."""
        s = unicodedata.normalize("NFD", str(name or "").strip().lower())
        s = "".join(ch for ch in s if not unicodedata.combining(ch))
        return re.sub(r"\s+", " ", s)
