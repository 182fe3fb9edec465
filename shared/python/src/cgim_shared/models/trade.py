"""
models/trade.py — Pydantic models for trade measurements and annual series.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from cgim_shared.constants import UNIT_PRICE_SCALE


def unit_price(value: float, weight: float) -> float:
    """US$ per metric ton: value * 1000 / weight, or 0 when weight is not positive."""
    return value * UNIT_PRICE_SCALE / weight if weight > 0 else 0.0


def _coerce_number(v: Any) -> float:
    if v is None or isinstance(v, bool):
        return 0.0
    try:
        n = float(v)
    except (TypeError, ValueError):
        return 0.0
    return n if n == n and n not in (float("inf"), float("-inf")) else 0.0


class Metrics(BaseModel):
    """FOB value (US$) and net weight (kg) pair."""

    value: float = 0.0
    weight: float = 0.0

    @field_validator("value", "weight", mode="before")
    @classmethod
    def _number(cls, v: Any) -> float:
        return _coerce_number(v)

    @property
    def unit_price(self) -> float:
        return unit_price(self.value, self.weight)

    @property
    def is_zero(self) -> bool:
        return self.value == 0 and self.weight == 0

    def add(self, value: float, weight: float) -> None:
        self.value += value
        self.weight += weight

    def __add__(self, other: "Metrics") -> "Metrics":
        return Metrics(value=self.value + other.value, weight=self.weight + other.weight)


class TradeMeasurement(BaseModel):
    """One row per product code for a given year and trade flow.

    Accepts the upstream field names too: {"ncm", "metricFOB", "metricKG"}.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    code: str = Field(validation_alias=AliasChoices("code", "ncm", "coNcm"))
    value: float = Field(default=0.0, validation_alias=AliasChoices("value", "metricFOB", "fob"))
    weight: float = Field(default=0.0, validation_alias=AliasChoices("weight", "metricKG", "kg"))

    @field_validator("code", mode="before")
    @classmethod
    def _code_str(cls, v: Any) -> str:
        if v is None:
            return ""
        if isinstance(v, float) and v.is_integer():
            return str(int(v))
        return str(v)

    @field_validator("value", "weight", mode="before")
    @classmethod
    def _number(cls, v: Any) -> float:
        return _coerce_number(v)

    @property
    def is_zero(self) -> bool:
        return self.value == 0 and self.weight == 0


class AnnualPoint(BaseModel):
    """Aggregated basket totals for one year."""

    year: int
    value: float = 0.0
    weight: float = 0.0
    unit_price: float = 0.0

    @classmethod
    def from_totals(cls, year: int, value: float, weight: float) -> "AnnualPoint":
        return cls(year=year, value=value, weight=weight, unit_price=unit_price(value, weight))

    @property
    def is_zero(self) -> bool:
        return self.value == 0 and self.weight == 0


class CodeSeries(BaseModel):
    """Per-code annual values: years[2023] = Metrics(...)."""

    code: str
    raw_code: str | None = None
    years: dict[int, Metrics] = Field(default_factory=dict)

    def for_year(self, year: int) -> Metrics:
        return self.years.get(year) or Metrics()


class BalancePoint(BaseModel):
    """Import vs export comparison for one year."""

    year: int
    export_value: float = 0.0
    import_value: float = 0.0
    balance: float = 0.0
    export_price: float = 0.0
    import_price: float = 0.0
