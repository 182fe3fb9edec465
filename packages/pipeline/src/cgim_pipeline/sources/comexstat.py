"""
sources/comexstat.py — ComexStat (MDIC) foreign-trade API source adapter.

Queries the public ComexStat API for FOB value (US$) and net weight (kg)
of Brazilian imports/exports, filtered by NCM code baskets.

Request:
  POST {base}/general
  {
    "flow": "import" | "export",
    "monthDetail": false,
    "period": {"from": "2024-01", "to": "2024-12"},
    "filters": [{"filter": "ncm", "values": ["87082990", ...]}],
    "details": ["ncm"],            # [] → one total row per year
    "metrics": ["metricFOB", "metricKG"]
  }

Response (documented shape):
  {"data": {"list": [{"year": "2024", "ncm": "87082990",
                      "metricFOB": "100000", "metricKG": "20000"}, ...]}}

The adapter also accepts {"data": [...]} and a bare top-level list. Any
other shape is treated as "no rows". Failed requests (network, timeout,
non-2xx, unparseable body) are retried for 429/5xx/transport errors and
then degraded to an empty, not-ok QueryResult; they never raise.

Usage:
    async with ComexStatSource() as source:
        totals, ok = await source.fetch_year_totals("import", 2024, codes)
        by_code, ok = await source.fetch_year_by_code("export", 2024, codes)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx
import polars as pl
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from cgim_shared.codes import normalize_code
from cgim_shared.config import settings
from cgim_shared.constants import Flow
from cgim_shared.errors import UpstreamError, UpstreamThrottledError
from cgim_shared.models.trade import Metrics
from cgim_pipeline.sources.base import BaseSource
from cgim_pipeline.utils.rate_limit import RateLimiter
from cgim_pipeline.utils.retry import with_retry

METRICS = ["metricFOB", "metricKG"]

_OUTPUT_SCHEMA = {
    "year": pl.Int32,
    "code": pl.String,
    "value": pl.Float64,
    "weight": pl.Float64,
}


# ---------------------------------------------------------------------------
# Response schema
# ---------------------------------------------------------------------------

class ComexRow(BaseModel):
    """One row of a ComexStat /general response."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    year: int | None = Field(default=None, validation_alias=AliasChoices("year", "coAno", "ano"))
    code: str | None = Field(
        default=None, validation_alias=AliasChoices("ncm", "coNcm", "noNcm", "code")
    )
    value: float = Field(default=0.0, validation_alias=AliasChoices("metricFOB", "vlFob", "fob"))
    weight: float = Field(
        default=0.0, validation_alias=AliasChoices("metricKG", "kgLiquido", "kg")
    )

    @field_validator("year", mode="before")
    @classmethod
    def _year(cls, v: Any) -> int | None:
        try:
            n = int(str(v).strip())
        except (TypeError, ValueError):
            return None
        return n if n > 1900 else None

    @field_validator("code", mode="before")
    @classmethod
    def _code(cls, v: Any) -> str | None:
        return normalize_code(v)

    @field_validator("value", "weight", mode="before")
    @classmethod
    def _number(cls, v: Any) -> float:
        try:
            n = float(v)
        except (TypeError, ValueError):
            return 0.0
        return n if n == n else 0.0


def locate_rows(body: Any) -> list[dict[str, Any]]:
    """Find the row list in a ComexStat response; [] when the shape is unknown."""
    rows: Any = None
    if isinstance(body, list):
        rows = body
    elif isinstance(body, dict):
        data = body.get("data")
        if isinstance(data, list):
            rows = data
        elif isinstance(data, dict) and isinstance(data.get("list"), list):
            rows = data["list"]
    if rows is None:
        return []
    return [r for r in rows if isinstance(r, dict)]


def parse_rows(body: Any) -> list[ComexRow]:
    return [ComexRow.model_validate(r) for r in locate_rows(body)]


def _retry_after_seconds(resp: httpx.Response) -> float | None:
    # only the delta-seconds form; HTTP-date values are ignored
    raw = resp.headers.get("Retry-After")
    if raw is None:
        return None
    try:
        return max(0.0, float(raw.strip()))
    except ValueError:
        return None


@dataclass
class QueryResult:
    """Rows of one request; ok=False means the request itself failed."""

    rows: list[ComexRow] = field(default_factory=list)
    ok: bool = True


# ---------------------------------------------------------------------------
# Source
# ---------------------------------------------------------------------------

class ComexStatSource(BaseSource):
    """Async client for the ComexStat /general endpoint."""

    name = "ComexStat"
    required_columns = tuple(_OUTPUT_SCHEMA)

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        max_attempts: int | None = None,
        retry_base_delay: float | None = None,
        requests_per_second: int | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__()
        self._base_url = (base_url or settings.comex_base_url).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.comex_timeout_s
        self._limiter = RateLimiter(
            per_second=requests_per_second
            if requests_per_second is not None
            else settings.comex_requests_per_second
        )
        self._client = client
        self._owns_client = False
        self._post = with_retry(
            max_attempts=max_attempts if max_attempts is not None else settings.comex_max_attempts,
            base_delay=retry_base_delay
            if retry_base_delay is not None
            else settings.comex_retry_base_delay_s,
            retry_on=(UpstreamThrottledError, httpx.TransportError),
        )(self._post_once)

    async def __aenter__(self) -> "ComexStatSource":
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, follow_redirects=True)
            self._owns_client = True
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
            self._owns_client = False

    @property
    def url(self) -> str:
        return f"{self._base_url}/general"

    @property
    def request_count(self) -> int:
        return self._limiter.total_calls

    # ------------------------------------------------------------------
    # Request building / sending
    # ------------------------------------------------------------------

    @staticmethod
    def build_query(
        flow: Flow,
        year_start: int,
        year_end: int,
        codes: list[str],
        *,
        month_start: int = 1,
        month_end: int = 12,
        by_code: bool = False,
    ) -> dict[str, Any]:
        return {
            "flow": flow,
            "monthDetail": False,
            "period": {
                "from": f"{year_start}-{month_start:02d}",
                "to": f"{year_end}-{month_end:02d}",
            },
            "filters": [{"filter": "ncm", "values": list(codes)}],
            "details": ["ncm"] if by_code else [],
            "metrics": list(METRICS),
        }

    async def _send(self, client: httpx.AsyncClient, body: dict[str, Any]) -> httpx.Response:
        return await client.post(self.url, json=body, timeout=self._timeout)

    async def _post_once(self, body: dict[str, Any]) -> Any:
        await self._limiter.acquire()
        if self._client is not None:
            resp = await self._send(self._client, body)
        else:
            async with httpx.AsyncClient(timeout=self._timeout, follow_redirects=True) as client:
                resp = await self._send(client, body)

        if resp.status_code == 429 or resp.status_code >= 500:
            raise UpstreamThrottledError(
                f"ComexStat HTTP {resp.status_code}",
                status_code=resp.status_code,
                retry_after=_retry_after_seconds(resp),
            )
        if resp.status_code >= 400:
            raise UpstreamError(
                f"ComexStat HTTP {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise UpstreamError(f"ComexStat returned a non-JSON body: {exc}") from exc

    async def query(
        self,
        flow: Flow,
        year_start: int,
        year_end: int,
        codes: list[str],
        *,
        by_code: bool = False,
    ) -> QueryResult:
        """Run one request. Never raises; failures come back as ok=False."""
        if not codes:
            return QueryResult()
        body = self.build_query(flow, year_start, year_end, codes, by_code=by_code)
        try:
            payload = await self._post(body)
        except (UpstreamError, httpx.HTTPError) as exc:
            self._log.warning(
                "comex_request_failed",
                flow=flow,
                year_start=year_start,
                year_end=year_end,
                codes=len(codes),
                error=str(exc) or type(exc).__name__,
            )
            return QueryResult(rows=[], ok=False)
        rows = parse_rows(payload)
        if not rows:
            self._log.debug("comex_empty_response", flow=flow, year_start=year_start, codes=len(codes))
        return QueryResult(rows=rows, ok=True)

    # ------------------------------------------------------------------
    # Convenience wrappers
    # ------------------------------------------------------------------

    async def fetch_year_totals(
        self, flow: Flow, year: int, codes: list[str]
    ) -> tuple[Metrics, bool]:
        """Aggregate value/weight of a code chunk for one year."""
        result = await self.query(flow, year, year, codes, by_code=False)
        totals = Metrics()
        for row in result.rows:
            if row.year is not None and row.year != year:
                continue
            totals.add(row.value, row.weight)
        return totals, result.ok

    async def fetch_year_by_code(
        self, flow: Flow, year: int, codes: list[str]
    ) -> tuple[dict[str, Metrics], bool]:
        """Per-code value/weight for one year; codes absent upstream map to zero."""
        result = await self.query(flow, year, year, codes, by_code=True)
        by_code: dict[str, Metrics] = {c: Metrics() for c in codes}
        for row in result.rows:
            if row.code is None or row.code not in by_code:
                continue
            if row.year is not None and row.year != year:
                continue
            by_code[row.code].add(row.value, row.weight)
        return by_code, result.ok

    # ------------------------------------------------------------------
    # BaseSource interface
    # ------------------------------------------------------------------

    async def extract(
        self,
        *,
        flow: Flow = "import",
        year: int,
        codes: list[str],
        **kwargs: Any,
    ) -> pl.DataFrame:
        """Fetch per-code rows for one year as a raw DataFrame."""
        result = await self.query(flow, year, year, codes, by_code=True)
        if not result.rows:
            return pl.DataFrame(schema=_OUTPUT_SCHEMA)
        return pl.DataFrame(
            [r.model_dump() for r in result.rows],
            schema=_OUTPUT_SCHEMA,
        )

    def transform(self, raw: pl.DataFrame) -> pl.DataFrame:
        """Drop rows without a valid code and sum duplicates per (year, code)."""
        if raw.is_empty():
            return pl.DataFrame(schema=_OUTPUT_SCHEMA)
        return (
            raw.filter(pl.col("code").is_not_null())
            .with_columns(
                pl.col("value").fill_null(0.0),
                pl.col("weight").fill_null(0.0),
            )
            .group_by(["year", "code"], maintain_order=True)
            .agg(pl.col("value").sum(), pl.col("weight").sum())
            .sort(["year", "code"])
        )

    async def get_metadata(self) -> dict[str, Any]:
        return {
            "source_name": self.name,
            "base_url": self._base_url,
            "description": "ComexStat/MDIC — Brazilian foreign trade by NCM",
            "metrics": list(METRICS),
            "requests_made": self.request_count,
        }
