"""
tests/conftest.py — Shared pytest fixtures for the CGIM test suite.

Provides:
  fixture_path()     — resolves paths to tests/fixtures/
  comex_stub         — in-memory fake of the ComexStat /general endpoint
  mock_comex         — respx router with the stub mounted on BASE_URL
  comex_client       — ComexStatSource pointed at BASE_URL, no waits
  memory_cache       — fresh MemoryCacheStore
  autopecas_rows     — one-row dictionary from the Autopeças scenario
  mock_http          — bare respx router for ad-hoc HTTP responses
  log_output         — structlog events emitted during the test
"""

from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest
import respx
import structlog
from structlog.testing import LogCapture

from cgim_shared.models.dictionary import DictionaryRow
from cgim_pipeline.sources.comexstat import ComexStatSource
from cgim_pipeline.utils.cache import MemoryCacheStore

FIXTURES_DIR = Path(__file__).parent / "fixtures"
BASE_URL = "https://comex.test"


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def fixture_path() -> Path:
    return FIXTURES_DIR


@pytest.fixture
def dictionary_csv() -> Path:
    return FIXTURES_DIR / "cgim_dictionary_sample.csv"


# ---------------------------------------------------------------------------
# ComexStat fake
# ---------------------------------------------------------------------------

class ComexStub:
    """
    Answers /general requests from a (flow, year, code) → (value, weight) table.

    Aggregated requests (details=[]) get one total row per year, or no row
    when none of the codes has data, like the real API. Set fail_status to
    make every request fail, or fail_years to fail only some years.
    """

    def __init__(self) -> None:
        self.data: dict[tuple[str, int, str], tuple[float, float]] = {}
        self.calls: list[dict] = []
        self.fail_status: int | None = None
        self.fail_years: set[int] = set()

    def add(self, flow: str, year: int, code: str, value: float, weight: float) -> None:
        self.data[(flow, year, code)] = (value, weight)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.calls.append(body)
        if self.fail_status is not None:
            return httpx.Response(self.fail_status, json={"error": "fail"})

        year = int(body["period"]["from"][:4])
        if year in self.fail_years:
            return httpx.Response(500, json={"error": "fail"})

        flow = body["flow"]
        codes = body["filters"][0]["values"]
        found = [(c, self.data[(flow, year, c)]) for c in codes if (flow, year, c) in self.data]

        if "ncm" in body["details"]:
            rows = [
                {"year": str(year), "ncm": c, "metricFOB": str(v), "metricKG": str(w)}
                for c, (v, w) in found
            ]
        elif found:
            rows = [
                {
                    "year": str(year),
                    "metricFOB": sum(v for _, (v, _w) in found),
                    "metricKG": sum(w for _, (_v, w) in found),
                }
            ]
        else:
            rows = []
        return httpx.Response(200, json={"data": {"list": rows}})


@pytest.fixture
def comex_stub() -> ComexStub:
    return ComexStub()


@pytest.fixture
def mock_comex(comex_stub: ComexStub):
    """respx router routing POST {BASE_URL}/general to comex_stub."""
    with respx.mock(assert_all_called=False) as router:
        router.post(f"{BASE_URL}/general").mock(side_effect=comex_stub)
        yield router


@pytest.fixture
def comex_client() -> ComexStatSource:
    """Client with retries but no backoff and no rate limiting."""
    return ComexStatSource(
        base_url=BASE_URL,
        timeout=5.0,
        max_attempts=2,
        retry_base_delay=0,
        requests_per_second=0,
    )


@pytest.fixture
def memory_cache() -> MemoryCacheStore:
    return MemoryCacheStore()


# ---------------------------------------------------------------------------
# Dictionary rows
# ---------------------------------------------------------------------------

@pytest.fixture
def autopecas_rows() -> list[DictionaryRow]:
    return [DictionaryRow(code="87082990", category="Autopeças", subcategories=["Motores"])]


@pytest.fixture
def sample_rows() -> list[DictionaryRow]:
    """Small two-category dictionary with one duplicate and one conflict."""
    return [
        DictionaryRow(code="87082990", category="Autopeças", subcategories=["Motores", "Pistões"]),
        DictionaryRow(code="87089990", category="Autopeças", subcategories=["Freios"]),
        DictionaryRow(code="8708.29.90", category="Autopeças", subcategories=["Motores", "Pistões"]),
        DictionaryRow(code="40111000", category="Pneus", subcategories=[None]),
        DictionaryRow(code="40111000", category="Borracha", subcategories=["Pneus"]),
        DictionaryRow(code="xyz", category="Pneus", subcategories=["Inválido"]),
    ]


# ---------------------------------------------------------------------------
# respx HTTP mock router
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_http():
    """
    Activate the respx mock router for all httpx requests.

    Usage in tests:
        def test_something(mock_http):
            mock_http.post(f"{BASE_URL}/general").mock(return_value=httpx.Response(200, json={...}))
    """
    with respx.mock(assert_all_called=False) as router:
        yield router


# ---------------------------------------------------------------------------
# structlog capture
# ---------------------------------------------------------------------------

@pytest.fixture
def log_output() -> LogCapture:
    return LogCapture()


@pytest.fixture(autouse=True)
def configure_structlog(log_output: LogCapture):
    """Route every structlog event into log_output instead of stdout."""
    structlog.configure(processors=[log_output])
    yield
    structlog.reset_defaults()
