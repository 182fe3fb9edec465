"""
tests/test_sources/test_comexstat.py — Unit tests for ComexStatSource.

HTTP is mocked with respx. Covers request body shape, response-shape
adapter, retry on 429/5xx and degradation of failures to ok=False.
"""

from __future__ import annotations

import json

import httpx
import polars as pl
import pytest

from cgim_pipeline.sources.comexstat import (
    ComexRow,
    ComexStatSource,
    _retry_after_seconds,
    locate_rows,
    parse_rows,
)


# ---------------------------------------------------------------------------
# Response adapter
# ---------------------------------------------------------------------------

class TestLocateRows:
    def test_documented_shape(self):
        assert locate_rows({"data": {"list": [{"year": "2024"}]}}) == [{"year": "2024"}]

    def test_data_list(self):
        assert locate_rows({"data": [{"year": "2024"}]}) == [{"year": "2024"}]

    def test_bare_list(self):
        assert locate_rows([{"year": "2024"}, "junk"]) == [{"year": "2024"}]

    @pytest.mark.parametrize("body", [None, {}, {"data": None}, {"rows": []}, "text", 42])
    def test_unknown_shape_is_empty(self, body):
        assert locate_rows(body) == []


class TestComexRow:
    def test_aliases_and_coercion(self):
        row = ComexRow.model_validate(
            {"coAno": "2024", "noNcm": "8708.29.90", "vlFob": "1500.5", "kgLiquido": "abc"}
        )
        assert row.year == 2024
        assert row.code == "87082990"
        assert row.value == 1500.5
        assert row.weight == 0.0

    def test_missing_fields(self):
        row = ComexRow.model_validate({})
        assert row.year is None
        assert row.code is None
        assert row.value == 0.0

    def test_parse_rows(self):
        rows = parse_rows({"data": {"list": [{"year": "2023", "ncm": "1", "metricFOB": 2}]}})
        assert rows[0].code == "00000001"


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class TestBuildQuery:
    def test_aggregated_body(self):
        body = ComexStatSource.build_query("import", 2024, 2024, ["87082990"])
        assert body == {
            "flow": "import",
            "monthDetail": False,
            "period": {"from": "2024-01", "to": "2024-12"},
            "filters": [{"filter": "ncm", "values": ["87082990"]}],
            "details": [],
            "metrics": ["metricFOB", "metricKG"],
        }

    def test_by_code_details(self):
        body = ComexStatSource.build_query("export", 2020, 2021, ["1"], by_code=True)
        assert body["details"] == ["ncm"]
        assert body["period"] == {"from": "2020-01", "to": "2021-12"}


class TestQuery:
    @pytest.mark.asyncio
    async def test_year_totals(self, mock_comex, comex_stub, comex_client):
        comex_stub.add("import", 2024, "87082990", 100000, 20000)
        comex_stub.add("import", 2024, "87083090", 500, 100)
        totals, ok = await comex_client.fetch_year_totals("import", 2024, ["87082990", "87083090"])
        assert ok
        assert (totals.value, totals.weight) == (100500, 20100)
        assert comex_stub.calls[0]["details"] == []

    @pytest.mark.asyncio
    async def test_by_code_fills_missing_with_zero(self, mock_comex, comex_stub, comex_client):
        comex_stub.add("export", 2024, "87082990", 10, 2)
        by_code, ok = await comex_client.fetch_year_by_code("export", 2024, ["87082990", "40111000"])
        assert ok
        assert by_code["87082990"].value == 10
        assert by_code["40111000"].is_zero

    @pytest.mark.asyncio
    async def test_empty_codes_skip_request(self, mock_comex, comex_stub, comex_client):
        result = await comex_client.query("import", 2024, 2024, [])
        assert result.ok and result.rows == []
        assert comex_stub.calls == []

    @pytest.mark.asyncio
    async def test_retries_throttled_then_succeeds(self, mock_http, comex_client):
        route = mock_http.post(comex_client.url).mock(
            side_effect=[
                httpx.Response(429),
                httpx.Response(200, json={"data": {"list": [{"year": "2024", "metricFOB": 7}]}}),
            ]
        )
        totals, ok = await comex_client.fetch_year_totals("import", 2024, ["1"])
        assert ok
        assert totals.value == 7
        assert route.call_count == 2

    @pytest.mark.asyncio
    async def test_server_error_degrades_after_retries(self, mock_http, comex_client):
        route = mock_http.post(comex_client.url).mock(return_value=httpx.Response(503))
        totals, ok = await comex_client.fetch_year_totals("import", 2024, ["1"])
        assert not ok
        assert totals.is_zero
        assert route.call_count == 2

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self, mock_http, comex_client):
        route = mock_http.post(comex_client.url).mock(return_value=httpx.Response(400, text="bad"))
        result = await comex_client.query("import", 2024, 2024, ["1"])
        assert not result.ok
        assert route.call_count == 1

    @pytest.mark.asyncio
    async def test_timeout_degrades(self, mock_http, comex_client):
        mock_http.post(comex_client.url).mock(side_effect=httpx.ReadTimeout("slow"))
        result = await comex_client.query("import", 2024, 2024, ["1"])
        assert not result.ok
        assert result.rows == []

    @pytest.mark.asyncio
    async def test_non_json_body_degrades(self, mock_http, comex_client):
        mock_http.post(comex_client.url).mock(return_value=httpx.Response(200, text="<html>"))
        result = await comex_client.query("import", 2024, 2024, ["1"])
        assert not result.ok

    @pytest.mark.asyncio
    async def test_unknown_shape_is_ok_and_empty(self, mock_http, comex_client):
        mock_http.post(comex_client.url).mock(return_value=httpx.Response(200, json={"foo": 1}))
        result = await comex_client.query("import", 2024, 2024, ["1"])
        assert result.ok
        assert result.rows == []

    @pytest.mark.asyncio
    async def test_shared_client_context(self, mock_comex, comex_stub):
        async with ComexStatSource(
            base_url="https://comex.test/", retry_base_delay=0, requests_per_second=0
        ) as source:
            comex_stub.add("import", 2023, "00000001", 1, 1)
            await source.fetch_year_totals("import", 2023, ["00000001"])
            assert source.request_count == 1
        assert json.loads(mock_comex.calls.last.request.content)["flow"] == "import"


# ---------------------------------------------------------------------------
# BaseSource interface
# ---------------------------------------------------------------------------

class TestFetch:
    @pytest.mark.asyncio
    async def test_fetch_returns_grouped_frame(self, mock_http, comex_client):
        payload = {
            "data": {
                "list": [
                    {"year": "2024", "ncm": "87082990", "metricFOB": "10", "metricKG": "1"},
                    {"year": "2024", "ncm": "8708.29.90", "metricFOB": "5", "metricKG": "1"},
                    {"year": "2024", "ncm": None, "metricFOB": "99"},
                ]
            }
        }
        mock_http.post(comex_client.url).mock(return_value=httpx.Response(200, json=payload))
        df = await comex_client.fetch(flow="import", year=2024, codes=["87082990"])
        assert isinstance(df, pl.DataFrame)
        assert df.columns == ["year", "code", "value", "weight"]
        assert df.to_dicts() == [{"year": 2024, "code": "87082990", "value": 15.0, "weight": 2.0}]

    @pytest.mark.asyncio
    async def test_metadata(self, comex_client):
        meta = await comex_client.get_metadata()
        assert meta["source_name"] == "ComexStat"
        assert meta["base_url"] == "https://comex.test"


class TestRetryAfter:
    def test_seconds_header(self):
        assert _retry_after_seconds(httpx.Response(429, headers={"Retry-After": "3"})) == 3.0

    def test_missing_or_date_header(self):
        assert _retry_after_seconds(httpx.Response(429)) is None
        date = "Wed, 21 Oct 2026 07:28:00 GMT"
        assert _retry_after_seconds(httpx.Response(429, headers={"Retry-After": date})) is None
