"""
tests/test_shared/test_config.py — Settings defaults and environment overrides.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from cgim_shared.config import Settings


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("COMEX_BASE_URL", raising=False)
        s = Settings(_env_file=None)
        assert s.comex_base_url == "https://api-comexstat.mdic.gov.br"
        assert s.basket_large_threshold == 25
        assert s.basket_large_chunk_size == 40
        assert s.basket_small_concurrency == 4
        assert s.code_cache_ttl_hours == 72
        assert s.series_cache_ttl_hours == 24

    def test_env_override_and_trailing_slash(self, monkeypatch):
        monkeypatch.setenv("COMEX_BASE_URL", "https://mirror.example/")
        monkeypatch.setenv("BASKET_LARGE_DELAY_S", "0")
        s = Settings(_env_file=None)
        assert s.comex_base_url == "https://mirror.example"
        assert s.basket_large_delay_s == 0

    def test_log_level_case_insensitive(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")
        assert Settings(_env_file=None).log_level == "DEBUG"

    def test_rejects_zero_chunk_size(self, monkeypatch):
        monkeypatch.setenv("BASKET_SMALL_CHUNK_SIZE", "0")
        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_zero_rate_limit_allowed(self, monkeypatch):
        monkeypatch.setenv("COMEX_REQUESTS_PER_SECOND", "0")
        assert Settings(_env_file=None).comex_requests_per_second == 0
