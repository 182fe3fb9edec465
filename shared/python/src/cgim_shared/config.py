"""
config.py — pydantic-settings Settings class.

All environment variables for the CGIM analytics engine are declared here.
Both the pipeline and the CLI import `settings` from this module.

Usage:
    from cgim_shared.config import settings
    print(settings.comex_base_url)
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_dotenv() -> Path | None:
    """Walk up from CWD to find the nearest .env file."""
    current = Path.cwd()
    for parent in [current, *current.parents]:
        candidate = parent / ".env"
        if candidate.is_file():
            return candidate
    return None


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=_find_dotenv() or ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # ComexStat upstream
    # -------------------------------------------------------------------------
    comex_base_url: str = Field(default="https://api-comexstat.mdic.gov.br")
    comex_timeout_s: float = Field(default=35.0, gt=0)
    comex_max_attempts: int = Field(default=3, ge=1)
    comex_retry_base_delay_s: float = Field(default=1.0, ge=0)
    # 0 disables client-side throttling
    comex_requests_per_second: int = Field(default=2, ge=0)

    # -------------------------------------------------------------------------
    # Basket batching (chunk size / concurrency / throttling)
    # -------------------------------------------------------------------------
    basket_small_chunk_size: int = Field(default=100, ge=1)
    basket_small_concurrency: int = Field(default=4, ge=1)
    basket_large_chunk_size: int = Field(default=40, ge=1)
    basket_large_concurrency: int = Field(default=1, ge=1)
    basket_large_threshold: int = Field(default=25, ge=0)
    basket_large_delay_s: float = Field(default=0.35, ge=0)

    # -------------------------------------------------------------------------
    # Cache
    # -------------------------------------------------------------------------
    code_cache_ttl_hours: float = Field(default=72.0, gt=0)
    series_cache_ttl_hours: float = Field(default=24.0, gt=0)
    cache_path: str = Field(default="./data/cache/cgim_cache.json")

    # -------------------------------------------------------------------------
    # Dictionary
    # -------------------------------------------------------------------------
    dictionary_path: str = Field(default="./data/dictionaries/cgim_dinte.csv")

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO"
    )
    log_format: Literal["json", "console"] = Field(default="console")

    @field_validator("comex_base_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/") if isinstance(v, str) else v

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_log_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v


# ---------------------------------------------------------------------------
# Module-level singleton; import this everywhere
# ---------------------------------------------------------------------------
settings = Settings()
