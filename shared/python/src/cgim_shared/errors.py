"""
errors.py — exception hierarchy for the CGIM engine.

Only configuration/contract failures are meant to reach callers. Upstream
errors are raised inside the ComexStat source so tenacity can retry them,
and are degraded to empty results at the source boundary.
"""

from __future__ import annotations


class CgimError(Exception):
    """Base class for all CGIM errors."""


class ConfigurationError(CgimError):
    """The system is wired incorrectly (missing collaborator, bad setting)."""


class DictionaryContractError(ConfigurationError):
    """The dictionary collaborator does not implement DictionarySource."""


class UpstreamError(CgimError):
    """A ComexStat request failed."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UpstreamThrottledError(UpstreamError):
    """ComexStat answered 429 or 5xx; worth retrying after a backoff."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code)
        self.retry_after = retry_after
