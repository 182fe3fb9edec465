"""
utils/retry.py — tenacity retry policy for ComexStat requests.

Waits grow exponentially (base_delay, 2×, 4×, … capped at max_delay). When
the raised exception carries a ``retry_after`` hint (ComexStat 429 with a
Retry-After header) the wait is at least that long, still capped.

Usage:
    from cgim_pipeline.utils.retry import with_retry

    @with_retry(max_attempts=3, base_delay=1.0, retry_on=(UpstreamThrottledError,))
    async def post_query(body: dict) -> dict:
        ...

    # Bound per instance, so the policy can come from settings:
    self._post = with_retry(max_attempts=n)(self._post_once)
"""

from __future__ import annotations

import functools
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from cgim_pipeline.utils.logging import get_logger

log = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Coroutine[Any, Any, Any]])


class wait_retry_after(wait_exponential):
    """Exponential wait, raised to the exception's retry_after when present."""

    def __call__(self, retry_state: RetryCallState) -> float:
        delay = super().__call__(retry_state)
        outcome = retry_state.outcome
        exc = outcome.exception() if outcome is not None else None
        hint = getattr(exc, "retry_after", None)
        if hint:
            delay = max(delay, min(float(hint), self.max))
        return delay


def _log_retry(fn_name: str, max_attempts: int) -> Callable[[RetryCallState], None]:
    def before_sleep(state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome is not None else None
        log.warning(
            "retry_scheduled",
            function=fn_name,
            attempt=state.attempt_number,
            max_attempts=max_attempts,
            sleep_s=round(state.next_action.sleep, 3) if state.next_action else 0.0,
            error=str(exc) if exc else None,
        )

    return before_sleep


def with_retry(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    retry_on: type[Exception] | tuple[type[Exception], ...] = Exception,
) -> Callable[[F], F]:
    """
    Retry an async callable on ``retry_on`` exceptions.

    The last exception is re-raised unchanged once attempts run out, and
    exceptions outside ``retry_on`` propagate on the first attempt.
    base_delay=0 disables waiting unless the error carries a retry_after.
    """
    attempts = max(1, max_attempts)

    def decorator(fn: F) -> F:
        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            retrying = AsyncRetrying(
                stop=stop_after_attempt(attempts),
                wait=wait_retry_after(multiplier=base_delay, max=max_delay),
                retry=retry_if_exception_type(retry_on),
                before_sleep=_log_retry(fn.__qualname__, attempts),
                reraise=True,
            )
            async for attempt in retrying:
                with attempt:
                    return await fn(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator
