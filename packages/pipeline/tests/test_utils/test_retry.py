"""
tests/test_utils/test_retry.py — with_retry decorator.
"""

from __future__ import annotations

import pytest
from tenacity import Future, RetryCallState

from cgim_shared.errors import UpstreamThrottledError
from cgim_pipeline.utils.retry import wait_retry_after, with_retry


class Flaky(Exception):
    pass


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        calls = []

        @with_retry(max_attempts=3, base_delay=0, retry_on=Flaky)
        async def fn():
            calls.append(1)
            if len(calls) < 3:
                raise Flaky("again")
            return "ok"

        assert await fn() == "ok"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_reraises_after_exhaustion(self):
        calls = []

        @with_retry(max_attempts=2, base_delay=0, retry_on=Flaky)
        async def fn():
            calls.append(1)
            raise Flaky("always")

        with pytest.raises(Flaky):
            await fn()
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_other_exceptions_not_retried(self):
        calls = []

        @with_retry(max_attempts=3, base_delay=0, retry_on=Flaky)
        async def fn():
            calls.append(1)
            raise KeyError("x")

        with pytest.raises(KeyError):
            await fn()
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_logs_each_scheduled_retry(self, log_output):
        calls = []

        @with_retry(max_attempts=3, base_delay=0, retry_on=Flaky)
        async def fn():
            calls.append(1)
            raise Flaky("always")

        with pytest.raises(Flaky):
            await fn()
        scheduled = [e for e in log_output.entries if e["event"] == "retry_scheduled"]
        assert [e["attempt"] for e in scheduled] == [1, 2]
        assert scheduled[0]["error"] == "always"


class TestWaitRetryAfter:
    def _state(self, exc):
        outcome = Future(attempt_number=1)
        outcome.set_exception(exc)
        state = RetryCallState(retry_object=None, fn=None, args=(), kwargs={})
        state.outcome = outcome
        return state

    def test_hint_raises_wait(self):
        wait = wait_retry_after(multiplier=0, max=30)
        exc = UpstreamThrottledError("429", status_code=429, retry_after=5)
        assert wait(self._state(exc)) == 5

    def test_hint_is_capped(self):
        wait = wait_retry_after(multiplier=0, max=2)
        exc = UpstreamThrottledError("429", status_code=429, retry_after=60)
        assert wait(self._state(exc)) == 2

    def test_no_hint_uses_backoff(self):
        wait = wait_retry_after(multiplier=0, max=30)
        assert wait(self._state(Flaky("x"))) == 0
