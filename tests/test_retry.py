"""Tests for the 429-aware request executors."""

from __future__ import annotations

import json
import threading
from collections.abc import Callable

import httpx
import pytest

from helpers import RecordingWaiter, ScriptedTransport, rate_limit_headers, respond
from sharpapi.exceptions import RateLimitExceededError, WaitCancelledError
from sharpapi.services.rate_limit import RateLimitState
from sharpapi.services.retry import (
    AsyncRetryingRequestExecutor,
    RetryingRequestExecutor,
    Waiter,
)

_URL = "http://test/ping"


def _too_many(retry_after: str | None = "0", **rate) -> Callable[[], httpx.Response]:
    headers = rate_limit_headers(**rate) if rate else {}
    if retry_after is not None:
        headers["Retry-After"] = retry_after
    return respond(429, headers=headers)


# ---------------------------------------------------------------------------
# Sync executor
# ---------------------------------------------------------------------------


class TestRetryingRequestExecutor:
    def _executor(self, transport, waiter, max_attempts=3, state=None):
        client = httpx.Client(transport=transport)
        return RetryingRequestExecutor(
            client, state or RateLimitState(), max_attempts=max_attempts, waiter=waiter,
        )

    def test_success_extracts_headers(self, waiter):
        state = RateLimitState()
        transport = ScriptedTransport(
            respond(200, {"ping": "pong"}, rate_limit_headers(60, 58)),
        )
        resp = self._executor(transport, waiter, state=state).execute("GET", _URL)
        assert resp.json() == {"ping": "pong"}
        assert state.limit == 60
        assert state.remaining == 58
        assert waiter.waits == []

    def test_retry_on_429_then_succeed(self, waiter):
        state = RateLimitState()
        transport = ScriptedTransport(
            _too_many(limit=100, remaining=0),
            respond(200, {"ping": "pong"}, rate_limit_headers(100, 99)),
        )
        resp = self._executor(transport, waiter, state=state).execute("GET", _URL)
        assert resp.status_code == 200
        assert state.remaining == 99
        assert len(transport.requests) == 2
        assert waiter.waits == [0]

    def test_three_429s_exhaust_default_budget(self, waiter):
        transport = ScriptedTransport(_too_many(), _too_many(), _too_many())
        with pytest.raises(RateLimitExceededError) as exc_info:
            self._executor(transport, waiter).execute("GET", _URL)
        assert exc_info.value.status_code == 429
        assert exc_info.value.attempts == 3
        assert "Rate limit exceeded after 3 attempts" in str(exc_info.value)
        assert len(transport.requests) == 3
        assert len(waiter.waits) == 2

    def test_single_attempt_budget(self, waiter):
        transport = ScriptedTransport(_too_many())
        with pytest.raises(RateLimitExceededError, match="1 attempts"):
            self._executor(transport, waiter, max_attempts=1).execute("GET", _URL)
        assert len(transport.requests) == 1
        assert waiter.waits == []

    def test_multiple_429s_before_success(self, waiter):
        state = RateLimitState()
        transport = ScriptedTransport(
            _too_many(),
            _too_many(),
            respond(200, {"ping": "pong"}, rate_limit_headers(100, 97)),
        )
        self._executor(transport, waiter, state=state).execute("GET", _URL)
        assert state.remaining == 97
        assert len(transport.requests) == 3

    def test_retry_after_honoured(self, waiter):
        transport = ScriptedTransport(
            _too_many(retry_after="4"),
            respond(200, {}),
        )
        self._executor(transport, waiter).execute("GET", _URL)
        assert waiter.waits == [4]

    def test_missing_retry_after_defaults_to_one_second(self, waiter):
        transport = ScriptedTransport(_too_many(retry_after=None), respond(200, {}))
        self._executor(transport, waiter).execute("GET", _URL)
        assert waiter.waits == [1]

    def test_unparsable_retry_after_defaults_to_one_second(self, waiter):
        transport = ScriptedTransport(_too_many(retry_after="soon"), respond(200, {}))
        self._executor(transport, waiter).execute("GET", _URL)
        assert waiter.waits == [1]

    def test_headers_extracted_from_429(self, waiter):
        state = RateLimitState()
        transport = ScriptedTransport(_too_many(limit=100, remaining=0))
        with pytest.raises(RateLimitExceededError) as exc_info:
            self._executor(transport, waiter, max_attempts=1, state=state).execute(
                "GET", _URL,
            )
        assert state.limit == 100
        assert state.remaining == 0
        assert exc_info.value.rate_limit_info.remaining == 0

    def test_non_429_error_not_retried(self, waiter):
        transport = ScriptedTransport(respond(403, {"error": "Forbidden"}))
        with pytest.raises(httpx.HTTPStatusError) as exc_info:
            self._executor(transport, waiter).execute("GET", _URL)
        assert exc_info.value.response.status_code == 403
        assert len(transport.requests) == 1
        assert waiter.waits == []

    def test_server_error_not_retried(self, waiter):
        transport = ScriptedTransport(respond(503, {}))
        with pytest.raises(httpx.HTTPStatusError):
            self._executor(transport, waiter).execute("GET", _URL)
        assert len(transport.requests) == 1

    def test_transport_error_propagates(self, waiter):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(httpx.ConnectError):
            self._executor(httpx.MockTransport(handler), waiter).execute("GET", _URL)

    def test_request_options_forwarded(self, waiter):
        transport = ScriptedTransport(respond(200, {}))
        self._executor(transport, waiter).execute("POST", _URL, json={"a": 1})
        assert transport.requests[0].method == "POST"
        assert json.loads(transport.requests[0].content) == {"a": 1}

    def test_max_attempts_must_be_positive(self, waiter):
        with pytest.raises(ValueError):
            self._executor(ScriptedTransport(respond()), waiter, max_attempts=0)

    def test_cancelled_wait_aborts_retry(self):
        waiter = RecordingWaiter()
        waiter.cancel()
        transport = ScriptedTransport(_too_many(), respond(200, {}))
        with pytest.raises(WaitCancelledError):
            self._executor(transport, waiter).execute("GET", _URL)
        assert len(transport.requests) == 1


# ---------------------------------------------------------------------------
# Waiter
# ---------------------------------------------------------------------------


class TestWaiter:
    def test_zero_wait_returns(self):
        Waiter().wait(0)

    def test_negative_wait_returns(self):
        Waiter().wait(-5)

    def test_cancel_interrupts_blocking_wait(self):
        waiter = Waiter()
        errors: list[BaseException] = []

        def run() -> None:
            try:
                waiter.wait(30)
            except WaitCancelledError as exc:
                errors.append(exc)

        thread = threading.Thread(target=run)
        thread.start()
        waiter.cancel()
        thread.join(timeout=5)
        assert not thread.is_alive()
        assert len(errors) == 1

    def test_reset(self):
        waiter = Waiter()
        waiter.cancel()
        assert waiter.cancelled
        waiter.reset()
        assert not waiter.cancelled
        waiter.wait(0)


# ---------------------------------------------------------------------------
# Async executor
# ---------------------------------------------------------------------------


class TestAsyncRetryingRequestExecutor:
    async def test_retry_then_succeed(self, sleep):
        state = RateLimitState()
        transport = ScriptedTransport(
            _too_many(retry_after="2", limit=100, remaining=0),
            respond(200, {"ok": True}, rate_limit_headers(100, 99)),
        )
        async with httpx.AsyncClient(transport=transport) as client:
            executor = AsyncRetryingRequestExecutor(client, state, sleep=sleep)
            resp = await executor.execute("GET", _URL)
        assert resp.json() == {"ok": True}
        assert sleep.waits == [2]
        assert state.remaining == 99

    async def test_exhausted(self, sleep):
        transport = ScriptedTransport(_too_many())
        async with httpx.AsyncClient(transport=transport) as client:
            executor = AsyncRetryingRequestExecutor(
                client, RateLimitState(), max_attempts=2, sleep=sleep,
            )
            with pytest.raises(RateLimitExceededError, match="2 attempts"):
                await executor.execute("GET", _URL)
        assert len(transport.requests) == 2

    async def test_non_429_not_retried(self, sleep):
        transport = ScriptedTransport(respond(404, {}))
        async with httpx.AsyncClient(transport=transport) as client:
            executor = AsyncRetryingRequestExecutor(client, RateLimitState(), sleep=sleep)
            with pytest.raises(httpx.HTTPStatusError):
                await executor.execute("GET", _URL)
        assert sleep.waits == []
