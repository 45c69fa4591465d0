"""Request execution with retry on HTTP 429."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from sharpapi.exceptions import RateLimitExceededError, WaitCancelledError
from sharpapi.services.rate_limit import (
    RateLimitState,
    extract_rate_limit_headers,
    parse_retry_after,
)

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER = 1


class Waiter:
    """Blocking wait that another thread can interrupt with :meth:`cancel`."""

    def __init__(self) -> None:
        self._cancelled = threading.Event()

    def wait(self, seconds: float) -> None:
        if self._cancelled.wait(max(seconds, 0)):
            raise WaitCancelledError()

    def cancel(self) -> None:
        self._cancelled.set()

    def reset(self) -> None:
        self._cancelled.clear()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()


def _is_rate_limited(exc: httpx.HTTPStatusError) -> bool:
    return exc.response.status_code == 429


class RetryingRequestExecutor:
    """Issue a request, retrying while the server answers 429.

    The ``Retry-After`` header decides how long to wait between attempts.
    Any other failure is raised on the first attempt, unmodified.
    """

    def __init__(
        self,
        client: httpx.Client,
        state: RateLimitState,
        *,
        max_attempts: int = 3,
        waiter: Waiter | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._client = client
        self._state = state
        self._max_attempts = max_attempts
        self._waiter = waiter or Waiter()

    def execute(self, method: str, url: str, **options: Any) -> httpx.Response:
        attempts = 0
        while True:
            try:
                response = self._client.request(method, url, **options)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                if not _is_rate_limited(exc):
                    raise
                attempts += 1
                extract_rate_limit_headers(exc.response.headers, self._state)
                if attempts >= self._max_attempts:
                    logger.error(
                        "%s %s rate limited, giving up after %d attempts",
                        method, url, attempts,
                    )
                    raise RateLimitExceededError(
                        attempts, self._state.snapshot(),
                    ) from exc
                delay = parse_retry_after(exc.response.headers, DEFAULT_RETRY_AFTER)
                logger.warning(
                    "%s %s returned 429, retrying in %ds (attempt %d/%d)",
                    method, url, delay, attempts, self._max_attempts,
                )
                self._waiter.wait(delay)
                continue
            extract_rate_limit_headers(response.headers, self._state)
            return response


class AsyncRetryingRequestExecutor:
    """Async variant of :class:`RetryingRequestExecutor`."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        state: RateLimitState,
        *,
        max_attempts: int = 3,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._client = client
        self._state = state
        self._max_attempts = max_attempts
        self._sleep = sleep

    async def execute(self, method: str, url: str, **options: Any) -> httpx.Response:
        attempts = 0
        while True:
            try:
                response = await self._client.request(method, url, **options)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                if not _is_rate_limited(exc):
                    raise
                attempts += 1
                extract_rate_limit_headers(exc.response.headers, self._state)
                if attempts >= self._max_attempts:
                    logger.error(
                        "%s %s rate limited, giving up after %d attempts",
                        method, url, attempts,
                    )
                    raise RateLimitExceededError(
                        attempts, self._state.snapshot(),
                    ) from exc
                delay = parse_retry_after(exc.response.headers, DEFAULT_RETRY_AFTER)
                logger.warning(
                    "%s %s returned 429, retrying in %ds (attempt %d/%d)",
                    method, url, delay, attempts, self._max_attempts,
                )
                await self._sleep(delay)
                continue
            extract_rate_limit_headers(response.headers, self._state)
            return response
