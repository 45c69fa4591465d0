"""Async and sync HTTP clients for the SharpAPI job API."""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import httpx

from sharpapi.config import settings
from sharpapi.exceptions import JobPayloadError
from sharpapi.models import Job, RateLimitInfo, ResultDecoding, SubscriptionInfo
from sharpapi.services.call_context import bind_call_id
from sharpapi.services.polling import AsyncJobPoller, JobPoller, PollingBudget
from sharpapi.services.rate_limit import RateLimitState
from sharpapi.services.retry import (
    AsyncRetryingRequestExecutor,
    RetryingRequestExecutor,
    Waiter,
)


def _form_value(value: Any) -> str:
    return json.dumps(value) if isinstance(value, (dict, list)) else str(value)


def _request_options(
    method: str,
    data: dict[str, Any] | None,
    file_path: str | None,
) -> dict[str, Any]:
    """Build ``httpx`` request options for :meth:`make_request`.

    POST bodies are sent as JSON, or as multipart form data when a file is
    attached.  Other methods carry no body.
    """
    if method.upper() != "POST":
        return {}
    if file_path:
        path = Path(file_path)
        return {
            "files": {"file": (path.name, path.read_bytes())},
            "data": {key: _form_value(value) for key, value in (data or {}).items()},
        }
    return {"json": data or {}}


def _parse_status_url(response: httpx.Response) -> str:
    try:
        return response.json()["status_url"]
    except (ValueError, KeyError, TypeError):
        raise JobPayloadError(
            response.status_code, "Response does not contain a status_url",
        ) from None


class _ClientConfig:
    """Configuration and rate-limit state shared by both clients."""

    def __init__(
        self,
        api_key: str | None,
        api_base_url: str | None,
        user_agent: str | None,
    ) -> None:
        api_key = api_key if api_key is not None else settings.api_key
        if not api_key:
            raise ValueError("API key is required.")
        self._api_key = api_key
        self._user_agent = user_agent or settings.user_agent
        self.api_base_url = api_base_url or settings.api_base_url
        self.max_retry_on_rate_limit = settings.max_retry_on_rate_limit
        self.rate_limit_low_threshold = settings.rate_limit_low_threshold
        self.api_job_status_polling_interval = settings.api_job_status_polling_interval
        self.api_job_status_polling_wait = settings.api_job_status_polling_wait
        self.use_custom_interval = settings.use_custom_interval
        self._rate_limit = RateLimitState()

    @property
    def api_key(self) -> str:
        return self._api_key

    @property
    def user_agent(self) -> str:
        return self._user_agent

    @property
    def rate_limit_limit(self) -> int | None:
        return self._rate_limit.limit

    @property
    def rate_limit_remaining(self) -> int | None:
        return self._rate_limit.remaining

    @property
    def rate_limit(self) -> RateLimitInfo:
        return self._rate_limit.snapshot()

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Accept": "application/json",
            "User-Agent": self._user_agent,
        }

    def _url(self, path: str) -> str:
        return self.api_base_url + path

    def _polling_budget(self) -> PollingBudget:
        return PollingBudget(
            poll_interval=self.api_job_status_polling_interval,
            use_fixed_interval=self.use_custom_interval,
            max_wait=self.api_job_status_polling_wait,
            low_remaining_threshold=self.rate_limit_low_threshold,
        )

    @staticmethod
    def _decoding_for(
        status_url: str,
        result_decoding: ResultDecoding | None,
    ) -> ResultDecoding:
        if result_decoding is not None:
            return result_decoding
        return ResultDecoding.for_status_url(status_url)


# ---------------------------------------------------------------------------
# Async client
# ---------------------------------------------------------------------------


class AsyncSharpApiClient(_ClientConfig):
    """Async client for SharpAPI (backed by ``httpx.AsyncClient``)."""

    def __init__(
        self,
        api_key: str | None = None,
        api_base_url: str | None = None,
        user_agent: str | None = None,
        timeout: float | None = None,
        *,
        _transport: httpx.AsyncBaseTransport | None = None,
        _sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> None:
        super().__init__(api_key, api_base_url, user_agent)
        kwargs: dict[str, Any] = {
            "headers": self._headers(),
            "timeout": timeout if timeout is not None else settings.request_timeout,
            "follow_redirects": True,
        }
        if _transport is not None:
            kwargs["transport"] = _transport
        self._client = httpx.AsyncClient(**kwargs)
        self._sleep_kwargs: dict[str, Any] = {}
        if _sleep is not None:
            self._sleep_kwargs["sleep"] = _sleep

    # -- context manager -----------------------------------------------------

    async def __aenter__(self) -> AsyncSharpApiClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    # -- internal ------------------------------------------------------------

    def _executor(self) -> AsyncRetryingRequestExecutor:
        return AsyncRetryingRequestExecutor(
            self._client,
            self._rate_limit,
            max_attempts=self.max_retry_on_rate_limit,
            **self._sleep_kwargs,
        )

    # -- public methods ------------------------------------------------------

    async def make_request(
        self,
        method: str,
        url: str,
        data: dict[str, Any] | None = None,
        file_path: str | None = None,
    ) -> httpx.Response:
        """Send *method* to ``api_base_url + url`` with retry on 429."""
        options = _request_options(method, data, file_path)
        with bind_call_id():
            return await self._executor().execute(method, self._url(url), **options)

    async def make_get_request(
        self,
        url: str,
        query_params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        options: dict[str, Any] = {}
        if query_params:
            options["params"] = query_params
        with bind_call_id():
            return await self._executor().execute("GET", self._url(url), **options)

    async def ping(self) -> dict[str, Any]:
        resp = await self.make_request("GET", "/ping")
        return resp.json()

    async def quota(self) -> SubscriptionInfo:
        resp = await self.make_request("GET", "/quota")
        return SubscriptionInfo.model_validate(resp.json())

    def parse_status_url(self, response: httpx.Response) -> str:
        return _parse_status_url(response)

    async def fetch_results(
        self,
        status_url: str,
        *,
        result_decoding: ResultDecoding | None = None,
    ) -> Job:
        """Poll *status_url* until the job succeeds or fails."""
        poller = AsyncJobPoller(
            self._client,
            self._rate_limit,
            self._polling_budget(),
            **self._sleep_kwargs,
        )
        with bind_call_id():
            return await poller.fetch_result(
                status_url, self._decoding_for(status_url, result_decoding),
            )


# ---------------------------------------------------------------------------
# Sync client
# ---------------------------------------------------------------------------


class SharpApiClient(_ClientConfig):
    """Synchronous client for SharpAPI (backed by ``httpx.Client``).

    Backoff and polling waits block the calling thread.  Another thread may
    call :meth:`cancel` to abort the current wait; every later wait on this
    client then fails immediately with ``WaitCancelledError`` until
    :meth:`reset_cancel` is called.
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_base_url: str | None = None,
        user_agent: str | None = None,
        timeout: float | None = None,
        *,
        _transport: httpx.BaseTransport | None = None,
        _waiter: Waiter | None = None,
    ) -> None:
        super().__init__(api_key, api_base_url, user_agent)
        kwargs: dict[str, Any] = {
            "headers": self._headers(),
            "timeout": timeout if timeout is not None else settings.request_timeout,
            "follow_redirects": True,
        }
        if _transport is not None:
            kwargs["transport"] = _transport
        self._client = httpx.Client(**kwargs)
        self._waiter = _waiter or Waiter()

    # -- context manager -----------------------------------------------------

    def __enter__(self) -> SharpApiClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def cancel(self) -> None:
        self._waiter.cancel()

    def reset_cancel(self) -> None:
        self._waiter.reset()

    # -- internal ------------------------------------------------------------

    def _executor(self) -> RetryingRequestExecutor:
        return RetryingRequestExecutor(
            self._client,
            self._rate_limit,
            max_attempts=self.max_retry_on_rate_limit,
            waiter=self._waiter,
        )

    # -- public methods ------------------------------------------------------

    def make_request(
        self,
        method: str,
        url: str,
        data: dict[str, Any] | None = None,
        file_path: str | None = None,
    ) -> httpx.Response:
        """Send *method* to ``api_base_url + url`` with retry on 429."""
        options = _request_options(method, data, file_path)
        with bind_call_id():
            return self._executor().execute(method, self._url(url), **options)

    def make_get_request(
        self,
        url: str,
        query_params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        options: dict[str, Any] = {}
        if query_params:
            options["params"] = query_params
        with bind_call_id():
            return self._executor().execute("GET", self._url(url), **options)

    def ping(self) -> dict[str, Any]:
        resp = self.make_request("GET", "/ping")
        return resp.json()

    def quota(self) -> SubscriptionInfo:
        resp = self.make_request("GET", "/quota")
        return SubscriptionInfo.model_validate(resp.json())

    def parse_status_url(self, response: httpx.Response) -> str:
        return _parse_status_url(response)

    def fetch_results(
        self,
        status_url: str,
        *,
        result_decoding: ResultDecoding | None = None,
    ) -> Job:
        """Poll *status_url* until the job succeeds or fails."""
        poller = JobPoller(
            self._client,
            self._rate_limit,
            self._polling_budget(),
            waiter=self._waiter,
        )
        with bind_call_id():
            return poller.fetch_result(
                status_url, self._decoding_for(status_url, result_decoding),
            )
