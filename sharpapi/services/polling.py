"""Job-status polling until a job succeeds, fails, or the wait budget runs out."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from sharpapi.exceptions import (
    JobPayloadError,
    PollingTimeoutError,
    ResultDecodingError,
)
from sharpapi.models import Job, JobStatus, ResultDecoding
from sharpapi.services.rate_limit import (
    RateLimitState,
    adjust_interval,
    extract_rate_limit_headers,
    parse_retry_after,
)
from sharpapi.services.retry import Waiter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PollingBudget:
    """Interval and ceiling settings for one ``fetch_results`` call."""

    poll_interval: int = 10
    use_fixed_interval: bool = False
    max_wait: int = 180
    low_remaining_threshold: int = 3


# ---------------------------------------------------------------------------
# Payload helpers
# ---------------------------------------------------------------------------


def _read_payload(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError as exc:
        raise JobPayloadError(
            response.status_code, "Job status response is not valid JSON",
        ) from exc
    data = body.get("data") if isinstance(body, dict) else None
    if not isinstance(data, dict) or not isinstance(data.get("attributes"), dict):
        raise JobPayloadError(
            response.status_code, "Job status response has no data.attributes",
        )
    return data


def parse_job_status(data: dict[str, Any], status_code: int | None = None) -> JobStatus:
    raw = data["attributes"].get("status")
    try:
        return JobStatus(raw)
    except ValueError:
        raise JobPayloadError(status_code, f"Unknown job status: {raw!r}") from None


def decode_result(value: Any, decoding: ResultDecoding) -> Any:
    """Decode a job ``result`` according to *decoding*."""
    if decoding is ResultDecoding.STRUCTURED or value is None:
        return value
    if not isinstance(value, str):
        raise ResultDecodingError(
            None,
            f"Expected a JSON-encoded string result, got {type(value).__name__}",
        )
    try:
        return json.loads(value)
    except ValueError as exc:
        raise ResultDecodingError(
            None, f"Job result is not valid JSON: {exc}",
        ) from exc


def build_job(data: dict[str, Any], decoding: ResultDecoding) -> Job:
    """Turn a terminal ``data`` object into a :class:`Job`."""
    attributes = data["attributes"]
    status = parse_job_status(data)
    if not status.is_terminal:
        raise JobPayloadError(None, f"Job is still {status.value}")
    if "id" not in data or "type" not in attributes:
        raise JobPayloadError(None, "Job payload is missing id or type")
    return Job(
        id=str(data["id"]),
        type=str(attributes["type"]),
        status=status,
        result=decode_result(attributes.get("result"), decoding),
    )


def next_poll_interval(
    headers: Mapping[str, str],
    budget: PollingBudget,
    state: RateLimitState,
) -> int:
    """Interval before the next poll of a job that is still in progress."""
    if budget.use_fixed_interval:
        candidate = budget.poll_interval
    else:
        candidate = parse_retry_after(headers, budget.poll_interval)
    return adjust_interval(
        candidate, state.remaining, budget.low_remaining_threshold,
    )


# ---------------------------------------------------------------------------
# Pollers
# ---------------------------------------------------------------------------


class JobPoller:
    """Poll a job status URL until the job reaches ``success`` or ``failed``."""

    def __init__(
        self,
        client: httpx.Client,
        state: RateLimitState,
        budget: PollingBudget | None = None,
        *,
        waiter: Waiter | None = None,
    ) -> None:
        self._client = client
        self._state = state
        self._budget = budget or PollingBudget()
        self._waiter = waiter or Waiter()

    def fetch_result(
        self,
        status_url: str,
        decoding: ResultDecoding = ResultDecoding.STRUCTURED,
    ) -> Job:
        budget = self._budget
        waiting_time = 0
        while True:
            try:
                response = self._client.get(status_url)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                if exc.response.status_code != 429:
                    raise
                extract_rate_limit_headers(exc.response.headers, self._state)
                delay = parse_retry_after(exc.response.headers, budget.poll_interval)
                waiting_time += delay
                if waiting_time >= budget.max_wait:
                    raise PollingTimeoutError(waiting_time, rate_limited=True) from exc
                logger.warning(
                    "Job status poll rate limited, retrying in %ds (waited %ds)",
                    delay, waiting_time,
                )
                self._waiter.wait(delay)
                continue

            extract_rate_limit_headers(response.headers, self._state)
            data = _read_payload(response)
            status = parse_job_status(data, response.status_code)
            if status.is_terminal:
                break

            interval = next_poll_interval(response.headers, budget, self._state)
            waiting_time += interval
            if waiting_time >= budget.max_wait:
                raise PollingTimeoutError(waiting_time)
            logger.debug(
                "Job %s is %s, polling again in %ds",
                data.get("id"), status.value, interval,
            )
            self._waiter.wait(interval)

        job = build_job(data, decoding)
        logger.info("Job %s finished with status %s", job.id, job.status.value)
        return job


class AsyncJobPoller:
    """Async variant of :class:`JobPoller`."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        state: RateLimitState,
        budget: PollingBudget | None = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._state = state
        self._budget = budget or PollingBudget()
        self._sleep = sleep

    async def fetch_result(
        self,
        status_url: str,
        decoding: ResultDecoding = ResultDecoding.STRUCTURED,
    ) -> Job:
        budget = self._budget
        waiting_time = 0
        while True:
            try:
                response = await self._client.get(status_url)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                if exc.response.status_code != 429:
                    raise
                extract_rate_limit_headers(exc.response.headers, self._state)
                delay = parse_retry_after(exc.response.headers, budget.poll_interval)
                waiting_time += delay
                if waiting_time >= budget.max_wait:
                    raise PollingTimeoutError(waiting_time, rate_limited=True) from exc
                logger.warning(
                    "Job status poll rate limited, retrying in %ds (waited %ds)",
                    delay, waiting_time,
                )
                await self._sleep(delay)
                continue

            extract_rate_limit_headers(response.headers, self._state)
            data = _read_payload(response)
            status = parse_job_status(data, response.status_code)
            if status.is_terminal:
                break

            interval = next_poll_interval(response.headers, budget, self._state)
            waiting_time += interval
            if waiting_time >= budget.max_wait:
                raise PollingTimeoutError(waiting_time)
            logger.debug(
                "Job %s is %s, polling again in %ds",
                data.get("id"), status.value, interval,
            )
            await self._sleep(interval)

        job = build_job(data, decoding)
        logger.info("Job %s finished with status %s", job.id, job.status.value)
        return job
