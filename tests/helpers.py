"""Shared fakes and response builders for the test suite."""

from __future__ import annotations

from collections.abc import Callable

import httpx

from sharpapi.exceptions import WaitCancelledError
from sharpapi.services.retry import Waiter


class RecordingWaiter(Waiter):
    """Waiter that records requested delays instead of sleeping."""

    def __init__(self) -> None:
        super().__init__()
        self.waits: list[float] = []

    def wait(self, seconds: float) -> None:
        if self.cancelled:
            raise WaitCancelledError()
        self.waits.append(seconds)


class RecordingSleep:
    """Async stand-in for ``asyncio.sleep``."""

    def __init__(self) -> None:
        self.waits: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.waits.append(seconds)


class ScriptedTransport(httpx.MockTransport):
    """Mock transport that replays responses built by *factories* in order.

    Once the script runs out, the last factory keeps answering.
    """

    def __init__(self, *factories: Callable[[], httpx.Response]) -> None:
        self.requests: list[httpx.Request] = []
        self._factories = list(factories)
        super().__init__(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests), len(self._factories)) - 1
        return self._factories[index]()


def rate_limit_headers(limit: int = 100, remaining: int = 99) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(limit),
        "X-RateLimit-Remaining": str(remaining),
    }


def respond(
    status_code: int = 200,
    body: object | None = None,
    headers: dict[str, str] | None = None,
) -> Callable[[], httpx.Response]:
    """Factory for a fresh ``httpx.Response`` on every call."""

    def build() -> httpx.Response:
        if body is None:
            return httpx.Response(status_code, headers=headers or {})
        return httpx.Response(status_code, json=body, headers=headers or {})

    return build


def job_body(
    status: str,
    result: object = None,
    job_id: str = "job-123",
    job_type: str = "test",
) -> dict:
    return {
        "data": {
            "id": job_id,
            "attributes": {"type": job_type, "status": status, "result": result},
        }
    }
