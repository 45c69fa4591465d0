"""Exception hierarchy for the SharpAPI client.

Only HTTP 429 is translated into a library exception.  Every other transport
failure (``httpx.HTTPStatusError``, ``httpx.TransportError``) reaches the
caller unchanged.
"""

from __future__ import annotations

from sharpapi.models import RateLimitInfo


class SharpApiError(Exception):
    """Base exception for all SharpAPI client errors."""

    def __init__(self, status_code: int | None, detail: str) -> None:
        self.status_code = status_code
        self.detail = detail
        if status_code is None:
            super().__init__(detail)
        else:
            super().__init__(f"{status_code}: {detail}")


class RateLimitExceededError(SharpApiError):
    """Raised when every attempt of a request was answered with 429."""

    def __init__(
        self,
        attempts: int,
        rate_limit_info: RateLimitInfo | None = None,
    ) -> None:
        super().__init__(429, f"Rate limit exceeded after {attempts} attempts.")
        self.attempts = attempts
        self.rate_limit_info = rate_limit_info


class PollingTimeoutError(SharpApiError):
    """Raised when the cumulative polling wait reaches the configured ceiling."""

    def __init__(self, waited: int, *, rate_limited: bool = False) -> None:
        if rate_limited:
            detail = (
                "Polling timed out while rate limited (HTTP 429) "
                "waiting for job completion."
            )
        else:
            detail = "Polling timed out while waiting for job completion."
        super().__init__(429 if rate_limited else None, detail)
        self.waited = waited
        self.rate_limited = rate_limited


class JobPayloadError(SharpApiError):
    """Raised when a job-status response does not match the expected shape."""


class ResultDecodingError(SharpApiError):
    """Raised when a job result cannot be decoded in the requested mode."""


class WaitCancelledError(SharpApiError):
    """Raised when a backoff or polling wait is interrupted by ``cancel()``."""

    def __init__(self) -> None:
        super().__init__(None, "Wait cancelled.")
