"""Rate-limit bookkeeping shared by the retrying executor and the job poller."""

from __future__ import annotations

import threading
from typing import Mapping

from sharpapi.models import RateLimitInfo

LIMIT_HEADER = "X-RateLimit-Limit"
REMAINING_HEADER = "X-RateLimit-Remaining"
RETRY_AFTER_HEADER = "Retry-After"


class RateLimitState:
    """Thread-safe holder for the last-observed rate-limit counters.

    Both counters start unknown (``None``).  They are only ever overwritten
    by :func:`extract_rate_limit_headers`.
    """

    def __init__(self) -> None:
        self._limit: int | None = None
        self._remaining: int | None = None
        self._lock = threading.Lock()

    @property
    def limit(self) -> int | None:
        with self._lock:
            return self._limit

    @property
    def remaining(self) -> int | None:
        with self._lock:
            return self._remaining

    def update(
        self,
        *,
        limit: int | None = None,
        remaining: int | None = None,
    ) -> None:
        """Overwrite the given counters; ``None`` leaves a counter untouched."""
        with self._lock:
            if limit is not None:
                self._limit = limit
            if remaining is not None:
                self._remaining = remaining

    def snapshot(self) -> RateLimitInfo:
        with self._lock:
            return RateLimitInfo(limit=self._limit, remaining=self._remaining)

    def clear(self) -> None:
        """Forget both counters (useful in tests)."""
        with self._lock:
            self._limit = None
            self._remaining = None


def _parse_non_negative_int(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        value = int(raw.strip())
    except ValueError:
        return None
    return value if value >= 0 else None


def extract_rate_limit_headers(
    headers: Mapping[str, str],
    state: RateLimitState,
) -> None:
    """Copy ``X-RateLimit-*`` values from *headers* into *state*.

    Missing or malformed headers are ignored and leave the stored value as it
    was.
    """
    state.update(
        limit=_parse_non_negative_int(headers.get(LIMIT_HEADER)),
        remaining=_parse_non_negative_int(headers.get(REMAINING_HEADER)),
    )


def parse_retry_after(headers: Mapping[str, str], default: int) -> int:
    """Return ``Retry-After`` in whole seconds, or *default* if absent/invalid."""
    value = _parse_non_negative_int(headers.get(RETRY_AFTER_HEADER))
    return default if value is None else value


def adjust_interval(base: int, remaining: int | None, threshold: int) -> int:
    """Stretch a polling interval when the remaining quota runs low.

    At the threshold the interval doubles; every request fewer adds another
    multiple of *base*, up to ``base * (2 + threshold)`` at zero remaining.
    """
    if remaining is None or remaining > threshold:
        return base
    scale = 2 + (threshold - remaining)
    return base * scale
