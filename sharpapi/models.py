"""Models returned by the SharpAPI client."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict


@dataclass(frozen=True)
class RateLimitInfo:
    """Last-known rate-limit counters; either may be *None* (unknown)."""

    limit: int | None
    remaining: int | None


class JobStatus(str, Enum):
    """Status of an asynchronous job."""

    NEW = "new"
    PENDING = "pending"
    FAILED = "failed"
    SUCCESS = "success"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.FAILED, JobStatus.SUCCESS)

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @property
    def color(self) -> str:
        return _STATUS_COLORS[self]


_STATUS_COLORS: dict[JobStatus, str] = {
    JobStatus.NEW: "gray",
    JobStatus.PENDING: "yellow",
    JobStatus.FAILED: "red",
    JobStatus.SUCCESS: "green",
}


class ResultDecoding(str, Enum):
    """How the ``result`` attribute of a finished job is decoded.

    ``STRUCTURED`` keeps the value as delivered.  ``JSON_STRING`` expects a
    JSON document encoded inside a string and decodes it once more.
    """

    STRUCTURED = "structured"
    JSON_STRING = "json_string"

    @classmethod
    def for_status_url(cls, status_url: str) -> ResultDecoding:
        """Legacy rule: five-segment status paths return a JSON-encoded result."""
        segments = [s for s in urlsplit(status_url).path.split("/") if s]
        return cls.JSON_STRING if len(segments) == 5 else cls.STRUCTURED


class Job(BaseModel):
    """A job that reached a terminal status."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: str
    status: JobStatus
    result: Any = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    def result_json(self) -> str | None:
        """Pretty-printed JSON of the result, or *None* when there is none."""
        if self.result is None:
            return None
        return json.dumps(self.result, indent=4)

    def result_dict(self) -> dict[str, Any] | None:
        if isinstance(self.result, dict):
            return dict(self.result)
        return None


class SubscriptionInfo(BaseModel):
    """Subscription quota details from ``GET /quota``."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    on_trial: bool
    trial_ends: datetime
    subscribed: bool
    current_subscription_start: datetime
    current_subscription_end: datetime
    current_subscription_reset: datetime
    subscription_words_quota: int
    subscription_words_used: int
    subscription_words_used_percentage: float
    requests_per_minute: int | None = None
