"""SharpAPI Python client — rate-limit aware requests and job polling."""

from __future__ import annotations

from sharpapi.client import AsyncSharpApiClient, SharpApiClient
from sharpapi.exceptions import (
    JobPayloadError,
    PollingTimeoutError,
    RateLimitExceededError,
    ResultDecodingError,
    SharpApiError,
    WaitCancelledError,
)
from sharpapi.models import (
    Job,
    JobStatus,
    RateLimitInfo,
    ResultDecoding,
    SubscriptionInfo,
)

__version__ = "1.3.0"

__all__ = [
    "AsyncSharpApiClient",
    "SharpApiClient",
    "SharpApiError",
    "RateLimitExceededError",
    "PollingTimeoutError",
    "JobPayloadError",
    "ResultDecodingError",
    "WaitCancelledError",
    "Job",
    "JobStatus",
    "RateLimitInfo",
    "ResultDecoding",
    "SubscriptionInfo",
]
