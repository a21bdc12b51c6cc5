"""HTTP fetch layer used by URL extraction.

Provides a bounded, retrying GET with typed error classification and
credential-safe logging.
"""

from clerkbook.fetch.client import Fetcher, HttpFetcher
from clerkbook.fetch.config import FetchConfig
from clerkbook.fetch.metrics import FetchMetrics
from clerkbook.fetch.models import (
    FetchError,
    FetchErrorClass,
    FetchResult,
    ResponseSizeExceededError,
    RetryPolicy,
)
from clerkbook.fetch.redact import redact_headers, redact_url_credentials


__all__ = [
    "FetchConfig",
    "FetchError",
    "FetchErrorClass",
    "FetchMetrics",
    "FetchResult",
    "Fetcher",
    "HttpFetcher",
    "ResponseSizeExceededError",
    "RetryPolicy",
    "redact_headers",
    "redact_url_credentials",
]
