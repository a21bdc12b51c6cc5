"""Configuration model for the HTTP fetch layer."""

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from clerkbook.fetch.constants import (
    DEFAULT_MAX_REDIRECTS,
    DEFAULT_MAX_RESPONSE_SIZE_BYTES,
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
)
from clerkbook.fetch.models import RetryPolicy


class FetchConfig(BaseModel):
    """Configuration for URL fetches made by extraction jobs.

    A timeout is always applied; there is no way to disable it.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    user_agent: Annotated[str, Field(min_length=1, max_length=500)] = DEFAULT_USER_AGENT
    timeout_seconds: Annotated[float, Field(gt=0.0, le=120.0)] = DEFAULT_TIMEOUT_SECONDS
    max_redirects: Annotated[int, Field(ge=0, le=20)] = DEFAULT_MAX_REDIRECTS
    max_response_size_bytes: Annotated[int, Field(ge=1024, le=100 * 1024 * 1024)] = (
        DEFAULT_MAX_RESPONSE_SIZE_BYTES
    )
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    accept: str = Field(
        default="text/html,application/xhtml+xml,application/pdf,text/plain;q=0.9,*/*;q=0.5",
        description="Accept header sent with every request",
    )
