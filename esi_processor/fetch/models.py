"""Data models for the fragment fetch layer."""

import random
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from esi_processor.errors import FetchErrorClass


class HttpResponse(BaseModel):
    """Raw response returned by an HTTP client.

    Any status code is allowed here; mapping statuses to failures is the
    data provider's job.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    status_code: int = Field(ge=100, le=599, description="HTTP status code")
    headers: dict[str, str] = Field(
        default_factory=dict, description="Response headers (lower-cased keys)"
    )
    body: str = Field(default="", description="Decoded response body")


class FetchRequest(BaseModel):
    """Outbound fragment request after URL qualification and header merge."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    url: Annotated[str, Field(min_length=1)]
    headers: dict[str, str] = Field(default_factory=dict)

    @property
    def key(self) -> tuple[str, tuple[tuple[str, str], ...]]:
        """Identity used to share concurrent identical requests."""
        return (self.url, tuple(sorted(self.headers.items())))


class FetchResponse(BaseModel):
    """Successful fragment fetch."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    url: Annotated[str, Field(min_length=1, description="Fully qualified URL")]
    status_code: int = Field(ge=100, le=599)
    headers: dict[str, str] = Field(default_factory=dict)
    body: str = ""

    @property
    def cache_control(self) -> str | None:
        """Return the Cache-Control header value, if any."""
        return self.headers.get("cache-control")


class RetryPolicy(BaseModel):
    """Configuration for retry behavior of the default HTTP client.

    Uses exponential backoff: delay = base_delay_ms * (exponential_base ^ attempt)
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_retries: Annotated[int, Field(ge=0, le=10)] = 1
    base_delay_ms: Annotated[int, Field(ge=0, le=60000)] = 100
    max_delay_ms: Annotated[int, Field(ge=0, le=300000)] = 2000
    exponential_base: Annotated[float, Field(ge=1.0, le=5.0)] = 2.0
    jitter_factor: Annotated[float, Field(ge=0.0, le=1.0)] = 0.1

    def should_retry(self, error_class: FetchErrorClass | None, attempt: int) -> bool:
        """Determine if a request should be retried.

        Args:
            error_class: Classification of the failure, None for success.
            attempt: Current attempt number (0-indexed).

        Returns:
            True if the request should be retried.
        """
        if attempt >= self.max_retries:
            return False

        retryable_classes = {
            FetchErrorClass.NETWORK_TIMEOUT,
            FetchErrorClass.CONNECTION_ERROR,
            FetchErrorClass.HTTP_5XX,
        }

        return error_class in retryable_classes

    def get_delay_ms(self, attempt: int) -> int:
        """Calculate delay before the next retry attempt.

        Args:
            attempt: Current attempt number (0-indexed).

        Returns:
            Delay in milliseconds.
        """
        delay = self.base_delay_ms * (self.exponential_base**attempt)
        delay = min(delay, self.max_delay_ms)

        jitter = delay * self.jitter_factor * random.random()  # noqa: S311
        return int(delay + jitter)
