"""Exception types raised while resolving includes.

Fetch failures never escape ``ESIProcessor.process``; they are routed to the
``alt`` fallback or the error hook. ``ConfigurationError`` is the only error a
caller should expect, and only at construction time.
"""

from enum import Enum


class FetchErrorClass(str, Enum):
    """Classification of fetch errors for metrics and retry decisions.

    - BLOCKED: Target origin is not in the allowed hosts
    - NETWORK_TIMEOUT: Request timed out
    - CONNECTION_ERROR: Could not establish connection
    - RESPONSE_SIZE_EXCEEDED: Response exceeded max size limit
    - HTTP_4XX: Non-retryable 4xx client error
    - HTTP_5XX: Retryable 5xx server error
    - UNKNOWN: Unclassified error
    """

    BLOCKED = "BLOCKED"
    NETWORK_TIMEOUT = "NETWORK_TIMEOUT"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    RESPONSE_SIZE_EXCEEDED = "RESPONSE_SIZE_EXCEEDED"
    HTTP_4XX = "HTTP_4XX"
    HTTP_5XX = "HTTP_5XX"
    UNKNOWN = "UNKNOWN"


class ESIError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(ESIError, ValueError):
    """Raised eagerly when the processor is constructed with bad settings."""


class FetchFailedError(ESIError):
    """A single include could not be fetched.

    Attributes:
        url: Fully qualified URL that failed.
        error_class: Classification used for metrics and logs.
        blocked: True only when the allow-list rejected the URL.
    """

    blocked = False

    def __init__(
        self,
        url: str,
        message: str,
        error_class: FetchErrorClass = FetchErrorClass.UNKNOWN,
    ) -> None:
        """Initialize the error.

        Args:
            url: URL that failed.
            message: Human-readable message.
            error_class: Failure classification.
        """
        self.url = url
        self.error_class = error_class
        super().__init__(message)


class BlockedHostError(FetchFailedError):
    """The include target is not in allowed hosts or the base URL origin."""

    blocked = True

    def __init__(self, url: str) -> None:
        super().__init__(
            url,
            f"{url} is not included in allowedHosts or baseUrl.",
            FetchErrorClass.BLOCKED,
        )


class HttpStatusError(FetchFailedError):
    """Upstream answered with a status code of 400 or above."""

    def __init__(self, url: str, status_code: int) -> None:
        """Initialize the error.

        Args:
            url: URL that failed.
            status_code: Upstream HTTP status.
        """
        self.status_code = status_code
        error_class = (
            FetchErrorClass.HTTP_5XX if status_code >= 500 else FetchErrorClass.HTTP_4XX  # noqa: PLR2004
        )
        super().__init__(url, f"HTTP error: status code {status_code}", error_class)


class TransportError(FetchFailedError):
    """Network level failure: timeout, refused connection, oversize body."""
