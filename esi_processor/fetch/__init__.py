"""Fragment fetch layer.

This module provides the HTTP side of include resolution:
- A pluggable async HTTP capability with an httpx default
- URL qualification against a base URL and default request headers
- Sharing of concurrent identical requests
- Cache-Control to TTL conversion
- Header redaction and metrics for observability
"""

from esi_processor.fetch.cache_control import get_cache_time
from esi_processor.fetch.client import HttpClient, HttpxClient
from esi_processor.fetch.config import FetchConfig
from esi_processor.fetch.constants import (
    DEFAULT_ACCEPT,
    DEFAULT_MAX_RESPONSE_SIZE_BYTES,
    DEFAULT_USER_AGENT,
)
from esi_processor.fetch.inflight import InFlightRequests
from esi_processor.fetch.metrics import FetchMetrics
from esi_processor.fetch.models import (
    FetchRequest,
    FetchResponse,
    HttpResponse,
    RetryPolicy,
)
from esi_processor.fetch.provider import DataProvider
from esi_processor.fetch.redact import redact_headers, redact_url_credentials


__all__ = [
    # Provider
    "DataProvider",
    "InFlightRequests",
    # Client
    "HttpClient",
    "HttpxClient",
    # Config
    "FetchConfig",
    "RetryPolicy",
    # Models
    "FetchRequest",
    "FetchResponse",
    "HttpResponse",
    # Cache-Control
    "get_cache_time",
    # Constants
    "DEFAULT_ACCEPT",
    "DEFAULT_MAX_RESPONSE_SIZE_BYTES",
    "DEFAULT_USER_AGENT",
    # Metrics
    "FetchMetrics",
    # Redaction
    "redact_headers",
    "redact_url_credentials",
]
