"""Edge Side Includes processing for HTML documents.

Resolves ``<esi:include>`` tags by fetching fragments over HTTP, with
``alt`` fallbacks, nested resolution up to a maximum depth, a
Cache-Control driven fragment cache and an origin allow-list.
"""

__version__ = "0.1.0"

from esi_processor.cache import MemoryCache
from esi_processor.engine import ESIProcessor, IncludeTag, ProcessOptions
from esi_processor.errors import (
    BlockedHostError,
    ConfigurationError,
    ESIError,
    FetchFailedError,
    HttpStatusError,
    TransportError,
)
from esi_processor.fetch import DataProvider, HttpxClient, get_cache_time
from esi_processor.middleware import ESIMiddleware
from esi_processor.observability import LogSink
from esi_processor.security import AllowedHosts


__all__ = [
    "AllowedHosts",
    "BlockedHostError",
    "ConfigurationError",
    "DataProvider",
    "ESIError",
    "ESIMiddleware",
    "ESIProcessor",
    "FetchFailedError",
    "HttpStatusError",
    "HttpxClient",
    "IncludeTag",
    "LogSink",
    "MemoryCache",
    "ProcessOptions",
    "TransportError",
    "__version__",
    "get_cache_time",
]
