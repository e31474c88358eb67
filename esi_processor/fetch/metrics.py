"""Metrics collection for fragment fetching and caching."""

from dataclasses import dataclass, field
from typing import ClassVar

from esi_processor.errors import FetchErrorClass


@dataclass
class FetchMetrics:
    """Counters for fragment fetches.

    One shared instance is available through ``get_instance``; data providers
    and processors accept their own instance when isolation is needed.
    """

    http_requests_total: dict[int, int] = field(default_factory=dict)
    http_failures_total: dict[str, int] = field(default_factory=dict)
    http_bytes_total: int = 0
    http_duration_ms_total: float = 0.0
    http_request_count: int = 0
    shared_requests_total: int = 0
    cache_hits_total: int = 0
    cache_stale_hits_total: int = 0
    cache_refresh_total: int = 0

    _instance: ClassVar["FetchMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "FetchMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_request(self, status_code: int, bytes_received: int) -> None:
        """Record a completed upstream request.

        Args:
            status_code: HTTP status code.
            bytes_received: Number of bytes received.
        """
        self.http_requests_total[status_code] = (
            self.http_requests_total.get(status_code, 0) + 1
        )
        self.http_bytes_total += bytes_received
        self.http_request_count += 1

    def record_failure(self, error_class: FetchErrorClass) -> None:
        """Record a fetch failure.

        Args:
            error_class: Classification of the failure.
        """
        key = error_class.value
        self.http_failures_total[key] = self.http_failures_total.get(key, 0) + 1

    def record_duration(self, duration_ms: float) -> None:
        """Record request duration."""
        self.http_duration_ms_total += duration_ms

    def record_shared_request(self) -> None:
        """Record a caller that joined an already in-flight request."""
        self.shared_requests_total += 1

    def record_cache_hit(self, *, expired: bool) -> None:
        """Record a cache lookup that found an entry.

        Args:
            expired: Whether the served entry was stale.
        """
        self.cache_hits_total += 1
        if expired:
            self.cache_stale_hits_total += 1

    def record_cache_refresh(self) -> None:
        """Record a background revalidation."""
        self.cache_refresh_total += 1

    def to_dict(self) -> dict[str, int | float | dict[str, int] | dict[int, int]]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        return {
            "http_requests_total": dict(self.http_requests_total),
            "http_failures_total": dict(self.http_failures_total),
            "http_bytes_total": self.http_bytes_total,
            "http_duration_ms_total": self.http_duration_ms_total,
            "http_request_count": self.http_request_count,
            "shared_requests_total": self.shared_requests_total,
            "cache_hits_total": self.cache_hits_total,
            "cache_stale_hits_total": self.cache_stale_hits_total,
            "cache_refresh_total": self.cache_refresh_total,
        }

