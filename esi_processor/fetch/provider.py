"""Fragment data provider: URL qualification, request building, sharing."""

import re
import time
from collections.abc import Mapping
from urllib.parse import urljoin

import structlog

from esi_processor.errors import FetchFailedError, HttpStatusError, TransportError
from esi_processor.fetch.client import HttpClient, HttpxClient
from esi_processor.fetch.config import FetchConfig
from esi_processor.fetch.constants import DEFAULT_ACCEPT, HTTP_STATUS_BAD_REQUEST
from esi_processor.fetch.inflight import InFlightRequests
from esi_processor.fetch.metrics import FetchMetrics
from esi_processor.fetch.models import FetchRequest, FetchResponse
from esi_processor.fetch.redact import redact_headers, redact_url_credentials


logger = structlog.get_logger()

_ABSOLUTE_URL = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")


class DataProvider:
    """Fetches fragments for the include engine.

    Wraps an ``HttpClient`` and adds:
    - Resolution of relative include sources against a base URL
    - Default ``Accept`` / ``User-Agent`` headers merged with caller headers
    - Sharing of concurrent identical requests
    - Mapping of error statuses to ``HttpStatusError``
    """

    def __init__(
        self,
        base_url: str = "",
        http_client: HttpClient | None = None,
        config: FetchConfig | None = None,
        metrics: FetchMetrics | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            base_url: Base for relative include sources.
            http_client: Fetch capability; defaults to ``HttpxClient``.
            config: Fetch configuration.
            metrics: Metrics sink; defaults to the shared instance.
        """
        self._config = config or FetchConfig()
        self._base_url = base_url or ""
        self._client: HttpClient = http_client or HttpxClient(self._config)
        self._metrics = metrics or FetchMetrics.get_instance()
        self._in_flight: InFlightRequests[FetchResponse] = InFlightRequests()
        self._log = logger.bind(component="data_provider")

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def in_flight(self) -> InFlightRequests[FetchResponse]:
        return self._in_flight

    def to_fully_qualified_url(
        self,
        url_or_path: str,
        options: "Mapping[str, object] | object | None" = None,
    ) -> str:
        """Resolve an include source to an absolute URL.

        Values carrying a scheme pass through unchanged. Anything else is
        joined onto the per-call base URL when given, else the configured one.

        Args:
            url_or_path: Include ``src`` or ``alt`` value.
            options: Per-call options exposing ``base_url``.

        Returns:
            The fully qualified URL.
        """
        if _ABSOLUTE_URL.match(url_or_path):
            return url_or_path
        base = str(_option(options, "base_url") or self._base_url)
        return urljoin(base, url_or_path)

    def build_request(
        self,
        src: str,
        options: "Mapping[str, object] | object | None" = None,
    ) -> FetchRequest:
        """Build the outbound request for an include source.

        Caller headers take precedence over the defaults.

        Args:
            src: Include source.
            options: Per-call options exposing ``headers`` and ``base_url``.

        Returns:
            The request to send.
        """
        headers: dict[str, str] = {
            "Accept": DEFAULT_ACCEPT,
            "User-Agent": self._config.user_agent,
        }
        headers.update(self._config.default_headers)

        caller_headers = _option(options, "headers") or {}
        lowered = {key.lower(): key for key in headers}
        for key, value in dict(caller_headers).items():
            existing = lowered.get(key.lower())
            if existing is not None and existing != key:
                del headers[existing]
            headers[key] = value
            lowered[key.lower()] = key

        return FetchRequest(
            url=self.to_fully_qualified_url(src, options), headers=headers
        )

    async def get(
        self,
        src: str,
        options: "Mapping[str, object] | object | None" = None,
    ) -> FetchResponse:
        """Fetch one fragment.

        Concurrent calls for the same URL and headers share one upstream
        request and all see the same outcome.

        Args:
            src: Include source, absolute or relative.
            options: Per-call options.

        Returns:
            FetchResponse with the fragment body.

        Raises:
            HttpStatusError: If upstream answered with a status >= 400.
            TransportError: If no response could be obtained.
        """
        request = self.build_request(src, options)
        return await self._in_flight.run(
            request.key,
            lambda: self._execute(request),
            on_shared=self._metrics.record_shared_request,
        )

    async def _execute(self, request: FetchRequest) -> FetchResponse:
        start_time_ns = time.perf_counter_ns()
        log = self._log.bind(url=redact_url_credentials(request.url))
        log.debug("fetch_started", headers=redact_headers(request.headers))

        try:
            try:
                response = await self._client.fetch(
                    request.url, headers=dict(request.headers)
                )
            except FetchFailedError:
                raise
            except Exception as exc:
                # Third-party clients raise their own types
                raise TransportError(request.url, f"Unexpected error: {exc}") from exc

            self._metrics.record_request(response.status_code, len(response.body))
            if response.status_code >= HTTP_STATUS_BAD_REQUEST:
                raise HttpStatusError(request.url, response.status_code)

        except FetchFailedError as exc:
            self._metrics.record_failure(exc.error_class)
            log.info(
                "fetch_failed",
                error_class=exc.error_class.value,
                error=str(exc),
            )
            raise

        finally:
            duration_ms = (time.perf_counter_ns() - start_time_ns) / 1_000_000
            self._metrics.record_duration(duration_ms)

        log.info(
            "fetch_complete",
            status_code=response.status_code,
            bytes=len(response.body),
            duration_ms=round(duration_ms, 2),
        )

        return FetchResponse(
            url=request.url,
            status_code=response.status_code,
            headers={k.lower(): v for k, v in response.headers.items()},
            body=response.body,
        )


def _option(options: "Mapping[str, object] | object | None", name: str) -> object:
    """Read an option from a mapping or an attribute holder."""
    if options is None:
        return None
    if isinstance(options, Mapping):
        return options.get(name)
    return getattr(options, name, None)
