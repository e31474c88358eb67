"""HTTP capability used to fetch fragments."""

import asyncio
import time
from typing import Protocol

import httpx
import structlog

from esi_processor.errors import FetchErrorClass, TransportError
from esi_processor.fetch.config import FetchConfig
from esi_processor.fetch.constants import (
    DEFAULT_CHUNK_SIZE,
    HTTP_STATUS_SERVER_ERROR_MAX,
    HTTP_STATUS_SERVER_ERROR_MIN,
)
from esi_processor.fetch.models import HttpResponse
from esi_processor.fetch.redact import redact_headers, redact_url_credentials


logger = structlog.get_logger()


class HttpClient(Protocol):
    """Pluggable fetch capability.

    Implementations return a response for every status code and raise
    ``TransportError`` (or any exception) when no response was obtained.
    """

    async def fetch(self, url: str, *, headers: dict[str, str]) -> HttpResponse:
        """Perform a GET request.

        Args:
            url: Fully qualified URL.
            headers: Complete request headers.

        Returns:
            The upstream response.
        """
        ...


class HttpxClient:
    """Default HTTP client built on ``httpx.AsyncClient``.

    Provides:
    - Request timeout and redirect handling
    - Retry with exponential backoff on timeouts, refused connections and 5xx
    - Maximum response size enforcement while streaming the body
    """

    def __init__(
        self,
        config: FetchConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Fetch configuration.
            transport: Optional httpx transport (e.g. ``httpx.MockTransport``).
        """
        self._config = config or FetchConfig()
        self._transport = transport
        self._log = logger.bind(component="http_client")

    async def fetch(self, url: str, *, headers: dict[str, str]) -> HttpResponse:
        """Fetch a URL with retry support.

        Args:
            url: URL to fetch.
            headers: Request headers.

        Returns:
            HttpResponse for the last attempt.

        Raises:
            TransportError: If no response could be obtained.
        """
        policy = self._config.retry_policy
        log = self._log.bind(url=redact_url_credentials(url))

        attempt = 0
        while True:
            if attempt > 0:
                delay_ms = policy.get_delay_ms(attempt - 1)
                log.debug(
                    "retry_attempt",
                    attempt=attempt,
                    delay_ms=delay_ms,
                    max_retries=policy.max_retries,
                )
                await asyncio.sleep(delay_ms / 1000.0)

            try:
                response = await self._execute_single(url, headers, log, attempt)
            except TransportError as exc:
                if not policy.should_retry(exc.error_class, attempt):
                    raise
            else:
                if not policy.should_retry(self._classify_status(response), attempt):
                    return response

            attempt += 1

    async def _execute_single(
        self,
        url: str,
        headers: dict[str, str],
        log: structlog.stdlib.BoundLogger,
        attempt: int,
    ) -> HttpResponse:
        """Execute a single HTTP request.

        Args:
            url: URL to fetch.
            headers: Request headers.
            log: Bound logger.
            attempt: Current attempt number.

        Returns:
            HttpResponse from the request.

        Raises:
            TransportError: On timeout, connection failure or oversize body.
        """
        start_time_ns = time.perf_counter_ns()
        log = log.bind(attempt=attempt, headers=redact_headers(headers))

        try:
            async with (
                httpx.AsyncClient(
                    timeout=self._config.timeout_seconds,
                    follow_redirects=self._config.follow_redirects,
                    transport=self._transport,
                ) as client,
                client.stream("GET", url, headers=headers) as response,
            ):
                body = await self._read_body_with_limit(url, response)
                encoding = response.encoding or "utf-8"
                result = HttpResponse(
                    status_code=response.status_code,
                    headers={k.lower(): v for k, v in response.headers.items()},
                    body=body.decode(encoding, errors="replace"),
                )

        except httpx.TimeoutException as e:
            raise TransportError(
                url, f"Request timed out: {e}", FetchErrorClass.NETWORK_TIMEOUT
            ) from e

        except httpx.ConnectError as e:
            raise TransportError(
                url, f"Connection failed: {e}", FetchErrorClass.CONNECTION_ERROR
            ) from e

        except httpx.HTTPError as e:
            raise TransportError(
                url, f"Unexpected error: {e}", FetchErrorClass.UNKNOWN
            ) from e

        duration_ms = (time.perf_counter_ns() - start_time_ns) / 1_000_000
        log.debug(
            "http_response",
            status_code=result.status_code,
            bytes=len(body),
            duration_ms=round(duration_ms, 2),
        )
        return result

    async def _read_body_with_limit(self, url: str, response: httpx.Response) -> bytes:
        """Read response body with size limit.

        Args:
            url: Requested URL, for the error.
            response: Streaming HTTP response.

        Returns:
            Response body bytes.

        Raises:
            TransportError: If the size limit is exceeded.
        """
        max_size = self._config.max_response_size_bytes

        content_length = response.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > max_size:
            msg = f"Response size {content_length} exceeds limit {max_size}"
            raise TransportError(url, msg, FetchErrorClass.RESPONSE_SIZE_EXCEEDED)

        chunks: list[bytes] = []
        total_read = 0
        async for chunk in response.aiter_bytes(chunk_size=DEFAULT_CHUNK_SIZE):
            total_read += len(chunk)
            if total_read > max_size:
                msg = (
                    f"Response size exceeded limit of {max_size} bytes "
                    f"(read {total_read} bytes)"
                )
                raise TransportError(url, msg, FetchErrorClass.RESPONSE_SIZE_EXCEEDED)
            chunks.append(chunk)

        return b"".join(chunks)

    @staticmethod
    def _classify_status(response: HttpResponse) -> FetchErrorClass | None:
        if HTTP_STATUS_SERVER_ERROR_MIN <= response.status_code < HTTP_STATUS_SERVER_ERROR_MAX:
            return FetchErrorClass.HTTP_5XX
        return None
