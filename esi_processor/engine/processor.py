"""Recursive include resolution."""

import asyncio
import inspect
import re
import uuid
from collections.abc import Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from esi_processor.cache.clock import Clock
from esi_processor.cache.store import CacheStore, MemoryCache
from esi_processor.engine.models import (
    ESIConfig,
    IncludeTag,
    ProcessOptions,
    ResolutionState,
)
from esi_processor.engine.scanner import (
    find_include_tags,
    has_include_tag,
    remove_blocks,
    strip_include_tags,
)
from esi_processor.errors import BlockedHostError, ConfigurationError, FetchFailedError
from esi_processor.fetch.cache_control import get_cache_time
from esi_processor.fetch.client import HttpClient
from esi_processor.fetch.config import FetchConfig
from esi_processor.fetch.metrics import FetchMetrics
from esi_processor.fetch.models import FetchResponse
from esi_processor.fetch.provider import DataProvider
from esi_processor.fetch.redact import redact_url_credentials
from esi_processor.observability.sink import LogSink, LogWriter
from esi_processor.security.allowed_hosts import AllowedHost, AllowedHosts, HostMatcher


if TYPE_CHECKING:
    from esi_processor.settings.app import ESISettings


logger = structlog.get_logger()

ErrorHook = Callable[[str, BaseException], "str | None"]


class ESIProcessor:
    """Resolves ``<esi:include>`` tags in HTML.

    Each call to ``process`` runs scan-and-substitute passes: all includes of
    a pass are fetched concurrently and committed together, then the result is
    scanned again for includes brought in by the fragments. Passes stop when
    no include is left or, once ``max_depth`` is exceeded, remaining includes
    are dropped.

    Fragment failures never fail ``process``: a failing ``src`` falls back to
    ``alt``, then to the ``on_error`` hook, then to an empty string.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        base_url: str = "",
        max_depth: int = 3,
        allowed_hosts: Sequence[AllowedHost] | HostMatcher | None = None,
        cache: "bool | CacheStore | None" = True,
        http_client: HttpClient | None = None,
        on_error: ErrorHook | None = None,
        log_to: LogWriter | None = None,
        fetch_config: FetchConfig | None = None,
        clock: Clock | None = None,
        data_provider: DataProvider | None = None,
        metrics: FetchMetrics | None = None,
    ) -> None:
        """Initialize the processor.

        Args:
            base_url: Base for relative include sources; its origin is allowed.
            max_depth: Number of nested passes allowed after the first one.
            allowed_hosts: Origins / patterns, or a custom ``HostMatcher``.
            cache: True for an in-memory cache, False/None to disable, or a store.
            http_client: Fetch capability used by the default data provider.
            on_error: ``(url, error) -> str | None`` replacement hook.
            log_to: Destination for user-facing messages.
            fetch_config: Fetch configuration.
            clock: Time source for the default cache.
            data_provider: Pre-built provider, sharing its in-flight registry.
            metrics: Metrics sink; defaults to the shared instance.

        Raises:
            ConfigurationError: On any invalid setting.
        """
        try:
            self._config = ESIConfig(
                base_url=base_url or "",
                max_depth=max_depth,
                fetch=fetch_config or FetchConfig(),
            )
        except ValidationError as exc:
            raise ConfigurationError(str(exc)) from exc

        self.logger = LogSink(log_to)
        self._on_error = self._validate_hook(on_error)
        self._metrics = metrics or FetchMetrics.get_instance()
        self._data_provider = data_provider or DataProvider(
            base_url=self._config.base_url,
            http_client=http_client,
            config=self._config.fetch,
            metrics=self._metrics,
        )
        self._allowed_hosts = self._build_allowed_hosts(allowed_hosts)
        self._cache = self._build_cache(cache, clock)
        self._refreshes: set[asyncio.Task[None]] = set()
        self._log = logger.bind(component="esi_processor")

        self._log.debug(
            "processor_configured",
            base_url=self._config.base_url,
            max_depth=self._config.max_depth,
            cache_enabled=self._cache is not None,
        )

    @classmethod
    def from_settings(cls, settings: "ESISettings", **overrides: Any) -> "ESIProcessor":
        """Build a processor from environment settings.

        Args:
            settings: Loaded ``ESISettings``.
            **overrides: Keyword arguments taking precedence over settings.

        Returns:
            Configured processor.
        """
        kwargs: dict[str, Any] = {
            "base_url": settings.base_url,
            "max_depth": settings.max_depth,
            "allowed_hosts": settings.allowed_host_entries(),
            "cache": settings.cache_enabled,
            "fetch_config": settings.fetch_config(),
        }
        kwargs.update(overrides)
        return cls(**kwargs)

    @property
    def config(self) -> ESIConfig:
        return self._config

    @property
    def data_provider(self) -> DataProvider:
        return self._data_provider

    @property
    def cache(self) -> CacheStore | None:
        return self._cache

    @property
    def allowed_hosts(self) -> HostMatcher:
        return self._allowed_hosts

    async def process(
        self,
        html: str,
        options: ProcessOptions | Mapping[str, object] | None = None,
    ) -> str:
        """Resolve every include in a document.

        Args:
            html: Document markup.
            options: Headers to forward and an optional per-call base URL.

        Returns:
            The document with includes replaced by their fragments.
        """
        opts = ProcessOptions.coerce(options)
        state = ResolutionState()
        text = html

        while True:
            text = remove_blocks(text)
            tags = find_include_tags(text)
            if not tags:
                return text

            if state.current_depth > self._config.max_depth:
                self._log.info(
                    "max_depth_reached",
                    depth=state.current_depth,
                    dropped=len(tags),
                )
                return remove_blocks(strip_include_tags(text, tags))

            text = await self._run_pass(text, tags, opts)

            if not has_include_tag(text):
                return remove_blocks(text)
            state.current_depth += 1

    def find_include_tags(self, html: str) -> list[IncludeTag]:
        """List the include tags of a document without resolving them."""
        return find_include_tags(html)

    def handle_error(self, src: str, error: BaseException) -> str:
        """Turn a failed include into replacement markup.

        The ``on_error`` hook decides; a string result is used as is, any
        other result, a hook failure or no hook at all gives ``""``.

        Args:
            src: Fully qualified URL that failed.
            error: The failure.

        Returns:
            Replacement markup.
        """
        if self._on_error is None:
            return ""

        try:
            result = self._on_error(src, error)
        except Exception:  # noqa: BLE001
            self._log.exception("error_hook_failed", url=redact_url_credentials(src))
            return ""

        if inspect.isawaitable(result):
            if inspect.iscoroutine(result):
                result.close()
            self._log.warning(
                "error_hook_returned_awaitable", url=redact_url_credentials(src)
            )
            return ""

        return result if isinstance(result, str) else ""

    async def wait_for_refreshes(self) -> None:
        """Wait until every background cache refresh has finished."""
        while self._refreshes:
            await asyncio.gather(*list(self._refreshes), return_exceptions=True)

    async def _run_pass(
        self, text: str, tags: list[IncludeTag], options: ProcessOptions
    ) -> str:
        """Substitute one pass worth of includes.

        Tags are swapped for placeholders unique to this pass, resolved
        concurrently, then all placeholders are replaced in one sweep so
        fragment content is never searched for placeholders.
        """
        token = uuid.uuid4().hex
        pieces: list[str] = []
        position = 0
        for index, tag in enumerate(tags):
            pieces.append(text[position : tag.start])
            pieces.append(f"<!--esi-placeholder-{token}-{index}-->")
            position = tag.end
        pieces.append(text[position:])
        template = "".join(pieces)

        results = await asyncio.gather(
            *(self._resolve_include(tag, options) for tag in tags)
        )

        placeholder = re.compile(rf"<!--esi-placeholder-{token}-(\d+)-->")
        return placeholder.sub(lambda m: results[int(m.group(1))], template)

    async def _resolve_include(self, tag: IncludeTag, options: ProcessOptions) -> str:
        if not tag.src:
            self._log.warning("include_without_src", tag=tag.raw_text[:200])
            return ""
        return await self._resolve(tag.src, tag.alt, options)

    async def _resolve(
        self, src: str, alt: str | None, options: ProcessOptions
    ) -> str:
        """Resolve one source, falling back to ``alt`` once."""
        url = self._data_provider.to_fully_qualified_url(src, options)
        log = self._log.bind(url=redact_url_credentials(url))

        try:
            if not self._is_allowed(url):
                raise BlockedHostError(url)
            content = await self._fetch_through_cache(url, options)
        except FetchFailedError as exc:
            log.info(
                "include_failed",
                error_class=exc.error_class.value,
                error=str(exc),
                has_alt=bool(alt),
            )
            if alt:
                return await self._resolve(alt, None, options)
            return self.handle_error(url, exc)

        log.debug("include_resolved", bytes=len(content))
        return content

    async def _fetch_through_cache(self, url: str, options: ProcessOptions) -> str:
        if self._cache is not None:
            cached = self._cache.get(url)
            if cached is not None:
                self._metrics.record_cache_hit(expired=cached.expired)
                if cached.expired:
                    self._schedule_refresh(url, options)
                return cached.value

        response = await self._data_provider.get(url, options)
        self._store(response)
        return response.body

    def _store(self, response: FetchResponse) -> None:
        if self._cache is not None:
            self._cache.set(
                response.url,
                response.body,
                expires_in_ms=get_cache_time(response.cache_control),
            )

    def _schedule_refresh(self, url: str, options: ProcessOptions) -> None:
        task = asyncio.create_task(self._refresh(url, options))
        self._refreshes.add(task)
        task.add_done_callback(self._refreshes.discard)

    async def _refresh(self, url: str, options: ProcessOptions) -> None:
        """Revalidate an expired entry; on failure the stale value stays."""
        self._metrics.record_cache_refresh()
        try:
            response = await self._data_provider.get(url, options)
        except FetchFailedError as exc:
            self._log.warning(
                "cache_refresh_failed",
                url=redact_url_credentials(url),
                error_class=exc.error_class.value,
                error=str(exc),
            )
            return
        self._store(response)

    def _is_allowed(self, url: str) -> bool:
        try:
            return bool(self._allowed_hosts.includes(url))
        except Exception:  # noqa: BLE001
            self._log.exception(
                "allowed_hosts_check_failed", url=redact_url_credentials(url)
            )
            return False

    def _build_allowed_hosts(
        self, allowed_hosts: Sequence[AllowedHost] | HostMatcher | None
    ) -> HostMatcher:
        if isinstance(allowed_hosts, HostMatcher):
            return allowed_hosts
        if allowed_hosts is not None and not isinstance(
            allowed_hosts, (list, tuple, set, frozenset)
        ):
            msg = (
                "allowed_hosts must be a list of origins/patterns "
                "or an object with an includes(url) method"
            )
            raise ConfigurationError(msg)
        return AllowedHosts(
            list(allowed_hosts) if allowed_hosts is not None else None,
            base_url=self._config.base_url,
            sink=self.logger,
        )

    @staticmethod
    def _build_cache(
        cache: "bool | CacheStore | None", clock: Clock | None
    ) -> CacheStore | None:
        if cache is True:
            return MemoryCache(clock)
        if cache is False or cache is None:
            return None
        getter = getattr(cache, "get", None)
        setter = getattr(cache, "set", None)
        if callable(getter) and callable(setter):
            return cache
        msg = "cache must be True, False or an object with get and set methods"
        raise ConfigurationError(msg)

    @staticmethod
    def _validate_hook(on_error: ErrorHook | None) -> ErrorHook | None:
        if on_error is None:
            return None
        if not callable(on_error):
            msg = "on_error must be callable"
            raise ConfigurationError(msg)
        if inspect.iscoroutinefunction(on_error):
            msg = "on_error must return its replacement synchronously"
            raise ConfigurationError(msg)
        return on_error
