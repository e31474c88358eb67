"""Origin allow-list for include targets."""

import re
from collections.abc import Sequence
from typing import Protocol, runtime_checkable
from urllib.parse import urlsplit

import structlog

from esi_processor.errors import ConfigurationError
from esi_processor.observability.sink import LogSink


logger = structlog.get_logger()

INSECURE_DEFAULT_WARNING = (
    "ESI warning: No allowed_hosts and base_url specified. "
    "In some cases this may impair your security: every include target "
    "will be fetched, whatever its origin."
)

AllowedHost = str | re.Pattern[str]


@runtime_checkable
class HostMatcher(Protocol):
    """Custom security predicate over absolute URLs."""

    def includes(self, url: str) -> bool:
        """Return True if the URL may be fetched."""
        ...


def to_origin(url: str) -> str:
    """Reduce a URL to ``scheme://host[:port]``.

    Path, query, fragment and credentials are dropped; scheme and host are
    lower-cased. Values without a scheme or host reduce to ``""``.

    Args:
        url: Absolute URL.

    Returns:
        The origin, or an empty string when the URL has none.
    """
    try:
        parts = urlsplit(url.strip())
        port = parts.port
    except ValueError:
        return ""
    if not parts.scheme or not parts.hostname:
        return ""

    host = parts.hostname
    if ":" in host:
        host = f"[{host}]"
    origin = f"{parts.scheme.lower()}://{host}"
    if port is not None:
        origin = f"{origin}:{port}"
    return origin


class AllowedHosts:
    """Decides whether an include URL may be fetched.

    - Neither a list nor a base URL: everything is allowed and a warning is
      written to the log sink once.
    - Otherwise the URL's origin must equal a configured origin string, or a
      configured regular expression must find a match in it. The base URL's
      origin is always allowed.
    """

    def __init__(
        self,
        allowed_hosts: Sequence[AllowedHost] | None = None,
        base_url: str | None = None,
        sink: LogSink | None = None,
    ) -> None:
        """Initialize the allow-list.

        Args:
            allowed_hosts: Origin strings and/or compiled patterns.
            base_url: Base URL whose origin is implicitly allowed.
            sink: Destination for the insecure-default warning.

        Raises:
            ConfigurationError: If an entry is neither a string nor a pattern.
        """
        self._log = logger.bind(component="allowed_hosts")
        self._allow_all = allowed_hosts is None and not base_url

        if self._allow_all:
            (sink or LogSink()).write(INSECURE_DEFAULT_WARNING)
            self._log.warning("allowed_hosts_not_configured")
            self._origins: frozenset[str] = frozenset()
            self._patterns: tuple[re.Pattern[str], ...] = ()
            return

        if isinstance(allowed_hosts, str):
            msg = "allowed_hosts must be a sequence of origins, not a single string"
            raise ConfigurationError(msg)

        origins: set[str] = set()
        patterns: list[re.Pattern[str]] = []
        for entry in allowed_hosts or ():
            if isinstance(entry, re.Pattern):
                patterns.append(entry)
            elif isinstance(entry, str):
                origins.add(to_origin(entry) or entry)
            else:
                msg = f"Unsupported allowed_hosts entry: {entry!r}"
                raise ConfigurationError(msg)

        if base_url:
            base_origin = to_origin(base_url)
            if base_origin:
                origins.add(base_origin)

        self._origins = frozenset(origins)
        self._patterns = tuple(patterns)

    @property
    def allows_everything(self) -> bool:
        return self._allow_all

    def includes(self, url: str) -> bool:
        """Check an absolute URL against the allow-list.

        Args:
            url: Fully qualified include URL.

        Returns:
            True if the URL's origin is allowed.
        """
        if self._allow_all:
            return True

        origin = to_origin(url)
        if not origin:
            return False
        if origin in self._origins:
            return True
        return any(pattern.search(origin) for pattern in self._patterns)
