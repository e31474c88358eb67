"""Cache-Control header interpretation for fragment caching."""

import re


_MAX_AGE = re.compile(r"""(?:^|[\s,])max-age\s*=\s*["']?(\d+)["']?""", re.IGNORECASE)
_NO_CACHE = re.compile(r"(?:^|[\s,])no-(?:cache|store)(?=$|[\s,=])", re.IGNORECASE)

MILLIS_PER_SECOND = 1000


def get_cache_time(cache_control: str | None) -> int:
    """Map a Cache-Control header value to a time-to-live.

    ``no-cache`` and ``no-store`` win over ``max-age``; anything without a
    usable ``max-age`` is treated as immediately stale.

    Args:
        cache_control: Raw header value, or None when the header is absent.

    Returns:
        TTL in milliseconds.

    Examples:
        >>> get_cache_time("public, max-age=10")
        10000
        >>> get_cache_time("no-cache")
        0
    """
    if not cache_control or _NO_CACHE.search(cache_control):
        return 0

    match = _MAX_AGE.search(cache_control)
    if match is None:
        return 0

    return int(match.group(1)) * MILLIS_PER_SECOND
