"""Time sources for cache expiry."""

import time
from typing import Protocol


class Clock(Protocol):
    """Anything that can tell the current time in epoch milliseconds."""

    def now_ms(self) -> int:
        """Return the current time in epoch milliseconds."""
        ...


class SystemClock:
    """Wall clock."""

    def now_ms(self) -> int:
        return time.time_ns() // 1_000_000
