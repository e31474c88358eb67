"""Sharing of concurrent identical upstream requests."""

import asyncio
from collections.abc import Awaitable, Callable, Hashable
from typing import Generic, TypeVar


T = TypeVar("T")


class InFlightRequests(Generic[T]):
    """Registry of requests that are currently running.

    Callers asking for a key that is already in flight await the same future
    instead of starting a new request. The entry is dropped as soon as the
    future settles, whatever the outcome, so a failure is never remembered
    and the next call starts fresh.
    """

    def __init__(self) -> None:
        self._pending: dict[Hashable, asyncio.Future[T]] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._pending

    async def run(
        self,
        key: Hashable,
        factory: Callable[[], Awaitable[T]],
        on_shared: Callable[[], None] | None = None,
    ) -> T:
        """Run ``factory`` once per key among concurrent callers.

        Args:
            key: Request identity.
            factory: Zero-argument callable producing the request coroutine.
            on_shared: Called when this caller joins an existing request.

        Returns:
            The shared result.

        Raises:
            Whatever the shared request raised.
        """
        future = self._pending.get(key)
        if future is None:
            future = asyncio.ensure_future(factory())
            self._pending[key] = future
            future.add_done_callback(lambda done: self._release(key, done))
        elif on_shared is not None:
            on_shared()

        # A cancelled waiter must not cancel the request other callers share
        return await asyncio.shield(future)

    def _release(self, key: Hashable, done: "asyncio.Future[T]") -> None:
        if self._pending.get(key) is done:
            del self._pending[key]
        if not done.cancelled():
            # Mark the outcome as observed even if every waiter went away
            done.exception()
