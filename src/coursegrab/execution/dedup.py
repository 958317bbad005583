"""Request deduplicator — coalesce concurrent identical remote calls.

When several tasks fire the same request at the same moment (two batches
targeting one section, a selector overlapping a batch), only the first call
goes out.  Every concurrent caller with the same key awaits that one
``asyncio.Task`` and observes the identical result or exception.

The in-flight entry is dropped as soon as the shared call completes, whether
it succeeded, failed or was cancelled, so the next caller issues a fresh
request.  Waiters are shielded: cancelling one waiter never cancels the
shared call other waiters depend on.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

from coursegrab.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class RequestDeduplicator:
    """Share one in-flight call per key among concurrent callers.

    Example:
        >>> dedup = RequestDeduplicator()
        >>> key = RequestDeduplicator.make_key("attempt", {"class_id": "A1"})
        >>> result = await dedup.dedupe(key, lambda: adapter.attempt(target))
    """

    def __init__(self) -> None:
        self._in_flight: dict[str, asyncio.Task[Any]] = {}

    @staticmethod
    def make_key(endpoint: str, params: Mapping[str, Any] | None = None) -> str:
        """Canonical key: ``endpoint:`` followed by sorted-key JSON of *params*."""
        payload = json.dumps(dict(params or {}), sort_keys=True, ensure_ascii=False, default=str)
        return f"{endpoint}:{payload}"

    async def dedupe(self, key: str, operation: Callable[[], Awaitable[T]]) -> T:
        """Run *operation* unless a call with *key* is already in flight.

        Args:
            key: Equivalence key; equal keys share one call
            operation: Zero-argument callable returning an awaitable

        Returns:
            The shared call's result (its exception is re-raised to every waiter)
        """
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(operation())
            self._in_flight[key] = task
            task.add_done_callback(lambda t, k=key: self._release(k, t))
        else:
            logger.debug("dedup.joined", key=key)
        return await asyncio.shield(task)

    def _release(self, key: str, task: asyncio.Task[Any]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        # Mark the exception retrieved when every waiter has gone away.
        if not task.cancelled():
            task.exception()

    @property
    def pending_count(self) -> int:
        return len(self._in_flight)

    def in_flight(self, key: str) -> bool:
        return key in self._in_flight

    def clear(self) -> None:
        """Forget every in-flight entry.

        Running calls are not cancelled; callers already waiting still get
        their result, but new callers will issue a fresh request.
        """
        self._in_flight.clear()


__all__ = ["RequestDeduplicator"]
