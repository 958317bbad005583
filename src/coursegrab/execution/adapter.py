"""Remote adapter boundary.

The engine never talks to the reservation system directly.  It calls a
:class:`RemoteAdapter` — an external collaborator that builds the real
request, sends it, and reduces the response to ``(succeeded, raw_message)``.
Adapters perform exactly one call per ``attempt`` and no retries of their own;
retry and backoff belong to the engine.

Adapters may also raise.  The attempt loop classifies the exception message
just like a failure message, so ``raise TimeoutError()`` and returning
``AdapterResult(False, "timeout")`` are handled the same way.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from coursegrab.execution.dedup import RequestDeduplicator
from coursegrab.execution.models import AttemptTarget


@dataclass(frozen=True)
class AdapterResult:
    """What the remote system said about one attempt."""

    succeeded: bool
    raw_message: str = ""


@runtime_checkable
class RemoteAdapter(Protocol):
    """One blocking (awaitable) reservation call with no retry logic."""

    async def attempt(self, target: AttemptTarget) -> AdapterResult: ...


class CallableAdapter:
    """Adapt a plain coroutine function ``(target) -> AdapterResult``.

    Functions returning a ``(succeeded, message)`` tuple or a bare ``bool``
    are accepted too.
    """

    def __init__(self, func: Callable[[AttemptTarget], Awaitable[Any]]) -> None:
        self._func = func

    async def attempt(self, target: AttemptTarget) -> AdapterResult:
        return coerce_result(await self._func(target))


def coerce_result(value: Any) -> AdapterResult:
    """Normalise an adapter's return value into an :class:`AdapterResult`."""
    if isinstance(value, AdapterResult):
        return value
    if isinstance(value, bool):
        return AdapterResult(value, "ok" if value else "failed")
    if isinstance(value, tuple) and len(value) == 2:
        return AdapterResult(bool(value[0]), str(value[1]))
    raise TypeError(f"Adapter returned unsupported value: {value!r}")


class DedupingAdapter:
    """Route attempts through a :class:`RequestDeduplicator`.

    Concurrent attempts on the same target with the same parameters share one
    remote call and observe the identical result.

    Args:
        inner: The adapter doing the real work
        deduplicator: Shared deduplicator (a private one is created if omitted)
        endpoint: Prefix for the deduplication key
    """

    def __init__(
        self,
        inner: RemoteAdapter,
        deduplicator: RequestDeduplicator | None = None,
        endpoint: str = "attempt",
    ) -> None:
        self._inner = inner
        self._dedup = deduplicator or RequestDeduplicator()
        self._endpoint = endpoint

    @property
    def deduplicator(self) -> RequestDeduplicator:
        return self._dedup

    def key_for(self, target: AttemptTarget) -> str:
        params = {"target_id": target.target_id, **dict(target.params)}
        return RequestDeduplicator.make_key(self._endpoint, params)

    async def attempt(self, target: AttemptTarget) -> AdapterResult:
        return await self._dedup.dedupe(self.key_for(target), lambda: self._inner.attempt(target))


def describe_target(target: AttemptTarget) -> str:
    """Compact JSON rendering used in log lines."""
    return json.dumps({"id": target.target_id, "label": target.label}, ensure_ascii=False)


__all__ = [
    "AdapterResult",
    "RemoteAdapter",
    "CallableAdapter",
    "coerce_result",
    "DedupingAdapter",
    "describe_target",
]
