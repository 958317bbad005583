"""Cooperative cancellation token.

Long-running attempt loops never interrupt an in-flight remote call.  They
check a :class:`CancellationToken` at each decision point — before an attempt
and before a pause — and their pauses wake early when the token fires, so a
stop request takes effect within one remote call's latency.
"""

from __future__ import annotations

import asyncio


class CancellationToken:
    """One-shot cancellation signal passed down the call chain.

    Example::

        token = CancellationToken()
        ...
        if token.cancelled:
            return
        if await token.sleep(delay):
            return  # cancelled while waiting
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        """Signal cancellation.  Idempotent; the first reason is kept."""
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    async def sleep(self, seconds: float) -> bool:
        """Wait up to *seconds*; return ``True`` if cancelled before or during the wait."""
        if self._event.is_set():
            return True
        if seconds <= 0:
            await asyncio.sleep(0)
            return self._event.is_set()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except TimeoutError:
            return False
        return True

    async def wait(self) -> None:
        await self._event.wait()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"


__all__ = ["CancellationToken"]
