"""Persistent selector — keep trying an ordered target list until it works.

One selector runs one long job: it walks an ordered list of acceptable
targets (first choice, then fallbacks), makes one attempt at a time, and
pauses a fixed ``interval`` after every failure.  All targets share a single
``max_attempts`` budget.

State machine::

    IDLE ──start──► RUNNING ──first success────────► SUCCEEDED
                       │    ──targets/budget spent──► EXHAUSTED
                       └────stop()──────────────────► STOPPED
    SUCCEEDED | EXHAUSTED | STOPPED ──reset()──► IDLE

Target fallback: a failure the backoff table would not retry for this target
(``delay_for`` returns ``inf`` for its per-target attempt count) moves the
loop to the next target.  A full section (``RESOURCE_EXHAUSTED``) is retried
on the same target until the shared budget runs out.

``start`` while RUNNING raises :class:`AlreadyRunningError` and leaves the
run untouched.  ``start`` from a terminal phase resets first.  ``stop`` is
idempotent; the STOPPED phase is visible immediately, and the loop exits at
its next checkpoint without interrupting an in-flight remote call.

Selectors are owned by a :class:`SelectorRegistry` rather than a module
global, so independent selectors can coexist (one per user, one per test).
"""

from __future__ import annotations

import asyncio
import math
import threading
from collections.abc import Callable, Sequence
from dataclasses import replace
from types import MappingProxyType
from typing import Any

from coursegrab.core.errors import AlreadyRunningError, TaskNotFoundError, ValidationError
from coursegrab.core.logging import LogContext, get_logger
from coursegrab.execution.adapter import RemoteAdapter, describe_target
from coursegrab.execution.attempts import SleepFn, pause, run_attempt
from coursegrab.execution.cancellation import CancellationToken
from coursegrab.execution.classifier import ErrorClassifier, describe
from coursegrab.execution.models import (
    AttemptOutcome,
    AttemptTarget,
    SelectorPhase,
    SelectorStatus,
    utcnow,
    validate_selector_transition,
)
from coursegrab.execution.retry import BackoffPolicyTable, get_default_table
from coursegrab.execution.task_manager import BoundedTaskManager, TaskHandle

logger = get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 100
DEFAULT_INTERVAL = 1.0

StatusCallback = Callable[[SelectorStatus], None]


class PersistentSelector:
    """Cancellable "keep trying until it works" job over a target list.

    Parameters
    ----------
    adapter : RemoteAdapter
        Performs the remote calls.
    name : str
        Identity used in logs and by the registry.
    max_attempts, interval
        Defaults for :meth:`start`.
    table : BackoffPolicyTable, optional
        Decides when to fall back to the next target.
    task_manager : BoundedTaskManager, optional
        When given, each run is a managed task and occupies one slot.
    sleep : callable, optional
        Replacement for the pause between attempts.
    """

    def __init__(
        self,
        adapter: RemoteAdapter,
        *,
        name: str = "default",
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        interval: float = DEFAULT_INTERVAL,
        classifier: ErrorClassifier | None = None,
        table: BackoffPolicyTable | None = None,
        task_manager: BoundedTaskManager | None = None,
        sleep: SleepFn | None = None,
    ) -> None:
        self._adapter = adapter
        self._name = name
        self._default_max_attempts = max_attempts
        self._default_interval = interval
        self._classifier = classifier
        self._table = table or get_default_table()
        self._task_manager = task_manager
        self._sleep = sleep

        self._lock = threading.RLock()
        self._status = SelectorStatus(name=name)
        self._token: CancellationToken | None = None
        self._settled: asyncio.Event | None = None
        self._runner: asyncio.Task[None] | None = None
        self._observers: list[StatusCallback] = []

    @property
    def name(self) -> str:
        return self._name

    def get_status(self) -> SelectorStatus:
        """Current snapshot; never blocks, never fails."""
        return self._status

    @property
    def running(self) -> bool:
        return self._status.phase is SelectorPhase.RUNNING

    # ── Observers ────────────────────────────────────────────────────

    def on_status(self, callback: StatusCallback) -> Callable[[], None]:
        """Register *callback* for every published snapshot.

        Returns:
            A function that unregisters the callback.
        """
        with self._lock:
            self._observers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._observers:
                    self._observers.remove(callback)

        return unsubscribe

    def _publish(self, status: SelectorStatus) -> None:
        with self._lock:
            observers = list(self._observers)
        for callback in observers:
            try:
                callback(status)
            except Exception:
                logger.exception("selector.observer_failed", selector=self._name)

    # ── Lifecycle ────────────────────────────────────────────────────

    def _transition(self, phase: SelectorPhase, **changes: Any) -> SelectorStatus:
        validate_selector_transition(self._status.phase, phase)
        if phase.is_terminal:
            changes.setdefault("finished_at", utcnow())
        self._status = replace(self._status, phase=phase, **changes)
        return self._status

    def start(
        self,
        targets: Sequence[AttemptTarget],
        max_attempts: int | None = None,
        interval: float | None = None,
    ) -> SelectorStatus:
        """Begin a run over *targets*.

        Must be called from within a running event loop.

        Raises:
            ValidationError: Empty targets, non-positive budget or interval
            AlreadyRunningError: A run is in progress
        """
        targets = tuple(targets)
        max_attempts = self._default_max_attempts if max_attempts is None else max_attempts
        interval = self._default_interval if interval is None else interval
        if not targets:
            raise ValidationError("target list must not be empty", field="targets")
        if isinstance(max_attempts, bool) or not isinstance(max_attempts, int) or max_attempts < 1:
            raise ValidationError("max_attempts must be a positive integer", field="max_attempts", value=max_attempts)
        if interval <= 0:
            raise ValidationError("interval must be positive", field="interval", value=interval)

        with self._lock:
            if self._status.phase is SelectorPhase.RUNNING:
                raise AlreadyRunningError(self._name)
            if self._status.phase.is_terminal:
                self._reset_locked()

            token = CancellationToken()
            self._token = token
            settled = self._settled = asyncio.Event()
            status = self._transition(
                SelectorPhase.RUNNING,
                targets=targets,
                current_index=0,
                max_attempts=max_attempts,
                interval=interval,
                started_at=utcnow(),
                message=f"trying {targets[0].display_name}",
            )

            if self._task_manager is not None:
                task_id = self._task_manager.submit(
                    lambda handle: self._guarded(token, settled, handle), name=f"selector:{self._name}"
                )
                status = self._status = replace(status, task_id=task_id)
                self._runner = asyncio.get_running_loop().create_task(self._watch(task_id, token, settled))
            else:
                self._runner = asyncio.get_running_loop().create_task(self._guarded(token, settled, None))

        logger.info(
            "selector.started",
            selector=self._name,
            targets=[describe_target(t) for t in targets],
            max_attempts=max_attempts,
            interval=interval,
        )
        self._publish(status)
        return status

    def stop(self) -> bool:
        """Request a stop.  Idempotent.

        Returns:
            ``True`` if a running job was stopped, ``False`` if there was
            nothing to stop.
        """
        with self._lock:
            if self._status.phase is not SelectorPhase.RUNNING:
                return False
            assert self._token is not None
            self._token.cancel("stopped")
            status = self._transition(SelectorPhase.STOPPED, message="stopped by request")
            task_id = status.task_id

        if task_id is not None and self._task_manager is not None:
            try:
                self._task_manager.cancel(task_id, reason="selector stopped")
            except TaskNotFoundError:
                pass
        logger.info("selector.stopped", selector=self._name, attempts=status.attempt_count)
        self._publish(status)
        return True

    def reset(self) -> SelectorStatus:
        """Return a finished selector to IDLE, clearing results and history.

        Raises:
            AlreadyRunningError: The selector is running
        """
        with self._lock:
            if self._status.phase is SelectorPhase.RUNNING:
                raise AlreadyRunningError(self._name, f"Selector {self._name!r} is running; stop it first")
            if self._status.phase is SelectorPhase.IDLE:
                return self._status
            status = self._reset_locked()
        self._publish(status)
        return status

    def _reset_locked(self) -> SelectorStatus:
        validate_selector_transition(self._status.phase, SelectorPhase.IDLE)
        self._status = SelectorStatus(name=self._name)
        self._token = None
        return self._status

    async def wait(self, timeout: float | None = None) -> SelectorStatus:
        """Wait until the current run's loop has exited."""
        settled = self._settled
        if settled is not None:
            if timeout is None:
                await settled.wait()
            else:
                await asyncio.wait_for(settled.wait(), timeout)
        return self._status

    # ── Run loop ─────────────────────────────────────────────────────

    def _finish(self, token: CancellationToken, phase: SelectorPhase, message: str) -> SelectorStatus | None:
        """Move the run owned by *token* to a terminal phase, if it still is RUNNING."""
        with self._lock:
            if self._token is not token or self._status.phase is not SelectorPhase.RUNNING:
                return None
            return self._transition(phase, message=message)

    async def _watch(self, task_id: str, token: CancellationToken, settled: asyncio.Event) -> None:
        # Covers a managed run cancelled while still queued.
        assert self._task_manager is not None
        await self._task_manager.wait(task_id)
        status = self._finish(token, SelectorPhase.STOPPED, "task cancelled")
        if status is not None:
            self._publish(status)
        settled.set()

    async def _guarded(
        self, token: CancellationToken, settled: asyncio.Event, handle: TaskHandle | None
    ) -> AttemptOutcome | None:
        try:
            async with LogContext(selector=self._name):
                return await self._run(token, handle)
        except Exception as exc:
            logger.exception("selector.crashed", selector=self._name)
            status = self._finish(token, SelectorPhase.STOPPED, f"error: {describe(exc)}")
            if status is not None:
                self._publish(status)
            return None
        finally:
            settled.set()

    def _cancelled(self, token: CancellationToken, handle: TaskHandle | None) -> bool:
        return token.cancelled or (handle is not None and handle.cancelled)

    async def _run(self, token: CancellationToken, handle: TaskHandle | None) -> AttemptOutcome | None:
        snapshot = self._status
        targets = snapshot.targets
        max_attempts = snapshot.max_attempts
        interval = snapshot.interval
        index = 0
        tries_on_target = 0
        last: AttemptOutcome | None = None

        while True:
            if self._cancelled(token, handle):
                status = self._finish(token, SelectorPhase.STOPPED, "stopped by request")
                if status is not None:
                    self._publish(status)
                return last

            target = targets[index]
            tries_on_target += 1
            last = await run_attempt(self._adapter, target, self._status.attempt_count + 1, self._classifier)
            if handle is not None:
                handle.record_attempt(last)

            with self._lock:
                if self._token is not token:
                    # Reset and restarted while this call was in flight.
                    return last
                status = self._status
                status = self._status = replace(
                    status,
                    attempt_count=status.attempt_count + 1,
                    results=MappingProxyType({**status.results, target.target_id: last}),
                    history=status.history + (last,),
                )
                running = status.phase is SelectorPhase.RUNNING
                done = False

                if last.succeeded:
                    if running:
                        status = self._transition(
                            SelectorPhase.SUCCEEDED, message=f"reserved {target.display_name}"
                        )
                    done = True
                elif not running:
                    done = True
                else:
                    assert last.kind is not None
                    if math.isinf(self._table.delay_for(last.kind, tries_on_target)):
                        index += 1
                        tries_on_target = 0
                    if index >= len(targets):
                        status = self._transition(
                            SelectorPhase.EXHAUSTED,
                            message=f"no target left to try; last error: {last.message}",
                        )
                        done = True
                    elif status.attempt_count >= max_attempts:
                        status = self._transition(
                            SelectorPhase.EXHAUSTED,
                            message=f"{max_attempts} attempts used; last error: {last.message}",
                        )
                        done = True
                    else:
                        status = self._status = replace(
                            status,
                            current_index=index,
                            message=f"attempt {status.attempt_count} failed ({last.kind.value}); "
                            f"next: {targets[index].display_name}",
                        )

            if last.succeeded and not running:
                logger.warning(
                    "selector.late_success", selector=self._name, target_id=target.target_id,
                )
            elif done:
                logger.info(
                    "selector.finished",
                    selector=self._name,
                    phase=status.phase.value,
                    attempts=status.attempt_count,
                )
            self._publish(status)
            if done:
                return last

            await pause(interval, token, self._sleep)


class SelectorRegistry:
    """Named selectors sharing one adapter and one set of defaults."""

    def __init__(self, adapter: RemoteAdapter, **selector_defaults: Any) -> None:
        self._adapter = adapter
        self._defaults = selector_defaults
        self._selectors: dict[str, PersistentSelector] = {}
        self._lock = threading.RLock()

    def get(self, name: str) -> PersistentSelector | None:
        with self._lock:
            return self._selectors.get(name)

    def get_or_create(self, name: str = "default") -> PersistentSelector:
        with self._lock:
            selector = self._selectors.get(name)
            if selector is None:
                selector = PersistentSelector(self._adapter, name=name, **self._defaults)
                self._selectors[name] = selector
            return selector

    def list_all(self) -> list[str]:
        with self._lock:
            return sorted(self._selectors)

    def remove(self, name: str) -> bool:
        """Stop and forget a selector."""
        with self._lock:
            selector = self._selectors.pop(name, None)
        if selector is None:
            return False
        selector.stop()
        return True

    def stop_all(self) -> int:
        with self._lock:
            selectors = list(self._selectors.values())
        return sum(1 for s in selectors if s.stop())


__all__ = [
    "DEFAULT_MAX_ATTEMPTS",
    "DEFAULT_INTERVAL",
    "PersistentSelector",
    "SelectorRegistry",
    "StatusCallback",
]
