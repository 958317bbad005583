"""Bounded task manager — admission-controlled slots with live status.

Every long-running unit of work (a whole batch, a persistent selector run)
is submitted here.  At most ``max_concurrency`` tasks run at once; the rest
wait in a FIFO queue and start in submission order as slots free up.

ARCHITECTURE
────────────
::

    BoundedTaskManager
      ├── submit(work, name)        ─ QUEUED, then RUNNING when a slot frees
      ├── status(task_id)           ─ lock-free snapshot read
      ├── cancel(task_id)           ─ QUEUED → STOPPED, or signal RUNNING work
      ├── set_max_concurrency(n)    ─ runtime resize (admits queued work)
      ├── stats()                   ─ active / queued / max + per-state totals
      ├── wait(task_id)             ─ await a terminal state
      ├── cleanup_finished(keep)    ─ drop old terminal records
      └── shutdown()                ─ cancel everything and wait

Work is an async callable receiving a :class:`TaskHandle`.  The handle
carries the task's :class:`CancellationToken` and a ``record_attempt`` hook
that keeps ``attempt_count``/``last_outcome`` current while the work runs.

Mutations (submit, admission, cancel, resize, completion) are serialised by
one ``threading.RLock``.  Each task's :class:`TaskStatus` is a frozen
snapshot replaced wholesale, so ``status()`` never takes the lock.

Example::

    manager = BoundedTaskManager(max_concurrency=2)

    async def work(handle):
        return await attempt_with_backoff(adapter, target, cancel_token=handle.token)

    task_id = manager.submit(work, name="grab CS101")
    status = await manager.wait(task_id)
"""

from __future__ import annotations

import asyncio
import threading
import uuid
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from typing import Any

from coursegrab.core.errors import TaskNotFoundError, ValidationError
from coursegrab.core.logging import get_logger
from coursegrab.execution.cancellation import CancellationToken
from coursegrab.execution.classifier import describe, get_default_classifier
from coursegrab.execution.models import AttemptOutcome, TaskState, TaskStatus

logger = get_logger(__name__)

DEFAULT_MAX_CONCURRENCY = 5
DEFAULT_RETENTION = 100

WorkFn = Callable[["TaskHandle"], Awaitable[Any]]


def _check_concurrency(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationError(
            "max_concurrency must be a positive integer",
            field="max_concurrency",
            value=value,
        )
    return value


def _task_succeeded(result: Any) -> bool:
    """Decide SUCCEEDED vs FAILED from what the work returned.

    ``bool`` results count as-is; objects exposing a boolean ``ok`` or
    ``succeeded`` attribute (``BatchResult``, ``AttemptOutcome``) use it;
    anything else is a success.
    """
    if isinstance(result, bool):
        return result
    for attr in ("ok", "succeeded"):
        flag = getattr(result, attr, None)
        if isinstance(flag, bool):
            return flag
    return True


class TaskHandle:
    """What running work sees of its own task."""

    def __init__(self, task_id: str, token: CancellationToken, manager: BoundedTaskManager) -> None:
        self.task_id = task_id
        self.token = token
        self._manager = manager

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def record_attempt(self, outcome: AttemptOutcome) -> None:
        self._manager._record_attempt(self.task_id, outcome)


@dataclass
class _TaskRecord:
    status: TaskStatus
    work: WorkFn | None
    token: CancellationToken = field(default_factory=CancellationToken)
    finished: asyncio.Event = field(default_factory=asyncio.Event)
    runner: asyncio.Task[None] | None = None
    result: Any = None


@dataclass(frozen=True)
class TaskManagerStats:
    """Counts at one instant."""

    active: int
    queued: int
    max_concurrency: int
    succeeded: int = 0
    failed: int = 0
    stopped: int = 0

    @property
    def total(self) -> int:
        return self.active + self.queued + self.succeeded + self.failed + self.stopped

    def to_dict(self) -> dict[str, int]:
        return {
            "active": self.active,
            "queued": self.queued,
            "max_concurrency": self.max_concurrency,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "stopped": self.stopped,
            "total": self.total,
        }


class BoundedTaskManager:
    """Run submitted work with at most ``max_concurrency`` tasks at a time.

    Must be used from within a running event loop: ``submit`` may start work
    immediately.

    Parameters
    ----------
    max_concurrency : int
        Execution slots (default 5).
    retention : int
        Terminal task records kept for polling (default 100).
    """

    def __init__(
        self,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        retention: int = DEFAULT_RETENTION,
    ) -> None:
        self._max_concurrency = _check_concurrency(max_concurrency)
        self._retention = retention
        self._records: dict[str, _TaskRecord] = {}
        self._queue: deque[str] = deque()
        self._active = 0
        self._lock = threading.RLock()

    @classmethod
    def from_settings(cls, settings: Any) -> BoundedTaskManager:
        return cls(max_concurrency=settings.max_concurrency, retention=settings.task_retention)

    # ── Configuration ────────────────────────────────────────────────

    @property
    def max_concurrency(self) -> int:
        return self._max_concurrency

    def set_max_concurrency(self, value: int) -> None:
        """Resize the pool.

        Growing admits queued work immediately.  Shrinking never preempts
        running tasks; they finish and the pool drains to the new size.
        """
        value = _check_concurrency(value)
        with self._lock:
            previous = self._max_concurrency
            self._max_concurrency = value
        logger.info("task_manager.resized", previous=previous, max_concurrency=value)
        self._pump()

    # ── Submission ───────────────────────────────────────────────────

    def submit(self, work: WorkFn, name: str | None = None) -> str:
        """Queue *work* and start it if a slot is free.

        Returns:
            The new task id.
        """
        task_id = str(uuid.uuid4())
        record = _TaskRecord(status=TaskStatus(task_id=task_id, name=name or task_id[:8]), work=work)
        with self._lock:
            self._records[task_id] = record
            self._queue.append(task_id)
        logger.debug("task.submitted", task_id=task_id, name=record.status.name)
        self._pump()
        return task_id

    def _pump(self) -> None:
        """Admit queued tasks, oldest first, while slots are free."""
        with self._lock:
            while self._queue and self._active < self._max_concurrency:
                task_id = self._queue.popleft()
                record = self._records.get(task_id)
                if record is None or record.status.state is not TaskState.QUEUED:
                    continue
                record.status = record.status.transition(TaskState.RUNNING)
                self._active += 1
                record.runner = asyncio.get_running_loop().create_task(
                    self._run(task_id, record), name=f"coursegrab-task-{task_id[:8]}"
                )
                logger.info("task.started", task_id=task_id, name=record.status.name)

    async def _run(self, task_id: str, record: _TaskRecord) -> None:
        assert record.work is not None
        handle = TaskHandle(task_id, record.token, self)
        try:
            result = await record.work(handle)
        except asyncio.CancelledError:
            self._finish(task_id, record, TaskState.STOPPED)
            raise
        except Exception as exc:
            outcome = AttemptOutcome.failure(
                describe(exc),
                record.status.attempt_count,
                get_default_classifier().classify(exc),
            )
            logger.warning("task.failed", task_id=task_id, error=outcome.message, kind=outcome.kind.value)
            self._finish(task_id, record, TaskState.FAILED, outcome=outcome)
            return

        if record.token.cancelled:
            final = TaskState.STOPPED
        else:
            final = TaskState.SUCCEEDED if _task_succeeded(result) else TaskState.FAILED
        outcome = result if isinstance(result, AttemptOutcome) else None
        self._finish(task_id, record, final, outcome=outcome, result=result)

    def _finish(
        self,
        task_id: str,
        record: _TaskRecord,
        final: TaskState,
        *,
        outcome: AttemptOutcome | None = None,
        result: Any = None,
    ) -> None:
        with self._lock:
            status = record.status
            if outcome is not None and outcome is not status.last_outcome:
                status = replace(status, last_outcome=outcome)
            record.status = status.transition(final)
            record.result = result
            record.work = None
            self._active -= 1
        record.finished.set()
        logger.info(
            "task.finished",
            task_id=task_id,
            state=final.value,
            attempts=record.status.attempt_count,
            duration_seconds=record.status.duration_seconds,
        )
        self.cleanup_finished(self._retention)
        self._pump()

    def _record_attempt(self, task_id: str, outcome: AttemptOutcome) -> None:
        with self._lock:
            record = self._records.get(task_id)
            if record is not None and not record.status.is_terminal:
                record.status = record.status.with_attempt(outcome)

    # ── Queries ──────────────────────────────────────────────────────

    def status(self, task_id: str) -> TaskStatus:
        """Snapshot of one task.

        Raises:
            TaskNotFoundError: Unknown (or already cleaned up) task id
        """
        record = self._records.get(task_id)
        if record is None:
            raise TaskNotFoundError(task_id)
        return record.status

    def result(self, task_id: str) -> Any:
        """Value the work returned, once the task has finished."""
        record = self._records.get(task_id)
        if record is None:
            raise TaskNotFoundError(task_id)
        return record.result

    def list_tasks(self, state: TaskState | None = None) -> list[TaskStatus]:
        with self._lock:
            statuses = [r.status for r in self._records.values()]
        if state is not None:
            statuses = [s for s in statuses if s.state is state]
        return sorted(statuses, key=lambda s: s.created_at)

    def stats(self) -> TaskManagerStats:
        with self._lock:
            counts = {state: 0 for state in TaskState}
            for record in self._records.values():
                counts[record.status.state] += 1
            return TaskManagerStats(
                active=self._active,
                queued=counts[TaskState.QUEUED],
                max_concurrency=self._max_concurrency,
                succeeded=counts[TaskState.SUCCEEDED],
                failed=counts[TaskState.FAILED],
                stopped=counts[TaskState.STOPPED],
            )

    async def wait(self, task_id: str, timeout: float | None = None) -> TaskStatus:
        """Wait until *task_id* reaches a terminal state and return its snapshot."""
        record = self._records.get(task_id)
        if record is None:
            raise TaskNotFoundError(task_id)
        if timeout is None:
            await record.finished.wait()
        else:
            await asyncio.wait_for(record.finished.wait(), timeout)
        return record.status

    # ── Cancellation / housekeeping ──────────────────────────────────

    def cancel(self, task_id: str, reason: str | None = None) -> bool:
        """Stop a task.

        A QUEUED task becomes STOPPED without ever running.  A RUNNING task
        has its token set and stops at its next checkpoint.

        Returns:
            ``False`` if the task had already finished, else ``True``.

        Raises:
            TaskNotFoundError: Unknown task id
        """
        with self._lock:
            record = self._records.get(task_id)
            if record is None:
                raise TaskNotFoundError(task_id)
            state = record.status.state
            if state.is_terminal:
                return False
            record.token.cancel(reason or "cancelled")
            if state is TaskState.QUEUED:
                record.status = record.status.transition(TaskState.STOPPED)
                record.work = None
                record.finished.set()
        logger.info("task.cancelled", task_id=task_id, previous_state=state.value)
        return True

    def cleanup_finished(self, keep: int = DEFAULT_RETENTION) -> int:
        """Drop terminal records beyond the *keep* most recently finished.

        Returns:
            Number of records removed.
        """
        with self._lock:
            finished = sorted(
                (r for r in self._records.values() if r.status.is_terminal),
                key=lambda r: r.status.finished_at or r.status.created_at,
                reverse=True,
            )
            stale = finished[max(keep, 0):]
            for record in stale:
                del self._records[record.status.task_id]
        if stale:
            logger.debug("task_manager.cleanup", removed=len(stale), kept=keep)
        return len(stale)

    async def shutdown(self, timeout: float | None = None) -> None:
        """Cancel every unfinished task and wait for running ones to stop."""
        with self._lock:
            pending = [tid for tid, r in self._records.items() if not r.status.is_terminal]
        for task_id in pending:
            self.cancel(task_id, reason="shutdown")
        runners = [r.runner for r in list(self._records.values()) if r.runner and not r.runner.done()]
        if not runners:
            return
        done, still_running = await asyncio.wait(runners, timeout=timeout)
        for runner in still_running:
            runner.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
        logger.info("task_manager.shutdown", stopped=len(pending), forced=len(still_running))


__all__ = [
    "DEFAULT_MAX_CONCURRENCY",
    "BoundedTaskManager",
    "TaskHandle",
    "TaskManagerStats",
    "WorkFn",
]
