"""Batch orchestrator — chunked fan-out with inter-chunk pacing.

Drives an ordered list of targets through the shared attempt loop, a chunk
at a time.  Members of one chunk run concurrently with ``asyncio.gather``;
the next chunk starts only after every member has settled, and a fixed
pause separates chunks so the remote system is not hammered.

ARCHITECTURE
────────────
::

    BatchOrchestrator
      ├── .run_batch(targets, batch_size, inter_batch_delay)
      │      chunk 1 ──gather──► settle ─► pause ─► chunk 2 ─► ... ─► BatchResult
      └── .submit_batch(...)   ─ same, as a BoundedTaskManager task

    targets:  [t1 t2 | t3 t4 | t5]        batch_size=2
    pauses:          ^       ^            ⌈5/2⌉ - 1 = 2

``batch_size`` caps concurrency inside one call; it is independent of the
task manager's global ``max_concurrency``.  Output order is input order,
one :class:`AttemptOutcome` per target; a target exhausting its retries
never aborts its siblings.

Example::

    orchestrator = BatchOrchestrator(adapter)
    result = await orchestrator.run_batch(targets, batch_size=3, inter_batch_delay=0.5)
    print(result.succeeded, result.failed)
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from coursegrab.core.errors import ValidationError
from coursegrab.core.logging import LogContext, get_logger
from coursegrab.execution.adapter import RemoteAdapter
from coursegrab.execution.attempts import (
    AttemptHook,
    SleepFn,
    attempt_with_backoff,
    cancelled_outcome,
    pause,
)
from coursegrab.execution.cancellation import CancellationToken
from coursegrab.execution.classifier import ErrorClassifier
from coursegrab.execution.models import AttemptOutcome, AttemptTarget, utcnow
from coursegrab.execution.retry import BackoffPolicyTable
from coursegrab.execution.task_manager import BoundedTaskManager, TaskHandle

logger = get_logger(__name__)

DEFAULT_BATCH_SIZE = 3
DEFAULT_INTER_BATCH_DELAY = 0.5


@dataclass(frozen=True)
class BatchResult:
    """Aggregate result of one batch run, in input order."""

    batch_id: str
    targets: tuple[AttemptTarget, ...]
    outcomes: tuple[AttemptOutcome, ...]
    started_at: datetime
    completed_at: datetime
    cancelled: bool = False

    @property
    def succeeded(self) -> int:
        """Number of targets that were reserved."""
        return sum(1 for o in self.outcomes if o.succeeded)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.succeeded)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def ok(self) -> bool:
        """True when every target succeeded."""
        return not self.cancelled and self.failed == 0

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Serialise for logging / API responses."""
        return {
            "batch_id": self.batch_id,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "duration_seconds": self.duration_seconds,
            "outcomes": [
                {"label": t.display_name, **o.to_dict()}
                for t, o in zip(self.targets, self.outcomes)
            ],
        }


def _chunks(targets: Sequence[AttemptTarget], size: int) -> list[Sequence[AttemptTarget]]:
    return [targets[i:i + size] for i in range(0, len(targets), size)]


class BatchOrchestrator:
    """Run target lists chunk by chunk through the attempt loop.

    Parameters
    ----------
    adapter : RemoteAdapter
        Performs the remote calls.
    table : BackoffPolicyTable, optional
        Retry policies (default table).
    classifier : ErrorClassifier, optional
        Failure classifier (default rules).
    batch_size, inter_batch_delay, time_budget
        Defaults used when ``run_batch`` is not given explicit values.
    sleep : callable, optional
        Replacement for every pause (retry backoff and inter-chunk).
    task_manager : BoundedTaskManager, optional
        Required only for :meth:`submit_batch`.
    """

    def __init__(
        self,
        adapter: RemoteAdapter,
        *,
        table: BackoffPolicyTable | None = None,
        classifier: ErrorClassifier | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        inter_batch_delay: float = DEFAULT_INTER_BATCH_DELAY,
        time_budget: float | None = None,
        sleep: SleepFn | None = None,
        task_manager: BoundedTaskManager | None = None,
    ) -> None:
        self._adapter = adapter
        self._table = table
        self._classifier = classifier
        self._batch_size = batch_size
        self._inter_batch_delay = inter_batch_delay
        self._time_budget = time_budget
        self._sleep = sleep
        self._task_manager = task_manager

    @property
    def adapter(self) -> RemoteAdapter:
        return self._adapter

    async def run_batch(
        self,
        targets: Sequence[AttemptTarget],
        batch_size: int | None = None,
        inter_batch_delay: float | None = None,
        *,
        cancel_token: CancellationToken | None = None,
        time_budget: float | None = None,
        on_attempt: AttemptHook | None = None,
    ) -> BatchResult:
        """Attempt every target and return one outcome per target, in order.

        Args:
            targets: Ordered, non-empty target list
            batch_size: Targets attempted concurrently per chunk (>= 1)
            inter_batch_delay: Seconds to pause between chunks (>= 0)
            cancel_token: Stops the batch at the next checkpoint; targets
                never attempted get a ``"cancelled before attempt"`` outcome
            time_budget: Seconds after which no retry pause may start
            on_attempt: Called with every individual attempt outcome

        Raises:
            ValidationError: Empty targets, bad batch size or negative delay
        """
        targets = tuple(targets)
        batch_size = self._batch_size if batch_size is None else batch_size
        delay = self._inter_batch_delay if inter_batch_delay is None else inter_batch_delay
        budget = self._time_budget if time_budget is None else time_budget

        if not targets:
            raise ValidationError("target list must not be empty", field="targets")
        if isinstance(batch_size, bool) or not isinstance(batch_size, int) or batch_size < 1:
            raise ValidationError("batch_size must be a positive integer", field="batch_size", value=batch_size)
        if delay < 0:
            raise ValidationError("inter_batch_delay must not be negative", field="inter_batch_delay", value=delay)

        batch_id = str(uuid.uuid4())
        loop = asyncio.get_running_loop()
        deadline = loop.time() + budget if budget is not None else None
        started_at = utcnow()
        chunks = _chunks(targets, batch_size)
        outcomes: list[AttemptOutcome] = []

        async with LogContext(batch_id=batch_id):
            logger.info("batch.start", targets=len(targets), batch_size=batch_size, chunks=len(chunks))

            for index, chunk in enumerate(chunks):
                if cancel_token is not None and cancel_token.cancelled:
                    break
                chunk_outcomes = await asyncio.gather(*(
                    attempt_with_backoff(
                        self._adapter,
                        target,
                        table=self._table,
                        classifier=self._classifier,
                        cancel_token=cancel_token,
                        deadline=deadline,
                        sleep=self._sleep,
                        on_attempt=on_attempt,
                    )
                    for target in chunk
                ))
                outcomes.extend(chunk_outcomes)
                logger.debug(
                    "batch.chunk_done",
                    chunk=index + 1,
                    succeeded=sum(1 for o in chunk_outcomes if o.succeeded),
                    size=len(chunk),
                )
                if index < len(chunks) - 1 and await pause(delay, cancel_token, self._sleep):
                    break

            cancelled = len(outcomes) < len(targets)
            outcomes.extend(cancelled_outcome(t) for t in targets[len(outcomes):])

            result = BatchResult(
                batch_id=batch_id,
                targets=targets,
                outcomes=tuple(outcomes),
                started_at=started_at,
                completed_at=utcnow(),
                cancelled=cancelled or bool(cancel_token and cancel_token.cancelled),
            )
            logger.info(
                "batch.complete",
                total=result.total,
                succeeded=result.succeeded,
                failed=result.failed,
                cancelled=result.cancelled,
                duration_seconds=round(result.duration_seconds, 3),
            )
        return result

    def submit_batch(
        self,
        targets: Sequence[AttemptTarget],
        batch_size: int | None = None,
        inter_batch_delay: float | None = None,
        *,
        time_budget: float | None = None,
        name: str | None = None,
    ) -> str:
        """Run a batch as a tracked task; returns the task id.

        The task's ``attempt_count`` follows individual attempts, and
        :meth:`BoundedTaskManager.result` yields the :class:`BatchResult`.
        """
        if self._task_manager is None:
            raise ValidationError("submit_batch requires a task manager", field="task_manager")
        targets = tuple(targets)
        if not targets:
            raise ValidationError("target list must not be empty", field="targets")

        async def work(handle: TaskHandle) -> BatchResult:
            return await self.run_batch(
                targets,
                batch_size,
                inter_batch_delay,
                cancel_token=handle.token,
                time_budget=time_budget,
                on_attempt=handle.record_attempt,
            )

        return self._task_manager.submit(work, name=name or f"batch of {len(targets)}")


__all__ = [
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_INTER_BATCH_DELAY",
    "BatchResult",
    "BatchOrchestrator",
]
