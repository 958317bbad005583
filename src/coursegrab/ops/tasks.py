"""
Task manager operations.

Read and control operations for the shared
:class:`~coursegrab.execution.task_manager.BoundedTaskManager`: pool size,
counters, per-task snapshots and cancellation.
"""

from __future__ import annotations

from coursegrab.core.errors import TaskNotFoundError, ValidationError
from coursegrab.core.logging import get_logger
from coursegrab.execution.models import TaskState, TaskStatus
from coursegrab.ops.context import EngineContext
from coursegrab.ops.requests import (
    CancelTaskRequest,
    GetTaskRequest,
    ListTasksRequest,
    SetMaxConcurrencyRequest,
)
from coursegrab.ops.responses import CancelResult, ConcurrencyInfo, TaskDetail, TaskStats
from coursegrab.ops.result import ErrorCode, OperationResult, start_timer

logger = get_logger(__name__)


def _detail(status: TaskStatus) -> TaskDetail:
    d = status.to_dict()
    return TaskDetail(
        task_id=d["task_id"],
        name=d["name"],
        state=d["state"],
        attempt_count=d["attempt_count"],
        created_at=d["created_at"],
        started_at=d["started_at"],
        finished_at=d["finished_at"],
        last_attempt_at=d["last_attempt_at"],
        last_outcome=d["last_outcome"],
    )


def get_max_concurrency(ctx: EngineContext) -> OperationResult[ConcurrencyInfo]:
    """Return the current pool size."""
    timer = start_timer()
    return OperationResult.ok(
        ConcurrencyInfo(max_concurrency=ctx.task_manager.max_concurrency),
        elapsed_ms=timer.elapsed_ms,
    )


def set_max_concurrency(
    ctx: EngineContext,
    request: SetMaxConcurrencyRequest,
) -> OperationResult[ConcurrencyInfo]:
    """Resize the pool.  Only positive integers are accepted."""
    timer = start_timer()
    previous = ctx.task_manager.max_concurrency
    try:
        ctx.task_manager.set_max_concurrency(request.max_concurrency)
    except ValidationError as exc:
        return OperationResult.fail(
            ErrorCode.VALIDATION_FAILED,
            exc.message,
            details={"field": "max_concurrency", "value": repr(request.max_concurrency)},
            elapsed_ms=timer.elapsed_ms,
        )
    return OperationResult.ok(
        ConcurrencyInfo(max_concurrency=ctx.task_manager.max_concurrency, previous=previous),
        elapsed_ms=timer.elapsed_ms,
    )


def get_task_stats(ctx: EngineContext) -> OperationResult[TaskStats]:
    """Active/queued counts, pool size and per-state totals."""
    timer = start_timer()
    stats = ctx.task_manager.stats()
    return OperationResult.ok(TaskStats(**stats.to_dict()), elapsed_ms=timer.elapsed_ms)


def get_task_status(ctx: EngineContext, request: GetTaskRequest) -> OperationResult[TaskDetail]:
    """Return the snapshot of one task."""
    timer = start_timer()

    if not request.task_id:
        return OperationResult.fail(
            ErrorCode.VALIDATION_FAILED,
            "task_id is required",
            elapsed_ms=timer.elapsed_ms,
        )
    try:
        status = ctx.task_manager.status(request.task_id)
    except TaskNotFoundError as exc:
        return OperationResult.fail(ErrorCode.NOT_FOUND, exc.message, elapsed_ms=timer.elapsed_ms)
    return OperationResult.ok(_detail(status), elapsed_ms=timer.elapsed_ms)


def list_tasks(ctx: EngineContext, request: ListTasksRequest) -> OperationResult[list[TaskDetail]]:
    """List tracked tasks, oldest first, optionally filtered by state."""
    timer = start_timer()

    state = None
    if request.state is not None:
        try:
            state = TaskState(request.state)
        except ValueError:
            return OperationResult.fail(
                ErrorCode.VALIDATION_FAILED,
                f"unknown task state {request.state!r}",
                details={"allowed": [s.value for s in TaskState]},
                elapsed_ms=timer.elapsed_ms,
            )
    details = [_detail(s) for s in ctx.task_manager.list_tasks(state)]
    return OperationResult.ok(details, elapsed_ms=timer.elapsed_ms)


def cancel_task(ctx: EngineContext, request: CancelTaskRequest) -> OperationResult[CancelResult]:
    """Cancel a queued or running task.

    Cancelling a finished task succeeds with ``cancelled=False``.
    """
    timer = start_timer()

    if not request.task_id:
        return OperationResult.fail(
            ErrorCode.VALIDATION_FAILED,
            "task_id is required",
            elapsed_ms=timer.elapsed_ms,
        )
    try:
        cancelled = ctx.task_manager.cancel(request.task_id, reason=request.reason)
        state = ctx.task_manager.status(request.task_id).state
    except TaskNotFoundError as exc:
        return OperationResult.fail(ErrorCode.NOT_FOUND, exc.message, elapsed_ms=timer.elapsed_ms)

    logger.info("task.cancel_requested", task_id=request.task_id, cancelled=cancelled, caller=ctx.caller)
    return OperationResult.ok(
        CancelResult(task_id=request.task_id, cancelled=cancelled, state=state.value),
        elapsed_ms=timer.elapsed_ms,
    )
