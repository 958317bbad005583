"""
Persistent selector operations.

Start, stop and poll named selectors in the context's registry.  ``start``
on a running selector fails with ``CONFLICT`` and leaves the run alone;
``stop`` is idempotent; ``get_selector_status`` always succeeds, returning
an idle snapshot for a name that has never been started.
"""

from __future__ import annotations

from pydantic import ValidationError as PayloadError

from coursegrab.core.errors import AlreadyRunningError, ValidationError
from coursegrab.core.logging import get_logger
from coursegrab.execution.models import SelectorPhase, SelectorStatus
from coursegrab.ops.context import EngineContext
from coursegrab.ops.payloads import TargetPayload
from coursegrab.ops.requests import SelectorRequest, StartSelectorRequest
from coursegrab.ops.responses import SelectorDetail, StopResult
from coursegrab.ops.result import ErrorCode, OperationResult, start_timer

logger = get_logger(__name__)


def _detail(status: SelectorStatus) -> SelectorDetail:
    d = status.to_dict()
    last = status.last_outcome
    return SelectorDetail(
        name=status.name,
        phase=status.phase.value,
        running=status.phase is SelectorPhase.RUNNING,
        targets=d["targets"],
        current_index=status.current_index,
        current_target=d["current_target"],
        attempt_count=status.attempt_count,
        max_attempts=status.max_attempts,
        interval_ms=round(status.interval * 1000),
        success_count=d["success_count"],
        failed_count=d["failed_count"],
        message=status.message,
        last_outcome=last.to_dict() if last else None,
        results=d["results"],
        task_id=status.task_id,
    )


def start_selector(
    ctx: EngineContext,
    request: StartSelectorRequest,
) -> OperationResult[SelectorDetail]:
    """Start a persistent selector over the given targets.

    Must be called from within the running event loop that will drive it.
    Unlike a batch, every target must be complete: the selector cannot
    attempt a target with missing identifiers.
    """
    timer = start_timer()

    if not request.targets:
        return OperationResult.fail(
            ErrorCode.VALIDATION_FAILED,
            "target list must not be empty",
            details={"field": "targets"},
            elapsed_ms=timer.elapsed_ms,
        )
    targets = []
    for position, raw in enumerate(request.targets):
        try:
            payload = TargetPayload.model_validate(raw)
        except PayloadError as exc:
            return OperationResult.fail(
                ErrorCode.VALIDATION_FAILED,
                f"target {position} is not a valid payload",
                details={"position": position, "errors": exc.error_count()},
                elapsed_ms=timer.elapsed_ms,
            )
        missing = payload.missing_ids()
        if missing:
            return OperationResult.fail(
                ErrorCode.VALIDATION_FAILED,
                f"target {position} is missing {', '.join(missing)}",
                details={"position": position, "missing": missing},
                elapsed_ms=timer.elapsed_ms,
            )
        targets.append(payload.to_target())

    interval = None if request.interval_ms is None else request.interval_ms / 1000
    selector = ctx.selectors.get_or_create(request.selector)
    try:
        status = selector.start(targets, request.max_attempts, interval)
    except AlreadyRunningError as exc:
        return OperationResult.fail(
            ErrorCode.CONFLICT,
            exc.message,
            details={"selector": request.selector, "phase": selector.get_status().phase.value},
            elapsed_ms=timer.elapsed_ms,
        )
    except ValidationError as exc:
        return OperationResult.fail(
            ErrorCode.VALIDATION_FAILED,
            exc.message,
            details=exc.to_dict(),
            elapsed_ms=timer.elapsed_ms,
        )
    return OperationResult.ok(_detail(status), elapsed_ms=timer.elapsed_ms)


def stop_selector(ctx: EngineContext, request: SelectorRequest) -> OperationResult[StopResult]:
    """Stop a selector.  Stopping an idle, finished or unknown selector is a no-op."""
    timer = start_timer()
    selector = ctx.selectors.get(request.selector)
    if selector is None:
        return OperationResult.ok(
            StopResult(name=request.selector, stopped=False, phase=SelectorPhase.IDLE.value),
            elapsed_ms=timer.elapsed_ms,
        )
    stopped = selector.stop()
    return OperationResult.ok(
        StopResult(name=request.selector, stopped=stopped, phase=selector.get_status().phase.value),
        elapsed_ms=timer.elapsed_ms,
    )


def get_selector_status(ctx: EngineContext, request: SelectorRequest) -> OperationResult[SelectorDetail]:
    """Current snapshot of a selector."""
    timer = start_timer()
    selector = ctx.selectors.get(request.selector)
    status = selector.get_status() if selector else SelectorStatus(name=request.selector)
    return OperationResult.ok(_detail(status), elapsed_ms=timer.elapsed_ms)
