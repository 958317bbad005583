"""
Batch operations.

Wraps :class:`~coursegrab.execution.batch.BatchOrchestrator` with the
front-door contract: raw payloads in, a per-target report out, expected
failures as ``OperationResult.fail``.

A payload that cannot become a target (missing course, class or offering id,
or not a mapping at all) does not abort the batch.  It yields a failed item
in its position and the remaining targets run as usual.  In background
mode those failed items come back at once in
:class:`~coursegrab.ops.responses.BatchAccepted`, since the task only ever
sees the valid targets.
"""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError as PayloadError

from coursegrab.core.errors import ValidationError
from coursegrab.core.logging import get_logger
from coursegrab.execution.models import AttemptOutcome, AttemptTarget
from coursegrab.ops.context import EngineContext
from coursegrab.ops.payloads import UNKNOWN_COURSE, TargetPayload
from coursegrab.ops.requests import RunBatchRequest
from coursegrab.ops.responses import BatchAccepted, BatchItem, BatchReport
from coursegrab.ops.result import ErrorCode, OperationResult, start_timer

logger = get_logger(__name__)


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


def _is_non_negative_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _parse_targets(raw_targets: list[Any]) -> tuple[list[AttemptTarget | BatchItem], list[str]]:
    """Turn payloads into targets, or into failed items where they are unusable."""
    parsed: list[AttemptTarget | BatchItem] = []
    warnings: list[str] = []
    for position, raw in enumerate(raw_targets):
        try:
            payload = TargetPayload.model_validate(raw)
        except PayloadError as exc:
            message = f"invalid target payload: {exc.error_count()} error(s)"
            parsed.append(BatchItem(target_id="unknown", label=UNKNOWN_COURSE, succeeded=False, message=message))
            warnings.append(f"target {position}: {message}")
            continue

        missing = payload.missing_ids()
        if missing:
            message = f"missing required course parameters: {', '.join(missing)}"
            parsed.append(BatchItem(
                target_id=payload.target_id,
                label=payload.display_name,
                succeeded=False,
                message=message,
            ))
            warnings.append(f"target {position}: {message}")
            continue
        parsed.append(payload.to_target())
    return parsed, warnings


def _item(target: AttemptTarget, outcome: AttemptOutcome) -> BatchItem:
    return BatchItem(
        target_id=target.target_id,
        label=target.display_name,
        succeeded=outcome.succeeded,
        message=outcome.message,
        kind=outcome.kind.value if outcome.kind else None,
        attempts=outcome.attempt_number,
    )


async def run_batch(
    ctx: EngineContext,
    request: RunBatchRequest,
) -> OperationResult[BatchReport | BatchAccepted]:
    """Attempt every target, chunk by chunk, and report per-target outcomes.

    Args:
        ctx: Engine context.
        request: Targets plus optional batch size, delay and budget.

    Returns:
        :class:`BatchReport` in submission order, or :class:`BatchAccepted`
        when ``request.background`` is set.
    """
    timer = start_timer()

    if not request.targets:
        return OperationResult.fail(
            ErrorCode.VALIDATION_FAILED,
            "target list must not be empty",
            details={"field": "targets"},
            elapsed_ms=timer.elapsed_ms,
        )
    batch_size = ctx.settings.batch_size if request.batch_size is None else request.batch_size
    if not _is_positive_int(batch_size):
        return OperationResult.fail(
            ErrorCode.VALIDATION_FAILED,
            "batch_size must be a positive integer",
            details={"field": "batch_size", "value": batch_size},
            elapsed_ms=timer.elapsed_ms,
        )
    if request.inter_batch_delay_ms is not None and not _is_non_negative_int(request.inter_batch_delay_ms):
        return OperationResult.fail(
            ErrorCode.VALIDATION_FAILED,
            "inter_batch_delay_ms must be a non-negative integer",
            details={"field": "inter_batch_delay_ms", "value": request.inter_batch_delay_ms},
            elapsed_ms=timer.elapsed_ms,
        )
    if request.time_budget_ms is not None and not _is_positive_int(request.time_budget_ms):
        return OperationResult.fail(
            ErrorCode.VALIDATION_FAILED,
            "time_budget_ms must be a positive integer",
            details={"field": "time_budget_ms", "value": request.time_budget_ms},
            elapsed_ms=timer.elapsed_ms,
        )

    delay = None if request.inter_batch_delay_ms is None else request.inter_batch_delay_ms / 1000
    budget = None if request.time_budget_ms is None else request.time_budget_ms / 1000
    parsed, warnings = _parse_targets(request.targets)
    targets = [p for p in parsed if isinstance(p, AttemptTarget)]

    try:
        if request.background:
            if not targets:
                return OperationResult.fail(
                    ErrorCode.VALIDATION_FAILED,
                    "no valid targets to run",
                    warnings=warnings,
                    elapsed_ms=timer.elapsed_ms,
                )
            task_id = ctx.orchestrator.submit_batch(targets, batch_size, delay, time_budget=budget)
            return OperationResult.ok(
                BatchAccepted(
                    task_id=task_id,
                    total=len(targets),
                    rejected=[p for p in parsed if isinstance(p, BatchItem)],
                    rejected_positions=[i for i, p in enumerate(parsed) if isinstance(p, BatchItem)],
                ),
                warnings=warnings,
                elapsed_ms=timer.elapsed_ms,
            )

        outcomes: list[AttemptOutcome] = []
        batch_id = None
        cancelled = False
        if targets:
            result = await ctx.orchestrator.run_batch(targets, batch_size, delay, time_budget=budget)
            outcomes = list(result.outcomes)
            batch_id = result.batch_id
            cancelled = result.cancelled
    except ValidationError as exc:
        return OperationResult.fail(
            ErrorCode.VALIDATION_FAILED,
            exc.message,
            details=exc.to_dict(),
            elapsed_ms=timer.elapsed_ms,
        )
    except Exception as exc:
        logger.exception("op_failed", op="run_batch", error=str(exc))
        return OperationResult.fail(
            ErrorCode.INTERNAL,
            f"Failed to run batch: {exc}",
            elapsed_ms=timer.elapsed_ms,
        )

    remaining = iter(outcomes)
    items = [
        _item(p, next(remaining)) if isinstance(p, AttemptTarget) else p
        for p in parsed
    ]
    succeeded = sum(1 for i in items if i.succeeded)
    report = BatchReport(
        items=items,
        total=len(items),
        succeeded=succeeded,
        failed=len(items) - succeeded,
        batch_id=batch_id,
        cancelled=cancelled,
    )
    logger.info("batch.reported", total=report.total, succeeded=report.succeeded, failed=report.failed)
    return OperationResult.ok(report, warnings=warnings, elapsed_ms=timer.elapsed_ms)
