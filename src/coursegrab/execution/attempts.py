"""Shared attempt loop used by the batch orchestrator.

``run_attempt`` turns one adapter call into an :class:`AttemptOutcome`.
``attempt_with_backoff`` repeats it under the backoff policy table until the
target succeeds, the policy says stop, the time budget would be overrun, or
the cancellation token fires.

Checkpoints, in loop order::

    token? ──► attempt ──► success ─────────────► return
                  │
                  └─► failure ─► delay_for(kind, n)
                                   │ inf            ─► return failed outcome
                                   │ past deadline  ─► return failed outcome
                                   └─► token? ─► sleep ─► token? ─► next attempt
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import Awaitable, Callable
from typing import Any

from coursegrab.core.logging import get_logger
from coursegrab.execution.adapter import RemoteAdapter, coerce_result, describe_target
from coursegrab.execution.cancellation import CancellationToken
from coursegrab.execution.classifier import ErrorClassifier, describe, get_default_classifier
from coursegrab.execution.models import AttemptOutcome, AttemptTarget
from coursegrab.execution.retry import BackoffPolicyTable, get_default_table

logger = get_logger(__name__)

CANCELLED_BEFORE_ATTEMPT = "cancelled before attempt"

SleepFn = Callable[[float], Awaitable[Any]]
AttemptHook = Callable[[AttemptOutcome], None]


def cancelled_outcome(target: AttemptTarget) -> AttemptOutcome:
    """Outcome for a target that never reached the remote system."""
    return AttemptOutcome.failure(CANCELLED_BEFORE_ATTEMPT, 0, None, target_id=target.target_id)


async def run_attempt(
    adapter: RemoteAdapter,
    target: AttemptTarget,
    attempt_number: int,
    classifier: ErrorClassifier | None = None,
) -> AttemptOutcome:
    """Perform exactly one remote call and classify its result.

    Adapter exceptions become failed outcomes; they never propagate.
    """
    classifier = classifier or get_default_classifier()
    try:
        result = coerce_result(await adapter.attempt(target))
    except Exception as exc:
        message = describe(exc)
        return AttemptOutcome.failure(
            message, attempt_number, classifier.classify(exc), target_id=target.target_id
        )

    if result.succeeded:
        return AttemptOutcome.success(result.raw_message or "ok", attempt_number, target.target_id)
    return AttemptOutcome.failure(
        result.raw_message,
        attempt_number,
        classifier.classify(result.raw_message),
        target_id=target.target_id,
    )


async def pause(seconds: float, token: CancellationToken | None, sleep: SleepFn | None) -> bool:
    """Sleep, returning ``True`` if cancelled before or during the pause."""
    if sleep is not None:
        await sleep(seconds)
        return bool(token and token.cancelled)
    if token is not None:
        return await token.sleep(seconds)
    await asyncio.sleep(seconds)
    return False


async def attempt_with_backoff(
    adapter: RemoteAdapter,
    target: AttemptTarget,
    *,
    table: BackoffPolicyTable | None = None,
    classifier: ErrorClassifier | None = None,
    cancel_token: CancellationToken | None = None,
    deadline: float | None = None,
    sleep: SleepFn | None = None,
    on_attempt: AttemptHook | None = None,
) -> AttemptOutcome:
    """Attempt *target* until success or a stop condition.

    Args:
        adapter: Remote adapter performing the call
        target: What to reserve
        table: Backoff policies (default table if omitted)
        classifier: Error classifier (default rules if omitted)
        cancel_token: Checked before every attempt and every pause
        deadline: ``loop.time()`` value no retry pause may run past
        sleep: Replacement for the pause between attempts (tests)
        on_attempt: Called with every outcome as it is produced

    Returns:
        The final outcome.  A target cancelled before its first attempt gets
        a synthesised failure with message ``"cancelled before attempt"``.
    """
    table = table or get_default_table()
    loop = asyncio.get_running_loop()
    outcome: AttemptOutcome | None = None
    attempt_number = 0

    while True:
        if cancel_token is not None and cancel_token.cancelled:
            return outcome or cancelled_outcome(target)

        attempt_number += 1
        outcome = await run_attempt(adapter, target, attempt_number, classifier)
        if on_attempt is not None:
            on_attempt(outcome)
        if outcome.succeeded:
            logger.debug("attempt.succeeded", target_id=target.target_id, attempt=attempt_number)
            return outcome

        assert outcome.kind is not None
        delay = table.delay_for(outcome.kind, attempt_number)
        if math.isinf(delay):
            logger.info(
                "attempt.gave_up",
                target=describe_target(target),
                attempt=attempt_number,
                kind=outcome.kind.value,
                terminal=outcome.kind.terminal,
                message=outcome.message,
            )
            return outcome
        if deadline is not None and loop.time() + delay > deadline:
            logger.info(
                "attempt.budget_exhausted",
                target_id=target.target_id,
                attempt=attempt_number,
                kind=outcome.kind.value,
            )
            return outcome

        logger.debug(
            "attempt.retrying",
            target_id=target.target_id,
            attempt=attempt_number,
            kind=outcome.kind.value,
            delay=round(delay, 3),
        )
        if await pause(delay, cancel_token, sleep):
            return outcome


__all__ = [
    "CANCELLED_BEFORE_ATTEMPT",
    "cancelled_outcome",
    "pause",
    "run_attempt",
    "attempt_with_backoff",
]
