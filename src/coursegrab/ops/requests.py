"""
Typed request objects for operations.

Each dataclass represents the *input* contract for a single operation
function.  Requests carry transport-agnostic data only; target payloads are
still raw mappings here and are validated inside the operation.

Durations arrive in milliseconds, as the front door sends them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

DEFAULT_SELECTOR = "default"

# ------------------------------------------------------------------ #
# Batch operations
# ------------------------------------------------------------------ #


@dataclass(frozen=True, slots=True)
class RunBatchRequest:
    """Request for :func:`coursegrab.ops.batches.run_batch`.

    Attributes:
        targets: Raw target payloads (see :class:`~coursegrab.ops.payloads.TargetPayload`).
        batch_size: Targets attempted concurrently per chunk (settings default).
        inter_batch_delay_ms: Pause between chunks (settings default).
        time_budget_ms: Retry budget for the whole batch (``None`` → settings).
        background: Run as a tracked task and return its id immediately.
    """

    targets: list[Any] = field(default_factory=list)
    batch_size: int | None = None
    inter_batch_delay_ms: int | None = None
    time_budget_ms: int | None = None
    background: bool = False


# ------------------------------------------------------------------ #
# Task manager operations
# ------------------------------------------------------------------ #


@dataclass(frozen=True, slots=True)
class SetMaxConcurrencyRequest:
    """Request for :func:`coursegrab.ops.tasks.set_max_concurrency`."""

    max_concurrency: Any = None


@dataclass(frozen=True, slots=True)
class GetTaskRequest:
    """Request for :func:`coursegrab.ops.tasks.get_task_status`."""

    task_id: str = ""


@dataclass(frozen=True, slots=True)
class CancelTaskRequest:
    """Request for :func:`coursegrab.ops.tasks.cancel_task`."""

    task_id: str = ""
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class ListTasksRequest:
    """Request for :func:`coursegrab.ops.tasks.list_tasks`."""

    state: str | None = None


# ------------------------------------------------------------------ #
# Selector operations
# ------------------------------------------------------------------ #


@dataclass(frozen=True, slots=True)
class StartSelectorRequest:
    """Request for :func:`coursegrab.ops.selectors.start_selector`.

    Attributes:
        targets: Raw target payloads, first choice first.
        max_attempts: Shared attempt budget (settings default).
        interval_ms: Pause after every failed attempt (settings default).
        selector: Name of the selector to start.
    """

    targets: list[Any] = field(default_factory=list)
    max_attempts: int | None = None
    interval_ms: int | None = None
    selector: str = DEFAULT_SELECTOR


@dataclass(frozen=True, slots=True)
class SelectorRequest:
    """Request for ``stop_selector`` / ``get_selector_status``."""

    selector: str = DEFAULT_SELECTOR
