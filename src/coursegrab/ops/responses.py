"""
Typed response objects for operations.

Plain frozen dataclasses, one per payload shape.  Each has ``to_dict`` so
:meth:`OperationResult.to_dict` can serialise it for a JSON front door.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

# ------------------------------------------------------------------ #
# Batches
# ------------------------------------------------------------------ #


@dataclass(frozen=True, slots=True)
class BatchItem:
    """Outcome for one submitted target, in submission order."""

    target_id: str
    label: str
    succeeded: bool
    message: str
    kind: str | None = None
    attempts: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class BatchReport:
    """Aggregate of a finished batch."""

    items: list[BatchItem] = field(default_factory=list)
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    batch_id: str | None = None
    cancelled: bool = False

    @property
    def message(self) -> str:
        return f"batch finished: {self.succeeded} succeeded, {self.failed} failed"

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "message": self.message,
            "items": [i.to_dict() for i in self.items],
        }


@dataclass(frozen=True, slots=True)
class BatchAccepted:
    """Returned instead of a report when a batch runs in the background.

    ``total`` counts the targets handed to the task.  Payloads that could not
    become targets never reach the task; they are reported here in
    ``rejected``, with their submission indexes in ``rejected_positions``, so
    every input is accounted for once between this and the task result.
    """

    task_id: str
    total: int
    rejected: list[BatchItem] = field(default_factory=list)
    rejected_positions: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ------------------------------------------------------------------ #
# Tasks
# ------------------------------------------------------------------ #


@dataclass(frozen=True, slots=True)
class ConcurrencyInfo:
    max_concurrency: int
    previous: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class TaskStats:
    """Counts from the task manager at one instant."""

    active: int
    queued: int
    max_concurrency: int
    succeeded: int = 0
    failed: int = 0
    stopped: int = 0
    total: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class TaskDetail:
    """One task snapshot, flattened."""

    task_id: str
    name: str
    state: str
    attempt_count: int = 0
    created_at: str | None = None
    started_at: str | None = None
    finished_at: str | None = None
    last_attempt_at: str | None = None
    last_outcome: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class CancelResult:
    task_id: str
    cancelled: bool
    state: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ------------------------------------------------------------------ #
# Selectors
# ------------------------------------------------------------------ #


@dataclass(frozen=True, slots=True)
class SelectorDetail:
    """Selector snapshot as seen by a polling client."""

    name: str
    phase: str
    running: bool
    targets: list[str] = field(default_factory=list)
    current_index: int = 0
    current_target: str | None = None
    attempt_count: int = 0
    max_attempts: int = 0
    interval_ms: int = 0
    success_count: int = 0
    failed_count: int = 0
    message: str = ""
    last_outcome: dict[str, Any] | None = None
    results: dict[str, Any] = field(default_factory=dict)
    task_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class StopResult:
    name: str
    stopped: bool
    phase: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
