"""Execution domain models.

Defines the core data structures shared by every engine component:

- AttemptTarget: one reservation target (course section) and its parameters
- AttemptOutcome: the immutable record of one attempt
- TaskState / TaskStatus: task-manager lifecycle and read-only snapshots
- SelectorPhase / SelectorStatus: persistent-selector lifecycle and snapshots

Snapshots are frozen dataclasses.  Owners replace them wholesale on every
change, so a reader holding a reference never observes a half-applied update.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from coursegrab.core.errors import ErrorKind, InvalidTransitionError, ValidationError


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


# =============================================================================
# Targets and outcomes
# =============================================================================


@dataclass(frozen=True)
class AttemptTarget:
    """One reservation target.

    ``params`` is copied into a read-only mapping on construction and handed
    to the remote adapter unchanged.

    Attributes:
        target_id: Opaque identity, unique within a batch or selector run
        label: Human-readable name (course title, section name)
        params: Adapter parameters (section/offering identifiers, flags)
    """

    target_id: str
    label: str = ""
    params: Mapping[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        if not self.target_id:
            raise ValidationError("target_id is required", field="target_id")
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))

    @classmethod
    def for_section(
        cls,
        course_id: str,
        class_id: str,
        label: str = "",
        **params: Any,
    ) -> AttemptTarget:
        """Build a target whose id is the ``{course_id}_{class_id}`` composite."""
        if not course_id or not class_id:
            raise ValidationError(
                "course_id and class_id are required",
                field="course_id" if not course_id else "class_id",
            )
        return cls(
            target_id=f"{course_id}_{class_id}",
            label=label,
            params={"course_id": course_id, "class_id": class_id, **params},
        )

    @property
    def display_name(self) -> str:
        return self.label or self.target_id

    def to_dict(self) -> dict[str, Any]:
        return {"target_id": self.target_id, "label": self.label, "params": dict(self.params)}


@dataclass(frozen=True)
class AttemptOutcome:
    """Result of one attempt against the remote system.

    Produced once per attempt and never mutated.  ``kind`` is ``None`` on
    success and for outcomes synthesised without a remote call (e.g. a target
    that was cancelled before its first attempt).
    """

    succeeded: bool
    message: str
    attempt_number: int
    kind: ErrorKind | None = None
    target_id: str | None = None
    timestamp: datetime = field(default_factory=utcnow)

    @classmethod
    def success(cls, message: str, attempt_number: int, target_id: str | None = None) -> AttemptOutcome:
        return cls(succeeded=True, message=message, attempt_number=attempt_number, target_id=target_id)

    @classmethod
    def failure(
        cls,
        message: str,
        attempt_number: int,
        kind: ErrorKind | None,
        target_id: str | None = None,
    ) -> AttemptOutcome:
        return cls(
            succeeded=False,
            message=message,
            attempt_number=attempt_number,
            kind=kind,
            target_id=target_id,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "target_id": self.target_id,
            "succeeded": self.succeeded,
            "kind": self.kind.value if self.kind else None,
            "message": self.message,
            "attempt_number": self.attempt_number,
            "timestamp": self.timestamp.isoformat(),
        }


# =============================================================================
# Task lifecycle
# =============================================================================


class TaskState(str, Enum):
    """State of a task tracked by the bounded task manager.

    Valid transition graph::

        QUEUED   → RUNNING | STOPPED
        RUNNING  → SUCCEEDED | FAILED | STOPPED
        SUCCEEDED, FAILED, STOPPED → (terminal)
    """

    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskState.SUCCEEDED, TaskState.FAILED, TaskState.STOPPED)


TASK_VALID_TRANSITIONS: dict[TaskState, frozenset[TaskState]] = {
    TaskState.QUEUED: frozenset({TaskState.RUNNING, TaskState.STOPPED}),
    TaskState.RUNNING: frozenset({TaskState.SUCCEEDED, TaskState.FAILED, TaskState.STOPPED}),
    TaskState.SUCCEEDED: frozenset(),
    TaskState.FAILED: frozenset(),
    TaskState.STOPPED: frozenset(),
}


def validate_task_transition(current: TaskState, target: TaskState) -> None:
    """Raise :class:`InvalidTransitionError` if *current → target* is illegal."""
    if target not in TASK_VALID_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(current.value, target.value, "TaskState")


@dataclass(frozen=True)
class TaskStatus:
    """Read-only snapshot of one task."""

    task_id: str
    name: str
    state: TaskState = TaskState.QUEUED
    created_at: datetime = field(default_factory=utcnow)
    started_at: datetime | None = None
    finished_at: datetime | None = None
    last_attempt_at: datetime | None = None
    attempt_count: int = 0
    last_outcome: AttemptOutcome | None = None

    def transition(self, target: TaskState, **changes: Any) -> TaskStatus:
        """Return a new snapshot in *target* state, enforcing the transition table."""
        validate_task_transition(self.state, target)
        if target == TaskState.RUNNING:
            changes.setdefault("started_at", utcnow())
        elif target.is_terminal:
            changes.setdefault("finished_at", utcnow())
        return replace(self, state=target, **changes)

    def with_attempt(self, outcome: AttemptOutcome) -> TaskStatus:
        return replace(
            self,
            attempt_count=self.attempt_count + 1,
            last_attempt_at=outcome.timestamp,
            last_outcome=outcome,
        )

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at and self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "name": self.name,
            "state": self.state.value,
            "created_at": self.created_at.isoformat(),
            "started_at": _iso(self.started_at),
            "finished_at": _iso(self.finished_at),
            "last_attempt_at": _iso(self.last_attempt_at),
            "attempt_count": self.attempt_count,
            "last_outcome": self.last_outcome.to_dict() if self.last_outcome else None,
        }


# =============================================================================
# Persistent selector lifecycle
# =============================================================================


class SelectorPhase(str, Enum):
    """Phase of a persistent selector.

    Valid transition graph::

        IDLE      → RUNNING
        RUNNING   → SUCCEEDED | EXHAUSTED | STOPPED
        SUCCEEDED, EXHAUSTED, STOPPED → IDLE (explicit reset)
    """

    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self in (SelectorPhase.SUCCEEDED, SelectorPhase.EXHAUSTED, SelectorPhase.STOPPED)


SELECTOR_VALID_TRANSITIONS: dict[SelectorPhase, frozenset[SelectorPhase]] = {
    SelectorPhase.IDLE: frozenset({SelectorPhase.RUNNING}),
    SelectorPhase.RUNNING: frozenset({
        SelectorPhase.SUCCEEDED,
        SelectorPhase.EXHAUSTED,
        SelectorPhase.STOPPED,
    }),
    SelectorPhase.SUCCEEDED: frozenset({SelectorPhase.IDLE}),
    SelectorPhase.EXHAUSTED: frozenset({SelectorPhase.IDLE}),
    SelectorPhase.STOPPED: frozenset({SelectorPhase.IDLE}),
}


def validate_selector_transition(current: SelectorPhase, target: SelectorPhase) -> None:
    """Raise :class:`InvalidTransitionError` if *current → target* is illegal."""
    if target not in SELECTOR_VALID_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(current.value, target.value, "SelectorPhase")


@dataclass(frozen=True)
class SelectorStatus:
    """Read-only snapshot of a persistent selector."""

    name: str
    phase: SelectorPhase = SelectorPhase.IDLE
    targets: tuple[AttemptTarget, ...] = ()
    current_index: int = 0
    max_attempts: int = 0
    interval: float = 0.0
    attempt_count: int = 0
    results: Mapping[str, AttemptOutcome] = field(
        default_factory=lambda: MappingProxyType({}), hash=False
    )
    history: tuple[AttemptOutcome, ...] = ()
    started_at: datetime | None = None
    finished_at: datetime | None = None
    message: str = ""
    task_id: str | None = None

    @property
    def current_target(self) -> AttemptTarget | None:
        if 0 <= self.current_index < len(self.targets):
            return self.targets[self.current_index]
        return None

    @property
    def last_outcome(self) -> AttemptOutcome | None:
        return self.history[-1] if self.history else None

    @property
    def success_count(self) -> int:
        return sum(1 for o in self.history if o.succeeded)

    @property
    def failed_count(self) -> int:
        return sum(1 for o in self.history if not o.succeeded)

    def to_dict(self) -> dict[str, Any]:
        current = self.current_target
        return {
            "name": self.name,
            "phase": self.phase.value,
            "targets": [t.target_id for t in self.targets],
            "current_index": self.current_index,
            "current_target": current.display_name if current else None,
            "max_attempts": self.max_attempts,
            "interval": self.interval,
            "attempt_count": self.attempt_count,
            "success_count": self.success_count,
            "failed_count": self.failed_count,
            "results": {k: v.to_dict() for k, v in self.results.items()},
            "started_at": _iso(self.started_at),
            "finished_at": _iso(self.finished_at),
            "message": self.message,
            "task_id": self.task_id,
        }


__all__ = [
    "utcnow",
    "AttemptTarget",
    "AttemptOutcome",
    "TaskState",
    "TASK_VALID_TRANSITIONS",
    "validate_task_transition",
    "TaskStatus",
    "SelectorPhase",
    "SELECTOR_VALID_TRANSITIONS",
    "validate_selector_transition",
    "SelectorStatus",
]
