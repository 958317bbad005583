"""
Structured error types for coursegrab.

Two kinds of failure live here and they must not be confused:

- **ErrorKind** classifies what the *remote reservation system* said when an
  attempt failed.  It is data: it rides inside an ``AttemptOutcome`` and
  drives the backoff policy.  Callers of the engine never see these as
  exceptions.
- **CourseGrabError** and its subclasses are raised by the engine itself for
  conditions the caller must fix or handle: invalid input, a selector that is
  already running, an unknown task id, an illegal state transition.

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────┐
        │                    CourseGrabError                        │
        │          (retryable, context, cause, to_dict)             │
        ├──────────────────────────────────────────────────────────┤
        │  ValidationError      AlreadyRunningError                 │
        │  (bad input)          (selector conflict)                 │
        │                                                           │
        │  TaskNotFoundError    InvalidTransitionError              │
        │  (unknown task id)    (state machine guard)               │
        └──────────────────────────────────────────────────────────┘

Examples:
    >>> error = ValidationError("batch_size must be >= 1", field="batch_size", value=0)
    >>> error.retryable
    False
    >>> error.to_dict()["field"]
    'batch_size'

Usage:
    from coursegrab.core.errors import ErrorKind, ValidationError

    if not targets:
        raise ValidationError("target list must not be empty", field="targets")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """
    Classification bucket for a failed reservation attempt.

    Closed set; anything the classifier does not recognise is ``UNKNOWN``.
    Used only as a lookup key into the backoff policy table, so no ordering
    between members is implied.

    Attributes:
        NETWORK_ERROR: Timeouts, refused connections, failed fetches
        AUTHENTICATION_ERROR: Expired cookie/session, 401/403
        RESOURCE_EXHAUSTED: Section is full
        RESOURCE_CONFLICT: Schedule clash with an already-held section
        SYSTEM_ERROR: 5xx and remote "system error" pages
        UNKNOWN: Nothing matched
    """

    NETWORK_ERROR = "NETWORK_ERROR"
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    RESOURCE_EXHAUSTED = "RESOURCE_EXHAUSTED"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    SYSTEM_ERROR = "SYSTEM_ERROR"
    UNKNOWN = "UNKNOWN"

    @property
    def terminal(self) -> bool:
        """True for kinds that are never worth another attempt by nature."""
        return self in (ErrorKind.AUTHENTICATION_ERROR, ErrorKind.RESOURCE_CONFLICT)


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an engine error.

    Only non-None fields are emitted by :meth:`to_dict`, so the context can be
    splatted straight into a structured log call.
    """

    target_id: str | None = None
    task_id: str | None = None
    selector: str | None = None
    batch_id: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["target_id", "task_id", "selector", "batch_id"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class CourseGrabError(Exception):
    """
    Base exception for all errors raised by the engine.

    Subclasses set ``default_retryable`` so that callers can make a coarse
    decision without inspecting the concrete type.
    """

    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> CourseGrabError:
        """
        Add context to this error (fluent API).

        Usage:
            raise TaskNotFoundError("no such task").with_context(task_id=task_id)
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


# =============================================================================
# INPUT ERRORS
# =============================================================================


class ValidationError(CourseGrabError):
    """
    Invalid caller input (empty target list, non-positive concurrency, ...).

    Never retryable - the input must be fixed.
    """

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        return result


class TaskNotFoundError(CourseGrabError):
    """No task with the given id is tracked by the task manager."""

    def __init__(self, task_id: str):
        super().__init__(f"Task {task_id!r} not found", context=ErrorContext(task_id=task_id))
        self.task_id = task_id


# =============================================================================
# STATE ERRORS
# =============================================================================


class AlreadyRunningError(CourseGrabError):
    """A persistent selector was asked to start while a run is in progress."""

    def __init__(self, selector: str, message: str | None = None):
        super().__init__(
            message or f"Selector {selector!r} is already running",
            context=ErrorContext(selector=selector),
        )
        self.selector = selector


class InvalidTransitionError(CourseGrabError, ValueError):
    """
    Raised when an illegal state transition is attempted.

    Transition tables are strict.  A legitimate move that is blocked belongs
    in the table, never behind a bypass.
    """

    def __init__(self, current: str, target: str, enum_name: str = "State") -> None:
        self.current = current
        self.target = target
        super().__init__(f"Invalid {enum_name} transition: {current} → {target}")


__all__ = [
    "ErrorKind",
    "ErrorContext",
    "CourseGrabError",
    "ValidationError",
    "TaskNotFoundError",
    "AlreadyRunningError",
    "InvalidTransitionError",
]
