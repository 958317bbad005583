"""
Operation result envelope.

Every operation returns an :class:`OperationResult`: ``ok`` with a typed
payload, or ``fail`` with an :class:`ErrorCode`.  Expected failures (bad
input, a selector that is already running, an unknown task id) never raise
out of the ops layer.

    ====================  =====================================  =========
    code                  raised for                             retryable
    ====================  =====================================  =========
    VALIDATION_FAILED     caller input rejected                  no
    NOT_FOUND             unknown (or cleaned-up) task id        no
    CONFLICT              selector already running               yes
    INTERNAL              unexpected engine error (logged)       no
    ====================  =====================================  =========

``CONFLICT`` is retryable: the same request succeeds once the running
selector settles or is stopped.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ErrorCode(str, Enum):
    """Machine-readable failure codes returned by the operations."""

    VALIDATION_FAILED = "VALIDATION_FAILED"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    INTERNAL = "INTERNAL"

    @property
    def retryable(self) -> bool:
        return self is ErrorCode.CONFLICT


@dataclass(frozen=True, slots=True)
class OperationError:
    """Why an operation failed.

    Attributes:
        code: One of :class:`ErrorCode`.
        message: Human-readable description.
        details: Field names, offending values, allowed values.
        retryable: Whether repeating the same request can succeed.
    """

    code: ErrorCode
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    retryable: bool = False

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "code": self.code.value,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.details:
            d["details"] = self.details
        return d


def _serialise(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_serialise(v) for v in value]
    return value


@dataclass
class OperationResult(Generic[T]):
    """Envelope returned by every operation function.

    Build it with :meth:`ok` or :meth:`fail`.  ``elapsed_ms`` is the
    operation's own wall-clock time, not the time its background work takes.
    """

    success: bool
    data: T | None = None
    error: OperationError | None = None
    warnings: list[str] = field(default_factory=list)
    elapsed_ms: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(
        cls,
        data: T,
        *,
        warnings: list[str] | None = None,
        elapsed_ms: float = 0.0,
        metadata: dict[str, Any] | None = None,
    ) -> OperationResult[T]:
        return cls(
            success=True,
            data=data,
            warnings=warnings or [],
            elapsed_ms=elapsed_ms,
            metadata=metadata or {},
        )

    @classmethod
    def fail(
        cls,
        code: ErrorCode | str,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        retryable: bool | None = None,
        warnings: list[str] | None = None,
        elapsed_ms: float = 0.0,
        metadata: dict[str, Any] | None = None,
    ) -> OperationResult[T]:
        """Failed result; ``retryable`` defaults to what *code* implies.

        Raises:
            ValueError: *code* is not an :class:`ErrorCode`
        """
        code = ErrorCode(code)
        return cls(
            success=False,
            error=OperationError(
                code=code,
                message=message,
                details=details or {},
                retryable=code.retryable if retryable is None else retryable,
            ),
            warnings=warnings or [],
            elapsed_ms=elapsed_ms,
            metadata=metadata or {},
        )

    def to_dict(self) -> dict[str, Any]:
        """Plain, JSON-ready dict; payload lists are serialised item by item."""
        d: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            d["data"] = _serialise(self.data)
        if self.error is not None:
            d["error"] = self.error.to_dict()
        if self.warnings:
            d["warnings"] = self.warnings
        if self.elapsed_ms:
            d["elapsed_ms"] = round(self.elapsed_ms, 2)
        if self.metadata:
            d["metadata"] = self.metadata
        return d


class _Timer:
    __slots__ = ("_start",)

    def __init__(self) -> None:
        self._start = time.perf_counter()

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self._start) * 1000


def start_timer() -> _Timer:
    """Stopwatch for an operation; read ``timer.elapsed_ms`` when done."""
    return _Timer()


__all__ = ["ErrorCode", "OperationError", "OperationResult", "start_timer"]
