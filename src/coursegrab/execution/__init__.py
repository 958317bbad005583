"""coursegrab execution engine.

Module map (leaves first)::

    models.py         AttemptTarget, AttemptOutcome, task/selector snapshots
    classifier.py     ErrorClassifier: raw failure text → ErrorKind
    retry.py          BackoffPolicyTable: (ErrorKind, n) → delay | inf
    cancellation.py   CancellationToken for cooperative stops
    adapter.py        RemoteAdapter protocol + wrappers
    dedup.py          RequestDeduplicator: one in-flight call per key
    attempts.py       Shared attempt loop (classify → back off → retry)
    task_manager.py   BoundedTaskManager: FIFO admission into N slots
    batch.py          BatchOrchestrator: chunked fan-out with pacing
    selector.py       PersistentSelector + SelectorRegistry
"""

from coursegrab.execution.adapter import AdapterResult, CallableAdapter, DedupingAdapter, RemoteAdapter
from coursegrab.execution.attempts import attempt_with_backoff, run_attempt
from coursegrab.execution.batch import BatchOrchestrator, BatchResult
from coursegrab.execution.cancellation import CancellationToken
from coursegrab.execution.classifier import ErrorClassifier, classify
from coursegrab.execution.dedup import RequestDeduplicator
from coursegrab.execution.models import (
    AttemptOutcome,
    AttemptTarget,
    SelectorPhase,
    SelectorStatus,
    TaskState,
    TaskStatus,
)
from coursegrab.execution.retry import BackoffPolicyTable, RetryPolicy, delay_for
from coursegrab.execution.selector import PersistentSelector, SelectorRegistry
from coursegrab.execution.task_manager import BoundedTaskManager, TaskHandle, TaskManagerStats

__all__ = [
    "AdapterResult",
    "CallableAdapter",
    "DedupingAdapter",
    "RemoteAdapter",
    "attempt_with_backoff",
    "run_attempt",
    "BatchOrchestrator",
    "BatchResult",
    "CancellationToken",
    "ErrorClassifier",
    "classify",
    "RequestDeduplicator",
    "AttemptOutcome",
    "AttemptTarget",
    "SelectorPhase",
    "SelectorStatus",
    "TaskState",
    "TaskStatus",
    "BackoffPolicyTable",
    "RetryPolicy",
    "delay_for",
    "PersistentSelector",
    "SelectorRegistry",
    "BoundedTaskManager",
    "TaskHandle",
    "TaskManagerStats",
]
