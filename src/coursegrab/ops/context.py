"""
Engine context for operations.

Every operation function receives an :class:`EngineContext` as its first
argument.  The context owns the composed engine (one task manager, one batch
orchestrator, one selector registry) plus caller identity and metadata.
Whoever embeds coursegrab builds one context at startup and passes it to
every call; there is no module-level engine.
"""

from __future__ import annotations

import random
import uuid
from dataclasses import dataclass, field
from typing import Any

from coursegrab.core.settings import CourseGrabSettings, get_settings
from coursegrab.execution.adapter import DedupingAdapter, RemoteAdapter
from coursegrab.execution.attempts import SleepFn
from coursegrab.execution.batch import BatchOrchestrator
from coursegrab.execution.classifier import ErrorClassifier, get_default_classifier
from coursegrab.execution.dedup import RequestDeduplicator
from coursegrab.execution.retry import BackoffPolicyTable
from coursegrab.execution.selector import SelectorRegistry
from coursegrab.execution.task_manager import BoundedTaskManager


@dataclass
class EngineContext:
    """Context passed to every operation function.

    Attributes:
        settings: Effective settings the engine was built from.
        task_manager: Shared bounded task manager.
        orchestrator: Batch orchestrator (routes through the deduplicator).
        selectors: Named persistent selectors.
        request_id: Unique ID for this context (auto-generated).
        caller: Origin of requests, e.g. ``"api"`` or ``"sdk"``.
        metadata: Arbitrary key/value pairs forwarded to logging.
    """

    settings: CourseGrabSettings
    task_manager: BoundedTaskManager
    orchestrator: BatchOrchestrator
    selectors: SelectorRegistry
    deduplicator: RequestDeduplicator | None = None
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    caller: str = "sdk"
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_settings(
        cls,
        adapter: RemoteAdapter,
        settings: CourseGrabSettings | None = None,
        *,
        classifier: ErrorClassifier | None = None,
        rng: random.Random | None = None,
        sleep: SleepFn | None = None,
        dedupe: bool = True,
        caller: str = "sdk",
    ) -> EngineContext:
        """Compose the engine around *adapter*.

        Args:
            adapter: Remote adapter performing reservation calls.
            settings: Defaults to :func:`get_settings`.
            classifier: Defaults to the built-in rules.
            rng: Jitter source for the backoff table.
            sleep: Replacement for every pause (tests).
            dedupe: Wrap the adapter in a :class:`DedupingAdapter`.
        """
        settings = settings or get_settings()
        classifier = classifier or get_default_classifier()
        table = BackoffPolicyTable.from_settings(settings, rng=rng)
        task_manager = BoundedTaskManager.from_settings(settings)

        deduplicator = None
        if dedupe:
            adapter = DedupingAdapter(adapter)
            deduplicator = adapter.deduplicator

        orchestrator = BatchOrchestrator(
            adapter,
            table=table,
            classifier=classifier,
            batch_size=settings.batch_size,
            inter_batch_delay=settings.inter_batch_delay,
            time_budget=settings.batch_time_budget,
            sleep=sleep,
            task_manager=task_manager,
        )
        selectors = SelectorRegistry(
            adapter,
            max_attempts=settings.selector_max_attempts,
            interval=settings.selector_interval,
            classifier=classifier,
            table=table,
            task_manager=task_manager,
            sleep=sleep,
        )
        return cls(
            settings=settings,
            task_manager=task_manager,
            orchestrator=orchestrator,
            selectors=selectors,
            deduplicator=deduplicator,
            caller=caller,
        )

    async def close(self) -> None:
        """Stop every selector and shut the task manager down."""
        self.selectors.stop_all()
        await self.task_manager.shutdown()
