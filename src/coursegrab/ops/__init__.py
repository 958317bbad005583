"""
Operations layer — the front door's view of the coursegrab engine.

- All functions accept ``EngineContext`` as first argument
- All functions return ``OperationResult[T]`` and never raise for expected failures
- All functions are transport-agnostic (no HTTP, no CLI knowledge)

Usage::

    from coursegrab.ops import EngineContext
    from coursegrab.ops.batches import run_batch
    from coursegrab.ops.requests import RunBatchRequest

    ctx = EngineContext.from_settings(my_adapter)
    result = await run_batch(ctx, RunBatchRequest(targets=[{"kch_id": "CS101", ...}]))
    assert result.success
"""

from coursegrab.ops.context import EngineContext
from coursegrab.ops.result import ErrorCode, OperationError, OperationResult

__all__ = [
    "EngineContext",
    "ErrorCode",
    "OperationError",
    "OperationResult",
]
