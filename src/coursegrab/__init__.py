"""coursegrab — retry-governed, concurrency-bounded course reservation engine.

Layers::

    core/        errors, structured logging, settings
    execution/   classifier, backoff, dedup, task manager, batch, selector
    ops/         front-door operations returning OperationResult
"""

__version__ = "0.1.0"
