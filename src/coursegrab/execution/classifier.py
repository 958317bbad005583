"""Error classifier — maps opaque failure signals to an :class:`ErrorKind`.

The remote reservation system reports failure as free text (an HTML fragment,
a JSON ``msg`` field, an exception message) or as a bare HTTP status.  The
classifier turns any of those into one of the six kinds that drive the
backoff policy.

Rules are an ordered list of ``(compiled pattern, ErrorKind)`` pairs compiled
once at construction and evaluated top to bottom; the first match wins and
``UNKNOWN`` is the fallback.  Order matters: ``"session timeout"`` is a
network error, not an authentication error, because the network rules come
first.

Example:
    >>> from coursegrab.execution.classifier import classify
    >>> classify("401 Unauthorized")
    <ErrorKind.AUTHENTICATION_ERROR: 'AUTHENTICATION_ERROR'>
    >>> classify("该教学班人数已满")
    <ErrorKind.RESOURCE_EXHAUSTED: 'RESOURCE_EXHAUSTED'>
    >>> classify(503)
    <ErrorKind.SYSTEM_ERROR: 'SYSTEM_ERROR'>
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from typing import Any

from coursegrab.core.errors import ErrorKind

Rule = tuple[re.Pattern[str], ErrorKind]

_I = re.IGNORECASE

DEFAULT_PATTERNS: Sequence[tuple[str, int, ErrorKind]] = (
    # Network
    (r"network", _I, ErrorKind.NETWORK_ERROR),
    (r"timeout|timed out", _I, ErrorKind.NETWORK_ERROR),
    (r"fetch failed", _I, ErrorKind.NETWORK_ERROR),
    (r"ECONNREFUSED|ETIMEDOUT|ECONNRESET", _I, ErrorKind.NETWORK_ERROR),
    (r"connection (reset|refused|aborted)", _I, ErrorKind.NETWORK_ERROR),
    # Authentication
    (r"unauthori[sz]ed", _I, ErrorKind.AUTHENTICATION_ERROR),
    (r"authentication", _I, ErrorKind.AUTHENTICATION_ERROR),
    (r"cookie", _I, ErrorKind.AUTHENTICATION_ERROR),
    (r"session", _I, ErrorKind.AUTHENTICATION_ERROR),
    (r"(?<!\d)(401|403)(?!\d)", 0, ErrorKind.AUTHENTICATION_ERROR),
    # Resource exhausted (section full)
    (r"人数已满|已满", 0, ErrorKind.RESOURCE_EXHAUSTED),
    (r"容量不足", 0, ErrorKind.RESOURCE_EXHAUSTED),
    (r"\bfull\b|at capacity", _I, ErrorKind.RESOURCE_EXHAUSTED),
    # Resource conflict (schedule clash)
    (r"时间冲突|冲突", 0, ErrorKind.RESOURCE_CONFLICT),
    (r"conflict", _I, ErrorKind.RESOURCE_CONFLICT),
    # System
    (r"(?<!\d)(500|502|503)(?!\d)", 0, ErrorKind.SYSTEM_ERROR),
    (r"系统错误|服务器错误", 0, ErrorKind.SYSTEM_ERROR),
    (r"system error|internal server error", _I, ErrorKind.SYSTEM_ERROR),
)


def describe(raw: Any) -> str:
    """Render a raw failure signal as the text the rules are matched against.

    Exceptions contribute their message, or their class name when the message
    is empty (``TimeoutError()`` still reads as a timeout).  ``None`` is the
    empty string.
    """
    if raw is None:
        return ""
    if isinstance(raw, BaseException):
        message = str(raw)
        return message if message else type(raw).__name__
    return str(raw)


class ErrorClassifier:
    """Ordered, pattern-based classifier.

    Deterministic and side-effect free; safe to share between tasks.

    Args:
        rules: ``(pattern, flags, kind)`` triples, evaluated in order.
            Defaults to :data:`DEFAULT_PATTERNS`.
    """

    def __init__(self, rules: Iterable[tuple[str, int, ErrorKind]] | None = None) -> None:
        source = DEFAULT_PATTERNS if rules is None else tuple(rules)
        self._rules: tuple[Rule, ...] = tuple(
            (re.compile(pattern, flags), kind) for pattern, flags, kind in source
        )

    @property
    def rules(self) -> tuple[Rule, ...]:
        return self._rules

    def classify(self, raw: Any) -> ErrorKind:
        """Return the first matching :class:`ErrorKind`, or ``UNKNOWN``."""
        text = describe(raw)
        if not text:
            return ErrorKind.UNKNOWN
        for pattern, kind in self._rules:
            if pattern.search(text):
                return kind
        return ErrorKind.UNKNOWN

    def extend(self, rules: Iterable[tuple[str, int, ErrorKind]], *, first: bool = True) -> ErrorClassifier:
        """Return a new classifier with extra rules placed before (or after) these."""
        extra = [(p.pattern, p.flags, k) for p, k in ErrorClassifier(rules).rules]
        current = [(p.pattern, p.flags, k) for p, k in self._rules]
        return ErrorClassifier(extra + current if first else current + extra)


_default_classifier = ErrorClassifier()


def get_default_classifier() -> ErrorClassifier:
    return _default_classifier


def classify(raw: Any) -> ErrorKind:
    """Classify with the default rule set."""
    return _default_classifier.classify(raw)


__all__ = [
    "DEFAULT_PATTERNS",
    "ErrorClassifier",
    "classify",
    "describe",
    "get_default_classifier",
]
