"""Backoff policy table — per-ErrorKind retry budgets and delay formula.

Each :class:`ErrorKind` owns one :class:`RetryPolicy`.  The table answers a
single question for the attempt loop: *given this failure kind and how many
attempts have been made, how long should we wait before trying again — or
should we stop?*

Delay = clamp(base_delay * exponential_base ** (n - 1) ± 20 % jitter, 0, max_delay)

An infinite delay (``math.inf``) means "do not retry".

Default table::

    kind                  max_attempts   base    max    exp
    NETWORK_ERROR         5              1.0s    10s    1.5
    AUTHENTICATION_ERROR  0              -       -      -     (terminal)
    RESOURCE_EXHAUSTED    inf            2.0s    30s    2.0   (section full: outlast it)
    RESOURCE_CONFLICT     0              -       -      -     (terminal)
    SYSTEM_ERROR          3              3.0s    15s    2.0
    UNKNOWN               3              2.0s    10s    1.5

Example:
    >>> from coursegrab.execution.retry import BackoffPolicyTable
    >>> from coursegrab.core.errors import ErrorKind
    >>>
    >>> table = BackoffPolicyTable(jitter=False)
    >>> for n in range(1, 4):
    ...     print(n, table.delay_for(ErrorKind.SYSTEM_ERROR, n))
    1 3.0
    2 6.0
    3 12.0
    >>> table.delay_for(ErrorKind.SYSTEM_ERROR, 4)
    inf
"""

from __future__ import annotations

import math
import random
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Any

from coursegrab.core.errors import ErrorKind, ValidationError

INFINITE = math.inf


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget and delay formula for one error kind.

    Attributes:
        max_attempts: Highest attempt number that may still be followed by a
            retry.  ``0`` means never retry; ``math.inf`` means retry forever.
        base_delay: Delay after the first failed attempt, in seconds
        max_delay: Ceiling for any computed delay, in seconds
        exponential_base: Growth factor per attempt
        jitter_range: Symmetric jitter as a fraction of the exponential delay
    """

    max_attempts: float
    base_delay: float = 0.0
    max_delay: float = 0.0
    exponential_base: float = 1.0
    jitter_range: float = 0.2

    def __post_init__(self) -> None:
        if self.max_attempts < 0:
            raise ValidationError("max_attempts must not be negative", field="max_attempts")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValidationError("delays must not be negative", field="base_delay")

    @property
    def unbounded(self) -> bool:
        return math.isinf(self.max_attempts)

    @property
    def terminal(self) -> bool:
        """True when this kind is never retried."""
        return self.max_attempts == 0

    def should_retry(self, attempt_number: int) -> bool:
        return attempt_number <= self.max_attempts

    def exponential_delay(self, attempt_number: int) -> float:
        """Un-jittered, un-clamped delay for *attempt_number*.

        Saturates at ``inf`` instead of raising once the power overflows a
        float, which an unbounded policy reaches after ~1000 attempts.
        """
        if self.base_delay == 0:
            return 0.0
        try:
            return self.base_delay * (self.exponential_base ** (attempt_number - 1))
        except OverflowError:
            return INFINITE

    def next_delay(
        self,
        attempt_number: int,
        *,
        jitter: bool = True,
        rng: random.Random | None = None,
    ) -> float:
        """Calculate the delay after *attempt_number* failed, or ``inf``."""
        if not self.should_retry(attempt_number):
            return INFINITE

        delay = self.exponential_delay(attempt_number)
        if math.isinf(delay):
            return self.max_delay
        if jitter and delay > 0:
            jitter_amount = delay * self.jitter_range
            delay += (rng or random).uniform(-jitter_amount, jitter_amount)

        return min(max(0.0, delay), self.max_delay)

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_attempts": None if self.unbounded else int(self.max_attempts),
            "base_delay": self.base_delay,
            "max_delay": self.max_delay,
            "exponential_base": self.exponential_base,
        }


DEFAULT_POLICIES: Mapping[ErrorKind, RetryPolicy] = MappingProxyType({
    ErrorKind.NETWORK_ERROR: RetryPolicy(
        max_attempts=5, base_delay=1.0, max_delay=10.0, exponential_base=1.5,
    ),
    ErrorKind.AUTHENTICATION_ERROR: RetryPolicy(max_attempts=0),
    ErrorKind.RESOURCE_EXHAUSTED: RetryPolicy(
        max_attempts=INFINITE, base_delay=2.0, max_delay=30.0, exponential_base=2.0,
    ),
    ErrorKind.RESOURCE_CONFLICT: RetryPolicy(max_attempts=0),
    ErrorKind.SYSTEM_ERROR: RetryPolicy(
        max_attempts=3, base_delay=3.0, max_delay=15.0, exponential_base=2.0,
    ),
    ErrorKind.UNKNOWN: RetryPolicy(
        max_attempts=3, base_delay=2.0, max_delay=10.0, exponential_base=1.5,
    ),
})


class BackoffPolicyTable:
    """Read-only mapping of :class:`ErrorKind` to :class:`RetryPolicy`.

    Built once at startup and shared.  ``with_overrides`` returns a new table;
    nothing mutates an existing one.

    Args:
        policies: Policies to use; kinds not given fall back to
            :data:`DEFAULT_POLICIES`.
        jitter: Apply ±jitter to computed delays.
        rng: Random source for jitter (seed it in tests).
    """

    def __init__(
        self,
        policies: Mapping[ErrorKind, RetryPolicy] | None = None,
        *,
        jitter: bool = True,
        rng: random.Random | None = None,
    ) -> None:
        merged = dict(DEFAULT_POLICIES)
        if policies:
            merged.update(policies)
        self._policies: Mapping[ErrorKind, RetryPolicy] = MappingProxyType(merged)
        self._jitter = jitter
        self._rng = rng

    @classmethod
    def from_settings(cls, settings: Any, *, rng: random.Random | None = None) -> BackoffPolicyTable:
        """Build the table from settings, applying the section-full ceiling."""
        overrides: dict[ErrorKind, RetryPolicy] = {}
        ceiling = getattr(settings, "resource_exhausted_max_attempts", None)
        if ceiling is not None:
            overrides[ErrorKind.RESOURCE_EXHAUSTED] = replace(
                DEFAULT_POLICIES[ErrorKind.RESOURCE_EXHAUSTED], max_attempts=ceiling,
            )
        return cls(overrides, jitter=getattr(settings, "jitter", True), rng=rng)

    @property
    def jitter(self) -> bool:
        return self._jitter

    def policy_for(self, kind: ErrorKind) -> RetryPolicy:
        return self._policies[kind]

    def delay_for(self, kind: ErrorKind, attempt_number: int) -> float:
        """Delay in seconds before the next attempt, or ``math.inf`` to stop.

        Args:
            kind: Classification of the failure that just happened
            attempt_number: 1-based number of the attempt that failed
        """
        if attempt_number < 1:
            raise ValidationError(
                "attempt_number is 1-based", field="attempt_number", value=attempt_number,
            )
        return self._policies[kind].next_delay(attempt_number, jitter=self._jitter, rng=self._rng)

    def should_retry(self, kind: ErrorKind, attempt_number: int) -> bool:
        return self._policies[kind].should_retry(attempt_number)

    def with_overrides(self, policies: Mapping[ErrorKind, RetryPolicy]) -> BackoffPolicyTable:
        merged = dict(self._policies)
        merged.update(policies)
        return BackoffPolicyTable(merged, jitter=self._jitter, rng=self._rng)

    def __iter__(self) -> Iterator[ErrorKind]:
        return iter(self._policies)

    def items(self):
        return self._policies.items()

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {kind.value: policy.to_dict() for kind, policy in self._policies.items()}


_default_table = BackoffPolicyTable()


def get_default_table() -> BackoffPolicyTable:
    return _default_table


def delay_for(kind: ErrorKind, attempt_number: int) -> float:
    """Delay from the default table."""
    return _default_table.delay_for(kind, attempt_number)


__all__ = [
    "INFINITE",
    "RetryPolicy",
    "DEFAULT_POLICIES",
    "BackoffPolicyTable",
    "get_default_table",
    "delay_for",
]
