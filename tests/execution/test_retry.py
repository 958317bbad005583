"""Tests for the backoff policy table."""

import math
import random

import pytest

from coursegrab.core.errors import ErrorKind, ValidationError
from coursegrab.core.settings import CourseGrabSettings
from coursegrab.execution.retry import (
    DEFAULT_POLICIES,
    BackoffPolicyTable,
    RetryPolicy,
    delay_for,
)


class TestRetryPolicy:
    """Tests for a single policy."""

    def test_exponential_sequence_without_jitter(self):
        policy = RetryPolicy(max_attempts=5, base_delay=1.0, max_delay=100.0, exponential_base=2.0)
        assert [policy.next_delay(n, jitter=False) for n in range(1, 6)] == [1.0, 2.0, 4.0, 8.0, 16.0]

    def test_clamped_to_max_delay(self):
        policy = RetryPolicy(max_attempts=10, base_delay=3.0, max_delay=5.0, exponential_base=2.0)
        assert policy.next_delay(4, jitter=False) == 5.0

    def test_inf_past_budget(self):
        policy = RetryPolicy(max_attempts=2, base_delay=1.0, max_delay=5.0)
        assert policy.next_delay(2, jitter=False) == 1.0
        assert math.isinf(policy.next_delay(3, jitter=False))

    def test_zero_attempts_is_terminal(self):
        policy = RetryPolicy(max_attempts=0)
        assert policy.terminal
        assert math.isinf(policy.next_delay(1))

    def test_jitter_within_twenty_percent(self):
        policy = RetryPolicy(max_attempts=10, base_delay=10.0, max_delay=100.0, exponential_base=1.0)
        rng = random.Random(42)
        delays = [policy.next_delay(1, rng=rng) for _ in range(200)]
        assert all(8.0 <= d <= 12.0 for d in delays)
        assert len(set(delays)) > 1

    def test_negative_values_rejected(self):
        with pytest.raises(ValidationError):
            RetryPolicy(max_attempts=-1)
        with pytest.raises(ValidationError):
            RetryPolicy(max_attempts=1, base_delay=-1.0)

    def test_to_dict_unbounded(self):
        assert RetryPolicy(max_attempts=math.inf).to_dict()["max_attempts"] is None


class TestDefaultTable:
    """Default policies per error kind."""

    def test_every_kind_has_a_policy(self):
        assert set(DEFAULT_POLICIES) == set(ErrorKind)

    @pytest.mark.parametrize("kind", [ErrorKind.AUTHENTICATION_ERROR, ErrorKind.RESOURCE_CONFLICT])
    def test_terminal_kinds_never_retry(self, kind, table):
        assert math.isinf(table.delay_for(kind, 1))
        assert not table.should_retry(kind, 1)

    def test_module_level_delay_for(self):
        assert math.isinf(delay_for(ErrorKind.AUTHENTICATION_ERROR, 1))

    def test_exhausted_unbounded(self, table):
        assert table.policy_for(ErrorKind.RESOURCE_EXHAUSTED).unbounded
        assert table.delay_for(ErrorKind.RESOURCE_EXHAUSTED, 10_000) == 30.0

    @pytest.mark.parametrize("attempt", [1024, 1025, 1100, 5000])
    def test_exhausted_saturates_at_ceiling_past_float_range(self, table, attempt):
        assert table.delay_for(ErrorKind.RESOURCE_EXHAUSTED, attempt) == 30.0

    def test_saturated_delay_with_jitter_stays_clamped(self):
        jittered = BackoffPolicyTable(rng=random.Random(7))
        delays = [jittered.delay_for(ErrorKind.RESOURCE_EXHAUSTED, 5000) for _ in range(20)]
        assert all(0 < d <= 30.0 for d in delays)

    def test_system_sequence(self, table):
        assert [table.delay_for(ErrorKind.SYSTEM_ERROR, n) for n in (1, 2, 3)] == [3.0, 6.0, 12.0]
        assert math.isinf(table.delay_for(ErrorKind.SYSTEM_ERROR, 4))

    def test_network_sequence(self, table):
        assert table.delay_for(ErrorKind.NETWORK_ERROR, 1) == 1.0
        assert table.delay_for(ErrorKind.NETWORK_ERROR, 2) == pytest.approx(1.5)
        assert math.isinf(table.delay_for(ErrorKind.NETWORK_ERROR, 6))

    @pytest.mark.parametrize(
        "kind", [ErrorKind.NETWORK_ERROR, ErrorKind.SYSTEM_ERROR, ErrorKind.UNKNOWN],
    )
    def test_bounded_kinds_never_exceed_max_then_inf(self, kind):
        jittered = BackoffPolicyTable(rng=random.Random(7))
        policy = jittered.policy_for(kind)
        budget = int(policy.max_attempts)
        for n in range(1, budget + 1):
            delay = jittered.delay_for(kind, n)
            assert 0.0 <= delay <= policy.max_delay
        for n in range(budget + 1, budget + 20):
            assert math.isinf(jittered.delay_for(kind, n))

    def test_non_decreasing_without_jitter(self, table):
        for kind in (ErrorKind.NETWORK_ERROR, ErrorKind.SYSTEM_ERROR, ErrorKind.UNKNOWN):
            delays = [table.delay_for(kind, n) for n in range(1, 10)]
            assert delays == sorted(delays)

    def test_attempt_number_is_one_based(self, table):
        with pytest.raises(ValidationError):
            table.delay_for(ErrorKind.NETWORK_ERROR, 0)


class TestTableConstruction:
    def test_with_overrides_leaves_original(self, table):
        custom = table.with_overrides({ErrorKind.UNKNOWN: RetryPolicy(max_attempts=0)})
        assert math.isinf(custom.delay_for(ErrorKind.UNKNOWN, 1))
        assert table.delay_for(ErrorKind.UNKNOWN, 1) == 2.0

    def test_from_settings_ceiling(self):
        settings = CourseGrabSettings(resource_exhausted_max_attempts=3, jitter=False)
        table = BackoffPolicyTable.from_settings(settings)
        assert table.delay_for(ErrorKind.RESOURCE_EXHAUSTED, 3) == 8.0
        assert math.isinf(table.delay_for(ErrorKind.RESOURCE_EXHAUSTED, 4))
        assert table.jitter is False

    def test_from_default_settings_unbounded(self):
        table = BackoffPolicyTable.from_settings(CourseGrabSettings())
        assert table.policy_for(ErrorKind.RESOURCE_EXHAUSTED).unbounded

    def test_to_dict_and_iteration(self, table):
        d = table.to_dict()
        assert d["AUTHENTICATION_ERROR"]["max_attempts"] == 0
        assert d["RESOURCE_EXHAUSTED"]["max_attempts"] is None
        assert list(table) == list(ErrorKind)


class TestOverflow:
    def test_exponential_delay_saturates(self):
        policy = RetryPolicy(max_attempts=math.inf, base_delay=2.0, max_delay=30.0, exponential_base=2.0)
        assert math.isinf(policy.exponential_delay(1100))
        assert policy.next_delay(1100, jitter=False) == 30.0

    def test_zero_base_never_overflows(self):
        policy = RetryPolicy(max_attempts=math.inf, base_delay=0.0, max_delay=5.0, exponential_base=2.0)
        assert policy.next_delay(5000) == 0.0
