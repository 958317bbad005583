"""Tests for coursegrab.ops.result — OperationResult envelope."""

import pytest

from coursegrab.ops.responses import ConcurrencyInfo, TaskDetail
from coursegrab.ops.result import ErrorCode, OperationError, OperationResult, start_timer


class TestOperationResultOk:
    def test_ok_basic(self):
        r = OperationResult.ok("hello")
        assert r.success is True
        assert r.data == "hello"
        assert r.error is None
        assert r.warnings == []

    def test_ok_with_warnings(self):
        r = OperationResult.ok(42, warnings=["heads up"])
        assert r.warnings == ["heads up"]

    def test_ok_with_metadata(self):
        r = OperationResult.ok([], metadata={"source": "test"})
        assert r.metadata == {"source": "test"}


class TestOperationResultFail:
    def test_fail_basic(self):
        r = OperationResult.fail(ErrorCode.NOT_FOUND, "Task not found")
        assert r.success is False
        assert r.data is None
        assert r.error == OperationError(code=ErrorCode.NOT_FOUND, message="Task not found")

    def test_code_compares_as_string(self):
        r = OperationResult.fail("VALIDATION_FAILED", "Bad input", details={"field": "batch_size"})
        assert r.error.code is ErrorCode.VALIDATION_FAILED
        assert r.error.code == "VALIDATION_FAILED"
        assert r.error.details == {"field": "batch_size"}

    def test_unknown_code_rejected(self):
        with pytest.raises(ValueError):
            OperationResult.fail("TEAPOT", "nope")

    @pytest.mark.parametrize(
        "code, retryable",
        [
            (ErrorCode.VALIDATION_FAILED, False),
            (ErrorCode.NOT_FOUND, False),
            (ErrorCode.CONFLICT, True),
            (ErrorCode.INTERNAL, False),
        ],
    )
    def test_retryable_follows_code(self, code, retryable):
        assert OperationResult.fail(code, "x").error.retryable is retryable

    def test_retryable_override(self):
        assert OperationResult.fail(ErrorCode.INTERNAL, "x", retryable=True).error.retryable is True


class TestToDict:
    def test_payload_with_to_dict(self):
        r = OperationResult.ok(ConcurrencyInfo(max_concurrency=4, previous=5))
        assert r.to_dict() == {"success": True, "data": {"max_concurrency": 4, "previous": 5}}

    def test_plain_payload(self):
        assert OperationResult.ok([1, 2]).to_dict()["data"] == [1, 2]

    def test_list_of_responses_serialised_per_item(self):
        details = [TaskDetail(task_id="t1", name="a", state="queued")]
        data = OperationResult.ok(details).to_dict()["data"]
        assert isinstance(data[0], dict)
        assert data[0]["task_id"] == "t1"

    def test_failure(self):
        d = OperationResult.fail(
            ErrorCode.CONFLICT, "already running", details={"selector": "default"}, warnings=["w"],
        ).to_dict()
        assert d["success"] is False
        assert d["error"] == {
            "code": "CONFLICT",
            "message": "already running",
            "retryable": True,
            "details": {"selector": "default"},
        }
        assert d["warnings"] == ["w"]
        assert "data" not in d

    def test_elapsed_rounded(self):
        assert OperationResult.ok(1, elapsed_ms=1.23456).to_dict()["elapsed_ms"] == 1.23


def test_timer_measures_elapsed():
    timer = start_timer()
    assert timer.elapsed_ms >= 0
