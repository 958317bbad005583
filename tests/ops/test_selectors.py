"""Tests for coursegrab.ops.selectors."""

import asyncio

import pytest

from coursegrab.ops.requests import SelectorRequest, StartSelectorRequest
from coursegrab.ops.selectors import get_selector_status, start_selector, stop_selector
from tests._support.adapters import ScriptedAdapter, wait_until
from tests._support.engine import make_engine, payload


def _gated_engine():
    gate = asyncio.Event()
    adapter = ScriptedAdapter(gate=gate)
    return make_engine(adapter), adapter, gate


class TestStartSelector:
    @pytest.mark.asyncio
    async def test_start(self, engine):
        r = start_selector(engine, StartSelectorRequest(targets=[payload(1)], max_attempts=7, interval_ms=200))
        assert r.success
        assert r.data.phase == "running"
        assert r.data.running is True
        assert r.data.max_attempts == 7
        assert r.data.interval_ms == 200
        assert r.data.current_target == "Course 1"
        assert r.data.task_id is not None
        await engine.selectors.get("default").wait(timeout=1)
        await engine.close()

    @pytest.mark.asyncio
    async def test_settings_defaults(self):
        engine = make_engine(selector_max_attempts=9)
        r = start_selector(engine, StartSelectorRequest(targets=[payload(1)]))
        assert r.data.max_attempts == 9
        assert r.data.interval_ms == 1
        await engine.close()

    def test_empty(self, engine):
        r = start_selector(engine, StartSelectorRequest(targets=[]))
        assert r.error.code == "VALIDATION_FAILED"

    def test_incomplete_target(self, engine):
        r = start_selector(engine, StartSelectorRequest(targets=[payload(1), {"kch_id": "C2"}]))
        assert r.error.code == "VALIDATION_FAILED"
        assert r.error.details["position"] == 1
        assert r.error.details["missing"] == ["class_id", "offering_id"]
        assert engine.selectors.get("default") is None

    def test_invalid_payload(self, engine):
        r = start_selector(engine, StartSelectorRequest(targets=[42]))
        assert r.error.code == "VALIDATION_FAILED"

    def test_bad_budget(self, engine):
        r = start_selector(engine, StartSelectorRequest(targets=[payload(1)], max_attempts=0))
        assert r.error.code == "VALIDATION_FAILED"

    @pytest.mark.asyncio
    async def test_conflict_leaves_run_untouched(self):
        engine, adapter, gate = _gated_engine()
        start_selector(engine, StartSelectorRequest(targets=[payload(1), payload(2)]))
        await wait_until(lambda: adapter.in_flight == 1)

        r = start_selector(engine, StartSelectorRequest(targets=[payload(3)]))
        assert r.error.code == "CONFLICT"
        assert r.error.details["phase"] == "running"

        status = get_selector_status(engine, SelectorRequest()).data
        assert status.targets == ["C1_S1", "C2_S2"]
        assert status.attempt_count == 0
        gate.set()
        await engine.selectors.get("default").wait(timeout=1)
        await engine.close()

    @pytest.mark.asyncio
    async def test_named_selectors_are_independent(self):
        engine, adapter, gate = _gated_engine()
        assert start_selector(engine, StartSelectorRequest(targets=[payload(1)], selector="a")).success
        assert start_selector(engine, StartSelectorRequest(targets=[payload(2)], selector="b")).success
        stop_selector(engine, SelectorRequest("a"))
        assert get_selector_status(engine, SelectorRequest("b")).data.running
        gate.set()
        await engine.close()


class TestStopSelector:
    def test_unknown_is_noop(self, engine):
        r = stop_selector(engine, SelectorRequest("nobody"))
        assert r.success
        assert (r.data.stopped, r.data.phase) == (False, "idle")

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self):
        engine, adapter, gate = _gated_engine()
        start_selector(engine, StartSelectorRequest(targets=[payload(1)]))

        first = stop_selector(engine, SelectorRequest())
        second = stop_selector(engine, SelectorRequest())
        assert (first.data.stopped, first.data.phase) == (True, "stopped")
        assert (second.data.stopped, second.data.phase) == (False, "stopped")
        assert get_selector_status(engine, SelectorRequest()).data.running is False
        gate.set()
        await engine.close()


class TestSelectorStatus:
    def test_unknown_is_idle(self, engine):
        r = get_selector_status(engine, SelectorRequest("never"))
        assert r.success
        assert r.data.phase == "idle"
        assert r.data.running is False
        assert r.data.results == {}

    @pytest.mark.asyncio
    async def test_after_success(self, engine):
        start_selector(engine, StartSelectorRequest(targets=[payload(1)]))
        await engine.selectors.get("default").wait(timeout=1)

        data = get_selector_status(engine, SelectorRequest()).data
        assert data.phase == "succeeded"
        assert data.success_count == 1
        assert data.results["C1_S1"]["succeeded"] is True
        assert data.last_outcome["message"] == "选课成功"
        await engine.close()
