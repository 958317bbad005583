"""Tests for coursegrab.ops.context — engine composition."""

import pytest

from coursegrab.core.errors import ErrorKind
from coursegrab.core.settings import CourseGrabSettings
from coursegrab.execution.adapter import DedupingAdapter
from coursegrab.ops.context import EngineContext
from coursegrab.ops.requests import StartSelectorRequest
from coursegrab.ops.selectors import start_selector
from tests._support.adapters import ScriptedAdapter
from tests._support.engine import make_engine, payload


class TestFromSettings:
    def test_wires_settings(self):
        engine = make_engine(max_concurrency=2, batch_size=4)
        assert engine.task_manager.max_concurrency == 2
        assert engine.orchestrator._batch_size == 4
        assert engine.caller == "test"
        assert engine.request_id

    def test_dedupes_by_default(self):
        engine = make_engine()
        assert isinstance(engine.orchestrator.adapter, DedupingAdapter)
        assert engine.deduplicator is engine.orchestrator.adapter.deduplicator

    def test_dedupe_can_be_disabled(self):
        adapter = ScriptedAdapter()
        engine = EngineContext.from_settings(adapter, CourseGrabSettings(), dedupe=False)
        assert engine.deduplicator is None
        assert engine.orchestrator.adapter is adapter

    def test_ceiling_on_full_sections(self):
        engine = make_engine(resource_exhausted_max_attempts=2)
        policy = engine.orchestrator._table.policy_for(ErrorKind.RESOURCE_EXHAUSTED)
        assert policy.max_attempts == 2


@pytest.mark.asyncio
async def test_close_stops_selectors():
    engine = make_engine()
    start_selector(engine, StartSelectorRequest(targets=[payload(1)]))
    await engine.close()
    assert engine.selectors.get("default").running is False
    assert engine.task_manager.stats().active == 0
