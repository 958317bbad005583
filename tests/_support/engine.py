"""Engine contexts wired for fast, deterministic tests."""

from __future__ import annotations

from typing import Any

from coursegrab.core.settings import CourseGrabSettings
from coursegrab.ops.context import EngineContext
from tests._support.adapters import RecordingSleep, ScriptedAdapter


def make_engine(adapter: ScriptedAdapter | None = None, **overrides: Any) -> EngineContext:
    """Context with jitter off, no inter-chunk delay and a recording sleep."""
    settings = CourseGrabSettings(
        **{"jitter": False, "inter_batch_delay": 0, "selector_interval": 0.001, **overrides}
    )
    return EngineContext.from_settings(
        adapter or ScriptedAdapter(), settings, sleep=RecordingSleep(), caller="test",
    )


def payload(n: int, **fields: Any) -> dict[str, Any]:
    """Raw target payload in the reservation system's field names."""
    raw = {"kch_id": f"C{n}", "jxb_id": f"S{n}", "do_jxb_id": f"enc{n}", "kcmc": f"Course {n}"}
    raw.update(fields)
    return raw
