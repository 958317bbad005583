"""Shared fixtures for coursegrab.ops tests."""

import pytest

from coursegrab.ops.context import EngineContext
from tests._support.adapters import ScriptedAdapter
from tests._support.engine import make_engine


@pytest.fixture()
def engine(adapter: ScriptedAdapter) -> EngineContext:
    """Engine around the default scripted adapter."""
    return make_engine(adapter)
