"""
Shared pytest fixtures for coursegrab tests.

This module provides:
- Settings cache isolation
- A deterministic (jitter-free) backoff table
- Scripted adapter and recording sleep fakes
"""

import os
import sys
from pathlib import Path

import pytest

# Ensure coursegrab package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent.parent))

from coursegrab.core.settings import clear_settings_cache
from coursegrab.execution.retry import BackoffPolicyTable
from tests._support.adapters import RecordingSleep, ScriptedAdapter


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    """Every test sees default settings, whatever the environment says."""
    for name in list(os.environ):
        if name.startswith("COURSEGRAB_"):
            monkeypatch.delenv(name, raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def table() -> BackoffPolicyTable:
    """Default policies with jitter disabled."""
    return BackoffPolicyTable(jitter=False)


@pytest.fixture
def adapter() -> ScriptedAdapter:
    return ScriptedAdapter()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
