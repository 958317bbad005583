"""Tests for coursegrab.core.settings module.

Covers:
- Defaults
- Environment variable override (COURSEGRAB_ prefix)
- Validation of non-positive values
- Caching
"""

import pytest
from pydantic import ValidationError

from coursegrab.core.settings import CourseGrabSettings, clear_settings_cache, get_settings


class TestDefaults:
    def test_engine_defaults(self):
        s = CourseGrabSettings()
        assert s.max_concurrency == 5
        assert s.batch_size == 3
        assert s.inter_batch_delay == 0.5
        assert s.batch_time_budget is None
        assert s.selector_max_attempts == 100
        assert s.selector_interval == 1.0
        assert s.resource_exhausted_max_attempts is None
        assert s.task_retention == 100
        assert s.jitter is True

    def test_logging_defaults(self):
        s = CourseGrabSettings()
        assert s.log_level == "INFO"
        assert s.log_format == "auto"


class TestEnvironment:
    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("COURSEGRAB_MAX_CONCURRENCY", "2")
        monkeypatch.setenv("COURSEGRAB_JITTER", "false")
        s = CourseGrabSettings()
        assert s.max_concurrency == 2
        assert s.jitter is False

    def test_unrelated_env_ignored(self, monkeypatch):
        monkeypatch.setenv("MAX_CONCURRENCY", "9")
        assert CourseGrabSettings().max_concurrency == 5

    def test_log_format_normalised(self, monkeypatch):
        monkeypatch.setenv("COURSEGRAB_LOG_FORMAT", "JSON")
        assert CourseGrabSettings().log_format == "json"


class TestValidation:
    @pytest.mark.parametrize("field", ["max_concurrency", "batch_size", "selector_max_attempts"])
    def test_non_positive_rejected(self, field):
        with pytest.raises(ValidationError):
            CourseGrabSettings(**{field: 0})

    def test_zero_interval_rejected(self):
        with pytest.raises(ValidationError):
            CourseGrabSettings(selector_interval=0)

    def test_negative_delay_rejected(self):
        with pytest.raises(ValidationError):
            CourseGrabSettings(inter_batch_delay=-1)

    def test_zero_delay_allowed(self):
        assert CourseGrabSettings(inter_batch_delay=0).inter_batch_delay == 0

    def test_unknown_log_format_rejected(self):
        with pytest.raises(ValidationError):
            CourseGrabSettings(log_format="xml")

    def test_exhausted_ceiling(self):
        assert CourseGrabSettings(resource_exhausted_max_attempts=50).resource_exhausted_max_attempts == 50


class TestCache:
    def test_cached_instance(self):
        assert get_settings() is get_settings()

    def test_clear_cache(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("COURSEGRAB_BATCH_SIZE", "7")
        assert get_settings().batch_size == first.batch_size
        clear_settings_cache()
        assert get_settings().batch_size == 7

    def test_force_reload(self, monkeypatch):
        first = get_settings()
        assert get_settings(_force_reload=True) is not first
