"""Centralized settings for coursegrab.

One validated, cached settings object holds every tunable of the engine:
task-manager concurrency, batch pacing, persistent-selector cadence, and the
operator ceiling on "section full" retries.

All fields can be set via ``COURSEGRAB_*`` environment variables (e.g.
``COURSEGRAB_MAX_CONCURRENCY=8``) or a ``.env`` file.  Durations are in
seconds.

Examples:
    >>> from coursegrab.core.settings import get_settings
    >>> settings = get_settings()
    >>> settings.batch_size
    3
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CourseGrabSettings(BaseSettings):
    """Engine configuration, read once at process start."""

    model_config = SettingsConfigDict(
        env_prefix="COURSEGRAB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="auto", description="json | console | auto")

    # ── Task manager ─────────────────────────────────────────────
    max_concurrency: int = Field(default=5, description="Execution slots shared by all tasks")
    task_retention: int = Field(default=100, description="Finished task records kept for polling")

    # ── Batch orchestrator ───────────────────────────────────────
    batch_size: int = Field(default=3)
    inter_batch_delay: float = Field(default=0.5)
    batch_time_budget: float | None = Field(
        default=None,
        description="Seconds a single batch may keep retrying (None = no limit)",
    )

    # ── Persistent selector ──────────────────────────────────────
    selector_max_attempts: int = Field(default=100)
    selector_interval: float = Field(default=1.0)

    # ── Backoff ──────────────────────────────────────────────────
    resource_exhausted_max_attempts: int | None = Field(
        default=None,
        description="Ceiling for 'section full' retries (None = retry indefinitely)",
    )
    jitter: bool = Field(default=True)

    @field_validator(
        "max_concurrency",
        "batch_size",
        "selector_max_attempts",
        "task_retention",
        "resource_exhausted_max_attempts",
    )
    @classmethod
    def _positive_int(cls, value: int | None) -> int | None:
        if value is not None and value < 1:
            raise ValueError("must be a positive integer")
        return value

    @field_validator("selector_interval")
    @classmethod
    def _positive_interval(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @field_validator("inter_batch_delay", "batch_time_budget")
    @classmethod
    def _non_negative(cls, value: float | None) -> float | None:
        if value is not None and value < 0:
            raise ValueError("must not be negative")
        return value

    @field_validator("log_format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("json", "console", "auto"):
            raise ValueError("must be one of: json, console, auto")
        return value


_settings_cache: dict[str, CourseGrabSettings] = {}


def get_settings(*, _force_reload: bool = False) -> CourseGrabSettings:
    """Load, validate, and cache a :class:`CourseGrabSettings` instance."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    settings = CourseGrabSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()


__all__ = ["CourseGrabSettings", "get_settings", "clear_settings_cache"]
