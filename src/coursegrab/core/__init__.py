"""coursegrab core -- errors, logging, and settings shared by every layer.

Architecture::

    errors.py      ErrorKind taxonomy + CourseGrabError hierarchy
    logging.py     Structured logging (structlog)
    settings.py    CourseGrabSettings (pydantic-settings, cached)
"""

from .errors import (
    AlreadyRunningError,
    CourseGrabError,
    ErrorContext,
    ErrorKind,
    InvalidTransitionError,
    TaskNotFoundError,
    ValidationError,
)
from .logging import LogContext, configure_logging, get_logger
from .settings import CourseGrabSettings, clear_settings_cache, get_settings

__all__ = [
    "AlreadyRunningError",
    "CourseGrabError",
    "ErrorContext",
    "ErrorKind",
    "InvalidTransitionError",
    "TaskNotFoundError",
    "ValidationError",
    "LogContext",
    "configure_logging",
    "get_logger",
    "CourseGrabSettings",
    "clear_settings_cache",
    "get_settings",
]
