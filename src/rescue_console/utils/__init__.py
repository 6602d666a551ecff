"""Utility functions and configuration."""

from rescue_console.utils.config import ConsoleSettings, load_env_file
from rescue_console.utils.logging import (
    create_session_logger,
    get_logger,
    LogCategory,
    LogEntry,
    LogLevel,
    SessionLogger,
    set_logger,
    StructuredLogger,
)

__all__ = [
    "ConsoleSettings",
    "create_session_logger",
    "get_logger",
    "load_env_file",
    "LogCategory",
    "LogEntry",
    "LogLevel",
    "SessionLogger",
    "set_logger",
    "StructuredLogger",
]
