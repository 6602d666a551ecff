"""Operator console input mapping."""

from rescue_console.modules.console.operator import (
    OperatorConsole,
    format_action_error,
    format_status_line,
)

__all__ = ["OperatorConsole", "format_action_error", "format_status_line"]
