"""Core interfaces and error taxonomy."""

from rescue_console.core.errors import (
    ActionRejected,
    AdvisoryTransportError,
    ChannelConnectionError,
    ConfigurationError,
    ConsoleError,
    DecodeError,
)
from rescue_console.core.interfaces import AdvisoryService, RuntimeBridge

__all__ = [
    "ActionRejected",
    "AdvisoryService",
    "AdvisoryTransportError",
    "ChannelConnectionError",
    "ConfigurationError",
    "ConsoleError",
    "DecodeError",
    "RuntimeBridge",
]
