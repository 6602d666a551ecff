"""Rendering runtime bridge."""

from rescue_console.modules.runtime.bridge import RuntimeCommand, WebSocketRuntimeBridge

__all__ = ["RuntimeCommand", "WebSocketRuntimeBridge"]
