"""WebSocket bridge to the rendering runtime.

Commands are fire-and-forget: they are queued while the bridge is
connected and silently dropped otherwise. The runtime never answers.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

import websockets

from rescue_console.core.interfaces import RuntimeBridge
from rescue_console.utils.config import (
    RECONNECT_BACKOFF_FACTOR,
    RECONNECT_INITIAL_DELAY,
    RECONNECT_MAX_DELAY,
)
from rescue_console.utils.logging import LogLevel, StructuredLogger, get_logger

logger = logging.getLogger(__name__)

Connector = Callable[[str], Any]


@dataclass
class RuntimeCommand:
    """A command addressed to an object inside the rendering runtime."""

    target: str
    verb: str
    payload: Any = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_json(self) -> str:
        """Convert command to JSON string for transmission."""
        return json.dumps({
            "target": self.target,
            "verb": self.verb,
            "payload": self.payload,
        })


class WebSocketRuntimeBridge(RuntimeBridge):
    """Sends runtime commands over a WebSocket with automatic reconnection."""

    def __init__(
        self,
        connector: Connector | None = None,
        reconnect_delay: float = RECONNECT_INITIAL_DELAY,
        backoff_factor: float = RECONNECT_BACKOFF_FACTOR,
        max_reconnect_delay: float = RECONNECT_MAX_DELAY,
        event_log: StructuredLogger | None = None,
    ) -> None:
        self._connector = connector or websockets.connect
        self._reconnect_delay = reconnect_delay
        self._backoff_factor = backoff_factor
        self._max_reconnect_delay = max_reconnect_delay
        self._events = event_log or get_logger()

        self._url: str | None = None
        self._connected = False
        self._task: asyncio.Task | None = None
        self._queue: asyncio.Queue[RuntimeCommand] | None = None

        # Statistics
        self._commands_sent = 0
        self._commands_dropped = 0

    @property
    def ready(self) -> bool:
        return self._connected

    @property
    def url(self) -> str | None:
        return self._url

    def connect(self, url: str) -> None:
        """Start the connection loop. Must be called from a running event loop."""
        if self._task is not None and not self._task.done():
            if url == self._url:
                return
            self._task.cancel()
        self._url = url
        self._queue = asyncio.Queue()
        self._task = asyncio.get_running_loop().create_task(self._connect_loop(url))

    async def close(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._connected = False
        logger.info("Runtime bridge stopped")

    def send_command(self, target: str, verb: str, payload: Any = None) -> None:
        command = RuntimeCommand(target=target, verb=verb, payload=payload)
        if not self._connected or self._queue is None:
            self._commands_dropped += 1
            logger.debug(f"Runtime not ready, dropping {target}/{verb}")
            return
        self._queue.put_nowait(command)

    async def _connect_loop(self, url: str) -> None:
        delay = self._reconnect_delay
        while True:
            try:
                async with self._connector(url) as ws:
                    self._connected = True
                    delay = self._reconnect_delay
                    logger.info(f"Connected to rendering runtime: {url}")
                    self._events.runtime("connected", state="connected", endpoint=url)
                    await self._send_loop(ws)
            except asyncio.CancelledError:
                self._connected = False
                raise
            except Exception as e:
                logger.debug(f"Runtime connection error: {e}")
                self._events.runtime(
                    f"connection error, retrying in {delay:.1f}s",
                    level=LogLevel.WARNING,
                    reason=type(e).__name__,
                )
            self._connected = False
            await asyncio.sleep(delay)
            delay = min(delay * self._backoff_factor, self._max_reconnect_delay)

    async def _send_loop(self, ws: Any) -> None:
        assert self._queue is not None
        while True:
            command = await self._queue.get()
            await ws.send(command.to_json())
            self._commands_sent += 1
            self._events.runtime(f"{command.target}/{command.verb} {command.payload}")

    def get_statistics(self) -> dict[str, Any]:
        return {
            "connected": self._connected,
            "commands_sent": self._commands_sent,
            "commands_dropped": self._commands_dropped,
        }
