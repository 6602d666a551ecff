"""Stub collaborators for running the console without external services."""

from __future__ import annotations

from typing import Any

from rescue_console.core.errors import AdvisoryTransportError
from rescue_console.core.interfaces import AdvisoryService, RuntimeBridge
from rescue_console.modules.runtime.bridge import RuntimeCommand
from rescue_console.schemas.advisory import ChatRequest


class RecordingRuntime(RuntimeBridge):
    """Runtime bridge that records every command it receives.

    Useful for testing the operator console without a rendering runtime.
    """

    def __init__(self, ready: bool = True) -> None:
        """Initialize the recording runtime.

        Args:
            ready: Whether the runtime accepts commands. Commands sent while
                not ready are dropped, as with the real bridge.
        """
        self._ready = ready
        self.commands: list[RuntimeCommand] = []

    @property
    def ready(self) -> bool:
        return self._ready

    def set_ready(self, ready: bool) -> None:
        self._ready = ready

    def send_command(self, target: str, verb: str, payload: Any = None) -> None:
        if self._ready:
            self.commands.append(RuntimeCommand(target=target, verb=verb, payload=payload))

    def calls(self) -> list[tuple[str, str, Any]]:
        """Recorded commands as (target, verb, payload) tuples."""
        return [(c.target, c.verb, c.payload) for c in self.commands]

    def reset(self) -> None:
        self.commands.clear()


class StubAdvisoryService(AdvisoryService):
    """Advisory service returning canned responses in order.

    Each response is either a body dict or an exception to raise. The last
    response repeats once the list is exhausted.
    """

    def __init__(self, responses: list[dict[str, Any] | Exception] | None = None) -> None:
        self._responses = list(responses or [{"content": "Proceed with caution."}])
        self.requests: list[ChatRequest] = []
        self.closed = False

    async def request(self, chat: ChatRequest) -> dict[str, Any]:
        self.requests.append(chat)
        index = min(len(self.requests), len(self._responses)) - 1
        response = self._responses[index]
        if isinstance(response, Exception):
            raise response
        if not isinstance(response, dict):
            raise AdvisoryTransportError(f"unsupported canned response: {response!r}")
        return response

    async def close(self) -> None:
        self.closed = True
