"""Abstract base classes for swappable collaborators.

The controller and console depend only on these interfaces and the
schemas, never on concrete transports.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from rescue_console.schemas import ChatRequest


# =============================================================================
# Rendering Runtime
# =============================================================================


class RuntimeBridge(ABC):
    """Capability interface to the opaque rendering runtime.

    Implementations might include:
    - WebSocket bridge to a simulator build
    - Recording stub for tests
    """

    @abstractmethod
    def send_command(self, target: str, verb: str, payload: Any = None) -> None:
        """Send a fire-and-forget command.

        Args:
            target: Runtime object receiving the command (e.g. "Robot").
            verb: Command name (e.g. "Move").
            payload: Command argument (e.g. "forward").
        """
        ...

    @property
    def ready(self) -> bool:
        """Whether the runtime is loaded and accepting commands."""
        return True


# =============================================================================
# Advisory Service
# =============================================================================


class AdvisoryService(ABC):
    """Abstract request/response contract to the advisory endpoint."""

    @abstractmethod
    async def request(self, chat: ChatRequest) -> dict[str, Any]:
        """Send a chat request and return the decoded JSON body.

        Args:
            chat: Messages to send.

        Returns:
            The response body as a dict.

        Raises:
            AdvisoryTransportError: On transport failure, timeout, non-2xx
                status, or an undecodable body.
            ConfigurationError: If a required credential is missing.
        """
        ...

    async def close(self) -> None:
        """Release transport resources. Optional."""
        pass
