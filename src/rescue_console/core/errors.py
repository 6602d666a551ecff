"""Error taxonomy for the rescue console.

Every error is handled at the boundary where it occurs: connection and
decode failures stay inside the channel client, rejected actions become
ActionError records, advisory failures degrade the controller status.
"""

from __future__ import annotations


class ConsoleError(Exception):
    """Base class for all rescue console errors."""


class ChannelConnectionError(ConsoleError):
    """Transport-level telemetry failure. Triggers a reconnect."""


class DecodeError(ConsoleError):
    """A single inbound frame could not be decoded."""

    def __init__(self, message: str, raw: str | bytes | None = None) -> None:
        super().__init__(message)
        self.raw = raw


class ActionRejected(ConsoleError):
    """The telemetry peer (or local validation) rejected a place-item action."""

    def __init__(self, kind: str, message: str, details: str | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details


class AdvisoryTransportError(ConsoleError):
    """The advisory request failed, timed out, or returned a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ConfigurationError(ConsoleError):
    """A required setting or credential is missing."""
