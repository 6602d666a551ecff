"""Telemetry channel client."""

from rescue_console.modules.channel.state_channel import (
    ConnectionState,
    StateChannelClient,
    StatusStream,
)

__all__ = [
    "ConnectionState",
    "StateChannelClient",
    "StatusStream",
]
