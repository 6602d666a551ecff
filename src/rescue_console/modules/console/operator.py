"""Operator command map.

Translates operator key presses and HUD clicks into runtime commands and
place-item actions:

    W / A / S / D   Robot/Move forward | left | back | right
    1 / 2           drop water | food (place-item when connected and stocked)
    F / N           Robot/ToggleTool flashlight | nightvision

Nothing is sent while the runtime is not ready.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from rescue_console.schemas.protocol import ActionError
from rescue_console.schemas.snapshot import ItemKind, StatusSnapshot
from rescue_console.utils.logging import StructuredLogger, get_logger

if TYPE_CHECKING:
    from rescue_console.core.interfaces import RuntimeBridge
    from rescue_console.modules.channel.state_channel import StateChannelClient

logger = logging.getLogger(__name__)

ROBOT = "Robot"

MOVE_KEYS: dict[str, str] = {
    "W": "forward",
    "A": "left",
    "S": "back",
    "D": "right",
}

DROP_KEYS: dict[str, ItemKind] = {
    "1": ItemKind.WATER,
    "2": ItemKind.FOOD,
}

TOOL_KEYS: dict[str, str] = {
    "F": "flashlight",
    "N": "nightvision",
}


class OperatorConsole:
    """Maps operator input onto the runtime bridge and the telemetry channel."""

    def __init__(
        self,
        runtime: RuntimeBridge,
        channel: StateChannelClient,
        snapshot_source: Callable[[], StatusSnapshot] | None = None,
        on_tools_changed: Callable[[dict[str, bool]], object] | None = None,
        event_log: StructuredLogger | None = None,
    ) -> None:
        """Initialize the operator console.

        Args:
            runtime: Rendering runtime receiving fire-and-forget commands.
            channel: Telemetry channel carrying place-item actions.
            snapshot_source: Returns the authoritative snapshot used for
                stock checks (defaults to the channel's latest snapshot).
            on_tools_changed: Receives the tool switches after every toggle.
            event_log: Structured logger (defaults to global).
        """
        self._runtime = runtime
        self._channel = channel
        self._snapshot_source = snapshot_source or channel.latest
        self._on_tools_changed = on_tools_changed
        self._events = event_log or get_logger()

        self.moving: dict[str, bool] = {direction: False for direction in MOVE_KEYS.values()}
        self.tools: dict[str, bool] = {tool: False for tool in TOOL_KEYS.values()}

    # =========================================================================
    # Input
    # =========================================================================

    async def key_down(self, key: str) -> bool:
        """Handle a key press. Returns True if the key is mapped."""
        if not self._runtime.ready:
            return False
        key = key.upper()

        if key in MOVE_KEYS:
            direction = MOVE_KEYS[key]
            self.moving[direction] = True
            self._runtime.send_command(ROBOT, "Move", direction)
            return True

        if key in DROP_KEYS:
            await self._drop(DROP_KEYS[key], require_stock_for_command=False)
            return True

        if key in TOOL_KEYS:
            self._toggle(TOOL_KEYS[key])
            return True

        return False

    def key_up(self, key: str) -> bool:
        """Handle a key release. Only movement keys react."""
        if not self._runtime.ready:
            return False
        direction = MOVE_KEYS.get(key.upper())
        if direction is None:
            return False
        self.moving[direction] = False
        return True

    async def hud_action(self, action: str, value: str) -> bool:
        """Handle a HUD click: ``("drop", "water")``, ``("toggle", "flashlight")``."""
        if not self._runtime.ready:
            return False

        if action == "drop":
            try:
                kind = ItemKind(value)
            except ValueError:
                logger.debug(f"Unknown drop target: {value}")
                return False
            return await self._drop(kind, require_stock_for_command=True)

        if action == "toggle" and value in self.tools:
            self._toggle(value)
            return True

        logger.debug(f"Unhandled HUD action: {action}/{value}")
        return False

    async def _drop(self, kind: ItemKind, require_stock_for_command: bool) -> bool:
        """Drop one item.

        The keyboard path always tells the runtime to animate the drop; the
        HUD path does so only when the robot carries the item.
        """
        stocked = self._snapshot_source().count(kind) > 0
        if require_stock_for_command and not stocked:
            return False

        if self._channel.connected and stocked:
            await self._channel.place_item(kind, 1)
        self._runtime.send_command(ROBOT, "DropItem", kind.value)
        self._events.action(f"drop {kind.value}", state="stocked" if stocked else "empty")
        return True

    def _toggle(self, tool: str) -> None:
        self.tools[tool] = not self.tools[tool]
        self._runtime.send_command(ROBOT, "ToggleTool", tool)
        if self._on_tools_changed is not None:
            self._on_tools_changed(dict(self.tools))

    # =========================================================================
    # Action errors
    # =========================================================================

    def drain_error(self) -> ActionError | None:
        """Return the retained action error once, acknowledging it."""
        error = self._channel.last_error()
        if error is not None:
            self._channel.clear_error()
        return error


def format_action_error(error: ActionError) -> str:
    """Operator-facing text for an action error."""
    return f"Error: {error.message}\nDetails: {error.details or 'none'}"


def format_status_line(
    snapshot: StatusSnapshot,
    connection: str,
    indicator: str,
    advice: str,
) -> str:
    """One-line HUD summary for terminal display."""
    detected = "DETECTED" if snapshot.detected else "clear"
    distance = (
        f"{snapshot.distance_to_contact:.1f}m"
        if snapshot.distance_to_contact is not None
        else "--"
    )
    return (
        f"[{connection}] "
        f"bat={snapshot.battery:.0f}% "
        f"temp={snapshot.temperature:.1f}C "
        f"gas={snapshot.gas_level:.2f} "
        f"vis={snapshot.visibility:.2f} "
        f"contact={detected}({distance}) "
        f"water={snapshot.count(ItemKind.WATER)} "
        f"food={snapshot.count(ItemKind.FOOD)} "
        f"| AI {indicator}: {advice}"
    )
