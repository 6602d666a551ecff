"""Robot status snapshot data contracts."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, field_validator

from rescue_console.utils.config import DETECTION_RADIUS

if TYPE_CHECKING:
    from rescue_console.schemas.protocol import PlayerStatus


class ItemKind(str, Enum):
    """Item kinds the robot can place for survivors."""

    WATER = "water"
    FOOD = "food"


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


class Position(BaseModel):
    """3D position in scene coordinates."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    model_config = {"frozen": True}


# Fields sourced from the telemetry channel
PLAYER_FIELDS: tuple[str, ...] = (
    "inventory",
    "position",
    "distance_to_contact",
    "contact_id",
    "player_id",
)

# Fields sourced from onboard sensors (or the drift simulator)
ENVIRONMENT_FIELDS: tuple[str, ...] = (
    "battery",
    "temperature",
    "gas_level",
    "visibility",
)

# Fields compared for the periodic resend; position and raw distance jitter
# continuously and are left out.
SIGNIFICANT_FIELDS: tuple[str, ...] = (
    "inventory",
    "contact_id",
    "player_id",
    "battery",
    "temperature",
    "gas_level",
    "visibility",
    "detected",
    "flashlight_on",
    "nightvision_on",
)


class StatusSnapshot(BaseModel):
    """Most recent fully-decoded robot/player state.

    Snapshots are immutable. Every update produces a new value through
    ``evolve`` so readers never observe a partially applied change.
    Battery is clamped to [0, 100]; gas level and visibility to [0, 1].
    """

    inventory: dict[str, int] = Field(
        default_factory=lambda: {ItemKind.WATER.value: 10, ItemKind.FOOD.value: 10},
        description="Item kind -> quantity carried",
    )
    position: Position = Field(default_factory=Position)
    distance_to_contact: float | None = Field(
        default=None,
        ge=0.0,
        description="Distance to nearest contact, None if no contact is known",
    )
    contact_id: str | None = Field(default=None, description="Nearest contact identifier")
    player_id: str | None = Field(default=None, description="Robot/player identifier")

    # Environment
    battery: float = Field(default=85.0, description="Battery percentage [0, 100]")
    temperature: float = Field(default=25.0, description="Ambient temperature (C)")
    gas_level: float = Field(default=0.3, description="Gas concentration [0, 1]")
    visibility: float = Field(default=0.8, description="Visibility [0, 1]")
    detected: bool = Field(default=False, description="Survivor detected")

    # Operator tools
    flashlight_on: bool = Field(default=False, description="Flashlight switched on")
    nightvision_on: bool = Field(default=False, description="Night vision switched on")

    model_config = {"frozen": True}

    @field_validator("inventory")
    @classmethod
    def _non_negative_inventory(cls, value: dict[str, int]) -> dict[str, int]:
        for kind, quantity in value.items():
            if quantity < 0:
                raise ValueError(f"inventory quantity for {kind!r} is negative: {quantity}")
        return value

    @field_validator("battery")
    @classmethod
    def _clamp_battery(cls, value: float) -> float:
        return _clamp(value, 0.0, 100.0)

    @field_validator("gas_level", "visibility")
    @classmethod
    def _clamp_unit(cls, value: float) -> float:
        return _clamp(value, 0.0, 1.0)

    def count(self, kind: ItemKind | str) -> int:
        """Quantity carried of an item kind (0 when absent)."""
        key = kind.value if isinstance(kind, ItemKind) else kind
        return self.inventory.get(key, 0)

    def evolve(self, **changes: Any) -> StatusSnapshot:
        """Return a validated copy with ``changes`` applied."""
        data = self.model_dump()
        data.update(changes)
        return type(self).model_validate(data)

    def apply_player_status(self, status: PlayerStatus) -> StatusSnapshot:
        """Return a copy carrying a decoded player status frame.

        A contact counts as detected only when its distance is known and
        inside the detection radius.
        """
        changes: dict[str, Any] = {
            "inventory": dict(status.inventory.items),
            "position": status.position,
            "distance_to_contact": status.distance_to_contact,
            "contact_id": status.contact_id,
            "player_id": status.player_id,
        }
        changes["detected"] = (
            status.distance_to_contact is not None
            and status.distance_to_contact < DETECTION_RADIUS
        )
        if status.environment is not None:
            changes.update(status.environment.model_dump(exclude_none=True))
        return self.evolve(**changes)

    def merge_from(self, other: StatusSnapshot, fields: tuple[str, ...]) -> StatusSnapshot:
        """Return a copy taking ``fields`` from ``other``."""
        return self.evolve(**{name: getattr(other, name) for name in fields})

    def change_view(self, fields: tuple[str, ...] | None = None) -> dict[str, Any]:
        """Plain-data view used for change comparison.

        Args:
            fields: Restrict the view to these fields. None compares everything.
        """
        data = self.model_dump(mode="json")
        if fields is None:
            return data
        return {name: data[name] for name in fields}
