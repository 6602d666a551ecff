"""Wire protocol message schemas for the telemetry channel.

Frames are JSON text objects with a ``type`` discriminator:

- ``player_status``  (peer -> console) robot/player state
- ``action_result``  (peer -> console) place-item acknowledgement
- ``error``          (peer -> console) place-item rejection
- ``place_item``     (console -> peer) place an item near the robot

Field names on the wire are camelCase; models accept either form.
"""

from __future__ import annotations

import json
import uuid
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from rescue_console.core.errors import DecodeError
from rescue_console.schemas.snapshot import ItemKind, Position


# =============================================================================
# MESSAGE TYPES
# =============================================================================

class MessageType(str, Enum):
    """All known telemetry message types."""

    # Peer -> console
    PLAYER_STATUS = "player_status"
    ACTION_RESULT = "action_result"
    ERROR = "error"

    # Console -> peer
    PLACE_ITEM = "place_item"


class ActionErrorKind(str, Enum):
    """Reasons a place-item action can fail."""

    INVALID_REQUEST = "invalid_request"      # Rejected locally, peer never contacted
    NOT_CONNECTED = "not_connected"          # No live channel
    TIMEOUT = "timeout"                      # No acknowledgement in time
    SEND_FAILED = "send_failed"              # Transport error while sending
    INSUFFICIENT_ITEMS = "insufficient_items"
    UNKNOWN_TARGET = "unknown_target"
    REJECTED = "rejected"                    # Any other peer-reported failure


_WIRE = {"populate_by_name": True}


# =============================================================================
# INBOUND PAYLOADS
# =============================================================================

class Inventory(BaseModel):
    """Inventory block of a player status frame."""

    items: dict[str, int] = Field(default_factory=dict)

    model_config = _WIRE


class EnvironmentReading(BaseModel):
    """Optional onboard sensor block of a player status frame."""

    battery: float | None = None
    temperature: float | None = None
    gas_level: float | None = Field(default=None, alias="gasLevel")
    visibility: float | None = None

    model_config = _WIRE


class PlayerStatus(BaseModel):
    """Decoded ``player_status`` payload."""

    player_id: str | None = Field(default=None, alias="playerId")
    inventory: Inventory = Field(default_factory=Inventory)
    position: Position = Field(default_factory=Position)
    distance_to_contact: float | None = Field(default=None, alias="distanceToNpc", ge=0.0)
    contact_id: str | None = Field(default=None, alias="npcId")
    environment: EnvironmentReading | None = None

    model_config = _WIRE


class ActionErrorBody(BaseModel):
    """Error block of an ``error`` frame."""

    code: str = "rejected"
    message: str = "Action rejected"
    details: str | None = None

    model_config = _WIRE


class InboundMessage(BaseModel):
    """Envelope for any peer -> console frame."""

    type: str
    request_id: str | None = Field(default=None, alias="requestId")
    data: dict[str, Any] | None = None
    success: bool | None = None
    error: ActionErrorBody | None = None

    model_config = _WIRE


# =============================================================================
# OUTBOUND / ACTION RECORDS
# =============================================================================

class PendingAction(BaseModel):
    """An outbound place-item request awaiting acknowledgement."""

    kind: ItemKind
    quantity: int = Field(..., gt=0)
    request_id: str = Field(default_factory=lambda: f"req_{uuid.uuid4().hex[:12]}")

    def to_wire(self) -> str:
        """Encode as a ``place_item`` frame."""
        return json.dumps({
            "type": MessageType.PLACE_ITEM.value,
            "requestId": self.request_id,
            "data": {"itemType": self.kind.value, "quantity": self.quantity},
        })


class ActionError(BaseModel):
    """A failed action, retained until the caller acknowledges it."""

    kind: ActionErrorKind
    message: str
    details: str | None = None
    request_id: str | None = None

    model_config = {"frozen": True}


def error_kind_from_code(code: str) -> ActionErrorKind:
    """Map a peer error code onto an ActionErrorKind."""
    normalized = code.strip().lower()
    for kind in ActionErrorKind:
        if kind.value == normalized:
            return kind
    return ActionErrorKind.REJECTED


# =============================================================================
# DECODING
# =============================================================================

def decode_message(raw: str | bytes) -> InboundMessage:
    """Parse one inbound frame into its envelope.

    Raises:
        DecodeError: If the frame is not a JSON object with a ``type``.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise DecodeError(f"invalid JSON: {e}", raw) from e

    if not isinstance(data, dict):
        raise DecodeError(f"expected JSON object, got {type(data).__name__}", raw)

    try:
        return InboundMessage.model_validate(data)
    except ValidationError as e:
        raise DecodeError(f"invalid envelope: {e.error_count()} error(s)", raw) from e


def decode_player_status(message: InboundMessage) -> PlayerStatus:
    """Decode the payload of a ``player_status`` envelope.

    Raises:
        DecodeError: If the payload is missing or malformed.
    """
    if message.data is None:
        raise DecodeError("player_status frame has no data")
    try:
        return PlayerStatus.model_validate(message.data)
    except ValidationError as e:
        raise DecodeError(f"invalid player_status: {e.error_count()} error(s)") from e
