"""Data contracts for the rescue console."""

from rescue_console.schemas.advisory import (
    AdvisorySession,
    AdvisoryStatus,
    ChatMessage,
    ChatRequest,
    TriggerDecision,
    TriggerReason,
)
from rescue_console.schemas.protocol import (
    ActionError,
    ActionErrorKind,
    MessageType,
    PendingAction,
    PlayerStatus,
)
from rescue_console.schemas.snapshot import (
    ItemKind,
    Position,
    StatusSnapshot,
)

__all__ = [
    "ActionError",
    "ActionErrorKind",
    "AdvisorySession",
    "AdvisoryStatus",
    "ChatMessage",
    "ChatRequest",
    "ItemKind",
    "MessageType",
    "PendingAction",
    "PlayerStatus",
    "Position",
    "StatusSnapshot",
    "TriggerDecision",
    "TriggerReason",
]
