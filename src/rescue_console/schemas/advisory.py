"""Advisory session, trigger decision, and chat request contracts."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from rescue_console.schemas.snapshot import StatusSnapshot


class AdvisoryStatus(str, Enum):
    """Health of the advisory link."""

    IDLE = "idle"
    PENDING = "pending"
    ERROR = "error"


class TriggerReason(str, Enum):
    """Why a policy evaluation did or did not request advice."""

    # Triggering
    FIRST_OBSERVATION = "first_observation"
    DETECTION_CHANGED = "detection_changed"
    GAS_CRITICAL = "gas_critical"
    BATTERY_LOW = "battery_low"
    PERIODIC_RESEND = "periodic_resend"

    # Not triggering
    SUPPRESSED_PENDING = "suppressed_pending"
    NOT_DUE = "not_due"
    NO_CHANGE = "no_change"


class TriggerDecision(BaseModel):
    """Outcome of one trigger-policy evaluation."""

    trigger: bool
    reason: TriggerReason
    evaluated_at: float = Field(..., description="Clock reading used for the evaluation")

    model_config = {"frozen": True}


class AdvisorySession(BaseModel):
    """Working state of the advisory trigger controller.

    Treated as a value: policy and reveal functions return updated copies.
    """

    last_sent_at: float | None = Field(
        default=None,
        description="Clock reading of the last request, None before the first",
    )
    last_sent_snapshot: StatusSnapshot | None = Field(
        default=None,
        description="Snapshot carried by the last request",
    )
    status: AdvisoryStatus = AdvisoryStatus.IDLE
    advice: str = ""
    cursor: int = Field(default=0, ge=0, description="Characters of advice revealed")
    requests_sent: int = 0
    completed_at: datetime | None = None

    @property
    def displayed_advice(self) -> str:
        """The revealed prefix of the advice text."""
        return self.advice[: self.cursor]

    @property
    def fully_revealed(self) -> bool:
        return self.cursor >= len(self.advice)


class ChatMessage(BaseModel):
    """One message of an advisory chat request."""

    role: str
    content: str


class ChatRequest(BaseModel):
    """Body of ``POST`` to the advisory endpoint."""

    messages: list[ChatMessage]

    def to_body(self) -> dict[str, Any]:
        return self.model_dump()
