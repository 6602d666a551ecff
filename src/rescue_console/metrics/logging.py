"""JSONL decision log for advisory trigger evaluations.

One JSON object per evaluation, suitable for offline review of why the
console did or did not ask for advice.
"""

from __future__ import annotations

import json
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from rescue_console.schemas.advisory import AdvisorySession, TriggerDecision
    from rescue_console.schemas.snapshot import StatusSnapshot


class DecisionLogWriter:
    """Writes trigger decisions to a JSONL log file."""

    def __init__(self, log_path: Path) -> None:
        """Initialize the log writer.

        Args:
            log_path: Path to the JSONL log file.
        """
        self._log_path = log_path
        self._log_path.parent.mkdir(parents=True, exist_ok=True)
        self._file = open(self._log_path, "a", encoding="utf-8")
        self._count = 0

    @property
    def path(self) -> Path:
        return self._log_path

    @property
    def count(self) -> int:
        return self._count

    def write(
        self,
        decision: TriggerDecision,
        session: AdvisorySession,
        snapshot: StatusSnapshot,
    ) -> None:
        """Write one evaluation to the log."""
        record = {
            "timestamp": datetime.now().isoformat(),
            "evaluated_at": decision.evaluated_at,
            "trigger": decision.trigger,
            "reason": decision.reason.value,
            "status": session.status.value,
            "requests_sent": session.requests_sent,
            "snapshot": snapshot.model_dump(mode="json"),
        }
        self._file.write(json.dumps(record, separators=(",", ":")) + "\n")
        self._file.flush()
        self._count += 1

    def close(self) -> None:
        """Close the log file."""
        if not self._file.closed:
            self._file.close()

    def __enter__(self) -> "DecisionLogWriter":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def read_decisions(log_path: Path) -> list[dict[str, Any]]:
    """Load every record of a decision log."""
    records = []
    with open(log_path, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line:
                records.append(json.loads(line))
    return records


def summarize_decisions(records: list[dict[str, Any]]) -> dict[str, Any]:
    """Count evaluations, triggers and reasons in a decision log."""
    reasons = Counter(r["reason"] for r in records)
    return {
        "evaluations": len(records),
        "triggers": sum(1 for r in records if r["trigger"]),
        "reasons": dict(reasons),
    }
