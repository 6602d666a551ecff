"""Advisory trigger policy and session transitions.

Pure functions over AdvisorySession values:

    evaluate_trigger(session, snapshot, now) -> (decision, session)
    complete_request(session, advice, ok)   -> session
    advance_reveal(session)                 -> session

Trigger rules, in order:
0. A request is already pending -> suppressed (dropped, not queued).
1. Nothing sent yet -> trigger.
2. Critical transition versus the last *sent* snapshot -> trigger:
   detection flipped, gas crossed upward through the threshold, or
   battery crossed downward through the threshold.
3. Resend interval elapsed *and* the snapshot differs from the last sent
   one -> trigger.
4. Otherwise no request.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from rescue_console.schemas.advisory import (
    AdvisorySession,
    AdvisoryStatus,
    TriggerDecision,
    TriggerReason,
)
from rescue_console.schemas.snapshot import SIGNIFICANT_FIELDS, StatusSnapshot
from rescue_console.utils.config import (
    BATTERY_LOW_THRESHOLD,
    GAS_CRITICAL_THRESHOLD,
    RESEND_INTERVAL_SECONDS,
)


@dataclass(frozen=True)
class TriggerPolicy:
    """Thresholds and comparison scope of the trigger policy.

    ``compare_fields`` limits the periodic-resend change check to a curated
    set of fields. ``None`` compares the whole snapshot.
    """

    gas_threshold: float = GAS_CRITICAL_THRESHOLD
    battery_threshold: float = BATTERY_LOW_THRESHOLD
    resend_interval: float = RESEND_INTERVAL_SECONDS
    compare_fields: tuple[str, ...] | None = SIGNIFICANT_FIELDS


DEFAULT_POLICY = TriggerPolicy()

# Full structural comparison of every snapshot field
FULL_COMPARISON_POLICY = TriggerPolicy(compare_fields=None)


def critical_transition(
    previous: StatusSnapshot,
    current: StatusSnapshot,
    policy: TriggerPolicy = DEFAULT_POLICY,
) -> TriggerReason | None:
    """Return the critical transition between two snapshots, if any."""
    if previous.detected != current.detected:
        return TriggerReason.DETECTION_CHANGED
    if previous.gas_level < policy.gas_threshold <= current.gas_level:
        return TriggerReason.GAS_CRITICAL
    if previous.battery > policy.battery_threshold >= current.battery:
        return TriggerReason.BATTERY_LOW
    return None


def has_changed(
    previous: StatusSnapshot,
    current: StatusSnapshot,
    fields: tuple[str, ...] | None = None,
) -> bool:
    """Structural inequality over ``fields`` (all fields when None)."""
    return previous.change_view(fields) != current.change_view(fields)


def evaluate_trigger(
    session: AdvisorySession,
    snapshot: StatusSnapshot,
    now: float,
    policy: TriggerPolicy = DEFAULT_POLICY,
) -> tuple[TriggerDecision, AdvisorySession]:
    """Decide whether ``snapshot`` warrants a new advisory request.

    Args:
        session: Current session value (not modified).
        snapshot: Newly observed snapshot.
        now: Clock reading in seconds.
        policy: Thresholds and comparison scope.

    Returns:
        The decision and the session to carry forward. On a trigger the
        returned session is pending and records ``now`` and ``snapshot``
        as the last sent values.
    """
    if session.status == AdvisoryStatus.PENDING:
        return _decision(False, TriggerReason.SUPPRESSED_PENDING, now), session

    previous = session.last_sent_snapshot
    reason: TriggerReason | None

    if previous is None:
        reason = TriggerReason.FIRST_OBSERVATION
    else:
        reason = critical_transition(previous, snapshot, policy)

    if reason is None:
        due = session.last_sent_at is None or now - session.last_sent_at >= policy.resend_interval
        if not due:
            return _decision(False, TriggerReason.NOT_DUE, now), session
        if not has_changed(previous, snapshot, policy.compare_fields):
            return _decision(False, TriggerReason.NO_CHANGE, now), session
        reason = TriggerReason.PERIODIC_RESEND

    updated = session.model_copy(update={
        "status": AdvisoryStatus.PENDING,
        "last_sent_at": now,
        "last_sent_snapshot": snapshot.model_copy(deep=True),
        "requests_sent": session.requests_sent + 1,
    })
    return _decision(True, reason, now), updated


def complete_request(
    session: AdvisorySession,
    advice: str,
    ok: bool,
    completed_at: datetime | None = None,
) -> AdvisorySession:
    """Finish the pending request with ``advice`` and restart the reveal."""
    return session.model_copy(update={
        "status": AdvisoryStatus.IDLE if ok else AdvisoryStatus.ERROR,
        "advice": advice,
        "cursor": 0,
        "completed_at": completed_at or datetime.now(),
    })


def advance_reveal(session: AdvisorySession) -> AdvisorySession:
    """Reveal one more character of the advice text."""
    if session.fully_revealed:
        return session
    return session.model_copy(update={"cursor": session.cursor + 1})


def _decision(trigger: bool, reason: TriggerReason, now: float) -> TriggerDecision:
    return TriggerDecision(trigger=trigger, reason=reason, evaluated_at=now)
