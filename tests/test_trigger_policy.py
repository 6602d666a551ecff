"""Tests for the advisory trigger policy and session transitions.

Covers:
- First observation and pending suppression
- Critical transitions (detection, gas, battery) against the last sent snapshot
- Periodic resend timing and change comparison scope
- Request completion and typewriter reveal
"""

from __future__ import annotations

from rescue_console.modules.advisory.trigger import (
    DEFAULT_POLICY,
    FULL_COMPARISON_POLICY,
    TriggerPolicy,
    advance_reveal,
    complete_request,
    critical_transition,
    evaluate_trigger,
    has_changed,
)
from rescue_console.schemas.advisory import AdvisorySession, AdvisoryStatus, TriggerReason
from rescue_console.schemas.snapshot import Position, StatusSnapshot


def _sent(snapshot: StatusSnapshot, at: float = 0.0) -> AdvisorySession:
    """A session whose last (completed) request carried ``snapshot``."""
    _, session = evaluate_trigger(AdvisorySession(), snapshot, at)
    return complete_request(session, "ok", ok=True)


def _feed(session: AdvisorySession, snapshots: list[StatusSnapshot], times: list[float]):
    """Evaluate each snapshot in order, completing every triggered request."""
    decisions = []
    for snap, now in zip(snapshots, times):
        decision, session = evaluate_trigger(session, snap, now)
        decisions.append(decision)
        if decision.trigger:
            session = complete_request(session, "ok", ok=True)
    return decisions, session


class TestFirstObservation:
    """Tests for the very first evaluation."""

    def test_first_snapshot_triggers(self, snapshot) -> None:
        decision, session = evaluate_trigger(AdvisorySession(), snapshot, 5.0)
        assert decision.trigger
        assert decision.reason == TriggerReason.FIRST_OBSERVATION
        assert session.status == AdvisoryStatus.PENDING
        assert session.last_sent_at == 5.0
        assert session.last_sent_snapshot == snapshot
        assert session.requests_sent == 1

    def test_input_session_unchanged(self, snapshot) -> None:
        original = AdvisorySession()
        evaluate_trigger(original, snapshot, 5.0)
        assert original.status == AdvisoryStatus.IDLE
        assert original.last_sent_snapshot is None


class TestPendingSuppression:
    """A request in flight suppresses every further trigger."""

    def test_pending_suppresses_first_style_trigger(self, snapshot) -> None:
        _, pending = evaluate_trigger(AdvisorySession(), snapshot, 0.0)
        decision, after = evaluate_trigger(pending, snapshot.evolve(detected=True), 100.0)
        assert not decision.trigger
        assert decision.reason == TriggerReason.SUPPRESSED_PENDING
        assert after is pending

    def test_suppressed_snapshot_is_not_queued(self, snapshot) -> None:
        _, pending = evaluate_trigger(AdvisorySession(), snapshot, 0.0)
        _, pending = evaluate_trigger(pending, snapshot.evolve(detected=True), 1.0)
        done = complete_request(pending, "ok", ok=True)
        # The suppressed detection change is still a change against the sent snapshot
        decision, _ = evaluate_trigger(done, snapshot.evolve(detected=True), 2.0)
        assert decision.reason == TriggerReason.DETECTION_CHANGED
        assert done.requests_sent == 1

    def test_error_status_does_not_suppress(self, snapshot) -> None:
        _, pending = evaluate_trigger(AdvisorySession(), snapshot, 0.0)
        failed = complete_request(pending, "degraded", ok=False)
        decision, _ = evaluate_trigger(failed, snapshot.evolve(detected=True), 1.0)
        assert decision.trigger


class TestCriticalTransitions:
    """Tests for detection, gas and battery transitions."""

    def test_detection_flip_twice_gives_two_requests(self, snapshot) -> None:
        session = _sent(snapshot)
        decisions, session = _feed(
            session,
            [snapshot.evolve(detected=True), snapshot.evolve(detected=False)],
            [1.0, 2.0],
        )
        assert [d.reason for d in decisions] == [
            TriggerReason.DETECTION_CHANGED,
            TriggerReason.DETECTION_CHANGED,
        ]
        assert session.requests_sent == 3

    def test_gas_crossing_upward_triggers(self) -> None:
        session = _sent(StatusSnapshot(gas_level=0.79))
        decision, _ = evaluate_trigger(session, StatusSnapshot(gas_level=0.8), 1.0)
        assert decision.reason == TriggerReason.GAS_CRITICAL

    def test_gas_already_critical_does_not_retrigger(self) -> None:
        session = _sent(StatusSnapshot(gas_level=0.8))
        decision, _ = evaluate_trigger(session, StatusSnapshot(gas_level=0.9), 1.0)
        assert not decision.trigger
        assert decision.reason == TriggerReason.NOT_DUE

    def test_gas_falling_does_not_trigger(self) -> None:
        session = _sent(StatusSnapshot(gas_level=0.85))
        decision, _ = evaluate_trigger(session, StatusSnapshot(gas_level=0.5), 1.0)
        assert not decision.trigger

    def test_battery_sequence_triggers_once_at_crossing(self) -> None:
        session = _sent(StatusSnapshot(battery=25.0), at=0.0)
        decisions, session = _feed(
            session,
            [StatusSnapshot(battery=b) for b in (21.0, 19.0, 15.0)],
            [1.0, 2.0, 3.0],
        )
        triggered = [d for d in decisions if d.trigger]
        assert len(triggered) == 1
        assert decisions[1].reason == TriggerReason.BATTERY_LOW
        assert session.last_sent_snapshot.battery == 19.0

    def test_battery_exactly_at_threshold_counts_as_crossed(self) -> None:
        assert critical_transition(
            StatusSnapshot(battery=20.5), StatusSnapshot(battery=20.0)
        ) == TriggerReason.BATTERY_LOW

    def test_custom_thresholds(self) -> None:
        policy = TriggerPolicy(gas_threshold=0.5, battery_threshold=50.0)
        assert critical_transition(
            StatusSnapshot(gas_level=0.4), StatusSnapshot(gas_level=0.5), policy
        ) == TriggerReason.GAS_CRITICAL
        assert critical_transition(
            StatusSnapshot(battery=60.0), StatusSnapshot(battery=45.0), policy
        ) == TriggerReason.BATTERY_LOW


class TestPeriodicResend:
    """Tests for the interval-gated resend."""

    def test_steady_snapshot_never_resends(self, snapshot) -> None:
        session = _sent(snapshot, at=0.0)
        decisions, session = _feed(session, [snapshot] * 3, [15.0, 30.0, 600.0])
        assert all(d.reason == TriggerReason.NO_CHANGE for d in decisions)
        assert session.requests_sent == 1

    def test_change_before_interval_waits(self, snapshot) -> None:
        session = _sent(snapshot, at=0.0)
        decision, _ = evaluate_trigger(session, snapshot.evolve(temperature=30.0), 14.9)
        assert decision.reason == TriggerReason.NOT_DUE

    def test_change_at_interval_resends(self, snapshot) -> None:
        session = _sent(snapshot, at=0.0)
        decision, after = evaluate_trigger(session, snapshot.evolve(temperature=30.0), 15.0)
        assert decision.reason == TriggerReason.PERIODIC_RESEND
        assert after.last_sent_at == 15.0

    def test_position_jitter_ignored_by_default(self, snapshot) -> None:
        session = _sent(snapshot, at=0.0)
        moved = snapshot.evolve(position=Position(x=3.0), distance_to_contact=40.0)
        decision, _ = evaluate_trigger(session, moved, 20.0, DEFAULT_POLICY)
        assert decision.reason == TriggerReason.NO_CHANGE

    def test_full_comparison_sees_position(self, snapshot) -> None:
        session = _sent(snapshot, at=0.0)
        moved = snapshot.evolve(position=Position(x=3.0))
        decision, _ = evaluate_trigger(session, moved, 20.0, FULL_COMPARISON_POLICY)
        assert decision.reason == TriggerReason.PERIODIC_RESEND

    def test_has_changed_scopes(self, snapshot) -> None:
        moved = snapshot.evolve(position=Position(y=1.0))
        assert has_changed(snapshot, moved)
        assert not has_changed(snapshot, moved, ("battery", "detected"))


class TestCompletionAndReveal:
    """Tests for request completion and the typewriter cursor."""

    def test_success_returns_to_idle(self, snapshot) -> None:
        _, pending = evaluate_trigger(AdvisorySession(), snapshot, 0.0)
        done = complete_request(pending, "Advance north.", ok=True)
        assert done.status == AdvisoryStatus.IDLE
        assert done.advice == "Advance north."
        assert done.cursor == 0
        assert done.completed_at is not None

    def test_failure_sets_error(self, snapshot) -> None:
        _, pending = evaluate_trigger(AdvisorySession(), snapshot, 0.0)
        done = complete_request(pending, "Link degraded", ok=False)
        assert done.status == AdvisoryStatus.ERROR

    def test_reveal_takes_exactly_length_ticks(self) -> None:
        session = AdvisorySession(advice="Hold.")
        ticks = 0
        while not session.fully_revealed:
            session = advance_reveal(session)
            ticks += 1
        assert ticks == len("Hold.")
        assert session.displayed_advice == "Hold."

    def test_reveal_is_prefix_at_every_tick(self) -> None:
        session = AdvisorySession(advice="abc")
        seen = []
        for _ in range(3):
            session = advance_reveal(session)
            seen.append(session.displayed_advice)
        assert seen == ["a", "ab", "abc"]

    def test_reveal_past_end_is_stable(self) -> None:
        session = AdvisorySession(advice="ab", cursor=2)
        assert advance_reveal(session) is session

    def test_new_advice_resets_cursor(self, snapshot) -> None:
        session = AdvisorySession(advice="old text", cursor=8)
        _, pending = evaluate_trigger(session, snapshot, 0.0)
        done = complete_request(pending, "new", ok=True)
        assert done.cursor == 0
        assert done.displayed_advice == ""
