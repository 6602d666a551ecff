"""Tests for the drift simulator and the console orchestrator."""

from __future__ import annotations

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

from rescue_console.core.orchestrator import ConsoleOrchestrator
from rescue_console.modules.advisory.controller import AdvisoryTriggerController
from rescue_console.modules.channel import StateChannelClient
from rescue_console.modules.console import OperatorConsole
from rescue_console.modules.simulator import DriftProfile, DriftSimulator
from rescue_console.schemas.advisory import TriggerDecision, TriggerReason
from rescue_console.schemas.snapshot import Position, StatusSnapshot

from fakes import FakeConnection, FakeConnector, player_status, wait_until


class TestDriftSimulator:
    """Tests for the random-walk drift."""

    def test_deterministic_for_seed(self, snapshot) -> None:
        a, b = DriftSimulator(seed=7), DriftSimulator(seed=7)
        sa = sb = snapshot
        for _ in range(20):
            sa, sb = a.step(sa), b.step(sb)
        assert sa == sb

    def test_bounds_hold(self) -> None:
        sim = DriftSimulator(seed=1)
        snap = StatusSnapshot(battery=0.05, temperature=34.9, gas_level=0.99, visibility=0.31)
        for _ in range(500):
            snap = sim.step(snap)
            assert snap.battery >= 0.0
            assert 20.0 <= snap.temperature <= 35.0
            assert 0.0 <= snap.gas_level <= 1.0
            assert 0.3 <= snap.visibility <= 1.0

    def test_battery_never_rises(self, snapshot) -> None:
        sim = DriftSimulator(seed=3)
        previous = snapshot
        for _ in range(100):
            current = sim.step(previous)
            assert current.battery <= previous.battery
            previous = current

    def test_detection_sticks(self, snapshot) -> None:
        sim = DriftSimulator(seed=5, profile=DriftProfile(detection_probability=0.0))
        snap = sim.step(snapshot.evolve(detected=True))
        assert snap.detected

    def test_detection_can_appear(self, snapshot) -> None:
        sim = DriftSimulator(seed=11, profile=DriftProfile(detection_probability=1.0))
        assert sim.step(snapshot).detected

    def test_player_fields_untouched(self) -> None:
        sim = DriftSimulator(seed=2)
        snap = StatusSnapshot(position=Position(x=5.0), inventory={"water": 3})
        stepped = sim.step(snap)
        assert stepped.position == snap.position
        assert stepped.inventory == snap.inventory
        assert sim.steps == 1

    def test_stream(self, snapshot) -> None:
        async def scenario():
            sim = DriftSimulator(seed=4, interval=0)
            return [s async for s in sim.stream(snapshot, max_steps=3)]

        produced = asyncio.run(scenario())
        assert len(produced) == 3
        assert produced[-1].battery <= snapshot.battery


class TestConsoleOrchestrator:
    """Tests for merging producers and feeding the controller."""

    def _build(self, stub_service, clock, simulator=None, channel=None):
        channel = channel or StateChannelClient(connector=FakeConnector([]))
        controller = AdvisoryTriggerController(service=stub_service, clock=clock, reveal_tick=0)
        seen = []
        orchestrator = ConsoleOrchestrator(
            channel=channel,
            controller=controller,
            simulator=simulator,
            on_snapshot=lambda snap, decision: seen.append((snap, decision)),
        )
        return orchestrator, controller, seen

    def test_channel_player_fields_merged(self, stub_service, clock) -> None:
        async def scenario():
            orchestrator, _, seen = self._build(stub_service, clock, simulator=DriftSimulator(seed=1))
            incoming = StatusSnapshot(battery=1.0, inventory={"water": 2}, distance_to_contact=30.0)
            decision = orchestrator.ingest_channel(incoming)
            return orchestrator.snapshot, decision, seen

        snap, decision, seen = asyncio.run(scenario())
        assert snap.count("water") == 2
        assert snap.distance_to_contact == 30.0
        # Environment comes from the simulator when one is attached
        assert snap.battery == StatusSnapshot().battery
        assert decision.reason == TriggerReason.FIRST_OBSERVATION
        assert len(seen) == 1

    def test_environment_from_channel_without_simulator(self, stub_service, clock) -> None:
        async def scenario():
            orchestrator, _, _ = self._build(stub_service, clock)
            orchestrator.ingest_channel(StatusSnapshot(battery=12.0))
            return orchestrator.snapshot

        assert asyncio.run(scenario()).battery == 12.0

    def test_unknown_distance_keeps_drift_detection(self, stub_service, clock) -> None:
        async def scenario():
            orchestrator, _, _ = self._build(stub_service, clock, simulator=DriftSimulator(
                seed=1, profile=DriftProfile(detection_probability=1.0),
            ))
            orchestrator.ingest_drift()
            orchestrator.ingest_channel(StatusSnapshot(distance_to_contact=None, detected=False))
            return orchestrator.snapshot

        assert asyncio.run(scenario()).detected

    def test_drift_feeds_controller(self, stub_service, clock) -> None:
        async def scenario():
            orchestrator, controller, seen = self._build(stub_service, clock, simulator=DriftSimulator(
                seed=1, profile=DriftProfile(detection_probability=0.0),
            ))
            orchestrator.ingest_drift()
            await controller.wait_idle()
            orchestrator.ingest_drift()
            return orchestrator, seen

        orchestrator, seen = asyncio.run(scenario())
        assert orchestrator.observations == 2
        assert seen[0][1].trigger
        assert not seen[1][1].trigger

    def test_end_to_end_over_channel(self, stub_service, clock) -> None:
        async def scenario():
            conn = FakeConnection()
            channel = StateChannelClient(connector=FakeConnector([conn]), reconnect_delay=0.001)
            orchestrator, controller, seen = self._build(stub_service, clock, channel=channel)
            orchestrator.start("ws://robot.test")
            await conn.opened.wait()
            conn.feed(player_status(water=9, distance=5.0))
            await wait_until(lambda: orchestrator.observations == 1)
            await controller.wait_idle()
            snap = orchestrator.snapshot
            await orchestrator.stop()
            return snap, controller

        snap, controller = asyncio.run(scenario())
        assert snap.detected
        assert snap.count("water") == 9
        assert controller.advice == "Hold position."
        assert stub_service.closed
        assert '"detected":true' in stub_service.requests[0].messages[1].content

    def test_channel_without_distance_clears_detection(self, stub_service, clock) -> None:
        async def scenario():
            orchestrator, _, _ = self._build(stub_service, clock)
            orchestrator.ingest_channel(StatusSnapshot(distance_to_contact=4.0, detected=True))
            orchestrator.ingest_channel(StatusSnapshot(distance_to_contact=None, detected=False))
            return orchestrator.snapshot

        assert not asyncio.run(scenario()).detected

    def test_tool_switches_reach_advisory_request(self, stub_service, clock, recording_runtime) -> None:
        async def scenario():
            orchestrator, controller, _ = self._build(stub_service, clock)
            channel = MagicMock()
            channel.connected = False
            console = OperatorConsole(
                recording_runtime,
                channel,
                snapshot_source=lambda: orchestrator.snapshot,
                on_tools_changed=orchestrator.ingest_tools,
            )
            await console.key_down("f")
            await controller.wait_idle()
            return orchestrator.snapshot

        snap = asyncio.run(scenario())
        assert snap.flashlight_on
        assert not snap.nightvision_on
        assert '"flashlight_on":true' in stub_service.requests[0].messages[1].content

    def test_tool_change_counts_for_resend(self, stub_service, clock) -> None:
        async def scenario():
            orchestrator, controller, _ = self._build(stub_service, clock)
            orchestrator.ingest_channel(StatusSnapshot())
            await controller.wait_idle()
            clock.advance(16.0)
            return orchestrator.ingest_tools({"flashlight": False, "nightvision": True})

        assert asyncio.run(scenario()).reason == TriggerReason.PERIODIC_RESEND

    def test_observe_failure_keeps_consuming(self, caplog) -> None:
        decision = TriggerDecision(trigger=False, reason=TriggerReason.NO_CHANGE, evaluated_at=0.0)
        controller = MagicMock()
        controller.observe.side_effect = [OSError("disk full"), decision]
        controller.close = AsyncMock()

        async def scenario():
            conn = FakeConnection()
            channel = StateChannelClient(connector=FakeConnector([conn]), reconnect_delay=0.001)
            orchestrator = ConsoleOrchestrator(channel=channel, controller=controller)
            orchestrator.start("ws://robot.test")
            await conn.opened.wait()
            conn.feed(player_status(water=1))
            conn.feed(player_status(water=2))
            await wait_until(lambda: controller.observe.call_count == 2)
            snap = orchestrator.snapshot
            await orchestrator.stop()
            return snap

        with caplog.at_level(logging.ERROR, logger="rescue_console.core.orchestrator"):
            snap = asyncio.run(scenario())
        assert snap.count("water") == 2
        assert "disk full" in caplog.text
