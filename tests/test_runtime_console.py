"""Tests for the runtime bridge, recording stub and operator console."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from rescue_console.modules.console import (
    OperatorConsole,
    format_action_error,
    format_status_line,
)
from rescue_console.modules.runtime import RuntimeCommand, WebSocketRuntimeBridge
from rescue_console.modules.stubs import RecordingRuntime
from rescue_console.schemas.protocol import ActionError, ActionErrorKind
from rescue_console.schemas.snapshot import StatusSnapshot

from fakes import FakeConnection, FakeConnector, wait_until


def _channel(connected: bool = True, snapshot: StatusSnapshot | None = None) -> MagicMock:
    """Channel double exposing the surface the console uses."""
    channel = MagicMock()
    channel.connected = connected
    channel.place_item = AsyncMock(return_value=True)
    channel.latest.return_value = snapshot or StatusSnapshot()
    channel.last_error.return_value = None
    return channel


class TestRuntimeCommand:
    def test_to_json(self) -> None:
        command = RuntimeCommand("Robot", "Move", "forward")
        assert json.loads(command.to_json()) == {
            "target": "Robot",
            "verb": "Move",
            "payload": "forward",
        }


class TestWebSocketRuntimeBridge:
    """Tests for the fire-and-forget WebSocket bridge."""

    def test_drops_when_not_connected(self) -> None:
        bridge = WebSocketRuntimeBridge(connector=FakeConnector([]))
        bridge.send_command("Robot", "Move", "left")
        assert not bridge.ready
        assert bridge.get_statistics()["commands_dropped"] == 1

    def test_sends_when_connected(self, event_log) -> None:
        async def scenario():
            conn = FakeConnection()
            bridge = WebSocketRuntimeBridge(connector=FakeConnector([conn]), event_log=event_log)
            bridge.connect("ws://runtime.test")
            await wait_until(lambda: bridge.ready)
            bridge.send_command("Robot", "ToggleTool", "flashlight")
            bridge.send_command("Robot", "DropItem", "water")
            await wait_until(lambda: len(conn.sent) == 2)
            await bridge.close()
            return conn, bridge

        conn, bridge = asyncio.run(scenario())
        assert conn.sent_frames == [
            {"target": "Robot", "verb": "ToggleTool", "payload": "flashlight"},
            {"target": "Robot", "verb": "DropItem", "payload": "water"},
        ]
        assert bridge.get_statistics()["commands_sent"] == 2
        assert not bridge.ready

    def test_retries_refused_connection(self) -> None:
        async def scenario():
            conn = FakeConnection()
            connector = FakeConnector([OSError("refused"), conn])
            bridge = WebSocketRuntimeBridge(connector=connector, reconnect_delay=0.001)
            bridge.connect("ws://runtime.test")
            await conn.opened.wait()
            await bridge.close()
            return connector

        assert len(asyncio.run(scenario()).endpoints) == 2


class TestRecordingRuntime:
    def test_records_when_ready(self, recording_runtime) -> None:
        recording_runtime.send_command("Robot", "Move", "back")
        assert recording_runtime.calls() == [("Robot", "Move", "back")]

    def test_drops_when_not_ready(self) -> None:
        runtime = RecordingRuntime(ready=False)
        runtime.send_command("Robot", "Move", "back")
        assert runtime.calls() == []


class TestOperatorKeys:
    """Tests for the keyboard command map."""

    @pytest.mark.parametrize("key,direction", [
        ("w", "forward"), ("A", "left"), ("s", "back"), ("D", "right"),
    ])
    def test_movement(self, recording_runtime, key, direction) -> None:
        console = OperatorConsole(recording_runtime, _channel())
        assert asyncio.run(console.key_down(key))
        assert recording_runtime.calls() == [("Robot", "Move", direction)]
        assert console.moving[direction]
        assert console.key_up(key)
        assert not console.moving[direction]

    def test_drop_water_places_item(self, recording_runtime) -> None:
        channel = _channel()
        console = OperatorConsole(recording_runtime, channel)
        asyncio.run(console.key_down("1"))
        channel.place_item.assert_awaited_once()
        kind, quantity = channel.place_item.await_args.args
        assert kind.value == "water"
        assert quantity == 1
        assert recording_runtime.calls() == [("Robot", "DropItem", "water")]

    def test_drop_without_stock_still_animates(self, recording_runtime) -> None:
        channel = _channel(snapshot=StatusSnapshot(inventory={"water": 0, "food": 0}))
        console = OperatorConsole(recording_runtime, channel)
        asyncio.run(console.key_down("2"))
        channel.place_item.assert_not_awaited()
        assert recording_runtime.calls() == [("Robot", "DropItem", "food")]

    def test_drop_offline_skips_place_item(self, recording_runtime) -> None:
        channel = _channel(connected=False)
        console = OperatorConsole(recording_runtime, channel)
        asyncio.run(console.key_down("1"))
        channel.place_item.assert_not_awaited()
        assert recording_runtime.calls() == [("Robot", "DropItem", "water")]

    def test_tool_toggles(self, recording_runtime) -> None:
        console = OperatorConsole(recording_runtime, _channel())
        asyncio.run(console.key_down("f"))
        asyncio.run(console.key_down("f"))
        asyncio.run(console.key_down("n"))
        assert recording_runtime.calls() == [
            ("Robot", "ToggleTool", "flashlight"),
            ("Robot", "ToggleTool", "flashlight"),
            ("Robot", "ToggleTool", "nightvision"),
        ]
        assert console.tools == {"flashlight": False, "nightvision": True}

    def test_tool_toggle_reports_switches(self, recording_runtime) -> None:
        seen = []
        console = OperatorConsole(recording_runtime, _channel(), on_tools_changed=seen.append)
        asyncio.run(console.key_down("n"))
        asyncio.run(console.hud_action("toggle", "flashlight"))
        assert seen == [
            {"flashlight": False, "nightvision": True},
            {"flashlight": True, "nightvision": True},
        ]

    def test_movement_does_not_report_tools(self, recording_runtime) -> None:
        seen = []
        console = OperatorConsole(recording_runtime, _channel(), on_tools_changed=seen.append)
        asyncio.run(console.key_down("w"))
        assert seen == []

    def test_unmapped_key(self, recording_runtime) -> None:
        console = OperatorConsole(recording_runtime, _channel())
        assert not asyncio.run(console.key_down("x"))
        assert not console.key_up("1")
        assert recording_runtime.calls() == []

    def test_runtime_not_ready_ignores_input(self) -> None:
        runtime = RecordingRuntime(ready=False)
        channel = _channel()
        console = OperatorConsole(runtime, channel)
        assert not asyncio.run(console.key_down("1"))
        channel.place_item.assert_not_awaited()
        assert not console.moving["forward"]

    def test_snapshot_source_used_for_stock(self, recording_runtime) -> None:
        channel = _channel()
        empty = StatusSnapshot(inventory={"water": 0})
        console = OperatorConsole(recording_runtime, channel, snapshot_source=lambda: empty)
        asyncio.run(console.key_down("1"))
        channel.place_item.assert_not_awaited()


class TestHudActions:
    """Tests for HUD click actions."""

    def test_drop_requires_stock(self, recording_runtime) -> None:
        channel = _channel(snapshot=StatusSnapshot(inventory={"water": 0, "food": 3}))
        console = OperatorConsole(recording_runtime, channel)
        assert not asyncio.run(console.hud_action("drop", "water"))
        assert asyncio.run(console.hud_action("drop", "food"))
        assert recording_runtime.calls() == [("Robot", "DropItem", "food")]

    def test_toggle(self, recording_runtime) -> None:
        console = OperatorConsole(recording_runtime, _channel())
        assert asyncio.run(console.hud_action("toggle", "nightvision"))
        assert console.tools["nightvision"]

    def test_unknown_action(self, recording_runtime) -> None:
        console = OperatorConsole(recording_runtime, _channel())
        assert not asyncio.run(console.hud_action("toggle", "laser"))
        assert not asyncio.run(console.hud_action("drop", "medkit"))
        assert not asyncio.run(console.hud_action("wave", "hello"))


class TestActionErrorDisplay:
    def test_drain_error_acknowledges(self, recording_runtime) -> None:
        channel = _channel()
        error = ActionError(kind=ActionErrorKind.TIMEOUT, message="No ack")
        channel.last_error.return_value = error
        console = OperatorConsole(recording_runtime, channel)
        assert console.drain_error() == error
        channel.clear_error.assert_called_once()

    def test_drain_without_error(self, recording_runtime) -> None:
        channel = _channel()
        console = OperatorConsole(recording_runtime, channel)
        assert console.drain_error() is None
        channel.clear_error.assert_not_called()

    def test_format_action_error(self) -> None:
        text = format_action_error(ActionError(kind=ActionErrorKind.REJECTED, message="Nope"))
        assert "Nope" in text
        assert "none" in text


class TestStatusLine:
    def test_contents(self) -> None:
        snap = StatusSnapshot(battery=55.4, detected=True, distance_to_contact=3.25)
        line = format_status_line(snap, "connected", "ONLINE", "Advance.")
        assert line.startswith("[connected]")
        assert "bat=55%" in line
        assert "DETECTED(3.2m)" in line or "DETECTED(3.3m)" in line
        assert line.endswith("AI ONLINE: Advance.")

    def test_offline_without_contact(self, snapshot) -> None:
        line = format_status_line(snapshot, "reconnecting", "OFFLINE", "")
        assert "contact=clear(--)" in line
        assert "AI OFFLINE" in line
