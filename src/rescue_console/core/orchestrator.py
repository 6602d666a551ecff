"""Console orchestrator - runs the observation loop.

Combines the snapshot producers into one authoritative snapshot:

1. Telemetry channel -> player fields (inventory, position, contact)
2. Drift simulator   -> environment fields (battery, temperature, gas, visibility)
3. Operator console  -> tool switches (flashlight, night vision)

Every resulting snapshot is handed to the advisory controller in
production order.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Callable

from rescue_console.schemas.snapshot import (
    ENVIRONMENT_FIELDS,
    PLAYER_FIELDS,
    StatusSnapshot,
)

if TYPE_CHECKING:
    from rescue_console.modules.advisory.controller import AdvisoryTriggerController
    from rescue_console.modules.channel.state_channel import StateChannelClient
    from rescue_console.modules.simulator import DriftSimulator
    from rescue_console.schemas.advisory import TriggerDecision

logger = logging.getLogger(__name__)


class ConsoleOrchestrator:
    """Feeds the advisory controller from the channel and the simulator.

    All dependencies are injected via constructor. Without a simulator the
    channel is authoritative for environment fields too.
    """

    def __init__(
        self,
        channel: StateChannelClient,
        controller: AdvisoryTriggerController,
        simulator: DriftSimulator | None = None,
        initial_snapshot: StatusSnapshot | None = None,
        on_snapshot: Callable[[StatusSnapshot, TriggerDecision], None] | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            channel: Telemetry channel client.
            controller: Advisory trigger controller.
            simulator: Optional drift producer for environment readings.
            initial_snapshot: Starting authoritative snapshot.
            on_snapshot: Called after every observation (for display).
        """
        self._channel = channel
        self._controller = controller
        self._simulator = simulator
        self._snapshot = initial_snapshot or channel.latest()
        self._on_snapshot = on_snapshot

        self._tasks: list[asyncio.Task] = []
        self._observations = 0

    @property
    def snapshot(self) -> StatusSnapshot:
        """Current authoritative snapshot."""
        return self._snapshot

    @property
    def observations(self) -> int:
        return self._observations

    def _channel_fields(self, incoming: StatusSnapshot) -> tuple[str, ...]:
        # With drift attached, a frame without a distance leaves the
        # simulated detection in place.
        fields = PLAYER_FIELDS
        if self._simulator is None:
            return fields + ENVIRONMENT_FIELDS + ("detected",)
        if incoming.distance_to_contact is not None:
            fields = fields + ("detected",)
        return fields

    def ingest_channel(self, incoming: StatusSnapshot) -> TriggerDecision:
        """Merge a decoded channel snapshot and observe the result."""
        merged = self._snapshot.merge_from(incoming, self._channel_fields(incoming))
        return self._publish(merged)

    def ingest_tools(self, tools: dict[str, bool]) -> TriggerDecision:
        """Record the operator tool switches and observe the result."""
        return self._publish(self._snapshot.evolve(
            flashlight_on=tools.get("flashlight", self._snapshot.flashlight_on),
            nightvision_on=tools.get("nightvision", self._snapshot.nightvision_on),
        ))

    def ingest_drift(self) -> TriggerDecision:
        """Apply one drift step to the authoritative snapshot and observe it."""
        assert self._simulator is not None
        return self._publish(self._simulator.step(self._snapshot))

    def _publish(self, snapshot: StatusSnapshot) -> TriggerDecision:
        self._snapshot = snapshot
        self._observations += 1
        decision = self._controller.observe(snapshot)
        if self._on_snapshot is not None:
            try:
                self._on_snapshot(snapshot, decision)
            except Exception as e:
                logger.warning(f"on_snapshot callback error: {e}")
        return decision

    # =========================================================================
    # Loop
    # =========================================================================

    async def _consume_channel(self) -> None:
        stream = self._channel.on_status()
        try:
            async for incoming in stream:
                try:
                    self.ingest_channel(incoming)
                except Exception:
                    logger.exception("Failed to process channel snapshot; continuing")
        finally:
            stream.close()

    async def _drift_loop(self) -> None:
        assert self._simulator is not None
        while True:
            await asyncio.sleep(self._simulator.interval)
            try:
                self.ingest_drift()
            except Exception:
                logger.exception("Failed to process drift step; continuing")

    def start(self, endpoint: str) -> None:
        """Connect the channel and start the producer tasks."""
        loop = asyncio.get_running_loop()
        self._channel.connect(endpoint)
        self._tasks.append(loop.create_task(self._consume_channel()))
        if self._simulator is not None:
            self._tasks.append(loop.create_task(self._drift_loop()))
        logger.info(f"Console orchestrator started (drift={'on' if self._simulator else 'off'})")

    async def stop(self) -> None:
        """Stop the producers, the channel and the controller."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._channel.close()
        await self._controller.close()
        logger.info(f"Console orchestrator stopped after {self._observations} observations")
