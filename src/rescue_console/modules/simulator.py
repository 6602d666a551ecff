"""Simulated onboard sensor drift.

Stands in for the robot's environment sensors when the telemetry peer
does not report them. Each step applies a small random walk:

- battery drains by up to 0.1 per step (floored at 0)
- temperature wanders by up to +/-0.25 C, held within [20, 35]
- gas level wanders by up to +/-0.01, held within [0, 1]
- visibility wanders by up to +/-0.005, held within [0.3, 1]
- a survivor is detected with 5% probability per step; once set it sticks
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import AsyncIterator

from rescue_console.schemas.snapshot import StatusSnapshot
from rescue_console.utils.config import DRIFT_INTERVAL_SECONDS


@dataclass(frozen=True)
class DriftProfile:
    """Random-walk step sizes and bounds."""

    battery_drain: float = 0.1
    temperature_step: float = 0.5
    temperature_range: tuple[float, float] = (20.0, 35.0)
    gas_step: float = 0.02
    visibility_step: float = 0.01
    visibility_range: tuple[float, float] = (0.3, 1.0)
    detection_probability: float = 0.05


def _bounded(value: float, bounds: tuple[float, float]) -> float:
    return max(bounds[0], min(bounds[1], value))


class DriftSimulator:
    """Random-walk producer of environment readings.

    Deterministic for a given seed.
    """

    def __init__(
        self,
        seed: int | None = None,
        interval: float = DRIFT_INTERVAL_SECONDS,
        profile: DriftProfile | None = None,
    ) -> None:
        self._rng = random.Random(seed)
        self._interval = interval
        self._profile = profile or DriftProfile()
        self._steps = 0

    @property
    def steps(self) -> int:
        return self._steps

    @property
    def interval(self) -> float:
        return self._interval

    def step(self, snapshot: StatusSnapshot) -> StatusSnapshot:
        """Return ``snapshot`` advanced by one drift step."""
        p = self._profile
        rng = self._rng

        battery = max(0.0, snapshot.battery - rng.random() * p.battery_drain)
        temperature = _bounded(
            snapshot.temperature + (rng.random() - 0.5) * p.temperature_step,
            p.temperature_range,
        )
        gas_level = _bounded(snapshot.gas_level + (rng.random() - 0.5) * p.gas_step, (0.0, 1.0))
        visibility = _bounded(
            snapshot.visibility + (rng.random() - 0.5) * p.visibility_step,
            p.visibility_range,
        )
        detected = rng.random() < p.detection_probability or snapshot.detected

        self._steps += 1
        return snapshot.evolve(
            battery=battery,
            temperature=temperature,
            gas_level=gas_level,
            visibility=visibility,
            detected=detected,
        )

    async def stream(
        self,
        initial: StatusSnapshot | None = None,
        max_steps: int | None = None,
    ) -> AsyncIterator[StatusSnapshot]:
        """Yield a drifted snapshot every ``interval`` seconds."""
        snapshot = initial or StatusSnapshot()
        produced = 0
        while max_steps is None or produced < max_steps:
            await asyncio.sleep(self._interval)
            snapshot = self.step(snapshot)
            produced += 1
            yield snapshot
