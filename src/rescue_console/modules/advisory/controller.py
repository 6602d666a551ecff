"""Advisory trigger controller.

Observes snapshots in channel order, applies the trigger policy
synchronously per observation, runs at most one advisory request at a
time, and reveals the resulting advice one character per tick.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, AsyncIterable, Callable

from rescue_console.core.errors import AdvisoryTransportError, ConfigurationError
from rescue_console.modules.advisory.extractors import build_request, extract_advice
from rescue_console.modules.advisory.trigger import (
    DEFAULT_POLICY,
    TriggerPolicy,
    advance_reveal,
    complete_request,
    evaluate_trigger,
)
from rescue_console.schemas.advisory import AdvisorySession, AdvisoryStatus, TriggerDecision
from rescue_console.schemas.snapshot import StatusSnapshot
from rescue_console.utils.config import (
    ADVISORY_REQUEST_TIMEOUT,
    DEGRADED_ADVICE,
    NOMINAL_ADVICE,
    REVEAL_TICK_SECONDS,
    SYSTEM_PROMPT,
)
from rescue_console.utils.logging import LogLevel, StructuredLogger, get_logger

if TYPE_CHECKING:
    from rescue_console.core.interfaces import AdvisoryService
    from rescue_console.metrics.logging import DecisionLogWriter

logger = logging.getLogger(__name__)


class AdvisoryTriggerController:
    """Decides when to ask for advice and manages advisory link health.

    The session is replaced wholesale on every transition; ``session``
    always returns a consistent value.
    """

    def __init__(
        self,
        service: AdvisoryService,
        policy: TriggerPolicy = DEFAULT_POLICY,
        clock: Callable[[], float] = time.monotonic,
        request_timeout: float = ADVISORY_REQUEST_TIMEOUT,
        reveal_tick: float = REVEAL_TICK_SECONDS,
        system_prompt: str = SYSTEM_PROMPT,
        decision_log: DecisionLogWriter | None = None,
        event_log: StructuredLogger | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            service: Advisory request/response transport.
            policy: Trigger thresholds and comparison scope.
            clock: Monotonic clock in seconds.
            request_timeout: Upper bound on one advisory request.
            reveal_tick: Seconds per revealed character.
            system_prompt: Fixed system instruction for every request.
            decision_log: Optional JSONL writer for every evaluation.
            event_log: Structured logger (defaults to global).
        """
        self._service = service
        self._policy = policy
        self._clock = clock
        self._request_timeout = request_timeout
        self._reveal_tick = reveal_tick
        self._system_prompt = system_prompt
        self._decision_log = decision_log
        self._events = event_log or get_logger()

        self._session = AdvisorySession()
        self._request_task: asyncio.Task | None = None
        self._reveal_task: asyncio.Task | None = None
        self._config_error: str | None = None
        self._evaluations = 0

    # =========================================================================
    # Observation
    # =========================================================================

    @property
    def session(self) -> AdvisorySession:
        return self._session

    @property
    def status(self) -> AdvisoryStatus:
        return self._session.status

    @property
    def advice(self) -> str:
        return self._session.advice

    @property
    def displayed_advice(self) -> str:
        return self._session.displayed_advice

    @property
    def configuration_error(self) -> str | None:
        """The configuration problem disabling advice, if any."""
        return self._config_error

    def indicator(self) -> str:
        """Link indicator: PROCESSING while pending, OFFLINE when degraded."""
        if self._session.status == AdvisoryStatus.PENDING:
            return "PROCESSING"
        if self._session.status == AdvisoryStatus.ERROR:
            return "OFFLINE"
        return "ONLINE"

    # =========================================================================
    # Trigger evaluation
    # =========================================================================

    def observe(self, snapshot: StatusSnapshot) -> TriggerDecision:
        """Evaluate one snapshot and start a request if it triggers.

        Must be called from a running event loop.
        """
        self._evaluations += 1
        decision, session = evaluate_trigger(self._session, snapshot, self._clock(), self._policy)
        self._session = session

        self._events.trigger(
            "trigger" if decision.trigger else "hold",
            reason=decision.reason.value,
            state=session.status.value,
        )
        if self._decision_log is not None:
            self._decision_log.write(decision, session, snapshot)

        if decision.trigger:
            logger.info(f"Advisory trigger: {decision.reason.value}")
            self._request_task = asyncio.get_running_loop().create_task(
                self._fetch_advice(snapshot)
            )
        return decision

    async def run(self, snapshots: AsyncIterable[StatusSnapshot]) -> None:
        """Observe every snapshot of ``snapshots`` in order."""
        async for snapshot in snapshots:
            self.observe(snapshot)

    async def wait_idle(self) -> None:
        """Wait for the in-flight request (if any) to finish."""
        task = self._request_task
        if task is not None and not task.done():
            await task

    async def wait_revealed(self) -> None:
        """Wait until the current advice is fully revealed."""
        task = self._reveal_task
        if task is not None and not task.done():
            await task

    # =========================================================================
    # Request
    # =========================================================================

    async def _fetch_advice(self, snapshot: StatusSnapshot) -> None:
        chat = build_request(snapshot, self._system_prompt)
        ok = False
        try:
            body = await asyncio.wait_for(self._service.request(chat), timeout=self._request_timeout)
            advice = extract_advice(body, default=NOMINAL_ADVICE)
            ok = True
            if self._config_error is not None:
                logger.info("Advisory configuration restored")
                self._config_error = None
        except ConfigurationError as e:
            if self._config_error is None:
                logger.error(f"Advisory disabled: {e}")
                self._events.advisory(str(e), level=LogLevel.ERROR, reason="configuration")
            self._config_error = str(e)
            advice = DEGRADED_ADVICE
        except asyncio.TimeoutError:
            logger.warning(f"Advisory request timed out after {self._request_timeout}s")
            self._events.advisory("request timed out", level=LogLevel.WARNING, reason="timeout")
            advice = DEGRADED_ADVICE
        except AdvisoryTransportError as e:
            logger.warning(f"Advisory request failed: {e}")
            self._events.advisory(str(e), level=LogLevel.WARNING, reason="transport")
            advice = DEGRADED_ADVICE
        except Exception as e:
            logger.exception(f"Advisory request crashed: {e}")
            self._events.advisory(str(e), level=LogLevel.ERROR, reason="unexpected")
            advice = DEGRADED_ADVICE

        self._session = complete_request(self._session, advice, ok)
        if ok:
            self._events.advisory("advice received", state=self._session.status.value)
        self._start_reveal()

    # =========================================================================
    # Reveal
    # =========================================================================

    def _start_reveal(self) -> None:
        """Restart the typewriter reveal for the current advice."""
        if self._reveal_task is not None and not self._reveal_task.done():
            self._reveal_task.cancel()
        self._reveal_task = asyncio.get_running_loop().create_task(self._reveal())

    async def _reveal(self) -> None:
        while not self._session.fully_revealed:
            await asyncio.sleep(self._reveal_tick)
            self._session = advance_reveal(self._session)

    def set_advice(self, advice: str) -> None:
        """Replace the advice text and restart its reveal from the beginning."""
        self._session = self._session.model_copy(update={"advice": advice, "cursor": 0})
        self._start_reveal()

    async def close(self) -> None:
        """Cancel background work and close the advisory service."""
        for task in (self._reveal_task, self._request_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        await self._service.close()

    def get_statistics(self) -> dict[str, object]:
        return {
            "evaluations": self._evaluations,
            "requests_sent": self._session.requests_sent,
            "status": self._session.status.value,
            "configuration_error": self._config_error,
        }
