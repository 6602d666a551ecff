"""Telemetry channel client with automatic reconnection.

Owns one long-lived WebSocket connection to the telemetry endpoint,
decodes inbound frames into StatusSnapshots, and carries outbound
place-item actions with correlated acknowledgements.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, AsyncIterator, Callable

import websockets
from pydantic import ValidationError

from rescue_console.core.errors import ActionRejected, ChannelConnectionError, DecodeError
from rescue_console.schemas.protocol import (
    ActionError,
    ActionErrorKind,
    InboundMessage,
    MessageType,
    PendingAction,
    decode_message,
    decode_player_status,
    error_kind_from_code,
)
from rescue_console.schemas.snapshot import ItemKind, StatusSnapshot
from rescue_console.utils.config import (
    ACTION_ACK_TIMEOUT,
    RECONNECT_BACKOFF_FACTOR,
    RECONNECT_INITIAL_DELAY,
    RECONNECT_MAX_DELAY,
)
from rescue_console.utils.logging import LogLevel, StructuredLogger, get_logger

logger = logging.getLogger(__name__)

# Opens a connection: endpoint -> async context manager yielding a connection
# that supports ``send`` and async iteration over inbound messages.
Connector = Callable[[str], Any]


class ConnectionState(str, Enum):
    """Connection state of the telemetry channel."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class StatusStream:
    """One subscription to decoded snapshots.

    Registered on creation, so no snapshot published afterwards is missed.
    Iterates forever until closed; closing also ends a pending ``__anext__``.
    """

    def __init__(self, client: StateChannelClient) -> None:
        self._client = client
        self._queue: asyncio.Queue[StatusSnapshot | None] = asyncio.Queue()
        self._closed = False

    def _push(self, snapshot: StatusSnapshot) -> None:
        self._queue.put_nowait(snapshot)

    def __aiter__(self) -> StatusStream:
        return self

    async def __anext__(self) -> StatusSnapshot:
        if self._closed:
            raise StopAsyncIteration
        snapshot = await self._queue.get()
        if snapshot is None:
            raise StopAsyncIteration
        return snapshot

    def pending(self) -> int:
        """Snapshots queued but not yet consumed."""
        return self._queue.qsize()

    async def aclose(self) -> None:
        self.close()

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._client._unsubscribe(self)
            self._queue.put_nowait(None)


class StateChannelClient:
    """WebSocket client for the robot telemetry channel.

    Features:
    - Idempotent connect with indefinite reconnection (bounded exponential backoff)
    - Per-frame decode error isolation
    - Restartable snapshot subscriptions
    - Place-item actions with correlation ids and a single retained error

    All work runs on the caller's asyncio event loop.
    """

    def __init__(
        self,
        connector: Connector | None = None,
        initial_snapshot: StatusSnapshot | None = None,
        reconnect_delay: float = RECONNECT_INITIAL_DELAY,
        backoff_factor: float = RECONNECT_BACKOFF_FACTOR,
        max_reconnect_delay: float = RECONNECT_MAX_DELAY,
        ack_timeout: float = ACTION_ACK_TIMEOUT,
        on_state_change: Callable[[ConnectionState], None] | None = None,
        event_log: StructuredLogger | None = None,
    ) -> None:
        """Initialize the channel client.

        Args:
            connector: Connection factory (defaults to ``websockets.connect``).
            initial_snapshot: Snapshot to decode frames onto.
            reconnect_delay: First delay after a failed attempt (seconds).
            backoff_factor: Delay growth per consecutive failure.
            max_reconnect_delay: Delay ceiling (seconds).
            ack_timeout: Seconds to wait for a place-item acknowledgement.
            on_state_change: Optional callback on every state transition.
            event_log: Structured logger for decisions (defaults to global).
        """
        self._connector = connector or websockets.connect
        self._snapshot = initial_snapshot or StatusSnapshot()
        self._reconnect_delay = reconnect_delay
        self._backoff_factor = backoff_factor
        self._max_reconnect_delay = max_reconnect_delay
        self._ack_timeout = ack_timeout
        self._on_state_change = on_state_change
        self._events = event_log or get_logger()

        self._state = ConnectionState.DISCONNECTED
        self._endpoint: str | None = None
        self._task: asyncio.Task | None = None
        self._ws: Any = None

        self._subscribers: list[StatusStream] = []
        self._pending: dict[str, asyncio.Future] = {}
        self._last_error: ActionError | None = None

        # Statistics
        self._frames_decoded = 0
        self._decode_errors = 0
        self._reconnect_count = 0
        self._actions_sent = 0

    # =========================================================================
    # Observation
    # =========================================================================

    def status(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    @property
    def endpoint(self) -> str | None:
        return self._endpoint

    @property
    def connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    def latest(self) -> StatusSnapshot:
        """The most recently decoded snapshot."""
        return self._snapshot

    def last_error(self) -> ActionError | None:
        """The unacknowledged action error, if any."""
        return self._last_error

    def clear_error(self) -> None:
        """Acknowledge the retained action error."""
        self._last_error = None

    def on_status(self) -> StatusStream:
        """Start a new subscription to decoded snapshots."""
        stream = StatusStream(self)
        self._subscribers.append(stream)
        return stream

    def _unsubscribe(self, stream: StatusStream) -> None:
        if stream in self._subscribers:
            self._subscribers.remove(stream)

    def _set_state(self, state: ConnectionState) -> None:
        old_state = self._state
        self._state = state
        if old_state == state:
            return

        logger.info(f"Connection state: {old_state.value} -> {state.value}")
        self._events.channel(
            f"{old_state.value} -> {state.value}",
            state=state.value,
            endpoint=self._endpoint,
        )
        if self._on_state_change:
            try:
                self._on_state_change(state)
            except Exception as e:
                logger.warning(f"on_state_change callback error: {e}")

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    def connect(self, endpoint: str) -> None:
        """Establish (or re-establish) the connection.

        Idempotent for the current endpoint. A different endpoint restarts
        the connection loop. Must be called from a running event loop.
        """
        if self._task is not None and not self._task.done():
            if endpoint == self._endpoint:
                return
            self._task.cancel()

        self._endpoint = endpoint
        self._task = asyncio.get_running_loop().create_task(self._connect_loop(endpoint))
        logger.info(f"Telemetry channel starting, connecting to {endpoint}")

    async def close(self) -> None:
        """Stop the connection loop and release subscribers' pending actions."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._ws = None
        self._fail_pending("channel closed")
        self._set_state(ConnectionState.DISCONNECTED)
        logger.info("Telemetry channel stopped")

    async def _connect_loop(self, endpoint: str) -> None:
        """Connect, receive until the link drops, back off, repeat."""
        delay = self._reconnect_delay
        attempt = 0

        while True:
            self._set_state(
                ConnectionState.CONNECTING if attempt == 0 else ConnectionState.RECONNECTING
            )
            try:
                async with self._connector(endpoint) as ws:
                    self._ws = ws
                    self._set_state(ConnectionState.CONNECTED)
                    attempt = 0
                    delay = self._reconnect_delay
                    await self._receive_loop(ws)
                raise ChannelConnectionError("connection closed by peer")
            except Exception as e:
                self._ws = None
                self._fail_pending("connection lost")
                attempt += 1
                self._reconnect_count += 1
                self._set_state(ConnectionState.RECONNECTING)
                logger.warning(f"Telemetry connection error: {e}")
                self._events.channel(
                    f"Reconnecting in {delay:.1f}s (attempt {attempt})",
                    level=LogLevel.WARNING,
                    state=ConnectionState.RECONNECTING.value,
                    reason=type(e).__name__,
                )

            await asyncio.sleep(delay)
            delay = min(delay * self._backoff_factor, self._max_reconnect_delay)

    async def _receive_loop(self, ws: Any) -> None:
        async for message in ws:
            self._handle_message(message)

    # =========================================================================
    # Inbound decoding
    # =========================================================================

    def _handle_message(self, raw: str | bytes) -> None:
        """Decode one frame. Malformed frames are logged and dropped."""
        try:
            message = decode_message(raw)
            if message.type == MessageType.PLAYER_STATUS.value:
                self._apply_player_status(message)
            elif message.type in (MessageType.ACTION_RESULT.value, MessageType.ERROR.value):
                self._resolve_action(message)
            else:
                logger.debug(f"Ignoring message type: {message.type}")
        except DecodeError as e:
            self._decode_errors += 1
            logger.warning(f"Dropping malformed frame: {e}")
            preview = raw[:200] if isinstance(raw, (str, bytes)) else repr(raw)
            self._events.decode(str(e), raw=str(preview))

    def _apply_player_status(self, message: InboundMessage) -> None:
        status = decode_player_status(message)
        try:
            snapshot = self._snapshot.apply_player_status(status)
        except ValidationError as e:
            raise DecodeError(f"player_status violates snapshot invariants: {e.error_count()} error(s)") from e

        self._snapshot = snapshot
        self._frames_decoded += 1
        for stream in list(self._subscribers):
            stream._push(snapshot)

    def _resolve_action(self, message: InboundMessage) -> None:
        future = self._pending.get(message.request_id or "")
        if future is None or future.done():
            logger.debug(f"Acknowledgement for unknown request: {message.request_id}")
            return

        if message.type == MessageType.ERROR.value or message.success is False:
            body = message.error
            if body is None:
                future.set_exception(ActionRejected(ActionErrorKind.REJECTED.value, "Action rejected"))
            else:
                future.set_exception(ActionRejected(body.code, body.message, body.details))
        else:
            future.set_result(message)

    def _fail_pending(self, reason: str) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(ActionRejected(ActionErrorKind.SEND_FAILED.value, reason))

    # =========================================================================
    # Outbound actions
    # =========================================================================

    async def place_item(self, kind: ItemKind | str, quantity: int) -> bool:
        """Ask the peer to place ``quantity`` items of ``kind``.

        Never raises; failures are recorded as the retained ActionError.

        Returns:
            True if the peer acknowledged success.
        """
        try:
            item = ItemKind(kind)
        except ValueError:
            return self._record_error(ActionError(
                kind=ActionErrorKind.INVALID_REQUEST,
                message=f"Unknown item kind: {kind!r}",
            ))

        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            return self._record_error(ActionError(
                kind=ActionErrorKind.INVALID_REQUEST,
                message="Quantity must be greater than zero",
                details=f"quantity={quantity!r}",
            ))

        ws = self._ws
        if ws is None or self._state != ConnectionState.CONNECTED:
            return self._record_error(ActionError(
                kind=ActionErrorKind.NOT_CONNECTED,
                message="Telemetry channel is offline",
            ))

        action = PendingAction(kind=item, quantity=quantity)
        future = asyncio.get_running_loop().create_future()
        self._pending[action.request_id] = future

        try:
            await ws.send(action.to_wire())
            self._actions_sent += 1
            self._events.action(
                f"place_item {item.value} x{quantity} sent",
                request_id=action.request_id,
            )
            await asyncio.wait_for(future, timeout=self._ack_timeout)
        except asyncio.TimeoutError:
            return self._record_error(ActionError(
                kind=ActionErrorKind.TIMEOUT,
                message="No acknowledgement from the robot",
                request_id=action.request_id,
            ))
        except ActionRejected as e:
            return self._record_error(ActionError(
                kind=error_kind_from_code(e.kind),
                message=e.message,
                details=e.details,
                request_id=action.request_id,
            ))
        except Exception as e:
            return self._record_error(ActionError(
                kind=ActionErrorKind.SEND_FAILED,
                message="Failed to send action",
                details=str(e),
                request_id=action.request_id,
            ))
        finally:
            self._pending.pop(action.request_id, None)

        self._events.action("place_item acknowledged", request_id=action.request_id)
        return True

    def _record_error(self, error: ActionError) -> bool:
        """Retain ``error``, replacing any unacknowledged one."""
        if self._last_error is not None:
            logger.debug(f"Replacing unacknowledged action error: {self._last_error.kind.value}")
        self._last_error = error
        logger.warning(f"Action failed ({error.kind.value}): {error.message}")
        self._events.action(
            error.message,
            level=LogLevel.WARNING,
            reason=error.kind.value,
            request_id=error.request_id,
        )
        return False

    # =========================================================================
    # Diagnostics
    # =========================================================================

    def get_status(self) -> dict[str, Any]:
        """Connection status and counters for display."""
        return {
            "state": self._state.value,
            "endpoint": self._endpoint,
            "frames_decoded": self._frames_decoded,
            "decode_errors": self._decode_errors,
            "reconnect_count": self._reconnect_count,
            "actions_sent": self._actions_sent,
            "pending_actions": len(self._pending),
            "subscribers": len(self._subscribers),
            "last_error": self._last_error.kind.value if self._last_error else None,
        }

    async def __aenter__(self) -> StateChannelClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
