"""Connection lifecycle management.

Keeps at most one live connection to the backend and hides short network
losses from the rest of the client:

    Disconnected -> Connecting -> Open -> Disconnected (on close)
                 -> Connecting (after delay) -> ... -> Failed

Reconnection is the only recovery strategy. A turn that was streaming when
the connection dropped is abandoned; nothing is replayed.
"""

import asyncio
from enum import Enum

from copilot_stream.client.transport import Transport
from copilot_stream.config.settings import Settings, get_settings
from copilot_stream.events.emitter import EventEmitter
from copilot_stream.events.models import ChatTurn, decode_frame
from copilot_stream.events.types import SessionEventType
from copilot_stream.core.resilience import open_timeout
from copilot_stream.stream.accumulator import SessionAccumulator
from copilot_stream.utils.logging import get_logger


logger = get_logger(__name__)

NOT_CONNECTED_NOTICE = "Not connected to server. Reconnecting..."
TURN_IN_PROGRESS_NOTICE = "Please wait for the current response to finish."
SEND_FAILED_NOTICE = "Your message could not be sent. Please try again."


class ConnectionState(str, Enum):
    """Lifecycle states of the connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    FAILED = "failed"  # Reconnect attempts exhausted


class ConnectionManager:
    """
    Owns the transport and its open/retry/close state machine.

    Features:
    - Idempotent connect(): never opens a second channel
    - Grace period before reporting "disconnected" to observers
    - Fixed-delay reconnects, bounded by max_reconnect_attempts
    - Send gate: connection must be open and no turn in flight
    - Clean teardown: no reconnect or timer outlives the session

    Frames are decoded and applied to the accumulator synchronously, in
    the order the transport delivers them.
    """

    def __init__(
        self,
        transport: Transport,
        accumulator: SessionAccumulator,
        emitter: EventEmitter | None = None,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()

        self._transport = transport
        self._accumulator = accumulator
        self._emitter = emitter or EventEmitter()

        self._reconnect_delay = settings.reconnect_delay_seconds
        self._max_reconnect_attempts = settings.max_reconnect_attempts
        self._grace_period = settings.grace_period_seconds
        self._initial_grace_period = settings.initial_grace_period_seconds
        self._connect_timeout = settings.connect_timeout_seconds

        self._state = ConnectionState.DISCONNECTED
        self._is_connected = False
        self._has_connected_once = False
        self._reconnect_attempts = 0
        self._tearing_down = False

        self._grace_timer: asyncio.TimerHandle | None = None
        self._reconnect_timer: asyncio.TimerHandle | None = None
        self._reconnect_task: asyncio.Task | None = None

    async def __aenter__(self) -> "ConnectionManager":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.teardown()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        """Connectivity as reported to observers (lags behind on close)."""
        return self._is_connected

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def has_pending_reconnect(self) -> bool:
        return self._reconnect_timer is not None or (
            self._reconnect_task is not None and not self._reconnect_task.done()
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """
        Open the connection if it is not already open or opening.

        Failures are not raised; they follow the same path as a close.
        """
        if self._tearing_down:
            logger.debug("Session is tearing down, not connecting")
            return
        if self._state in (ConnectionState.CONNECTING, ConnectionState.OPEN):
            logger.debug("Already connected or connecting, skipping", state=self._state.value)
            return

        self._state = ConnectionState.CONNECTING
        logger.info("Connecting", attempt=self._reconnect_attempts)

        guarded_open = open_timeout(self._connect_timeout)(self._transport.open)
        try:
            await guarded_open(self._handle_frame, self._handle_close)
        except Exception as e:
            logger.warning("Connection attempt failed", error=str(e) or type(e).__name__)
            await self._transport.close()
            self._handle_close(e)
            return

        if self._tearing_down:
            await self._transport.close()
            return

        self._on_open()

    async def retry(self) -> None:
        """User-triggered reconnect; resets the attempt counter."""
        if self._tearing_down:
            return
        if self._state in (ConnectionState.CONNECTING, ConnectionState.OPEN):
            return

        logger.info("Manual reconnect requested", previous_state=self._state.value)
        self._cancel_reconnect()
        self._reconnect_attempts = 0
        self._state = ConnectionState.DISCONNECTED
        await self.connect()

    async def teardown(self) -> None:
        """Close the connection for good and cancel all pending work."""
        # Set before anything else so the close path never reconnects
        self._tearing_down = True
        self._cancel_grace_timer()
        self._cancel_reconnect()

        self._state = ConnectionState.CLOSING
        self._accumulator.abandon("session closed")
        try:
            await self._transport.close()
        finally:
            self._state = ConnectionState.DISCONNECTED
            self._set_connected(False)
            logger.info("Connection torn down")

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send(self, turn: ChatTurn) -> bool:
        """
        Send a user turn.

        Returns:
            True if the turn was handed to the transport. Rejections are
            reported through a connection.notice event.
        """
        if self._state != ConnectionState.OPEN:
            self._notice(NOT_CONNECTED_NOTICE)
            return False
        if self._accumulator.is_streaming:
            self._notice(TURN_IN_PROGRESS_NOTICE)
            return False

        turn_id = self._accumulator.begin_turn()
        try:
            await self._transport.send(turn.to_payload())
        except Exception as e:
            logger.warning("Failed to send turn", turn_id=turn_id, error=str(e))
            self._accumulator.abandon(f"send failed: {e}")
            self._notice(SEND_FAILED_NOTICE)
            return False

        logger.debug("Turn sent", turn_id=turn_id, length=len(turn.message))
        return True

    # ------------------------------------------------------------------
    # Transport callbacks
    # ------------------------------------------------------------------

    def _on_open(self) -> None:
        self._state = ConnectionState.OPEN
        self._has_connected_once = True
        self._reconnect_attempts = 0
        self._cancel_grace_timer()
        self._set_connected(True)
        logger.info("Connected")

    def _handle_frame(self, raw: str) -> None:
        event = decode_frame(raw)
        if event is None:
            return
        try:
            self._accumulator.apply(event)
        except Exception as e:
            logger.error(
                f"Failed to apply server event: {e}",
                event_type=event.event_type.value,
                exc_info=True,
            )

    def _handle_close(self, error: Exception | None = None) -> None:
        self._state = ConnectionState.DISCONNECTED
        self._accumulator.abandon("connection lost")

        if self._tearing_down:
            logger.debug("Session tearing down, skipping reconnection")
            return

        logger.info("Disconnected", error=str(error) if error else None)
        loop = asyncio.get_running_loop()

        self._cancel_grace_timer()
        grace = self._grace_period if self._has_connected_once else self._initial_grace_period
        self._grace_timer = loop.call_later(grace, self._grace_expired)

        if self._reconnect_attempts < self._max_reconnect_attempts:
            self._reconnect_attempts += 1
            logger.info(
                "Reconnecting",
                delay_seconds=self._reconnect_delay,
                attempt=self._reconnect_attempts,
                max_attempts=self._max_reconnect_attempts,
            )
            self._reconnect_timer = loop.call_later(
                self._reconnect_delay, self._start_reconnect
            )
        else:
            self._state = ConnectionState.FAILED
            logger.error(
                "Max reconnection attempts reached",
                attempts=self._reconnect_attempts,
            )
            self._emitter.publish(
                SessionEventType.CONNECTION_FAILED, attempts=self._reconnect_attempts
            )

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _grace_expired(self) -> None:
        self._grace_timer = None
        self._set_connected(False)

    def _start_reconnect(self) -> None:
        self._reconnect_timer = None
        self._reconnect_task = asyncio.get_running_loop().create_task(self.connect())

    def _cancel_grace_timer(self) -> None:
        if self._grace_timer is not None:
            self._grace_timer.cancel()
            self._grace_timer = None

    def _cancel_reconnect(self) -> None:
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None
        if self._reconnect_task is not None and not self._reconnect_task.done():
            if self._reconnect_task is not asyncio.current_task():
                self._reconnect_task.cancel()
        self._reconnect_task = None

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def _set_connected(self, connected: bool) -> None:
        if connected == self._is_connected:
            return
        self._is_connected = connected
        self._emitter.publish(SessionEventType.CONNECTION_STATUS, connected=connected)

    def _notice(self, message: str) -> None:
        logger.info("Send rejected", notice=message, state=self._state.value)
        self._emitter.publish(SessionEventType.CONNECTION_NOTICE, message=message)
