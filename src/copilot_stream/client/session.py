"""Chat session facade.

Wires a transport, the session accumulator, the connection manager and the
conversation history together behind the handful of calls a front end
needs.

Usage:
    async with ChatSession() as session:
        session.emitter.subscribe("turn.blocks", render)
        await session.send_message("How is AAPL doing?")
"""

from copilot_stream.client.connection import ConnectionManager, ConnectionState
from copilot_stream.client.history import ConversationHistory
from copilot_stream.client.transport import HttpEventStreamTransport, Transport
from copilot_stream.config.settings import Settings, get_settings
from copilot_stream.events.emitter import EventEmitter
from copilot_stream.events.models import ChatTurn, SessionEvent
from copilot_stream.stream.accumulator import SessionAccumulator
from copilot_stream.stream.models import Message, StreamingState
from copilot_stream.utils.logging import get_logger


logger = get_logger(__name__)

CONNECTION_LOST_ERROR = "Connection lost"


class ChatSession:
    """
    One conversation with the copilot backend.

    Features:
    - Connects on start(), tears everything down on close()
    - Keeps the conversation history in step with turn events
    - Resends the last user message on request
    """

    def __init__(
        self,
        settings: Settings | None = None,
        transport: Transport | None = None,
        emitter: EventEmitter | None = None,
    ):
        self._settings = settings or get_settings()
        self.emitter = emitter or EventEmitter()

        self._transport = transport or HttpEventStreamTransport.from_settings(self._settings)
        self._accumulator = SessionAccumulator(
            self.emitter,
            max_iterations=self._settings.extraction_max_iterations,
            min_emit_length=self._settings.min_emit_length,
        )
        self._connection = ConnectionManager(
            self._transport, self._accumulator, self.emitter, self._settings
        )
        self._history = ConversationHistory(self._settings.max_history_messages)
        self._last_user_message: str | None = None

        self._subscriptions = [
            self.emitter.subscribe("turn.completed", self._on_turn_finished),
            self.emitter.subscribe("turn.error", self._on_turn_finished),
            self.emitter.subscribe("turn.abandoned", self._on_turn_abandoned),
        ]

    async def __aenter__(self) -> "ChatSession":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def messages(self) -> list[Message]:
        return self._history.messages

    @property
    def is_connected(self) -> bool:
        return self._connection.is_connected

    @property
    def connection_state(self) -> ConnectionState:
        return self._connection.state

    @property
    def is_streaming(self) -> bool:
        return self._accumulator.is_streaming

    @property
    def streaming_state(self) -> StreamingState:
        return self._accumulator.state

    @property
    def last_user_message(self) -> str | None:
        return self._last_user_message

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        await self._connection.connect()

    async def retry_connection(self) -> None:
        await self._connection.retry()

    async def close(self) -> None:
        await self._connection.teardown()
        for sub_id in self._subscriptions:
            self.emitter.unsubscribe(sub_id)
        self._subscriptions = []

    # ------------------------------------------------------------------
    # Conversation
    # ------------------------------------------------------------------

    async def send_message(self, text: str) -> bool:
        """
        Send a user message.

        Returns:
            True if the turn was sent. Blank input and messages sent while
            a turn is streaming are ignored.
        """
        text = text.strip()
        if not text:
            return False
        if self._accumulator.is_streaming:
            logger.debug("Ignoring message while a turn is streaming")
            return False

        turn = ChatTurn(
            message=text,
            conversation_history=self._history.as_turn_history(),
            selected_tickers=list(self._settings.selected_tickers),
            timezone=self._settings.timezone,
        )
        self._history.add_exchange(text)
        self._last_user_message = text

        sent = await self._connection.send(turn)
        if not sent:
            self._history.drop_last_exchange()
        return sent

    async def retry_last_message(self) -> bool:
        """
        Send the last user message again.

        Its exchange is dropped first when the answer failed, so the retry
        replaces it. A message whose send was rejected has no exchange left
        and earlier exchanges are kept.
        """
        if self._last_user_message is None or self._accumulator.is_streaming:
            return False

        text = self._last_user_message
        dropped = self._history.drop_failed_exchange(text)
        logger.info("Retrying last message", length=len(text), replaced=dropped)
        return await self.send_message(text)

    def clear_messages(self) -> None:
        self._history.clear()
        self._last_user_message = None

    # ------------------------------------------------------------------
    # Turn event handlers
    # ------------------------------------------------------------------

    def _on_turn_finished(self, event: SessionEvent) -> None:
        message = event.data.get("message")
        if isinstance(message, Message):
            self._history.complete(message)

    def _on_turn_abandoned(self, event: SessionEvent) -> None:
        self._history.complete(Message(role="assistant", error=CONNECTION_LOST_ERROR))
