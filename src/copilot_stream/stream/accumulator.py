"""Per-turn accumulation of server events.

The accumulator owns everything that changes while one turn streams: the
unconsumed text buffer, the block id counter, the known cards and the
thinking steps. Events are applied one at a time, in arrival order, and
each application runs to completion before the next event is read.

Usage:
    accumulator = SessionAccumulator(emitter)
    accumulator.begin_turn()
    for event in events:
        message = accumulator.apply(event)
"""

from typing import Any, Callable
from uuid import uuid4

from copilot_stream.core.exceptions import CopilotStreamError
from copilot_stream.events.emitter import EventEmitter
from copilot_stream.events.models import (
    ChartBlockEvent,
    ConnectedEvent,
    ContentEvent,
    DoneEvent,
    ErrorEvent,
    MetadataEvent,
    ServerEvent,
    ThinkingEvent,
)
from copilot_stream.events.types import ServerEventType, SessionEventType
from copilot_stream.stream.extraction import (
    MAX_ITERATIONS,
    MIN_EMIT_LENGTH,
    extract_blocks,
)
from copilot_stream.stream.models import (
    ContentBlock,
    Message,
    StreamingState,
    ThinkingStep,
)
from copilot_stream.utils.logging import get_logger


logger = get_logger(__name__)


class SessionAccumulator:
    """
    Applies server events to the state of the current turn.

    Features:
    - Runs block extraction after every content delta
    - Assigns block ids from a per-turn counter
    - Forced flush and final Message on "done"
    - Publishes turn.* events on the emitter
    """

    def __init__(
        self,
        emitter: EventEmitter | None = None,
        *,
        max_iterations: int = MAX_ITERATIONS,
        min_emit_length: int = MIN_EMIT_LENGTH,
    ):
        self._emitter = emitter or EventEmitter()
        self._max_iterations = max_iterations
        self._min_emit_length = min_emit_length

        self._handlers: dict[ServerEventType, Callable[[Any], Message | None]] = {
            ServerEventType.CONNECTED: self._on_connected,
            ServerEventType.METADATA: self._on_metadata,
            ServerEventType.THINKING: self._on_thinking,
            ServerEventType.CONTENT: self._on_content,
            ServerEventType.CHART_BLOCK: self._on_chart_block,
            ServerEventType.DONE: self._on_done,
            ServerEventType.ERROR: self._on_error,
        }
        missing = set(ServerEventType) - self._handlers.keys()
        if missing:
            raise NotImplementedError(
                f"No handler for server events: {sorted(m.value for m in missing)}"
            )

        self._reset()

    def _reset(self) -> None:
        self._state = StreamingState()
        self._buffer = ""
        self._content = ""
        self._block_counter = 0
        self._event_data: dict[str, Any] = {}
        self._conversation_id: str | None = None
        self._turn_id: str | None = None

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def state(self) -> StreamingState:
        """Snapshot of the current turn."""
        return self._state.snapshot()

    @property
    def is_streaming(self) -> bool:
        return self._state.is_streaming

    @property
    def buffer(self) -> str:
        """Text received but not yet emitted as blocks."""
        return self._buffer

    @property
    def content(self) -> str:
        """Every content delta of the turn, concatenated."""
        return self._content

    @property
    def turn_id(self) -> str | None:
        return self._turn_id

    @property
    def conversation_id(self) -> str | None:
        return self._conversation_id

    # ------------------------------------------------------------------
    # Turn lifecycle
    # ------------------------------------------------------------------

    def begin_turn(self) -> str:
        """Start a new turn with empty state. Returns the turn id."""
        if self._state.is_streaming:
            raise CopilotStreamError(
                "A turn is already streaming", recoverable=False
            )

        self._reset()
        self._turn_id = uuid4().hex[:8]
        self._state.is_streaming = True
        self._emitter.publish(SessionEventType.TURN_STARTED, turn_id=self._turn_id)
        return self._turn_id

    def abandon(self, reason: str) -> bool:
        """
        Discard a turn that can no longer complete.

        Returns:
            True if a streaming turn was discarded
        """
        if not self._state.is_streaming:
            return False

        logger.info(
            "Abandoning turn",
            turn_id=self._turn_id,
            reason=reason,
            blocks=len(self._state.blocks),
        )
        self._emitter.publish(
            SessionEventType.TURN_ABANDONED, turn_id=self._turn_id, reason=reason
        )
        self._reset()
        return True

    def apply(self, event: ServerEvent) -> Message | None:
        """
        Apply one server event.

        Returns:
            The finalized Message when the event ends the turn, else None
        """
        event_type = event.event_type
        if event_type != ServerEventType.CONNECTED and not self._state.is_streaming:
            logger.debug("Ignoring event outside of a turn", event_type=event_type.value)
            return None
        return self._handlers[event_type](event)

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def _on_connected(self, event: ConnectedEvent) -> None:
        logger.debug("Server acknowledged connection")

    def _on_metadata(self, event: MetadataEvent) -> None:
        if event.data_cards is not None:
            self._state.data_cards = list(event.data_cards)
        if event.event_data is not None:
            self._event_data = dict(event.event_data)
        if event.conversation_id:
            self._conversation_id = event.conversation_id
        self._state.metadata = event.to_wire()

        self._emitter.publish(
            SessionEventType.TURN_METADATA,
            turn_id=self._turn_id,
            data_cards=list(self._state.data_cards),
            conversation_id=self._conversation_id,
        )

    def _on_thinking(self, event: ThinkingEvent) -> None:
        step = ThinkingStep(phase=event.phase or "thinking", content=event.content)
        self._state.thinking.append(step)
        self._emitter.publish(SessionEventType.TURN_THINKING, turn_id=self._turn_id, step=step)

    def _on_content(self, event: ContentEvent) -> None:
        self._content += event.content
        self._buffer += event.content
        self._run_extraction(force_flush=False)

    def _on_chart_block(self, event: ChartBlockEvent) -> None:
        self._append_blocks([ContentBlock.chart(event.symbol, event.time_range)])

    def _on_done(self, event: DoneEvent) -> Message:
        self._run_extraction(force_flush=True)
        if event.conversation_id:
            self._conversation_id = event.conversation_id

        message = Message(
            id=event.message_id or "",
            role="assistant",
            content=self._content,
            content_blocks=list(self._state.blocks),
            data_cards=list(self._state.data_cards),
            event_data=dict(self._event_data),
            thinking_steps=list(self._state.thinking),
        )
        self._state.is_streaming = False

        logger.debug(
            "Turn completed",
            turn_id=self._turn_id,
            blocks=len(message.content_blocks),
            content_length=len(message.content),
        )
        self._emitter.publish(
            SessionEventType.TURN_COMPLETED,
            turn_id=self._turn_id,
            conversation_id=self._conversation_id,
            message=message,
        )
        return message

    def _on_error(self, event: ErrorEvent) -> Message:
        self._state.error = event.error
        self._state.is_streaming = False

        # Blocks emitted so far stay visible; the buffer is not flushed
        message = Message(
            role="assistant",
            content=self._content,
            content_blocks=list(self._state.blocks),
            data_cards=list(self._state.data_cards),
            event_data=dict(self._event_data),
            thinking_steps=list(self._state.thinking),
            error=event.error,
        )

        logger.warning("Turn failed", turn_id=self._turn_id, error=event.error)
        self._emitter.publish(
            SessionEventType.TURN_ERROR,
            turn_id=self._turn_id,
            error=event.error,
            message=message,
        )
        return message

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _run_extraction(self, force_flush: bool) -> None:
        result = extract_blocks(
            self._buffer,
            self._state.data_cards,
            force_flush=force_flush,
            max_iterations=self._max_iterations,
            min_emit_length=self._min_emit_length,
        )
        self._buffer = result.remaining
        self._append_blocks(result.blocks)

    def _append_blocks(self, blocks: list[ContentBlock]) -> None:
        if not blocks:
            return

        numbered = [block.with_id(self._next_block_id(block)) for block in blocks]
        self._state.blocks.extend(numbered)
        self._emitter.publish(
            SessionEventType.TURN_BLOCKS, turn_id=self._turn_id, blocks=numbered
        )

    def _next_block_id(self, block: ContentBlock) -> str:
        block_id = f"{block.type.value}-{self._turn_id}-{self._block_counter}"
        self._block_counter += 1
        return block_id
