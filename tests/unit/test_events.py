"""Tests for event system."""

import asyncio
import json

import pytest

from copilot_stream.core.exceptions import FrameDecodeError
from copilot_stream.events.emitter import EventEmitter, pattern_matches
from copilot_stream.events.models import (
    ChartBlockEvent,
    ChatTurn,
    ContentEvent,
    DoneEvent,
    HistoryEntry,
    MetadataEvent,
    SessionEvent,
    decode_frame,
    parse_server_event,
)
from copilot_stream.events.types import ServerEventType, SessionEventType


class TestServerEvents:
    """Tests for decoding server frames."""

    def test_content_frame(self):
        """Test decoding content frame."""
        event = parse_server_event('{"type": "content", "content": "Hello "}')
        assert isinstance(event, ContentEvent)
        assert event.event_type == ServerEventType.CONTENT
        assert event.content == "Hello "

    def test_chart_block_frame(self):
        """Test decoding chart block frame."""
        event = parse_server_event({"type": "chart_block", "symbol": "AAPL", "timeRange": "5D"})
        assert isinstance(event, ChartBlockEvent)
        assert event.time_range == "5D"

    def test_chart_block_default_range(self):
        """Test chart block default range."""
        event = parse_server_event({"type": "chart_block", "symbol": "AAPL"})
        assert event.time_range == "1D"

    def test_metadata_frame(self):
        """Test decoding metadata frame."""
        event = parse_server_event(
            {
                "type": "metadata",
                "dataCards": [{"type": "image", "data": {"id": 7, "url": "http://img"}}],
                "conversationId": "conv-1",
            }
        )
        assert isinstance(event, MetadataEvent)
        assert event.data_cards[0].card_id == "7"
        assert event.conversation_id == "conv-1"

    def test_done_frame_from_bytes(self):
        """Test decoding done frame from bytes."""
        event = parse_server_event(b'{"type": "done", "messageId": "m-2"}')
        assert isinstance(event, DoneEvent)
        assert event.message_id == "m-2"

    def test_invalid_json_raises(self):
        """Test invalid JSON raises error."""
        with pytest.raises(FrameDecodeError) as exc_info:
            parse_server_event("{not json")
        assert exc_info.value.raw == "{not json"

    def test_unknown_type_raises(self):
        """Test unknown event type raises error."""
        with pytest.raises(FrameDecodeError):
            parse_server_event({"type": "telemetry", "value": 1})

    def test_decode_frame_drops_malformed(self):
        """Test decode_frame drops malformed frames."""
        assert decode_frame("{not json") is None
        assert decode_frame('{"type": "chart_block"}') is None

    def test_decode_frame(self):
        """Test decode_frame."""
        event = decode_frame(json.dumps({"type": "thinking", "content": "Working"}))
        assert event.event_type == ServerEventType.THINKING


class TestChatTurn:
    """Tests for the outgoing turn payload."""

    def test_payload_uses_wire_keys(self):
        """Test payload wire keys."""
        turn = ChatTurn(
            message="How is AAPL?",
            conversation_history=[HistoryEntry(role="user", content="Hi")],
            selected_tickers=["AAPL"],
            timezone="America/New_York",
        )

        assert turn.to_payload() == {
            "type": "chat",
            "message": "How is AAPL?",
            "conversationHistory": [{"role": "user", "content": "Hi"}],
            "selectedTickers": ["AAPL"],
            "timezone": "America/New_York",
        }


class TestEventEmitter:
    """Tests for event emitter."""

    def test_publish_returns_event(self):
        """Test publish returns the event."""
        emitter = EventEmitter()
        event = emitter.publish(SessionEventType.TURN_STARTED, turn_id="abc")

        assert isinstance(event, SessionEvent)
        assert event.data == {"turn_id": "abc"}

    def test_exact_pattern(self):
        """Test exact pattern subscription."""
        emitter = EventEmitter()
        received = []
        emitter.subscribe("turn.completed", received.append)

        emitter.publish(SessionEventType.TURN_STARTED)
        emitter.publish(SessionEventType.TURN_COMPLETED)

        assert [e.event_type for e in received] == [SessionEventType.TURN_COMPLETED]

    def test_wildcard_patterns(self):
        """Test pattern-based subscription."""
        emitter = EventEmitter()
        turn_events = []
        all_events = []
        emitter.subscribe("turn.*", turn_events.append)
        emitter.subscribe("*", all_events.append)

        emitter.publish(SessionEventType.TURN_BLOCKS, blocks=[])
        emitter.publish(SessionEventType.CONNECTION_STATUS, connected=True)

        assert len(turn_events) == 1
        assert len(all_events) == 2

    def test_unsubscribe(self):
        """Test unsubscribing handlers."""
        emitter = EventEmitter()
        received = []
        sub_id = emitter.subscribe("*", received.append)

        assert emitter.unsubscribe(sub_id)
        assert not emitter.unsubscribe(sub_id)
        emitter.publish(SessionEventType.TURN_STARTED)
        assert received == []

    def test_handler_error_does_not_stop_others(self):
        """Test failing handler does not stop others."""
        emitter = EventEmitter()
        received = []

        def broken(event):
            raise RuntimeError("boom")

        emitter.subscribe("*", broken)
        emitter.subscribe("*", received.append)
        emitter.publish(SessionEventType.CONNECTION_NOTICE, message="hi")

        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_async_handler_is_scheduled(self):
        """Test scheduling async handlers."""
        emitter = EventEmitter()
        received = []

        async def handler(event: SessionEvent):
            received.append(event)

        emitter.subscribe("connection.*", handler)
        emitter.publish(SessionEventType.CONNECTION_FAILED, attempts=5)
        await asyncio.sleep(0)

        assert received[0].data["attempts"] == 5

    def test_async_handler_without_loop_is_skipped(self):
        """Test async handler without running loop."""
        emitter = EventEmitter()

        async def handler(event: SessionEvent):
            raise AssertionError("should not run")

        emitter.subscribe("*", handler)
        emitter.publish(SessionEventType.TURN_STARTED)

    def test_handler_may_unsubscribe_itself(self):
        """Test handler unsubscribing itself."""
        emitter = EventEmitter()
        received = []
        sub_ids = []

        def once(event):
            received.append(event)
            emitter.unsubscribe(sub_ids[0])

        sub_ids.append(emitter.subscribe("turn.*", once))
        emitter.publish(SessionEventType.TURN_STARTED)
        emitter.publish(SessionEventType.TURN_STARTED)

        assert len(received) == 1
        assert emitter.subscriber_count == 0


class TestPatternMatches:
    """Tests for subscription patterns."""

    def test_patterns(self):
        """Test pattern matching."""
        assert pattern_matches("*", "turn.blocks")
        assert pattern_matches("turn.blocks", "turn.blocks")
        assert pattern_matches("turn.*", "turn.blocks")
        assert not pattern_matches("turn.*", "connection.status")
        assert not pattern_matches("turn.*", "turnover.blocks")
        assert not pattern_matches("turn.blocks", "turn.error")
