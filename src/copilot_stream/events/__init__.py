"""Event system: server events in, session events out."""

from copilot_stream.events.types import ServerEventType, SessionEventType
from copilot_stream.events.models import (
    # Server events
    ServerEvent,
    ConnectedEvent,
    MetadataEvent,
    ThinkingEvent,
    ContentEvent,
    ChartBlockEvent,
    DoneEvent,
    ErrorEvent,
    parse_server_event,
    decode_frame,
    # Client turn
    ChatTurn,
    HistoryEntry,
    # Session events
    SessionEvent,
)
from copilot_stream.events.emitter import EventEmitter

__all__ = [
    "ServerEventType",
    "SessionEventType",
    "EventEmitter",
    # Server events
    "ServerEvent",
    "ConnectedEvent",
    "MetadataEvent",
    "ThinkingEvent",
    "ContentEvent",
    "ChartBlockEvent",
    "DoneEvent",
    "ErrorEvent",
    "parse_server_event",
    "decode_frame",
    # Client turn
    "ChatTurn",
    "HistoryEntry",
    # Session events
    "SessionEvent",
]
