"""Client: transport, connection lifecycle, conversation history and session."""

from copilot_stream.client.connection import ConnectionManager, ConnectionState
from copilot_stream.client.history import ConversationHistory
from copilot_stream.client.session import ChatSession
from copilot_stream.client.transport import (
    EventStreamParser,
    HttpEventStreamTransport,
    Transport,
)

__all__ = [
    "ChatSession",
    "ConnectionManager",
    "ConnectionState",
    "ConversationHistory",
    "EventStreamParser",
    "HttpEventStreamTransport",
    "Transport",
]
