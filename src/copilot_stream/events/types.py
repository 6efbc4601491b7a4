"""Event type enumerations."""

from enum import Enum


class ServerEventType(str, Enum):
    """Event types sent by the backend over the connection."""

    CONNECTED = "connected"  # Handshake acknowledgement
    METADATA = "metadata"  # Data cards, conversation info
    THINKING = "thinking"  # Progress updates during processing
    CONTENT = "content"  # Text delta, may carry inline markers
    CHART_BLOCK = "chart_block"  # Structured chart placement
    DONE = "done"  # Turn complete
    ERROR = "error"  # Turn failed


class SessionEventType(str, Enum):
    """Event types published to observers of a chat session."""

    # Turn lifecycle
    TURN_STARTED = "turn.started"
    TURN_METADATA = "turn.metadata"
    TURN_THINKING = "turn.thinking"
    TURN_BLOCKS = "turn.blocks"  # Newly completed blocks
    TURN_COMPLETED = "turn.completed"
    TURN_ERROR = "turn.error"
    TURN_ABANDONED = "turn.abandoned"  # Connection lost mid-turn

    # Connection
    CONNECTION_STATUS = "connection.status"  # Visible connectivity changed
    CONNECTION_NOTICE = "connection.notice"  # User-facing notice
    CONNECTION_FAILED = "connection.failed"  # Reconnect attempts exhausted
