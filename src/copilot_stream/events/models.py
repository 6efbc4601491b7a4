"""Event data models.

Server events form a closed set of variants tagged by ``type``. Frames are
decoded through a pydantic discriminated union; anything that does not
validate is rejected as a whole.
"""

import json
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union
from uuid import uuid4

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from copilot_stream.core.exceptions import FrameDecodeError
from copilot_stream.events.types import ServerEventType, SessionEventType
from copilot_stream.stream.models import DataCard, WireModel
from copilot_stream.utils.logging import get_logger


logger = get_logger(__name__)

DEFAULT_ERROR_MESSAGE = "An error occurred"


# =============================================================================
# SERVER -> CLIENT
# =============================================================================


class ServerEventBase(WireModel):
    """Base for events received from the backend."""

    @property
    def event_type(self) -> ServerEventType:
        return ServerEventType(self.type)  # type: ignore[attr-defined]


class ConnectedEvent(ServerEventBase):
    type: Literal["connected"] = "connected"


class MetadataEvent(ServerEventBase):
    type: Literal["metadata"] = "metadata"
    data_cards: list[DataCard] | None = None
    event_data: dict[str, Any] | None = None
    conversation_id: str | None = None
    new_conversation: bool | None = None
    intelligence: dict[str, Any] | None = None


class ThinkingEvent(ServerEventBase):
    type: Literal["thinking"] = "thinking"
    phase: str | None = None
    content: str = ""


class ContentEvent(ServerEventBase):
    type: Literal["content"] = "content"
    content: str = ""


class ChartBlockEvent(ServerEventBase):
    type: Literal["chart_block"] = "chart_block"
    symbol: str
    time_range: str = "1D"


class DoneEvent(ServerEventBase):
    type: Literal["done"] = "done"
    conversation_id: str | None = None
    message_id: str | None = None


class ErrorEvent(ServerEventBase):
    type: Literal["error"] = "error"
    error: str = DEFAULT_ERROR_MESSAGE

    @field_validator("error", mode="before")
    @classmethod
    def _default_when_empty(cls, value: Any) -> Any:
        return value or DEFAULT_ERROR_MESSAGE


ServerEvent = Annotated[
    Union[
        ConnectedEvent,
        MetadataEvent,
        ThinkingEvent,
        ContentEvent,
        ChartBlockEvent,
        DoneEvent,
        ErrorEvent,
    ],
    Field(discriminator="type"),
]

_server_event_adapter: TypeAdapter[ServerEvent] = TypeAdapter(ServerEvent)


def parse_server_event(raw: str | bytes | dict[str, Any]) -> ServerEvent:
    """
    Parse a raw frame into a typed server event.

    Raises:
        FrameDecodeError: If the frame is not JSON or not a known event
    """
    if isinstance(raw, (str, bytes)):
        text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            raise FrameDecodeError(f"Frame is not valid JSON: {e}", raw=text) from e
    else:
        text = None
        payload = raw

    try:
        return _server_event_adapter.validate_python(payload)
    except ValidationError as e:
        raise FrameDecodeError(f"Frame is not a known event: {e}", raw=text) from e


def decode_frame(raw: str | bytes | dict[str, Any]) -> ServerEvent | None:
    """Parse a frame, logging and dropping it when malformed."""
    try:
        return parse_server_event(raw)
    except FrameDecodeError as e:
        preview = (e.raw or str(raw))[:80]
        logger.warning("Dropped malformed frame", error=str(e), preview=preview)
        return None


# =============================================================================
# CLIENT -> SERVER
# =============================================================================


class HistoryEntry(WireModel):
    role: Literal["user", "assistant"]
    content: str


class ChatTurn(WireModel):
    """A user turn sent to the backend."""

    type: Literal["chat"] = "chat"
    message: str
    conversation_history: list[HistoryEntry] = Field(default_factory=list)
    selected_tickers: list[str] = Field(default_factory=list)
    timezone: str = "UTC"

    def to_payload(self) -> dict[str, Any]:
        return self.to_wire()


# =============================================================================
# SESSION EVENTS (published to observers)
# =============================================================================


class SessionEvent(BaseModel):
    """Base event model for session observers."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    event_type: SessionEventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    data: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def create(cls, event_type: SessionEventType, **data: Any) -> "SessionEvent":
        return cls(event_type=event_type, data=data)
