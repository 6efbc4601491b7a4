"""Stream content types.

ContentBlock is the unit handed to the presentation layer. Blocks are
immutable once emitted and their order within a turn is significant.

Design Principles:
- Immutable blocks (frozen model, ids assigned by copy)
- Wire-compatible (camelCase aliases, snake_case attributes)
- Cards are looked up by (type, id), ids compared as strings

Usage:
    block = ContentBlock.text("Revenue grew.\\n\\n")
    chart = ContentBlock.chart("AAPL", "1D")

    card = DataCard.model_validate({"type": "event", "data": {"id": 42}})
    card.matches(CardType.EVENT, "42")  # True
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class BlockType(str, Enum):
    """Renderable block types."""

    TEXT = "text"
    CHART = "chart"
    ARTICLE = "article"
    IMAGE = "image"
    EVENT = "event"
    HORIZONTAL_RULE = "horizontal_rule"


class CardType(str, Enum):
    """Data card types sent in metadata."""

    ARTICLE = "article"
    IMAGE = "image"
    EVENT = "event"
    STOCK = "stock"
    CHART = "chart"
    EVENT_LIST = "event-list"


class WireModel(BaseModel):
    """Base for models exchanged with the backend."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """Serialize using the backend's camelCase keys."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class ChartBlockData(WireModel):
    """Payload of a chart block."""

    symbol: str
    time_range: str = "1D"


class ContentBlock(WireModel):
    """
    Immutable unit of rendered output.

    Attributes:
        id: Unique within a turn; empty until the accumulator assigns one
        type: Block type
        content: Text for text blocks
        data: Payload for chart and card blocks
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    id: str = ""
    type: BlockType
    content: str | None = None
    data: dict[str, Any] | None = None

    @classmethod
    def text(cls, content: str) -> ContentBlock:
        return cls(type=BlockType.TEXT, content=content)

    @classmethod
    def chart(cls, symbol: str, time_range: str = "1D") -> ContentBlock:
        data = ChartBlockData(symbol=symbol, time_range=time_range)
        return cls(type=BlockType.CHART, content="", data=data.to_wire())

    @classmethod
    def horizontal_rule(cls) -> ContentBlock:
        return cls(type=BlockType.HORIZONTAL_RULE, content="")

    @classmethod
    def card(cls, block_type: BlockType, card: DataCard) -> ContentBlock:
        return cls(type=block_type, content="", data=card.payload)

    @property
    def is_text(self) -> bool:
        return self.type == BlockType.TEXT

    @property
    def chart_data(self) -> ChartBlockData | None:
        """Parsed chart payload, for chart blocks."""
        if self.type != BlockType.CHART or self.data is None:
            return None
        return ChartBlockData.model_validate(self.data)

    def with_id(self, block_id: str) -> ContentBlock:
        """Return a copy carrying the given id."""
        return self.model_copy(update={"id": block_id})


class DataCard(WireModel):
    """
    Structured reference data delivered ahead of the text that cites it.

    The backend usually nests the identifier inside ``data``; a top-level
    ``id`` takes precedence when present.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    id: str | None = None
    type: CardType
    data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @property
    def card_id(self) -> str | None:
        if self.id is not None:
            return self.id
        nested = self.data.get("id")
        return None if nested is None else str(nested)

    @property
    def payload(self) -> dict[str, Any]:
        """Data carried into a block built from this card."""
        if self.data:
            return dict(self.data)
        return self.to_wire()

    def matches(self, card_type: CardType, card_id: str) -> bool:
        return self.type == card_type and self.card_id == card_id.strip()


class ThinkingStep(WireModel):
    """Progress annotation shown while the backend works."""

    phase: str = "thinking"
    content: str = ""
    timestamp: float = Field(default_factory=time.time)


class StreamingState(WireModel):
    """Observable state of the turn currently being streamed."""

    is_streaming: bool = False
    blocks: list[ContentBlock] = Field(default_factory=list)
    thinking: list[ThinkingStep] = Field(default_factory=list)
    data_cards: list[DataCard] = Field(default_factory=list)
    metadata: dict[str, Any] | None = None
    error: str | None = None

    def snapshot(self) -> StreamingState:
        """Deep copy safe to hand to observers."""
        return self.model_copy(deep=True)


def new_message_id(role: str) -> str:
    return f"{role}-{uuid4().hex[:12]}"


class Message(WireModel):
    """A finalized conversation entry."""

    id: str = ""
    role: Literal["user", "assistant"]
    content: str = ""
    content_blocks: list[ContentBlock] = Field(default_factory=list)
    data_cards: list[DataCard] = Field(default_factory=list)
    event_data: dict[str, Any] = Field(default_factory=dict)
    thinking_steps: list[ThinkingStep] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    error: str | None = None

    def model_post_init(self, __context: Any) -> None:
        if not self.id:
            self.id = new_message_id(self.role)
