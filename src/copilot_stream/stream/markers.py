"""Inline marker grammar.

The backend embeds these tokens in otherwise free-form text to request a
non-text block:

    [VIEW_CHART:SYMBOL:RANGE]   inline chart (legacy: [VIEW_CHART:chart-SYMBOL])
    [VIEW_ARTICLE:id]           article card
    [IMAGE_CARD:id]             image card
    [EVENT_CARD:id]             event card
    [HR]                        horizontal rule

Markers are never shown verbatim; ``strip_markers`` removes them before
text is rendered as markdown.
"""

import re
from dataclasses import dataclass

from copilot_stream.stream.models import BlockType, CardType

DEFAULT_CHART_RANGE = "1D"
LEGACY_CHART_PREFIX = "chart-"

# Any complete marker, anywhere in the text
ANY_MARKER = re.compile(
    r"\[(?:VIEW_CHART|VIEW_ARTICLE|IMAGE_CARD|EVENT_CARD):[^\]]+\]|\[HR\]"
)

# Markers anchored at the start of the buffer; surrounding whitespace is
# consumed together with the token
HR_AT_START = re.compile(r"^\s*\[HR\]\s*")
CHART_AT_START = re.compile(r"^\s*\[VIEW_CHART:([^\]]+)\]\s*")
ARTICLE_AT_START = re.compile(r"^\s*\[VIEW_ARTICLE:([^\]]+)\]\s*")
IMAGE_AT_START = re.compile(r"^\s*\[IMAGE_CARD:([^\]]+)\]\s*")
EVENT_AT_START = re.compile(r"^\s*\[EVENT_CARD:([^\]]+)\]\s*")

# Openings of every marker token, used to spot a token still being typed
MARKER_OPENINGS = (
    "[VIEW_CHART:",
    "[VIEW_ARTICLE:",
    "[IMAGE_CARD:",
    "[EVENT_CARD:",
    "[HR]",
)


@dataclass(frozen=True)
class CardMarker:
    """A card-reference marker and the card it needs."""

    pattern: re.Pattern[str]
    block_type: BlockType
    card_type: CardType


CARD_MARKERS = (
    CardMarker(ARTICLE_AT_START, BlockType.ARTICLE, CardType.ARTICLE),
    CardMarker(IMAGE_AT_START, BlockType.IMAGE, CardType.IMAGE),
    CardMarker(EVENT_AT_START, BlockType.EVENT, CardType.EVENT),
)


def parse_chart_reference(reference: str) -> tuple[str, str]:
    """
    Parse the body of a VIEW_CHART marker.

    Examples:
        "AAPL:1D"     -> ("AAPL", "1D")
        "chart-TSLA"  -> ("TSLA", "1D")
        "MSFT"        -> ("MSFT", "1D")
    """
    if ":" in reference:
        symbol, time_range = reference.split(":")[:2]
        return symbol, time_range
    if reference.startswith(LEGACY_CHART_PREFIX):
        return reference[len(LEGACY_CHART_PREFIX):], DEFAULT_CHART_RANGE
    return reference, DEFAULT_CHART_RANGE


def ends_with_marker_prefix(text: str) -> bool:
    """Check whether the text ends with the beginning of a marker token."""
    start = text.rfind("[")
    if start == -1:
        return False
    tail = text[start:]
    if "]" in tail:
        return False
    for opening in MARKER_OPENINGS:
        if opening.startswith(tail) or tail.startswith(opening):
            return True
    return False


def strip_markers(text: str) -> str:
    """Remove every complete marker token from text."""
    return ANY_MARKER.sub("", text)
