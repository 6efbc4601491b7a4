"""Incremental block extraction.

Turns the unconsumed text of a streaming turn into the blocks that are
safe to show right now. The caller keeps the returned remainder and feeds
it back, with newly arrived text appended, on the next pass.

A pass stops early rather than emit something that may still change:

- a card marker whose card is not known yet
- trailing markdown that is still open (bracket, link, emphasis)
- a short tail, or one that may be the start of a marker

Usage:
    result = extract_blocks(buffer, cards)
    state.blocks.extend(result.blocks)
    buffer = result.remaining

    # once the stream is finished
    result = extract_blocks(buffer, cards, force_flush=True)
"""

import re
from dataclasses import dataclass, field
from typing import Iterable

from copilot_stream.stream.markers import (
    ANY_MARKER,
    CARD_MARKERS,
    CHART_AT_START,
    HR_AT_START,
    ends_with_marker_prefix,
    parse_chart_reference,
)
from copilot_stream.stream.models import CardType, ContentBlock, DataCard
from copilot_stream.utils.logging import get_logger


logger = get_logger(__name__)

MAX_ITERATIONS = 100
MIN_EMIT_LENGTH = 20  # tails of at most this many visible chars are held back
PARAGRAPH_BREAK = "\n\n"

_OPEN_LINK = re.compile(r"\]\([^)]*$")
_OPEN_BRACKET_TAIL = re.compile(r"\[[^\]]*$")


@dataclass
class ExtractionResult:
    """Blocks completed in one pass and the text left for the next one."""

    blocks: list[ContentBlock] = field(default_factory=list)
    remaining: str = ""


def has_incomplete_pattern(text: str) -> bool:
    """Check for inline markdown that has been opened but not closed."""
    if text.count("[") > text.count("]"):
        return True
    if _OPEN_LINK.search(text):
        return True
    if text.count("*") % 2 != 0:
        return True
    if _OPEN_BRACKET_TAIL.search(text):
        return True
    return False


def _unmatched_opener_index(text: str) -> int:
    """Position of the opener that makes ``text`` incomplete, or -1."""
    if text.count("[") > text.count("]") or _OPEN_LINK.search(text):
        return text.rfind("[")
    if text.count("*") % 2 != 0:
        index = text.rfind("*")
        # keep the whole run (*, **, ***) together
        while index > 0 and text[index - 1] == "*":
            index -= 1
        return index
    if _OPEN_BRACKET_TAIL.search(text):
        return text.rfind("[")
    return -1


def safe_prefix_length(text: str) -> int:
    """Length of the longest prefix that ends before every unclosed opener."""
    end = len(text)
    while end > 0 and has_incomplete_pattern(text[:end]):
        end = _unmatched_opener_index(text[:end])
    return max(end, 0)


def find_card(
    cards: Iterable[DataCard], card_type: CardType, card_id: str
) -> DataCard | None:
    """Find a known card by type and id."""
    for card in cards:
        if card.matches(card_type, card_id):
            return card
    return None


def _append_text(blocks: list[ContentBlock], text: str) -> None:
    if text.strip():
        blocks.append(ContentBlock.text(text))


def _consume_marker(
    buffer: str, cards: list[DataCard]
) -> tuple[ContentBlock, int] | None:
    """
    Build the block for the marker at the start of the buffer.

    Returns:
        The block and the number of characters it consumed, or None when
        the marker refers to a card that has not arrived yet
    """
    match = HR_AT_START.match(buffer)
    if match:
        return ContentBlock.horizontal_rule(), match.end()

    match = CHART_AT_START.match(buffer)
    if match:
        symbol, time_range = parse_chart_reference(match.group(1).strip())
        return ContentBlock.chart(symbol, time_range), match.end()

    for marker in CARD_MARKERS:
        match = marker.pattern.match(buffer)
        if not match:
            continue
        card_id = match.group(1).strip()
        card = find_card(cards, marker.card_type, card_id)
        if card is None:
            logger.debug(
                "Deferring marker until its card arrives",
                card_type=marker.card_type.value,
                card_id=card_id,
            )
            return None
        return ContentBlock.card(marker.block_type, card), match.end()

    logger.warning("Unrecognized marker at buffer start", preview=buffer[:40])
    return None


def _split_tail(
    text: str, blocks: list[ContentBlock], min_emit_length: int
) -> str:
    """Emit what is safe from a marker-free, paragraph-free tail."""
    if ends_with_marker_prefix(text):
        # a marker is still arriving; hold it and settle the text ahead of it
        start = text.rfind("[")
        return _split_tail(text[:start], blocks, min_emit_length) + text[start:]

    if has_incomplete_pattern(text):
        end = safe_prefix_length(text)
        prefix = text[:end]
        if end == 0 or len(prefix.strip()) <= min_emit_length:
            return text
        _append_text(blocks, prefix)
        return text[end:]

    if len(text.strip()) <= min_emit_length:
        return text

    _append_text(blocks, text)
    return ""


def extract_blocks(
    buffer: str,
    known_cards: list[DataCard],
    *,
    force_flush: bool = False,
    max_iterations: int = MAX_ITERATIONS,
    min_emit_length: int = MIN_EMIT_LENGTH,
) -> ExtractionResult:
    """
    Extract every block that can be completely emitted from the buffer.

    Args:
        buffer: All text of the turn not consumed by earlier passes
        known_cards: Cards received so far
        force_flush: Treat any visible remainder as a final text block
        max_iterations: Pass limit for a buffer that does not converge
        min_emit_length: Longest trailing text that is still held back

    Returns:
        The completed blocks (without ids) and the unconsumed remainder
    """
    blocks: list[ContentBlock] = []
    remaining = buffer
    iterations = 0

    while remaining:
        iterations += 1
        if iterations > max_iterations:
            logger.warning(
                "Block extraction hit iteration limit",
                max_iterations=max_iterations,
                remaining_length=len(remaining),
                blocks=len(blocks),
            )
            break

        marker = ANY_MARKER.search(remaining)

        # Text ahead of a marker is complete
        if marker and marker.start() > 0:
            _append_text(blocks, remaining[: marker.start()])
            remaining = remaining[marker.start():]
            continue

        if marker:
            consumed = _consume_marker(remaining, known_cards)
            if consumed is None:
                break
            block, length = consumed
            blocks.append(block)
            remaining = remaining[length:]
            continue

        paragraph_end = remaining.find(PARAGRAPH_BREAK)
        if paragraph_end >= 0:
            cut = paragraph_end + len(PARAGRAPH_BREAK)
            _append_text(blocks, remaining[:cut])
            remaining = remaining[cut:]
            continue

        remaining = _split_tail(remaining, blocks, min_emit_length)
        break

    if force_flush:
        if ANY_MARKER.search(remaining):
            logger.warning(
                "Flushing unresolved markers as text",
                markers=ANY_MARKER.findall(remaining),
            )
        _append_text(blocks, remaining)
        remaining = ""

    return ExtractionResult(blocks=blocks, remaining=remaining)
