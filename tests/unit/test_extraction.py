"""Tests for incremental block extraction."""

import pytest

from copilot_stream.stream.extraction import (
    extract_blocks,
    has_incomplete_pattern,
    safe_prefix_length,
)
from copilot_stream.stream.models import BlockType, DataCard


def _text_of(blocks):
    return "".join(b.content for b in blocks if b.type == BlockType.TEXT)


def _squash(text):
    return "".join(text.split())


class TestIncompletePatterns:
    """Tests for open-markdown detection."""

    @pytest.mark.parametrize(
        "text",
        [
            "an open [bracket",
            "a link [label](http://exa",
            "some *emphasis",
        ],
    )
    def test_incomplete(self, text):
        """Test detecting open markdown."""
        assert has_incomplete_pattern(text)

    @pytest.mark.parametrize(
        "text",
        [
            "closed [bracket] here",
            "a link [label](http://example.com) done",
            "some **bold** text",
        ],
    )
    def test_complete(self, text):
        """Test closed markdown is complete."""
        assert not has_incomplete_pattern(text)

    def test_safe_prefix_stops_before_opener(self):
        """Test safe prefix stops before the opener."""
        text = "Shares rose [VIEW_CH"
        assert safe_prefix_length(text) == len("Shares rose ")

    def test_safe_prefix_keeps_asterisk_run_together(self):
        """Test safe prefix keeps an asterisk run together."""
        text = "Growth was ***strong"
        assert safe_prefix_length(text) == len("Growth was ")


class TestExtractBlocks:
    """Tests for a single extraction pass."""

    def test_text_then_chart(self):
        """Test text followed by a chart marker."""
        result = extract_blocks("Intro text [VIEW_CHART:AAPL:1D] more text", [])

        assert len(result.blocks) == 2
        assert result.blocks[0].type == BlockType.TEXT
        assert result.blocks[0].content == "Intro text "
        assert result.blocks[1].type == BlockType.CHART
        assert result.blocks[1].data == {"symbol": "AAPL", "timeRange": "1D"}
        assert result.remaining == "more text"

    def test_truncated_marker_is_withheld(self):
        """Test withholding a truncated marker."""
        result = extract_blocks("Check out [VIEW_ART", [])

        assert result.blocks == []
        assert result.remaining == "Check out [VIEW_ART"

    def test_marker_opening_holds_only_the_marker(self):
        """Test text ahead of a marker still being typed is emitted."""
        result = extract_blocks("Quarterly revenue rose eight percent [IMAGE_CA", [])

        assert [b.content for b in result.blocks] == ["Quarterly revenue rose eight percent "]
        assert result.remaining == "[IMAGE_CA"

    def test_marker_opening_after_open_emphasis(self):
        """Test open emphasis ahead of a marker opening is held with it."""
        result = extract_blocks("Operating margins were described as *slightly ahead [HR", [])

        assert [b.content for b in result.blocks] == ["Operating margins were described as "]
        assert result.remaining == "*slightly ahead [HR"

    def test_paragraph_break_emits_paragraph(self):
        """Test emitting a finished paragraph."""
        result = extract_blocks("Revenue grew.\n\nMargins held steady.", [])

        assert [b.content for b in result.blocks] == ["Revenue grew.\n\n"]
        assert result.remaining == "Margins held steady."

    def test_second_pass_without_new_text_is_a_no_op(self):
        """Test second pass without new text."""
        first = extract_blocks("Intro text [VIEW_CHART:AAPL:1D] more text", [])
        second = extract_blocks(first.remaining, [])

        assert second.blocks == []
        assert second.remaining == first.remaining

    def test_legacy_chart_marker(self):
        """Test legacy chart marker."""
        result = extract_blocks("[VIEW_CHART:chart-TSLA]", [])

        assert result.blocks[0].chart_data.symbol == "TSLA"
        assert result.blocks[0].chart_data.time_range == "1D"
        assert result.remaining == ""

    def test_horizontal_rule(self):
        """Test horizontal rule marker."""
        result = extract_blocks("Section one is done here.[HR]Section two", [])

        assert [b.type for b in result.blocks] == [BlockType.TEXT, BlockType.HORIZONTAL_RULE]
        assert result.remaining == "Section two"

    def test_long_tail_is_emitted(self):
        """Test emitting a long tail."""
        text = "This sentence is comfortably longer than the threshold"
        result = extract_blocks(text, [])

        assert [b.content for b in result.blocks] == [text]
        assert result.remaining == ""

    def test_open_emphasis_splits_tail(self):
        """Test open emphasis splits the tail."""
        result = extract_blocks("This is a long sentence with *emphasis", [])

        assert [b.content for b in result.blocks] == ["This is a long sentence with "]
        assert result.remaining == "*emphasis"

    def test_open_link_completes_on_next_pass(self):
        """Test open link completing on the next pass."""
        first = extract_blocks("For details you can read more at [the report](http://ex", [])
        assert [b.content for b in first.blocks] == ["For details you can read more at "]

        second = extract_blocks(first.remaining + "ample.com) today and beyond.", [])
        assert [b.content for b in second.blocks] == [
            "[the report](http://example.com) today and beyond."
        ]
        assert second.remaining == ""

    def test_whitespace_only_text_is_not_a_block(self):
        """Test whitespace-only text is not a block."""
        result = extract_blocks("\n\n[HR]", [])

        assert [b.type for b in result.blocks] == [BlockType.HORIZONTAL_RULE]

    def test_iteration_limit_stops_the_pass(self):
        """Test iteration limit."""
        buffer = "p\n\n" * 10
        result = extract_blocks(buffer, [], max_iterations=3)

        assert len(result.blocks) == 3
        assert result.remaining == "p\n\n" * 7


class TestCardGating:
    """Tests for card markers waiting on their data card."""

    def test_unknown_card_blocks_the_pass(self):
        """Test unknown card blocks the pass."""
        result = extract_blocks("Read this [VIEW_ARTICLE:1] now please and more", [])

        assert [b.content for b in result.blocks] == ["Read this "]
        assert result.remaining == "[VIEW_ARTICLE:1] now please and more"

    def test_known_card_emits_card_block(self, article_card):
        """Test emitting a known card."""
        result = extract_blocks("[VIEW_ARTICLE:1] now please and more", [article_card])

        assert result.blocks[0].type == BlockType.ARTICLE
        assert result.blocks[0].data["title"] == "Apple beats estimates"
        assert result.remaining == "now please and more"

    def test_card_type_must_match(self, article_card):
        """Test card type must match."""
        result = extract_blocks("[EVENT_CARD:1]", [article_card])

        assert result.blocks == []
        assert result.remaining == "[EVENT_CARD:1]"

    def test_numeric_card_id_matches(self):
        """Test numeric card id."""
        card = DataCard.model_validate({"type": "event", "data": {"id": 42, "title": "Earnings"}})
        result = extract_blocks("[EVENT_CARD:42]", [card])

        assert result.blocks[0].type == BlockType.EVENT
        assert result.blocks[0].data["id"] == 42

    def test_image_card_with_top_level_id(self):
        """Test image card with top-level id."""
        card = DataCard(id="img-3", type="image", data={"url": "http://img"})
        result = extract_blocks("[IMAGE_CARD:img-3]", [card])

        assert result.blocks[0].type == BlockType.IMAGE
        assert result.blocks[0].data == {"url": "http://img"}


class TestForceFlush:
    """Tests for the end-of-turn flush."""

    def test_flush_emits_short_tail(self):
        """Test flushing a short tail."""
        result = extract_blocks("Margins held steady.", [], force_flush=True)

        assert [b.content for b in result.blocks] == ["Margins held steady."]
        assert result.remaining == ""

    def test_flush_emits_unresolved_marker_as_text(self):
        """Test flushing an unresolved marker as text."""
        result = extract_blocks("See [EVENT_CARD:99] later", [], force_flush=True)

        assert [b.content for b in result.blocks] == ["See ", "[EVENT_CARD:99] later"]
        assert result.remaining == ""

    def test_flush_of_empty_buffer(self):
        """Test flushing an empty buffer."""
        result = extract_blocks("", [], force_flush=True)

        assert result.blocks == []
        assert result.remaining == ""


class TestIncrementalStreaming:
    """Tests feeding text one character at a time."""

    TEXT = (
        "Hello world, this is a long sentence. [VIEW_CHART:TSLA:5D] "
        "Then **more text** follows here.\n\nEnd."
    )

    def _stream(self, text, cards=()):
        blocks = []
        buffer = ""
        for char in text:
            result = extract_blocks(buffer + char, list(cards))
            blocks.extend(result.blocks)
            buffer = result.remaining
        final = extract_blocks(buffer, list(cards), force_flush=True)
        blocks.extend(final.blocks)
        return blocks

    def test_markers_are_atomic(self):
        """Test markers are never split across blocks."""
        blocks = self._stream(self.TEXT)

        charts = [b for b in blocks if b.type == BlockType.CHART]
        assert len(charts) == 1
        assert charts[0].data == {"symbol": "TSLA", "timeRange": "5D"}
        for block in blocks:
            if block.type == BlockType.TEXT:
                assert "[" not in block.content
                assert "VIEW" not in block.content

    def test_no_text_is_lost(self):
        """Test no text is lost."""
        blocks = self._stream(self.TEXT)

        expected = self.TEXT.replace("[VIEW_CHART:TSLA:5D]", "")
        assert _squash(_text_of(blocks)) == _squash(expected)

    def test_emphasis_is_never_split(self):
        """Test emphasis is never split."""
        blocks = self._stream(self.TEXT)

        for block in blocks:
            if block.type == BlockType.TEXT:
                assert block.content.count("*") % 2 == 0

    def test_matches_single_pass_output(self, article_card):
        """Test streamed output matches a single pass."""
        text = "Top story today. [VIEW_ARTICLE:1] It covers the quarterly results in detail."
        streamed = self._stream(text, [article_card])
        batch = extract_blocks(text, [article_card], force_flush=True).blocks

        assert [b.type for b in streamed if not b.is_text] == [
            b.type for b in batch if not b.is_text
        ]
        assert _squash(_text_of(streamed)) == _squash(_text_of(batch))
