# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Tests for stage direction stripping and display transforms.
"""

import pytest

from teleprompt.layout import wrap_text
from teleprompt.stage_directions import (
    DelimiterKind,
    DisplayMode,
    find_ranges,
    strip_stage_directions,
    transform_for_display,
)

SAMPLES = [
    "Hello [wave] there",
    "A [B",
    "a [b [c] d] e",
    "a ] b [c]",
    "Say {smile} hi (softly)",
    "No directions at all.",
    "",
]


class TestFindRanges:
    """Tests for locating stage direction spans."""

    def test_simple_span(self) -> None:
        """A bracketed span is found with its delimiters."""
        assert find_ranges("Hello [wave] there", "[", "]") == [(6, 12)]

    def test_nested_spans_merge(self) -> None:
        """Nested brackets are absorbed into the outermost span."""
        assert find_ranges("a [b [c] d] e", "[", "]") == [(2, 11)]

    def test_unclosed_span_runs_to_end(self) -> None:
        """An unclosed span ends at the end of the text."""
        assert find_ranges("A [B", "[", "]") == [(2, 4)]

    def test_lone_close_is_text(self) -> None:
        """A closing bracket without an opener is ignored."""
        assert find_ranges("a ] b [c]", "[", "]") == [(6, 9)]

    def test_multiple_spans(self) -> None:
        """Several spans are returned in order."""
        assert find_ranges("[a] b [c]", "[", "]") == [(0, 3), (6, 9)]


class TestStrip:
    """Tests for removing stage directions."""

    def test_strip_keeps_surrounding_spaces(self) -> None:
        """Segments around a span are joined verbatim."""
        assert strip_stage_directions("Hello [wave] there", DelimiterKind.SQUARE) == "Hello  there"

    def test_strip_unclosed(self) -> None:
        """An unclosed span removes the rest of the text."""
        assert strip_stage_directions("A [B", DelimiterKind.SQUARE) == "A "

    def test_strip_nested(self) -> None:
        """Nested spans are removed as one."""
        assert strip_stage_directions("a [b [c] d] e", DelimiterKind.SQUARE) == "a  e"

    def test_strip_only_chosen_delimiter(self) -> None:
        """Other bracket styles are left alone."""
        text = "Say {smile} hi (softly)"
        assert strip_stage_directions(text, DelimiterKind.CURLY) == "Say  hi (softly)"
        assert strip_stage_directions(text, DelimiterKind.ROUND) == "Say {smile} hi "

    def test_delimiter_as_string(self) -> None:
        """Delimiters may be given by their string value."""
        assert strip_stage_directions("x [y] z", "square") == "x  z"

    @pytest.mark.parametrize("text", SAMPLES)
    def test_none_delimiter_is_identity(self, text: str) -> None:
        """With no delimiter nothing is removed."""
        assert strip_stage_directions(text, DelimiterKind.NONE) == text


class TestTransformForDisplay:
    """Tests for the display modes."""

    def test_dimmed_uses_parentheses(self) -> None:
        """Dimmed spans are shown in parentheses."""
        result = transform_for_display("Hello [wave] there", DelimiterKind.SQUARE, DisplayMode.DIMMED)
        assert result == "Hello (wave) there"

    def test_dimmed_closes_unclosed_span(self) -> None:
        """An unclosed span gets a closing parenthesis."""
        result = transform_for_display("A [B", DelimiterKind.SQUARE, DisplayMode.DIMMED)
        assert result == "A (B)"

    def test_dimmed_nested_keeps_inner_brackets(self) -> None:
        """Only the outer delimiters are replaced."""
        result = transform_for_display("a [b [c] d] e", DelimiterKind.SQUARE, DisplayMode.DIMMED)
        assert result == "a (b [c] d) e"

    def test_dimmed_curly(self) -> None:
        """Curly spans are dimmed the same way."""
        result = transform_for_display("Say {smile} hi", DelimiterKind.CURLY, DisplayMode.DIMMED)
        assert result == "Say (smile) hi"

    def test_dimmed_round_is_unchanged(self) -> None:
        """Round brackets already look dimmed."""
        text = "a (b) c"
        assert transform_for_display(text, DelimiterKind.ROUND, DisplayMode.DIMMED) == text

    @pytest.mark.parametrize("delimiter", list(DelimiterKind))
    @pytest.mark.parametrize("text", SAMPLES)
    def test_hidden_equals_strip(self, text: str, delimiter: DelimiterKind) -> None:
        """Hidden mode removes exactly what strip removes."""
        hidden = transform_for_display(text, delimiter, DisplayMode.HIDDEN)
        assert hidden == strip_stage_directions(text, delimiter)

    @pytest.mark.parametrize("delimiter", list(DelimiterKind))
    @pytest.mark.parametrize("text", SAMPLES)
    def test_normal_is_identity(self, text: str, delimiter: DelimiterKind) -> None:
        """Normal mode shows the text unchanged."""
        assert transform_for_display(text, delimiter, DisplayMode.NORMAL) == text

    @pytest.mark.parametrize("text", SAMPLES)
    def test_none_delimiter_wraps_like_plain_text(self, text: str) -> None:
        """With no delimiter, stripped text wraps exactly like the original."""
        assert wrap_text(strip_stage_directions(text, DelimiterKind.NONE), 12) == wrap_text(text, 12)
