# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Stage direction handling.

Stage directions are spans of the script marked with a chosen bracket style,
e.g. "[pause for applause]". They are never spoken, so they are always removed
from the text used for speech matching, and may be shown as-is, dimmed (shown
in parentheses) or hidden on the display.

Malformed markup is never an error: an unclosed span runs to the end of the
text, nested brackets of the same kind are absorbed into the outermost span,
and a closing bracket with no opener is ordinary text.
"""

from enum import Enum


class DelimiterKind(str, Enum):
    """Bracket style that marks stage directions."""
    NONE = "none"
    SQUARE = "square"
    ROUND = "round"
    CURLY = "curly"


class DisplayMode(str, Enum):
    """How stage directions are shown on the display."""
    NORMAL = "normal"
    DIMMED = "dimmed"
    HIDDEN = "hidden"


DELIMITER_PAIRS: dict[DelimiterKind, tuple[str, str]] = {
    DelimiterKind.SQUARE: ("[", "]"),
    DelimiterKind.ROUND: ("(", ")"),
    DelimiterKind.CURLY: ("{", "}"),
}


def delimiter_pair(delimiter: DelimiterKind | str) -> tuple[str, str] | None:
    """Return the (open, close) characters for a delimiter, or None for none."""
    return DELIMITER_PAIRS.get(DelimiterKind(delimiter))


def find_ranges(text: str, open_char: str, close_char: str) -> list[tuple[int, int]]:
    """
    Find stage direction spans in a single left-to-right scan.

    Args:
        text: Text to scan.
        open_char: Character that opens a span.
        close_char: Character that closes a span.

    Returns:
        Ordered, non-overlapping [start, end) index pairs. An unclosed span
        ends at len(text).
    """
    ranges: list[tuple[int, int]] = []
    depth: int = 0
    start: int = 0

    for index, char in enumerate(text):
        if char == open_char:
            if depth == 0:
                start = index
            depth += 1
        elif char == close_char and depth > 0:
            depth -= 1
            if depth == 0:
                ranges.append((start, index + 1))

    if depth > 0:
        ranges.append((start, len(text)))

    return ranges


def strip_stage_directions(text: str, delimiter: DelimiterKind | str) -> str:
    """
    Remove every stage direction from text.

    Segments around a removed span are joined verbatim, so "a [b] c" becomes
    "a  c" with a double space.
    """
    pair = delimiter_pair(delimiter)
    if pair is None:
        return text

    ranges = find_ranges(text, *pair)
    if not ranges:
        return text

    parts: list[str] = []
    last_end: int = 0
    for start, end in ranges:
        parts.append(text[last_end:start])
        last_end = end
    parts.append(text[last_end:])
    return ''.join(parts)


def transform_for_display(
    text: str,
    delimiter: DelimiterKind | str,
    display_mode: DisplayMode | str
) -> str:
    """
    Prepare text for display according to the display mode.

    - normal: text unchanged
    - hidden: stage directions removed (same as strip_stage_directions)
    - dimmed: each span's delimiters replaced by parentheses; an unclosed
      span gets a closing parenthesis so the display stays balanced

    Args:
        text: The raw script text.
        delimiter: Delimiter marking stage directions.
        display_mode: How to show stage directions.

    Returns:
        Transformed text.
    """
    pair = delimiter_pair(delimiter)
    if pair is None:
        return text

    mode = DisplayMode(display_mode)
    if mode is DisplayMode.NORMAL:
        return text
    if mode is DisplayMode.HIDDEN:
        return strip_stage_directions(text, delimiter)

    open_char, close_char = pair
    if (open_char, close_char) == ("(", ")"):
        return text

    ranges = find_ranges(text, open_char, close_char)
    if not ranges:
        return text

    parts: list[str] = []
    last_end: int = 0
    for start, end in ranges:
        parts.append(text[last_end:start])
        content_end: int = end - 1 if text[end - 1] == close_char else end
        parts.append(f"({text[start + 1:content_end]})")
        last_end = end
    parts.append(text[last_end:])
    return ''.join(parts)
