# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Text layout for the teleprompter display.

Wraps raw script text into fixed-width lines. Line indices produced here are
the unit of scroll position everywhere else in the package.
"""

import math
import re
from numbers import Real

# Two or more consecutive line breaks start a new paragraph
PARAGRAPH_BREAK_PATTERN: re.Pattern[str] = re.compile(r'(?:\r?\n){2,}')
LINE_BREAK_PATTERN: re.Pattern[str] = re.compile(r'\r?\n')

# Stands in for a paragraph break while lines are split (never whitespace,
# so it survives str.strip())
_PARAGRAPH_MARKER: str = "\x00"

PARAGRAPH_INDENT: str = "    "

# Used by callers when a script has no words at all
FALLBACK_WORDS_PER_LINE: float = 5.0


class ValidationError(ValueError):
    """Raised when a layout parameter cannot be used or clamped."""


def validate_line_length(max_line_length: object) -> int:
    """
    Check that a line length is a finite positive integer.

    Args:
        max_line_length: The requested maximum number of characters per line.

    Returns:
        The line length as an int.

    Raises:
        ValidationError: If the value is not a finite positive integer.
    """
    if isinstance(max_line_length, bool) or not isinstance(max_line_length, Real):
        raise ValidationError(
            f"max_line_length must be a number, got "
            f"{type(max_line_length).__name__}: {max_line_length!r}")
    value = float(max_line_length)
    if not math.isfinite(value):
        raise ValidationError(
            f"max_line_length must be finite, got {max_line_length!r}")
    if not value.is_integer() or value <= 0:
        raise ValidationError(
            f"max_line_length must be a positive integer, got {max_line_length!r}")
    return int(value)


def _wrap_part(text: str, max_line_length: int, result: list[str], indent: bool) -> None:
    """Greedily wrap one trimmed run of text, appending lines to result."""
    prefix: str = PARAGRAPH_INDENT if indent and max_line_length > len(PARAGRAPH_INDENT) else ""
    width: int = max_line_length - len(prefix)

    remaining: str = text
    first_line: bool = True
    while remaining:
        lead: str = prefix if first_line else ""
        if len(remaining) <= width:
            result.append(lead + remaining)
            break

        # Last space at or before the limit, otherwise force-break at the limit
        split_index: int = remaining.rfind(" ", 1, width + 1)
        if split_index <= 0:
            split_index = width

        result.append(lead + remaining[:split_index].strip())
        remaining = remaining[split_index:].strip()
        first_line = False


def wrap_text(text: str, max_line_length: object) -> list[str]:
    """
    Wrap text into lines no longer than max_line_length.

    Paragraph breaks (two or more newlines) become a blank line followed by
    the next paragraph, whose first line is indented by four spaces. Lines
    that are blank in the source are kept as empty lines.

    Args:
        text: The raw text to wrap.
        max_line_length: Maximum characters per line.

    Returns:
        Ordered list of display lines.

    Raises:
        ValidationError: If max_line_length is not a finite positive integer.
    """
    width: int = validate_line_length(max_line_length)
    result: list[str] = []

    processed: str = PARAGRAPH_BREAK_PATTERN.sub(_PARAGRAPH_MARKER, text)

    for raw_line in LINE_BREAK_PATTERN.split(processed):
        line: str = raw_line.strip()
        if not line:
            result.append("")
            continue

        if _PARAGRAPH_MARKER not in line:
            _wrap_part(line, width, result, indent=False)
            continue

        for part_index, raw_part in enumerate(line.split(_PARAGRAPH_MARKER)):
            part: str = raw_part.strip()
            if not part:
                continue
            is_new_paragraph: bool = part_index > 0
            if is_new_paragraph and result:
                result.append("")
            _wrap_part(part, width, result, indent=is_new_paragraph)

    return result


def count_words(text: str) -> int:
    """Count whitespace-separated words in text."""
    return len(text.split())


def estimate_words_per_line(text: str, max_line_length: object) -> float:
    """
    Estimate the average number of words on each wrapped line.

    Returns 0.0 when the text wraps to no lines; callers substitute
    FALLBACK_WORDS_PER_LINE in that case.
    """
    lines: list[str] = wrap_text(text, max_line_length)
    if not lines:
        return 0.0
    total_words: int = sum(count_words(line) for line in lines)
    return total_words / len(lines)
