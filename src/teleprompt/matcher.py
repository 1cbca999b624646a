# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Speech position matching.

Keeps a short buffer of recently recognised words and estimates which script
line the speaker has reached by matching the tail of that buffer against the
lines just ahead of the current position. Matching tolerates recognition
errors (prefixes, substrings and small edit distances) but never looks behind
the current position.
"""

import logging
import re

from rapidfuzz.distance import Levenshtein

logger = logging.getLogger(__name__)

# Everything except word characters, whitespace, apostrophes and hyphens
# becomes a word separator
_SEPARATOR_PATTERN: re.Pattern[str] = re.compile(r"[^\w\s'-]")

FINAL_BUFFER_SIZE: int = 20
INTERIM_BUFFER_SIZE: int = 10
MAX_PHRASE_WORDS: int = 5
DEFAULT_MIN_WORDS_FOR_MATCH: int = 3

# Edit distance is only tried for tokens this short or shorter
MAX_EDIT_DISTANCE_WORD_LENGTH: int = 7
EDIT_DISTANCE_RATIO: float = 0.3


def normalize_speech(text: str) -> list[str]:
    """Lowercase text and split it into word tokens."""
    cleaned: str = _SEPARATOR_PATTERN.sub(' ', text.lower())
    return [word for word in cleaned.split() if word]


def words_are_similar(word1: str, word2: str) -> bool:
    """
    Check whether two normalized tokens plausibly refer to the same word.

    Speech recognisers often return a truncated or run-together version of a
    word, so prefixes and substrings count as similar. Short tokens are also
    compared by edit distance, allowing roughly 30% of the characters to
    differ.
    """
    if word1 == word2:
        return True
    if len(word1) < 2 or len(word2) < 2:
        return False

    if word1.startswith(word2) or word2.startswith(word1):
        return True
    if word1 in word2 or word2 in word1:
        return True

    if len(word1) <= MAX_EDIT_DISTANCE_WORD_LENGTH and len(word2) <= MAX_EDIT_DISTANCE_WORD_LENGTH:
        max_distance: int = max(1, int(min(len(word1), len(word2)) * EDIT_DISTANCE_RATIO))
        # score_cutoff stops the computation once max_distance is exceeded
        distance: int = Levenshtein.distance(word1, word2, score_cutoff=max_distance)
        return distance <= max_distance

    return False


class SpeechPositionMatcher:
    """
    Estimates the speaker's line from a rolling buffer of recognised words.

    The buffer holds the 20 most recent words after a final recognition
    result and the 10 most recent after an interim one, so interim results
    react faster while finals keep more context.
    """

    visible_lines: int
    lookahead_lines: int
    min_words_for_match: int
    avg_words_per_line: float

    _buffer: list[str]

    def __init__(
        self,
        visible_lines: int = 4,
        lookahead_lines: int = 0,
        min_words_for_match: int = DEFAULT_MIN_WORDS_FOR_MATCH,
        avg_words_per_line: float = 5.0
    ) -> None:
        """
        Initialize the matcher.

        Args:
            visible_lines: Number of lines shown on the display
            lookahead_lines: Extra lines searched beyond the visible window
            min_words_for_match: Shortest phrase that may produce a match
            avg_words_per_line: Used to estimate a line when no line boundary
                can be found for a match
        """
        self.visible_lines = visible_lines
        self.lookahead_lines = lookahead_lines
        self.min_words_for_match = min_words_for_match
        self.avg_words_per_line = avg_words_per_line
        self._buffer = []

    @property
    def buffer(self) -> list[str]:
        """A copy of the current speech buffer, oldest word first."""
        return list(self._buffer)

    @property
    def has_enough_words(self) -> bool:
        """Whether the buffer is long enough to attempt a match."""
        return len(self._buffer) >= self.min_words_for_match

    def clear(self) -> None:
        """Forget all buffered speech."""
        self._buffer = []

    def ingest(self, speech_text: str, is_final: bool) -> bool:
        """
        Append recognised speech to the buffer.

        Args:
            speech_text: Raw text from the recogniser
            is_final: True for a final result, False for an interim one

        Returns:
            True if any words were added, False if the text was ignored
        """
        if not speech_text or not speech_text.strip():
            return False

        words: list[str] = normalize_speech(speech_text)
        if not words:
            return False

        keep: int = FINAL_BUFFER_SIZE if is_final else INTERIM_BUFFER_SIZE
        self._buffer = (self._buffer + words)[-keep:]
        logger.debug("Speech buffer (%d words): %r", len(self._buffer), ' '.join(self._buffer))
        return True

    def search_window(self, current_index: int, line_count: int) -> tuple[int, int]:
        """Return the [start, end) line range searched from current_index."""
        end: int = min(line_count,
                       current_index + self.visible_lines + 1 + self.lookahead_lines)
        return current_index, end

    def match_position(self, current_index: int, lines: list[str]) -> int | None:
        """
        Find the line the speech buffer matches, searching forward only.

        Tries the most recent 5 buffered words first, then progressively
        shorter phrases down to min_words_for_match. For each phrase length an
        exact match is tried before a fuzzy one.

        Args:
            current_index: Current scroll position (first visible line)
            lines: Speech-matching lines (stage directions stripped)

        Returns:
            Matched line index, or None if nothing matched
        """
        if len(self._buffer) < self.min_words_for_match or not lines:
            return None

        start, end = self.search_window(current_index, len(lines))
        window_lines: list[str] = lines[start:end]
        search_words: list[str] = normalize_speech(
            ' '.join(line for line in window_lines if line and line.strip()))
        if not search_words:
            logger.debug("No search text in lines %d-%d", start, end)
            return None

        for phrase_length in range(min(len(self._buffer), MAX_PHRASE_WORDS),
                                   self.min_words_for_match - 1, -1):
            phrase_words: list[str] = self._buffer[-phrase_length:]

            word_offset: int | None = self._find_exact_match(phrase_words, search_words)
            strategy: str = "exact"
            if word_offset is None:
                word_offset = self._find_fuzzy_match(phrase_words, search_words)
                strategy = "fuzzy"

            if word_offset is not None:
                line_index = self.line_for_word_offset(word_offset, start, window_lines)
                logger.debug("%s match for %r at word %d -> line %d",
                             strategy, ' '.join(phrase_words), word_offset, line_index)
                return line_index

        return None

    def _find_exact_match(self, phrase_words: list[str], search_words: list[str]) -> int | None:
        """Return the word offset of an exact substring match, if any."""
        search_text: str = ' '.join(search_words)
        match_index: int = search_text.find(' '.join(phrase_words))
        if match_index == -1:
            return None
        return search_text.count(' ', 0, match_index)

    def _find_fuzzy_match(self, phrase_words: list[str], search_words: list[str]) -> int | None:
        """
        Slide windows of len(phrase), len(phrase)+1 and len(phrase)-1 words
        across the search words, returning the offset of the first window in
        which every phrase word has a similar word.
        """
        phrase_length: int = len(phrase_words)
        required: int = max(self.min_words_for_match, phrase_length)
        window_sizes: list[int] = [
            size for size in (phrase_length, phrase_length + 1, phrase_length - 1) if size > 0
        ]

        for window_size in window_sizes:
            for offset in range(len(search_words) - window_size + 1):
                window: list[str] = search_words[offset:offset + window_size]
                matched: int = sum(
                    1 for spoken in phrase_words
                    if any(words_are_similar(spoken, word) for word in window)
                )
                if matched >= required:
                    return offset

        return None

    def line_for_word_offset(self, word_offset: int, start: int, window_lines: list[str]) -> int:
        """
        Convert a word offset within the search window to a line index.

        Walks the window's lines accumulating word counts and returns the
        first line whose running total exceeds the offset. Falls back to an
        estimate from the average words per line.
        """
        word_count: int = 0
        for line_offset, line in enumerate(window_lines):
            line_words: int = len(normalize_speech(line)) if line else 0
            if word_count + line_words > word_offset:
                return start + line_offset
            word_count += line_words

        if self.avg_words_per_line <= 0:
            return start
        return max(0, start + int(word_offset // self.avg_words_per_line))
