# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Scroll position state machine.

Owns the first visible line of the display. The position advances with time
(a words-per-minute model) or jumps forward to where speech was matched, and
never moves backward except through an explicit reset or remote control.

When the last line becomes visible the machine walks through the end-of-text
states:

    SCROLLING -> SHOWING_FINAL_LINE -(5s)-> SHOWING_END_MESSAGE -(10s)->
        AUTO_REPLAY_SCHEDULED (auto replay on) or STOPPED

complete_auto_replay() returns an AUTO_REPLAY_SCHEDULED machine to the start.
"""

import logging
import time
from collections.abc import Callable
from enum import Enum

from .matcher import SpeechPositionMatcher

logger = logging.getLogger(__name__)

FINAL_LINE_DISPLAY_SECONDS: float = 5.0
END_MESSAGE_DISPLAY_SECONDS: float = 10.0
AUTO_REPLAY_DELAY_SECONDS: float = 5.0

# Speech matches never move the display more than this many lines at once
SPEECH_MAX_ADVANCE_LINES: int = 10


class EndState(str, Enum):
    """Where the machine is in the end-of-text lifecycle."""
    SCROLLING = "scrolling"
    SHOWING_FINAL_LINE = "showing_final_line"
    SHOWING_END_MESSAGE = "showing_end_message"
    AUTO_REPLAY_SCHEDULED = "auto_replay_scheduled"
    STOPPED = "stopped"


# End states that still depend on the last line being visible
_FINAL_FRAME_STATES: frozenset[EndState] = frozenset([
    EndState.SHOWING_FINAL_LINE,
    EndState.SHOWING_END_MESSAGE,
])


def _window_has_content(lines: list[str], position: int, visible_lines: int) -> bool:
    """Whether any line in the window starting at position is non-blank."""
    return any(line and line.strip() for line in lines[position:position + visible_lines])


class ScrollStateMachine:
    """
    Tracks the scroll position over a pair of wrapped line sequences.

    display_lines are what is shown; speech_lines are the same script with
    stage directions stripped, used to decide whether a window has anything
    left to say.
    """

    visible_lines: int
    words_per_minute: float
    tick_interval_ms: int
    speech_lead_lines: int
    auto_replay: bool
    speech_mode: bool

    display_lines: list[str]
    speech_lines: list[str]
    avg_words_per_line: float

    position: int
    accumulator: float
    state: EndState
    state_entered_at: float | None
    started_at: float

    def __init__(
        self,
        matcher: SpeechPositionMatcher | None = None,
        visible_lines: int = 4,
        words_per_minute: float = 120,
        tick_interval_ms: int = 500,
        speech_lead_lines: int = 0,
        auto_replay: bool = False,
        speech_mode: bool = True,
        clock: Callable[[], float] = time.monotonic
    ) -> None:
        """
        Initialize the state machine.

        Args:
            matcher: Speech matcher whose buffer is cleared on reset
            visible_lines: Number of lines in the display window
            words_per_minute: Time-based scroll rate
            tick_interval_ms: Interval between advance_by_time() calls
            speech_lead_lines: Lines to hold back when jumping to a speech
                match (0 puts the matched line at the top of the window)
            auto_replay: Restart from the beginning after the end message
            speech_mode: Whether speech drives the position
            clock: Returns the current time in seconds
        """
        self.matcher = matcher
        self.visible_lines = visible_lines
        self.words_per_minute = words_per_minute
        self.tick_interval_ms = tick_interval_ms
        self.speech_lead_lines = speech_lead_lines
        self.auto_replay = auto_replay
        self.speech_mode = speech_mode
        self.clock = clock

        self.display_lines = []
        self.speech_lines = []
        self.avg_words_per_line = 5.0

        self.position = 0
        self.accumulator = 0.0
        self.state = EndState.SCROLLING
        self.state_entered_at = None
        self.started_at = clock()

    @property
    def line_count(self) -> int:
        """Number of display lines."""
        return len(self.display_lines)

    @property
    def max_position(self) -> int:
        """Largest valid position: the window showing the last line."""
        return max(0, len(self.display_lines) - self.visible_lines)

    @property
    def words_per_tick(self) -> float:
        """Words covered by one scroll tick at the configured rate."""
        return (self.words_per_minute / 60) * (self.tick_interval_ms / 1000)

    @property
    def lines_per_tick(self) -> float:
        """Lines covered by one scroll tick at the configured rate."""
        return self.words_per_tick / max(1.0, self.avg_words_per_line)

    @property
    def elapsed_seconds(self) -> float:
        """Seconds since the machine was created or last reset."""
        return max(0.0, self.clock() - self.started_at)

    def load_lines(
        self,
        display_lines: list[str],
        speech_lines: list[str],
        avg_words_per_line: float,
        preserve_position: bool = False
    ) -> None:
        """
        Replace the line sequences after the script was re-laid out.

        Args:
            display_lines: Lines shown on the display
            speech_lines: Lines with stage directions stripped
            avg_words_per_line: Average words per line of the spoken text
            preserve_position: Keep the current position (capped to the new
                length) instead of returning to the top
        """
        self.display_lines = display_lines
        self.speech_lines = speech_lines
        self.avg_words_per_line = avg_words_per_line
        if self.matcher is not None:
            self.matcher.avg_words_per_line = avg_words_per_line

        if preserve_position:
            self.position = min(self.position, self.max_position)
        else:
            self.position = 0
            self.accumulator = 0.0
            self.state = EndState.SCROLLING
            self.state_entered_at = None

    def reset_position(self) -> None:
        """Return to the top of the script and restart from scratch."""
        self.position = 0
        self.accumulator = 0.0
        self.state = EndState.SCROLLING
        self.state_entered_at = None
        if self.matcher is not None:
            self.matcher.clear()
        self.started_at = self.clock()

    def is_at_end(self) -> bool:
        """Whether the window already shows the last line."""
        return self.position >= len(self.display_lines) - self.visible_lines

    def skip_empty_lines(self, start_position: int) -> int:
        """
        Return the first position at or after start_position whose window
        shows at least one non-blank line, capped at max_position.
        """
        position: int = start_position
        max_position: int = self.max_position
        while position <= max_position:
            if _window_has_content(self.display_lines, position, self.visible_lines):
                break
            position += 1
        return min(position, max_position)

    def advance_by_time(self) -> bool:
        """
        Advance by one scroll tick's worth of lines.

        Fractions of a line carry over between ticks.

        Returns:
            True if the position changed
        """
        if not self.display_lines:
            return False

        previous: int = self.position
        self.accumulator += self.lines_per_tick

        if self.accumulator >= 1:
            lines_to_advance: int = int(self.accumulator)
            self.accumulator -= lines_to_advance
            self.position = self.skip_empty_lines(self.position + lines_to_advance)

        self.position = min(self.position, self.max_position)
        return self.position != previous

    def advance_by_speech(self, match_position: int | None) -> bool:
        """
        Jump forward to a speech match.

        Matches at or behind the current position are ignored. The jump is
        limited to SPEECH_MAX_ADVANCE_LINES and held back by the lead offset,
        but never lands behind the current position.

        Returns:
            True if the position changed
        """
        if match_position is None or match_position <= self.position:
            if match_position is not None:
                logger.debug("Match at line %d is not ahead of position %d",
                             match_position, self.position)
            return False

        previous: int = self.position
        capped: int = min(match_position, previous + SPEECH_MAX_ADVANCE_LINES)
        target: int = max(previous, capped - self.speech_lead_lines)
        final: int = self.skip_empty_lines(target)
        self.position = max(previous, min(final, self.max_position))

        if self.position == previous:
            return False
        self.accumulator = 0.0
        logger.debug("Speech advance %d -> %d (match at line %d)",
                     previous, self.position, match_position)
        return True

    def has_visible_speakable_content(self) -> bool:
        """
        Whether the current window has anything left to say.

        Always True outside speech mode.
        """
        if not self.speech_mode:
            return True
        lines: list[str] = self.speech_lines or self.display_lines
        return _window_has_content(lines, self.position, self.visible_lines)

    def auto_advance_past_stage_directions(self) -> bool:
        """
        Move past a window that only contains stage directions.

        In speech mode nothing would ever match such a window, so the
        position moves to the next window with speakable content.

        Returns:
            True if the position changed
        """
        if self.has_visible_speakable_content():
            return False

        lines: list[str] = self.speech_lines or self.display_lines
        next_position: int = self.position + 1
        while next_position <= self.max_position:
            if _window_has_content(lines, next_position, self.visible_lines):
                logger.debug("Skipping stage directions: %d -> %d",
                             self.position, next_position)
                self.position = next_position
                self.accumulator = 0.0
                return True
            next_position += 1

        return False

    def update_end_state(self) -> EndState:
        """
        Advance the end-of-text lifecycle according to the clock.

        Safe to call any number of times; each state is entered once.
        """
        now: float = self.clock()

        if self.state in _FINAL_FRAME_STATES and not self.is_at_end():
            # The last line is no longer visible
            logger.debug("End state %s -> scrolling", self.state.value)
            self.state = EndState.SCROLLING
            self.state_entered_at = None

        if self.state is EndState.SCROLLING and self.is_at_end():
            logger.info("Reached end of text, showing final line")
            self._enter(EndState.SHOWING_FINAL_LINE, now)

        if (self.state is EndState.SHOWING_FINAL_LINE
                and self._in_state_for(now) >= FINAL_LINE_DISPLAY_SECONDS):
            self._enter(EndState.SHOWING_END_MESSAGE, now)

        if (self.state is EndState.SHOWING_END_MESSAGE
                and self._in_state_for(now) >= END_MESSAGE_DISPLAY_SECONDS):
            self._enter(
                EndState.AUTO_REPLAY_SCHEDULED if self.auto_replay else EndState.STOPPED, now)

        return self.state

    def complete_auto_replay(self) -> bool:
        """
        Restart from the top after an auto replay delay.

        Only acts once per scheduled replay.

        Returns:
            True if the machine was reset
        """
        if self.state is not EndState.AUTO_REPLAY_SCHEDULED:
            return False
        self.reset_position()
        return True

    def set_auto_replay(self, enabled: bool) -> None:
        """Enable or disable auto replay; disabling cancels a pending replay."""
        self.auto_replay = enabled
        if not enabled and self.state is EndState.AUTO_REPLAY_SCHEDULED:
            self._enter(EndState.STOPPED, self.clock())

    def go_to_line(self, line: int) -> None:
        """Move to a line chosen by the user, clamped to the valid range."""
        self.position = max(0, min(int(line), self.max_position))
        self.accumulator = 0.0
        if self.matcher is not None:
            self.matcher.clear()
        if self.state is not EndState.SCROLLING and not self.is_at_end():
            self.state = EndState.SCROLLING
            self.state_entered_at = None

    def scroll_forward(self, lines: int = 1) -> None:
        """Move forward by a number of lines."""
        self.go_to_line(self.position + lines)

    def scroll_back(self, lines: int = 1) -> None:
        """Move back by a number of lines."""
        self.go_to_line(self.position - lines)

    def _enter(self, state: EndState, now: float) -> None:
        logger.debug("End state %s -> %s", self.state.value, state.value)
        self.state = state
        self.state_entered_at = now

    def _in_state_for(self, now: float) -> float:
        if self.state_entered_at is None:
            return 0.0
        return now - self.state_entered_at
