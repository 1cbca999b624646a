# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Teleprompter controller.

Composes layout, stage direction filtering, speech matching and the scroll
state machine for one script. Re-lays the script out whenever a setting that
affects layout changes, renders the visible frame for the display, and
exposes the position mutators used by remote control.
"""

import logging
import math
import time
from collections.abc import Callable, Mapping
from typing import Any

from . import debug_log
from .config import (
    DEFAULT_CONFIG,
    clamp_non_negative,
    clamp_number_of_lines,
    clamp_scroll_interval,
    clamp_scroll_speed,
    convert_line_width,
    parse_delimiter,
    parse_display_mode,
)
from .layout import (
    FALLBACK_WORDS_PER_LINE,
    ValidationError,
    estimate_words_per_line,
    wrap_text,
)
from .matcher import SpeechPositionMatcher
from .scroller import EndState, ScrollStateMachine
from .stage_directions import (
    DelimiterKind,
    DisplayMode,
    strip_stage_directions,
    transform_for_display,
)

logger = logging.getLogger(__name__)

END_OF_TEXT_MESSAGE: str = "*** END OF TEXT ***"
NO_TEXT_MESSAGE: str = "No text available"
NO_PROJECTION: str = "--:--"

# Projected total time is unreliable this early in the script
MIN_PROJECTION_PERCENT: int = 5

DEFAULT_TEXT: str = (
    "Welcome to the teleprompter. This is a default text that will scroll at "
    "your set speed. You can replace this with your own content through the "
    "settings. The teleprompter will automatically scroll text at a "
    "comfortable reading pace. You can adjust the scroll speed (in words per "
    "minute), line width, and number of lines through the settings menu. As "
    "you read this text, it will continue to scroll upward, allowing you to "
    "deliver your presentation smoothly and professionally. When you reach "
    "the end of the text, the teleprompter will show \"END OF TEXT\" and then "
    "restart from the beginning after a short pause if auto replay is on."
)

_END_MESSAGE_STATES: frozenset[EndState] = frozenset([
    EndState.SHOWING_END_MESSAGE,
    EndState.AUTO_REPLAY_SCHEDULED,
    EndState.STOPPED,
])


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def format_mm_ss(total_seconds: int) -> str:
    """Format whole seconds as MM:SS."""
    minutes, seconds = divmod(max(0, total_seconds), 60)
    return f"{minutes:02d}:{seconds:02d}"


def script_text(value: object) -> str:
    """
    Read a script text setting; an empty or missing script gives DEFAULT_TEXT.

    Raises:
        ValidationError: If the value is not a string
    """
    if value is None or value == "":
        return DEFAULT_TEXT
    if not isinstance(value, str):
        raise ValidationError(
            f"Script text must be a string, got {type(value).__name__}: {value!r}")
    return value


class TeleprompterController:
    """
    One script's teleprompter state.

    Holds the raw text and settings, the two wrapped line sequences (display
    lines and speech-matching lines), the speech matcher and the scroll state
    machine.
    """

    text: str
    line_width: int
    show_estimated_total: bool
    scroll_interval_ms: int
    delimiter: DelimiterKind
    display_mode: DisplayMode
    debug_logging: bool
    name: str

    matcher: SpeechPositionMatcher
    machine: ScrollStateMachine

    def __init__(
        self,
        text: str = "",
        settings: Mapping[str, Any] | None = None,
        clock: Callable[[], float] = time.monotonic,
        name: str = "teleprompter"
    ) -> None:
        """
        Initialize the controller.

        Args:
            text: Script text (the default text is used when empty)
            settings: Initial settings; missing keys use the config defaults
            clock: Returns the current time in seconds
            name: Label used in log messages (usually the user id)
        """
        defaults = DEFAULT_CONFIG["teleprompter"]
        values: dict[str, Any] = {**defaults, **(settings or {})}
        self.name = name

        self.text = script_text(text)
        self.line_width = convert_line_width(values["line_width"])
        self.show_estimated_total = bool(values["show_estimated_total"])
        self.scroll_interval_ms = clamp_scroll_interval(values["scroll_interval_ms"])
        self.delimiter = parse_delimiter(values["stage_direction_delimiter"])
        self.display_mode = parse_display_mode(values["stage_direction_display"])
        self.debug_logging = bool(values["debug_logging"])

        number_of_lines: int = clamp_number_of_lines(values["number_of_lines"])
        self.matcher = SpeechPositionMatcher(
            visible_lines=number_of_lines,
            lookahead_lines=clamp_non_negative(values["speech_lookahead_lines"], 0),
            min_words_for_match=max(1, clamp_non_negative(values["min_words_for_match"], 3)),
        )
        self.machine = ScrollStateMachine(
            matcher=self.matcher,
            visible_lines=number_of_lines,
            words_per_minute=clamp_scroll_speed(values["scroll_speed"]),
            tick_interval_ms=self.scroll_interval_ms,
            speech_lead_lines=clamp_non_negative(values["speech_lead_lines"], 0),
            auto_replay=bool(values["auto_replay"]),
            speech_mode=bool(values["speech_scroll_enabled"]),
            clock=clock,
        )

        self.process_text()

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    def process_text(self, preserve_position: bool = False) -> None:
        """
        Re-lay the script out into display and speech-matching lines.

        Args:
            preserve_position: Keep the current position (capped to the new
                line count) instead of returning to the top
        """
        display_text: str = transform_for_display(self.text, self.delimiter, self.display_mode)
        display_lines: list[str] = wrap_text(display_text, self.line_width)

        speech_text: str = strip_stage_directions(self.text, self.delimiter)
        speech_lines: list[str] = wrap_text(speech_text, self.line_width)

        avg_words_per_line: float = estimate_words_per_line(speech_text, self.line_width)
        if avg_words_per_line <= 0:
            avg_words_per_line = FALLBACK_WORDS_PER_LINE

        self.machine.load_lines(display_lines, speech_lines, avg_words_per_line,
                                preserve_position=preserve_position)
        logger.debug("[%s] %d display lines, %d speech lines, %.2f words per line",
                     self.name, len(display_lines), len(speech_lines), avg_words_per_line)

    @property
    def display_lines(self) -> list[str]:
        """Wrapped lines shown on the display."""
        return self.machine.display_lines

    @property
    def speech_lines(self) -> list[str]:
        """Wrapped lines with stage directions stripped."""
        return self.machine.speech_lines

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def set_text(self, text: str) -> None:
        """
        Replace the script and return to the top.

        Raises:
            ValidationError: If text is not a string
        """
        self.text = script_text(text)
        self.process_text(preserve_position=False)

    def set_line_width(self, value: object) -> None:
        """Set the line width (a named width or a number of characters)."""
        width: int = convert_line_width(value)
        if width != self.line_width:
            self.line_width = width
            self.process_text(preserve_position=True)

    def set_number_of_lines(self, value: object) -> None:
        """Set how many lines are visible at once."""
        lines: int = clamp_number_of_lines(value)
        if lines != self.machine.visible_lines:
            self.machine.visible_lines = lines
            self.matcher.visible_lines = lines
            self.process_text(preserve_position=True)

    def set_scroll_speed(self, value: object) -> None:
        """Set the time-based scroll rate in words per minute."""
        self.machine.words_per_minute = clamp_scroll_speed(value)

    def set_scroll_interval(self, value: object) -> None:
        """Set the scroll tick interval in milliseconds."""
        self.scroll_interval_ms = clamp_scroll_interval(value)
        self.machine.tick_interval_ms = self.scroll_interval_ms

    def set_auto_replay(self, enabled: bool) -> None:
        """Enable or disable restarting from the top after the end message."""
        self.machine.set_auto_replay(bool(enabled))

    def set_speech_scroll_enabled(self, enabled: bool) -> None:
        """Switch between speech-driven and time-driven scrolling."""
        self.machine.speech_mode = bool(enabled)
        if not enabled:
            self.matcher.clear()

    def set_show_estimated_total(self, enabled: bool) -> None:
        """Show or hide the projected total time in the progress header."""
        self.show_estimated_total = bool(enabled)

    def set_stage_direction_delimiter(self, value: object) -> None:
        """Set which brackets mark stage directions."""
        delimiter: DelimiterKind = parse_delimiter(value)
        if delimiter is not self.delimiter:
            self.delimiter = delimiter
            self.process_text(preserve_position=True)

    def set_stage_direction_display(self, value: object) -> None:
        """Set how stage directions are shown."""
        mode: DisplayMode = parse_display_mode(value)
        if mode is not self.display_mode:
            self.display_mode = mode
            self.process_text(preserve_position=True)

    def set_debug_logging(self, enabled: bool) -> None:
        """Log speech matching at INFO instead of DEBUG."""
        self.debug_logging = bool(enabled)

    def set_min_words_for_match(self, value: object) -> None:
        """Set the shortest phrase that may produce a speech match."""
        self.matcher.min_words_for_match = max(1, clamp_non_negative(value, 3))

    def set_speech_lookahead_lines(self, value: object) -> None:
        """Set how many lines past the visible window speech may match."""
        self.matcher.lookahead_lines = clamp_non_negative(value, 0)

    def set_speech_lead_lines(self, value: object) -> None:
        """Set how many lines to hold back when jumping to a speech match."""
        self.machine.speech_lead_lines = clamp_non_negative(value, 0)

    def apply_settings(self, settings: Any) -> bool:
        """
        Apply every setting from a settings source.

        Args:
            settings: Anything with a get(key, default) method

        Returns:
            True if the script text changed (the position is then reset)

        Raises:
            ValidationError: If the script text or line width cannot be used
        """
        defaults = DEFAULT_CONFIG["teleprompter"]

        def get(key: str) -> Any:
            return settings.get(key, defaults[key])  # type: ignore[literal-required]

        new_text: str = script_text(get("custom_text"))
        text_changed: bool = new_text != self.text
        if text_changed:
            self.set_text(new_text)

        self.set_line_width(get("line_width"))
        self.set_scroll_speed(get("scroll_speed"))
        self.set_number_of_lines(get("number_of_lines"))
        self.set_scroll_interval(get("scroll_interval_ms"))
        self.set_auto_replay(get("auto_replay"))
        self.set_speech_scroll_enabled(get("speech_scroll_enabled"))
        self.set_show_estimated_total(get("show_estimated_total"))
        self.set_stage_direction_delimiter(get("stage_direction_delimiter"))
        self.set_stage_direction_display(get("stage_direction_display"))
        self.set_min_words_for_match(get("min_words_for_match"))
        self.set_speech_lookahead_lines(get("speech_lookahead_lines"))
        self.set_speech_lead_lines(get("speech_lead_lines"))
        self.set_debug_logging(get("debug_logging"))

        logger.info("[%s] Applied settings: line_width=%d, scroll_speed=%s, "
                    "number_of_lines=%d, auto_replay=%s, speech_scroll=%s, "
                    "delimiter=%s, display=%s",
                    self.name, self.line_width, self.machine.words_per_minute,
                    self.machine.visible_lines, self.machine.auto_replay,
                    self.machine.speech_mode, self.delimiter.value, self.display_mode.value)

        if text_changed:
            self.reset_position()
        return text_changed

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @property
    def current_line(self) -> int:
        """First visible line."""
        return self.machine.position

    @property
    def total_lines(self) -> int:
        """Number of display lines."""
        return self.machine.line_count

    @property
    def number_of_lines(self) -> int:
        """Number of visible lines."""
        return self.machine.visible_lines

    @property
    def scroll_speed(self) -> float:
        """Time-based scroll rate in words per minute."""
        return self.machine.words_per_minute

    @property
    def auto_replay(self) -> bool:
        """Whether the script restarts after the end message."""
        return self.machine.auto_replay

    @property
    def speech_scroll_enabled(self) -> bool:
        """Whether speech drives the position."""
        return self.machine.speech_mode

    @property
    def end_state(self) -> EndState:
        """Current end-of-text state."""
        return self.machine.state

    def is_at_end(self) -> bool:
        """Whether the last line is visible."""
        return self.machine.is_at_end()

    def is_showing_end_message(self) -> bool:
        """Whether the end-of-text message is displayed."""
        return self.machine.state in _END_MESSAGE_STATES

    def status(self) -> dict[str, Any]:
        """Status summary for remote control clients."""
        return {
            "currentLine": self.current_line,
            "totalLines": self.total_lines,
            "isAtEnd": self.is_at_end(),
            "speechScrollEnabled": self.speech_scroll_enabled,
        }

    # ------------------------------------------------------------------
    # Frame rendering
    # ------------------------------------------------------------------

    def progress_percent(self) -> int:
        """Progress through the script as a whole percentage."""
        line_count: int = self.machine.line_count
        visible: int = self.machine.visible_lines
        if line_count <= visible:
            return 100
        percent = _round_half_up(self.machine.position / (line_count - visible) * 100)
        return max(0, min(100, percent))

    def elapsed_time(self) -> str:
        """Time since the script (re)started, as MM:SS."""
        return format_mm_ss(int(self.machine.elapsed_seconds))

    def projected_total_time(self, progress_percent: int) -> str:
        """Projected total reading time, or --:-- when it can't be estimated."""
        if progress_percent < MIN_PROJECTION_PERCENT or progress_percent >= 100:
            return NO_PROJECTION
        projected: int = _round_half_up(self.machine.elapsed_seconds / (progress_percent / 100))
        return format_mm_ss(projected)

    def progress_header(self) -> str:
        """Progress header shown above the visible lines."""
        percent: int = self.progress_percent()
        header: str = f"[{percent}%] | {self.elapsed_time()}"
        if self.show_estimated_total:
            header += f" | Est Total: {self.projected_total_time(percent)}"
        return header

    def visible_lines(self) -> list[str]:
        """Lines in the display window, padded to the window size."""
        position: int = self.machine.position
        visible: int = self.machine.visible_lines
        window: list[str] = self.display_lines[position:position + visible]
        return window + [""] * (visible - len(window))

    def get_current_visible_text(self) -> str:
        """
        Render the current frame: progress header followed by the visible
        lines, or by the end-of-text message once the final line has been
        shown long enough.
        """
        if not self.display_lines:
            return NO_TEXT_MESSAGE

        state: EndState = self.machine.update_end_state()
        header: str = self.progress_header()
        if state in _END_MESSAGE_STATES:
            return f"{header}\n\n{END_OF_TEXT_MESSAGE}"
        return header + "\n" + "\n".join(self.visible_lines())

    # ------------------------------------------------------------------
    # Position updates
    # ------------------------------------------------------------------

    def _debug(self, msg: str, *args: object) -> None:
        logger.log(logging.INFO if self.debug_logging else logging.DEBUG,
                   "[%s] " + msg, self.name, *args)

    def process_speech_input(self, speech_text: str, is_final: bool = False) -> bool:
        """
        Feed a recognition result to the matcher and follow any match.

        Args:
            speech_text: Text from the live transcript
            is_final: True for a final recognition result

        Returns:
            True if the position moved
        """
        if not self.machine.speech_mode:
            return False
        if not self.matcher.ingest(speech_text, is_final):
            return False

        position: int = self.machine.position
        self._debug("Speech buffer (%d words): %r | current line %d",
                    len(self.matcher.buffer), ' '.join(self.matcher.buffer), position)
        debug_log.log_speech_buffer(self.name, self.matcher.buffer, position)

        if not self.matcher.has_enough_words:
            return False

        lines: list[str] = self.speech_lines or self.display_lines
        match: int | None = self.matcher.match_position(position, lines)
        debug_log.log_speech_match(self.name, match, position)
        if match is None:
            self._debug("No match for %r from line %d",
                        ' '.join(self.matcher.buffer[-5:]), position)
            return False

        moved: bool = self.machine.advance_by_speech(match)
        if moved:
            self._debug("Speech advance %d -> %d (match at line %d)",
                        position, self.machine.position, match)
            debug_log.log_position_change(self.name, position, self.machine.position, "speech")
        return moved

    def advance_by_time(self) -> bool:
        """Advance one scroll tick at the configured words per minute."""
        position: int = self.machine.position
        moved: bool = self.machine.advance_by_time()
        if moved:
            debug_log.log_position_change(self.name, position, self.machine.position, "time")
        return moved

    def auto_advance_past_stage_directions(self) -> bool:
        """Skip a window containing only stage directions (speech mode only)."""
        position: int = self.machine.position
        moved: bool = self.machine.auto_advance_past_stage_directions()
        if moved:
            self._debug("Auto-advance %d -> %d past stage directions",
                        position, self.machine.position)
            debug_log.log_position_change(
                self.name, position, self.machine.position, "stage_directions")
        return moved

    def complete_auto_replay(self) -> bool:
        """Restart from the top if an auto replay is pending."""
        return self.machine.complete_auto_replay()

    # ------------------------------------------------------------------
    # Remote control
    # ------------------------------------------------------------------

    def reset_position(self) -> None:
        """Return to the top of the script."""
        self.machine.reset_position()

    def scroll_forward(self, lines: int = 1) -> None:
        """Move the display forward by a number of lines."""
        self._remote_move(lambda: self.machine.scroll_forward(lines))

    def scroll_back(self, lines: int = 1) -> None:
        """Move the display back by a number of lines."""
        self._remote_move(lambda: self.machine.scroll_back(lines))

    def go_to_line(self, line: int) -> None:
        """Move the display to a specific line."""
        self._remote_move(lambda: self.machine.go_to_line(line))

    def _remote_move(self, move: Callable[[], None]) -> None:
        position: int = self.machine.position
        move()
        if self.machine.position != position:
            debug_log.log_position_change(self.name, position, self.machine.position, "remote")
