# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Per-session scroll driver.

A ScrollSession connects one display to a TeleprompterController. It owns
every timer the session uses:

- initial display: shows the first frame shortly after the session starts
- scroll start: begins the scroll tick after a short pause
- scroll tick: advances by time (time mode), pushes the frame and skips
  windows holding only stage directions (speech mode)
- end tick: keeps pushing frames once the end of the text is visible so the
  end-of-text states can progress
- restart: returns to the top after the auto-replay delay

stop() cancels all of them and detaches from the transcript stream.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable

from .controller import TeleprompterController
from .scheduler import ScheduledTask, Scheduler
from .scroller import AUTO_REPLAY_DELAY_SECONDS, EndState

logger = logging.getLogger(__name__)

INITIAL_DISPLAY_DELAY_SECONDS: float = 1.0
SCROLL_START_DELAY_SECONDS: float = 5.0

# How long the display keeps a frame visible without a refresh
DISPLAY_TIMEOUT_MS: int = 10_000

TranscriptCallback = Callable[[str, bool], None]


class DisplaySink(ABC):
    """Somewhere frames are shown (glasses, browser, terminal, ...)."""

    @abstractmethod
    def show_text(self, text: str, duration_ms: int) -> None:
        """
        Show a frame.

        Raises:
            ConnectionError: If the display has gone away
        """


class TranscriptStream:
    """Fan-out of live transcription results to subscribed sessions."""

    def __init__(self) -> None:
        self._subscribers: list[TranscriptCallback] = []

    def subscribe(self, callback: TranscriptCallback) -> Callable[[], None]:
        """
        Register a callback for (text, is_final) results.

        Returns:
            A function that unsubscribes the callback
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, text: str, is_final: bool) -> None:
        """Deliver a transcription result to every subscriber."""
        for callback in list(self._subscribers):
            callback(text, is_final)

    @property
    def subscriber_count(self) -> int:
        """Number of subscribed callbacks."""
        return len(self._subscribers)


class ScrollSession:
    """
    Drives one display from a shared controller.

    Several sessions of the same user share a controller; only the session
    with drives_position set advances the position by time, so extra
    displays don't speed the script up.
    """

    def __init__(
        self,
        session_id: str,
        user_id: str,
        controller: TeleprompterController,
        scheduler: Scheduler,
        display: DisplaySink,
        transcripts: TranscriptStream | None = None,
        on_finished: Callable[["ScrollSession"], None] | None = None
    ) -> None:
        self.session_id: str = session_id
        self.user_id: str = user_id
        self.controller: TeleprompterController = controller
        self.scheduler: Scheduler = scheduler
        self.display: DisplaySink = display
        self.transcripts: TranscriptStream | None = transcripts
        self.on_finished = on_finished
        self.drives_position: bool = True

        self.active: bool = False
        self.frames_shown: int = 0
        self._timers: dict[str, ScheduledTask] = {}
        self._unsubscribe: Callable[[], None] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start (or restart) the session's timers from scratch."""
        self.stop()
        self.active = True
        if self.transcripts is not None:
            self._unsubscribe = self.transcripts.subscribe(self._on_transcript)

        self._timers["initial_display"] = self.scheduler.call_later(
            INITIAL_DISPLAY_DELAY_SECONDS, self._on_initial_display)
        self._timers["scroll_start"] = self.scheduler.call_later(
            SCROLL_START_DELAY_SECONDS, self._on_scroll_start)
        logger.info("[%s] Session started for user %s", self.session_id, self.user_id)

    def stop(self) -> None:
        """Cancel every timer and detach from the transcript stream."""
        was_active: bool = self.active
        self.active = False
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if was_active:
            logger.info("[%s] Session stopped", self.session_id)

    def restart(self) -> None:
        """Return to the top and restart all timers."""
        self.controller.reset_position()
        self.start()

    def finish(self) -> None:
        """Stop and tell the owner the script has finished."""
        self.stop()
        logger.info("[%s] Reached end of text, session finished", self.session_id)
        if self.on_finished is not None:
            self.on_finished(self)

    def resume(self) -> None:
        """
        Pick scrolling back up after a remote control move.

        Restarts the scroll tick if the session had gone idle at the end of
        the text, and pushes the new frame straight away.
        """
        if not self.active:
            return
        if "scroll_tick" not in self._timers and "scroll_start" not in self._timers:
            self._cancel("restart")
            self._start_scroll_tick()
        self.show_frame()

    def timer_names(self) -> list[str]:
        """Names of the timers currently armed."""
        return sorted(name for name, timer in self._timers.items() if not timer.cancelled)

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def show_frame(self) -> None:
        """Render the current frame and send it to the display."""
        if not self.active:
            return
        text: str = self.controller.get_current_visible_text()
        try:
            self.display.show_text(text, DISPLAY_TIMEOUT_MS)
        except (ConnectionError, RuntimeError) as e:
            logger.warning("[%s] Display failed, stopping session: %s", self.session_id, e)
            self.stop()
            return
        self.frames_shown += 1

    # ------------------------------------------------------------------
    # Timer callbacks
    # ------------------------------------------------------------------

    def _cancel(self, name: str) -> None:
        timer: ScheduledTask | None = self._timers.pop(name, None)
        if timer is not None:
            timer.cancel()

    def _on_initial_display(self) -> None:
        self._timers.pop("initial_display", None)
        self.show_frame()

    def _on_scroll_start(self) -> None:
        self._timers.pop("scroll_start", None)
        if not self.active:
            return
        self._start_scroll_tick()

    def _start_scroll_tick(self) -> None:
        self._cancel("scroll_tick")
        self._timers["scroll_tick"] = self.scheduler.call_every(
            self.controller.scroll_interval_ms / 1000, self._on_scroll_tick)

    def _on_scroll_tick(self) -> None:
        if not self.active:
            return
        controller = self.controller

        if not controller.speech_scroll_enabled and self.drives_position:
            controller.advance_by_time()

        self.show_frame()
        if not self.active:
            return

        if controller.speech_scroll_enabled:
            controller.auto_advance_past_stage_directions()

        if controller.is_at_end() and "end_tick" not in self._timers:
            self._timers["end_tick"] = self.scheduler.call_every(
                controller.scroll_interval_ms / 1000, self._on_end_tick)

    def _on_end_tick(self) -> None:
        if not self.active:
            return
        self.show_frame()
        if not self.active:
            return

        state: EndState = self.controller.end_state
        if state is EndState.SCROLLING and not self.controller.is_at_end():
            # Moved away from the end; the scroll tick re-arms it
            self._cancel("end_tick")
        elif state is EndState.AUTO_REPLAY_SCHEDULED:
            if "restart" not in self._timers:
                self._cancel("end_tick")
                self._cancel("scroll_tick")
                self._timers["restart"] = self.scheduler.call_later(
                    AUTO_REPLAY_DELAY_SECONDS, self._on_restart)
        elif state is EndState.STOPPED:
            self.finish()

    def _on_restart(self) -> None:
        self._timers.pop("restart", None)
        if not self.active:
            return
        if self.controller.complete_auto_replay():
            logger.info("[%s] Auto replay: restarting from the top", self.session_id)
            self.start()
        elif self.controller.end_state is EndState.STOPPED:
            # Auto replay was switched off during the delay
            self.finish()
        else:
            # Another display of the same script already restarted it
            self.start()

    # ------------------------------------------------------------------
    # Speech
    # ------------------------------------------------------------------

    def _on_transcript(self, text: str, is_final: bool) -> None:
        if not self.active:
            return
        text = text.strip()
        if not text:
            return
        self.controller.process_speech_input(text, is_final)
