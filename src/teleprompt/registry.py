# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Session registry.

Keeps one TeleprompterController per user and one ScrollSession per open
display. All of a user's sessions share the controller, so remote control
and speech move every display of that user together.
"""

import logging
from collections.abc import Callable
from typing import Any

from .config import DEFAULT_CONFIG, SettingsStore
from .controller import TeleprompterController
from .layout import ValidationError
from .scheduler import Scheduler
from .session import DisplaySink, ScrollSession, TranscriptStream

logger = logging.getLogger(__name__)


class SessionRegistry:
    """
    Maps users to controllers and session ids to sessions.

    Settings changes for a session are applied to the user's controller as
    they arrive; a new script text restarts the session from the top.
    """

    def __init__(self, scheduler: Scheduler) -> None:
        self.scheduler: Scheduler = scheduler
        self._controllers: dict[str, TeleprompterController] = {}
        self._sessions: dict[str, ScrollSession] = {}
        self._user_sessions: dict[str, list[str]] = {}
        self._settings_unsubscribers: dict[str, list[Callable[[], None]]] = {}

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_controller(self, user_id: str) -> TeleprompterController | None:
        """The controller for a user, if they have an open session."""
        return self._controllers.get(user_id)

    def controllers(self) -> dict[str, TeleprompterController]:
        """All controllers, keyed by user id."""
        return dict(self._controllers)

    def session(self, session_id: str) -> ScrollSession | None:
        """A session by id."""
        return self._sessions.get(session_id)

    def sessions_for(self, user_id: str) -> list[ScrollSession]:
        """All open sessions of a user, oldest first."""
        return [self._sessions[sid] for sid in self._user_sessions.get(user_id, [])]

    def active_users(self) -> list[str]:
        """Users with at least one open session."""
        return sorted(self._controllers)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _create_controller(self, user_id: str, settings: SettingsStore) -> TeleprompterController:
        controller = TeleprompterController(clock=self.scheduler.time, name=user_id)
        try:
            controller.apply_settings(settings)
        except ValidationError as e:
            logger.error("[%s] Invalid settings, using defaults: %s", user_id, e)
            controller = TeleprompterController(clock=self.scheduler.time, name=user_id)
        controller.reset_position()
        return controller

    def open_session(
        self,
        session_id: str,
        user_id: str,
        display: DisplaySink,
        settings: SettingsStore | None = None,
        transcripts: TranscriptStream | None = None
    ) -> ScrollSession:
        """
        Start a session for a user's display.

        Creates the user's controller on their first session; later sessions
        apply their settings to the existing controller.

        Args:
            session_id: Unique id for this display connection
            user_id: Owner of the session
            display: Where frames are sent
            settings: Settings source; defaults are used when omitted
            transcripts: Live transcription results for speech scrolling

        Returns:
            The started session
        """
        if session_id in self._sessions:
            logger.info("[%s] Session id reused, closing previous session", session_id)
            self.close_session(session_id)

        if settings is None:
            settings = SettingsStore(DEFAULT_CONFIG["teleprompter"])

        controller: TeleprompterController | None = self._controllers.get(user_id)
        if controller is None:
            controller = self._create_controller(user_id, settings)
            self._controllers[user_id] = controller
        else:
            self._apply(controller, settings)

        session = ScrollSession(
            session_id, user_id, controller, self.scheduler, display,
            transcripts=transcripts, on_finished=self._on_session_finished)
        session.drives_position = not any(
            s.drives_position for s in self.sessions_for(user_id))

        self._sessions[session_id] = session
        self._user_sessions.setdefault(user_id, []).append(session_id)
        self._settings_unsubscribers[session_id] = self._watch_settings(session, settings)

        session.start()
        logger.info("[%s] Opened session for %s (%d open)",
                    session_id, user_id, len(self._user_sessions[user_id]))
        return session

    def close_session(self, session_id: str) -> None:
        """Stop a session; drops the user's controller with their last session."""
        session: ScrollSession | None = self._sessions.pop(session_id, None)
        if session is None:
            return
        session.stop()
        for unsubscribe in self._settings_unsubscribers.pop(session_id, []):
            unsubscribe()

        user_id: str = session.user_id
        remaining: list[str] = [
            sid for sid in self._user_sessions.get(user_id, []) if sid != session_id]
        if remaining:
            self._user_sessions[user_id] = remaining
            if session.drives_position:
                self._sessions[remaining[0]].drives_position = True
        else:
            self._user_sessions.pop(user_id, None)
            controller = self._controllers.pop(user_id, None)
            if controller is not None:
                controller.reset_position()
        logger.info("[%s] Closed session for %s", session_id, user_id)

    def close_all(self) -> None:
        """Stop every session."""
        for session_id in list(self._sessions):
            self.close_session(session_id)

    def resume(self, user_id: str) -> None:
        """Restart idle scroll ticks for a user after a remote control move."""
        for session in self.sessions_for(user_id):
            session.resume()

    def _on_session_finished(self, session: ScrollSession) -> None:
        self.close_session(session.session_id)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def _apply(self, controller: TeleprompterController, settings: Any) -> bool:
        try:
            return controller.apply_settings(settings)
        except ValidationError as e:
            logger.error("[%s] Ignoring invalid settings: %s", controller.name, e)
            return False

    def _watch_settings(
        self, session: ScrollSession, settings: SettingsStore
    ) -> list[Callable[[], None]]:
        """Subscribe to every teleprompter setting for a session."""

        def on_text_change(_new: Any, _old: Any) -> None:
            if self._apply(session.controller, settings) and session.active:
                logger.info("[%s] Script text changed, restarting", session.session_id)
                session.restart()

        def on_change(_new: Any, _old: Any) -> None:
            self._apply(session.controller, settings)
            if session.active:
                session.show_frame()

        unsubscribers: list[Callable[[], None]] = []
        for key in DEFAULT_CONFIG["teleprompter"]:
            handler = on_text_change if key == "custom_text" else on_change
            unsubscribers.append(settings.on_value_change(key, handler))
        return unsubscribers
