# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Main teleprompter application.
Runs the display/remote-control web server, or renders a script's frames to
the terminal for checking layout and timing offline.
"""

import argparse
import asyncio
import contextlib
import logging
import signal
from pathlib import Path

from . import debug_log
from .config import (
    Config,
    RemoteControlSettings,
    SettingsStore,
    TeleprompterSettings,
    get_config_path,
    get_remote_control_settings,
    get_teleprompter_settings,
    load_config,
    save_config,
)
from .registry import SessionRegistry
from .scheduler import VirtualScheduler
from .server import WebServer
from .session import DisplaySink

logger = logging.getLogger(__name__)

# Safety stop for offline rendering, in simulated seconds
MAX_RENDER_SECONDS: float = 6 * 60 * 60


class TeleprompterApp:
    """
    Runs the web server until asked to stop.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 3000,
        teleprompter_settings: TeleprompterSettings | None = None,
        remote_control: RemoteControlSettings | None = None
    ) -> None:
        self.server: WebServer = WebServer(
            host=host,
            port=port,
            default_settings=teleprompter_settings,
            remote_control=remote_control,
        )
        self.running: bool = False
        self._stop_event: asyncio.Event | None = None

    async def start(self) -> None:
        """Start the server and wait until stop() is called."""
        self._stop_event = asyncio.Event()
        self.running = True
        await self.server.start()
        await self._stop_event.wait()

    def request_stop(self) -> None:
        """Ask start() to return."""
        self.running = False
        if self._stop_event is not None:
            self._stop_event.set()

    async def stop(self) -> None:
        """Stop all sessions and the server."""
        self.running = False
        await self.server.stop()


class TerminalDisplay(DisplaySink):
    """Prints each new frame with its simulated timestamp."""

    def __init__(self, scheduler: VirtualScheduler) -> None:
        self.scheduler: VirtualScheduler = scheduler
        self.last_text: str | None = None
        self.frames: int = 0

    def show_text(self, text: str, duration_ms: int) -> None:
        if text == self.last_text:
            return
        self.last_text = text
        self.frames += 1
        print(f"--- t={self.scheduler.time():7.1f}s ---")
        print(text)


def render_script(script_path: Path, settings: TeleprompterSettings) -> int:
    """
    Play a script through a time-scrolling session on a simulated clock,
    printing every distinct frame.

    Returns:
        Number of frames printed
    """
    text: str = script_path.read_text(encoding="utf-8")
    scheduler = VirtualScheduler()
    registry = SessionRegistry(scheduler)
    display = TerminalDisplay(scheduler)

    render_settings = dict(settings)
    render_settings.update({
        "custom_text": text,
        "speech_scroll_enabled": False,
        "auto_replay": False,
    })

    session = registry.open_session(
        "render", "render", display, settings=SettingsStore(render_settings))

    step: float = session.controller.scroll_interval_ms / 1000
    while session.active and scheduler.time() < MAX_RENDER_SECONDS:
        scheduler.advance(step)

    if session.active:
        logger.warning("Rendering stopped after %.0f simulated seconds", MAX_RENDER_SECONDS)
        registry.close_all()
    return display.frames


def main() -> None:
    """Main entry point."""
    # Configure logging - minimal console output
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S"
    )

    # Load config first to use as defaults
    config: Config = load_config()
    teleprompter_settings: TeleprompterSettings = get_teleprompter_settings(config)
    remote_control: RemoteControlSettings = get_remote_control_settings(config)

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Teleprompt - speech-synchronised teleprompter server"
    )

    parser.add_argument(
        "--host",
        default=config.get("host", "127.0.0.1"),
        help="Web server host (default: from config or 127.0.0.1)"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=config.get("port", 3000),
        help="Web server port (default: from config or 3000)"
    )

    parser.add_argument(
        "--api-key",
        default=remote_control.get("api_key"),
        help="API key for the remote control API (disabled when unset)"
    )

    parser.add_argument(
        "--scroll-speed",
        type=int,
        default=teleprompter_settings.get("scroll_speed"),
        help="Default scroll speed in words per minute"
    )

    parser.add_argument(
        "--line-width",
        default=teleprompter_settings.get("line_width"),
        help="Default line width: a name (Narrow, Medium, Wide, ...) or characters"
    )

    parser.add_argument(
        "--lines",
        type=int,
        default=teleprompter_settings.get("number_of_lines"),
        help="Default number of visible lines"
    )

    parser.add_argument(
        "--save-config",
        action="store_true",
        help="Save current CLI options to config file and exit"
    )

    parser.add_argument(
        "--debug-log",
        action="store_true",
        help="Enable speech debug logging to ./logs/"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show INFO level log messages"
    )

    parser.add_argument(
        "--render",
        type=Path,
        metavar="FILE",
        help="Print the frames of a script scrolling by time, then exit"
    )

    args: argparse.Namespace = parser.parse_args()

    if args.verbose:
        logging.getLogger("teleprompt").setLevel(logging.INFO)

    teleprompter_settings["scroll_speed"] = args.scroll_speed
    teleprompter_settings["line_width"] = args.line_width
    teleprompter_settings["number_of_lines"] = args.lines
    remote_control["api_key"] = args.api_key

    if args.save_config:
        config["host"] = args.host
        config["port"] = args.port
        config["teleprompter"] = teleprompter_settings
        config["remote_control"] = remote_control

        if save_config(config):
            print(f"Configuration saved to {get_config_path()}")
        return

    # Enable debug logging if requested
    if args.debug_log:
        debug_log.enable()
        debug_log.clear_logs()
        print("Debug logging enabled (logs will be saved to ./logs/)")

    if args.render:
        frames: int = render_script(args.render, teleprompter_settings)
        print(f"--- {frames} frames ---")
        return

    app: TeleprompterApp = TeleprompterApp(
        host=args.host,
        port=args.port,
        teleprompter_settings=teleprompter_settings,
        remote_control=remote_control,
    )

    # Handle shutdown gracefully
    loop: asyncio.AbstractEventLoop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def shutdown(sig: int, frame: object) -> None:
        """Handle shutdown signals (SIGINT, SIGTERM) gracefully."""
        print("\nReceived shutdown signal...")
        loop.call_soon_threadsafe(app.request_stop)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    try:
        loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        app.running = False
    finally:
        # Ensure clean shutdown
        with contextlib.suppress(Exception):
            loop.run_until_complete(app.stop())
        # Cancel any remaining tasks
        pending: set[asyncio.Task[object]] = asyncio.all_tasks(loop)
        for task in pending:
            task.cancel()
        # Allow cancelled tasks to complete
        if pending:
            loop.run_until_complete(asyncio.gather(
                *pending, return_exceptions=True))
        loop.close()


if __name__ == "__main__":
    main()
