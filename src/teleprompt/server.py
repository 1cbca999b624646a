# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Web server for the teleprompter.

Displays connect over a WebSocket, send transcription results and settings,
and receive rendered frames. A remote control API under /api/remote lets an
external device (such as a presentation clicker bridge) scroll a user's
script.
"""

import asyncio
import contextlib
import hmac
import json
import logging
import math
import re
import time
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from aiohttp import web

from .config import DEFAULT_CONFIG, RemoteControlSettings, SettingsStore, TeleprompterSettings
from .controller import TeleprompterController
from .registry import SessionRegistry
from .scheduler import AsyncioScheduler
from .session import DisplaySink, TranscriptStream

logger = logging.getLogger(__name__)

USER_ID_PATTERN: re.Pattern[str] = re.compile(r'^[a-zA-Z0-9_-]{1,128}$')
MAX_REMOTE_SCROLL_LINES: int = 50

# Rate limit buckets idle for this long are forgotten
RATE_LIMIT_IDLE_SECONDS: float = 600.0

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


class RateLimiter:
    """
    Token bucket rate limiter keyed by client address.

    Each client may make max_requests requests in a burst; tokens then
    refill one at a time, every window_seconds / max_requests seconds.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic
    ) -> None:
        self.max_tokens: int = max(1, max_requests)
        self.refill_seconds: float = window_seconds / self.max_tokens
        self.clock = clock
        # client -> [tokens, last_refill]
        self._buckets: dict[str, list[float]] = {}

    def is_allowed(self, client: str) -> bool:
        """Take a token for client; False if none are left."""
        now: float = self.clock()
        bucket: list[float] | None = self._buckets.get(client)
        if bucket is None:
            self.cleanup()
            self._buckets[client] = [self.max_tokens - 1, now]
            return True

        if self.refill_seconds > 0:
            tokens_to_add: int = math.floor((now - bucket[1]) / self.refill_seconds)
        else:
            tokens_to_add = self.max_tokens
        if tokens_to_add > 0:
            bucket[0] = min(self.max_tokens, bucket[0] + tokens_to_add)
            bucket[1] = now

        if bucket[0] > 0:
            bucket[0] -= 1
            return True
        return False

    def cleanup(self) -> None:
        """Forget clients that have been idle for a while."""
        now: float = self.clock()
        for client in [c for c, (_, last) in self._buckets.items()
                       if now - last > RATE_LIMIT_IDLE_SECONDS]:
            del self._buckets[client]


def is_valid_user_id(user_id: str) -> bool:
    """User ids are 1-128 letters, digits, hyphens or underscores."""
    return bool(USER_ID_PATTERN.match(user_id))


def parse_line_count(value: object) -> int:
    """Read a remote scroll line count, clamped to [1, MAX_REMOTE_SCROLL_LINES]."""
    number: float
    if isinstance(value, bool):
        number = float(value)
    else:
        try:
            number = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            number = 1.0
    if not math.isfinite(number) or math.floor(number) == 0:
        number = 1.0
    return max(1, min(math.floor(number), MAX_REMOTE_SCROLL_LINES))


def _error(status: int, message: str) -> web.Response:
    return web.json_response({"success": False, "message": message}, status=status)


def session_info(user_id: str, controller: TeleprompterController) -> dict[str, Any]:
    """Status of one user's teleprompter for the remote control API."""
    return {"userId": user_id, **controller.status()}


class WebSocketDisplay(DisplaySink):
    """Sends frames to a browser or glasses bridge over a WebSocket."""

    def __init__(self, ws: web.WebSocketResponse) -> None:
        self.ws: web.WebSocketResponse = ws
        self.last_text: str | None = None

    def show_text(self, text: str, duration_ms: int) -> None:
        if self.ws.closed:
            raise ConnectionError("WebSocket is closed")
        self.last_text = text
        task = asyncio.ensure_future(self.ws.send_json({
            "type": "display",
            "text": text,
            "durationMs": duration_ms,
        }))
        task.add_done_callback(self._on_sent)

    def _on_sent(self, task: "asyncio.Future[None]") -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("Error sending frame to WebSocket: %s", error)


def create_remote_control_app(
    registry: SessionRegistry,
    settings: RemoteControlSettings,
    clock: Callable[[], float] = time.monotonic
) -> web.Application:
    """
    Build the remote control API, to be mounted under /api/remote.

    Every request needs "Authorization: Bearer <api key>" and is rate
    limited per client address.
    """
    api_key: str | None = settings.get("api_key")
    limiter = RateLimiter(
        settings.get("rate_limit_max_requests", 120),
        settings.get("rate_limit_window_ms", 60_000) / 1000,
        clock=clock,
    )

    @web.middleware
    async def auth_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
        if not api_key:
            return _error(503, "Remote control API not configured")

        auth_header: str | None = request.headers.get("Authorization")
        if not auth_header:
            return _error(401, "Missing Authorization header")

        scheme, _, token = auth_header.partition(" ")
        if scheme != "Bearer" or not token:
            return _error(401, "Invalid Authorization format. Use: Bearer <token>")

        if not hmac.compare_digest(token.encode("utf-8"), api_key.encode("utf-8")):
            logger.warning("Rejected remote control request from %s: bad API key",
                           request.remote)
            return _error(403, "Invalid API key")

        return await handler(request)

    @web.middleware
    async def rate_limit_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
        if not limiter.is_allowed(request.remote or "unknown"):
            return _error(429, "Too many requests. Please slow down.")
        return await handler(request)

    def no_session() -> web.Response:
        return _error(404, "No active session for this user")

    def user_id_of(request: web.Request) -> str | None:
        user_id: str = request.match_info["user_id"]
        return user_id if is_valid_user_id(user_id) else None

    async def read_body(request: web.Request) -> dict[str, Any]:
        if not request.can_read_body:
            return {}
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return {}
        return body if isinstance(body, dict) else {}

    async def handle_sessions(_request: web.Request) -> web.Response:
        sessions = [session_info(user_id, controller)
                    for user_id, controller in registry.controllers().items()]
        return web.json_response({"sessions": sessions})

    async def handle_scroll(request: web.Request) -> web.Response:
        user_id = user_id_of(request)
        if user_id is None:
            return _error(400, "Invalid userId format")
        body: dict[str, Any] = await read_body(request)
        direction: object = body.get("direction")
        if direction not in ("forward", "back"):
            return _error(400, 'Invalid direction. Use "forward" or "back"')
        controller = registry.get_controller(user_id)
        if controller is None:
            return no_session()

        lines: int = parse_line_count(body.get("lines", 1))
        if direction == "forward":
            controller.scroll_forward(lines)
        else:
            controller.scroll_back(lines)
        registry.resume(user_id)
        logger.info("[%s] Remote scroll %s %d -> line %d",
                    user_id, direction, lines, controller.current_line)
        return web.json_response({"success": True, "position": controller.current_line})

    async def handle_reset(request: web.Request) -> web.Response:
        user_id = user_id_of(request)
        if user_id is None:
            return _error(400, "Invalid userId format")
        controller = registry.get_controller(user_id)
        if controller is None:
            return no_session()

        controller.reset_position()
        registry.resume(user_id)
        logger.info("[%s] Remote reset", user_id)
        return web.json_response({"success": True, "position": 0})

    async def handle_goto(request: web.Request) -> web.Response:
        user_id = user_id_of(request)
        if user_id is None:
            return _error(400, "Invalid userId format")
        body: dict[str, Any] = await read_body(request)
        position: object = body.get("position")
        if (isinstance(position, bool) or not isinstance(position, (int, float))
                or not math.isfinite(position) or position < 0):
            return _error(400, "Invalid position. Must be a non-negative number")
        controller = registry.get_controller(user_id)
        if controller is None:
            return no_session()

        controller.go_to_line(math.floor(position))
        registry.resume(user_id)
        logger.info("[%s] Remote goto %s -> line %d", user_id, position, controller.current_line)
        return web.json_response({"success": True, "position": controller.current_line})

    async def handle_status(request: web.Request) -> web.Response:
        user_id = user_id_of(request)
        if user_id is None:
            return _error(400, "Invalid userId format")
        controller = registry.get_controller(user_id)
        if controller is None:
            return no_session()
        return web.json_response(session_info(user_id, controller))

    app = web.Application(middlewares=[auth_middleware, rate_limit_middleware])
    app.router.add_get('/sessions', handle_sessions)
    app.router.add_post('/control/{user_id}/scroll', handle_scroll)
    app.router.add_post('/control/{user_id}/reset', handle_reset)
    app.router.add_post('/control/{user_id}/goto', handle_goto)
    app.router.add_get('/control/{user_id}/status', handle_status)
    return app


class WebServer:
    """
    Serves display WebSockets, the health check and the remote control API.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 3000,
        default_settings: TeleprompterSettings | None = None,
        remote_control: RemoteControlSettings | None = None,
        registry: SessionRegistry | None = None
    ) -> None:
        self.host: str = host
        self.port: int = port
        self.default_settings: TeleprompterSettings = (
            default_settings or DEFAULT_CONFIG["teleprompter"]
        )
        self.registry: SessionRegistry = registry or SessionRegistry(AsyncioScheduler())
        self.transcripts: dict[str, TranscriptStream] = {}
        self.websockets: set[web.WebSocketResponse] = set()
        self.runner: web.AppRunner | None = None

        self.app: web.Application = web.Application()
        self._setup_routes(remote_control or DEFAULT_CONFIG["remote_control"])

    def _setup_routes(self, remote_control: RemoteControlSettings) -> None:
        """Set up HTTP and WebSocket routes."""
        self.app.router.add_get('/health', self._handle_health)
        self.app.router.add_get('/ws', self._handle_websocket)
        if remote_control.get("api_key"):
            self.app.add_subapp(
                '/api/remote', create_remote_control_app(self.registry, remote_control))
            logger.info("Remote control API enabled at /api/remote")
        else:
            logger.info("Remote control API disabled (no API key configured)")

    async def _handle_health(self, _request: web.Request) -> web.Response:
        """Report liveness and the number of active users."""
        return web.json_response({
            "status": "healthy",
            "app": "teleprompt",
            "activeSessions": len(self.registry.active_users()),
        })

    async def _handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        """
        Handle a display connection.

        The user is taken from the "user" query parameter. The client sends
        {"type": "transcript", "text", "isFinal"} and
        {"type": "settings", "settings": {...}} messages and receives
        {"type": "display", "text", "durationMs"} frames.
        """
        user_id: str = request.query.get("user", "")
        if not is_valid_user_id(user_id):
            raise web.HTTPBadRequest(text="Invalid user id")

        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self.websockets.add(ws)

        session_id: str = f"{user_id}-{uuid.uuid4().hex[:8]}"
        settings = SettingsStore(self.default_settings)
        transcripts: TranscriptStream = self.transcripts.setdefault(user_id, TranscriptStream())
        self.registry.open_session(
            session_id, user_id, WebSocketDisplay(ws),
            settings=settings, transcripts=transcripts)
        logger.info("Display connected: %s (%d total)", session_id, len(self.websockets))

        try:
            async for msg in ws:
                if msg.type == web.WSMsgType.TEXT:
                    try:
                        data = json.loads(msg.data)
                    except json.JSONDecodeError:
                        logger.warning("[%s] Ignoring malformed message", session_id)
                        continue
                    if isinstance(data, dict):
                        self._handle_ws_message(user_id, settings, data)
                elif msg.type == web.WSMsgType.ERROR:
                    logger.warning("[%s] WebSocket error: %s", session_id, ws.exception())
        finally:
            self.websockets.discard(ws)
            self.registry.close_session(session_id)
            if not self.registry.sessions_for(user_id):
                self.transcripts.pop(user_id, None)
            logger.info("Display disconnected: %s (%d total)", session_id, len(self.websockets))

        return ws

    def _handle_ws_message(
        self, user_id: str, settings: SettingsStore, data: dict[str, Any]
    ) -> None:
        """Dispatch a client message by type."""
        msg_type: object = data.get("type")
        if msg_type == "transcript":
            text: object = data.get("text")
            if isinstance(text, str):
                self.transcripts[user_id].publish(text, bool(data.get("isFinal", False)))
        elif msg_type == "settings":
            values: object = data.get("settings")
            if isinstance(values, dict):
                changed: list[str] = settings.update(values)
                logger.debug("[%s] Settings changed: %s", user_id, changed)
        else:
            logger.warning("Unhandled WebSocket message: %s", msg_type)

    async def start(self) -> None:
        """Start the web server."""
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site: web.TCPSite = web.TCPSite(self.runner, self.host, self.port)
        await site.start()
        print(f"Teleprompter server running at http://{self.host}:{self.port}")

    async def stop(self) -> None:
        """Stop every session and the web server."""
        self.registry.close_all()
        for ws in list(self.websockets):
            with contextlib.suppress(Exception):
                await ws.close()
        self.websockets.clear()

        if self.runner:
            await self.runner.cleanup()
