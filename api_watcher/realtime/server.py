"""
============================================================================
API WATCHER - REALTIME SERVER
============================================================================
aiohttp application serving the live alert channel.

    GET /health   → 200 JSON  { status, uptime, connections, rooms, ... }
    GET /ws       → websocket

Websocket protocol
------------------
Client → server (JSON text frames):
    {"event": "join", "userId": 42}
    {"event": "join", "token": "..."}    token resolved server-side
    {"event": "leave"}

Server → client:
    {"event": "joined", "room": ...}
    {"event": "error", "message": ...}
    {"event": <RealtimeEvent>, "data": {...}}   published alert events

Closing the socket removes it from every room.
============================================================================
"""

import inspect
import json
import time
from typing import Optional, Dict, Any, Callable

from aiohttp import web, WSMsgType

from api_watcher.config.constants import ClientMessage
from api_watcher.config.settings import Settings
from api_watcher.realtime.rooms import RoomHub, RealtimeConnection, normalize_user_id
from api_watcher.utils.helpers import TimeHelper
from api_watcher.utils.logger import get_logger


logger = get_logger("RealtimeServer")

# Maps a client-supplied token to a user id (or None); may be async
TokenResolver = Callable[[str], Any]


class RealtimeServer:
    """
    aiohttp server hosting the websocket endpoint and a liveness probe.

    Attributes
    ----------
    hub : RoomHub                 — shared with the RealtimePublisher
    _token_resolver : callable    — optional token → user id lookup
    _start_time : float           — epoch seconds when the server started
    """

    def __init__(
        self,
        settings: Settings,
        hub: RoomHub,
        token_resolver: Optional[TokenResolver] = None,
    ):
        self.settings = settings
        self.hub = hub
        self._token_resolver = token_resolver
        self._host = settings.realtime.host
        self._port = settings.realtime.port

        self._app = web.Application()
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._start_time: float = 0.0

        self._app.router.add_get("/health", self._handle_health)
        self._app.router.add_get(settings.realtime.ws_path, self._handle_websocket)

    @property
    def app(self) -> web.Application:
        return self._app

    async def start(self) -> None:
        """Bind and start serving."""
        self._start_time = time.time()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()
        logger.info(
            f"✓ RealtimeServer listening on {self._host}:{self._port} "
            f"(ws path {self.settings.realtime.ws_path})"
        )

    async def stop(self) -> None:
        """Close live sockets and shut down the server."""
        for connection in self.hub.connections:
            self.hub.unregister(connection)
            close = getattr(connection, "close", None)
            if close is not None:
                await close()

        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
        logger.info("✓ RealtimeServer stopped")

    # ------------------------------------------------------------------
    # ROUTE HANDLERS
    # ------------------------------------------------------------------

    async def _handle_health(self, request: web.Request) -> web.Response:
        """GET /health: liveness JSON."""
        uptime_seconds = time.time() - self._start_time if self._start_time else 0

        health = {
            "status": "healthy",
            "uptime": TimeHelper.seconds_to_human_readable(int(uptime_seconds)),
            "uptime_seconds": round(uptime_seconds, 1),
            "connections": self.hub.connection_count,
            "rooms": self.hub.room_count,
            "timestamp": TimeHelper.get_utc_now().isoformat(),
            "app_name": self.settings.app_name,
            "app_version": self.settings.app_version,
        }

        return web.json_response(health, status=200)

    async def _handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse(heartbeat=30.0)
        await ws.prepare(request)

        self.hub.register(ws)
        logger.debug(f"[Realtime] Client connected from {request.remote}")

        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    await self.handle_message(ws, msg.data)
                elif msg.type == WSMsgType.ERROR:
                    logger.warning(f"[Realtime] Websocket error: {ws.exception()}")
        finally:
            rooms = self.hub.rooms_of(ws)
            self.hub.unregister(ws)
            logger.debug(f"[Realtime] Client disconnected (left {len(rooms)} rooms)")

        return ws

    # ------------------------------------------------------------------
    # CLIENT MESSAGES
    # ------------------------------------------------------------------

    async def handle_message(self, connection: RealtimeConnection, raw: str) -> None:
        """Process one client frame."""
        try:
            message = json.loads(raw)
        except ValueError:
            await self._reply_error(connection, "Malformed JSON")
            return

        if not isinstance(message, dict):
            await self._reply_error(connection, "Message must be a JSON object")
            return

        event = message.get("event")
        if event == ClientMessage.JOIN.value:
            await self._handle_join(connection, message)
        elif event == ClientMessage.LEAVE.value:
            self.hub.leave_all(connection)
            await connection.send_json({"event": "left"})
        else:
            await self._reply_error(connection, f"Unknown event: {event!r}")

    async def _handle_join(self, connection: RealtimeConnection, message: Dict[str, Any]) -> None:
        user = message.get("userId")

        if user is None and message.get("token"):
            user = await self._resolve_token(message["token"])
            if user is None:
                await self._reply_error(connection, "Invalid token")
                return

        if normalize_user_id(user) is None:
            await self._reply_error(connection, "Join requires a valid userId or token")
            return

        room = self.hub.join(connection, user)
        logger.info(f"[Realtime] Connection joined {room}")
        await connection.send_json({"event": "joined", "room": room})

    async def _resolve_token(self, token: str) -> Optional[Any]:
        if self._token_resolver is None:
            logger.warning("[Realtime] Token join attempted but no resolver is configured")
            return None
        try:
            result = self._token_resolver(token)
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as e:
            logger.warning(f"[Realtime] Token resolution failed: {e}")
            return None

    @staticmethod
    async def _reply_error(connection: RealtimeConnection, text: str) -> None:
        await connection.send_json({"event": "error", "message": text})
