"""
Realtime Package for API Watcher

Per-user rooms, the fire-and-forget publisher and the aiohttp
websocket server that hosts live connections.
"""

from api_watcher.realtime.rooms import (
    UserId,
    RealtimeConnection,
    RoomHub,
    normalize_user_id,
    room_key,
)
from api_watcher.realtime.publisher import RealtimePublisher
from api_watcher.realtime.server import RealtimeServer

__all__ = [
    "UserId",
    "RealtimeConnection",
    "RoomHub",
    "normalize_user_id",
    "room_key",
    "RealtimePublisher",
    "RealtimeServer",
]
