"""
Room addressing for realtime delivery.

User identity reaches this layer as a raw id, a numeric string, a User
row or a mapping carrying ``id`` / ``_id``. ``normalize_user_id`` turns
all of these into one int. The room name derived from it is internal:
callers go through RealtimePublisher.emit_to_user and never build room
names themselves.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Protocol, Set

UserId = int


class RealtimeConnection(Protocol):
    """A live client connection (aiohttp WebSocketResponse satisfies this)."""

    @property
    def closed(self) -> bool: ...

    async def send_json(self, data: Any) -> None: ...


def normalize_user_id(user: Any) -> Optional[UserId]:
    """Resolve *user* to an integer id, or None when it carries no usable id."""
    if user is None or isinstance(user, bool):
        return None

    if isinstance(user, int):
        return user if user > 0 else None

    if isinstance(user, str):
        value = user.strip()
        if not (value.isascii() and value.isdigit()):
            return None
        return int(value) or None

    if isinstance(user, Mapping):
        for key in ("_id", "id", "userId", "user_id"):
            if key in user:
                return normalize_user_id(user[key])
        return None

    for attr in ("_id", "id"):
        value = getattr(user, attr, None)
        if value is not None:
            return normalize_user_id(value)

    return None


def room_key(user_id: UserId, prefix: str = "user_") -> str:
    return f"{prefix}{user_id}"


class RoomHub:
    """
    In-memory registry of live connections and the per-user rooms they
    joined. All access happens on the event loop thread.
    """

    def __init__(self, prefix: str = "user_") -> None:
        self.prefix = prefix
        self._connections: Set[RealtimeConnection] = set()
        self._rooms: Dict[str, Set[RealtimeConnection]] = {}

    def register(self, connection: RealtimeConnection) -> None:
        self._connections.add(connection)

    def unregister(self, connection: RealtimeConnection) -> None:
        """Forget a connection entirely; removes it from every room."""
        self.leave_all(connection)
        self._connections.discard(connection)

    def room_for(self, user: Any) -> Optional[str]:
        user_id = normalize_user_id(user)
        if user_id is None:
            return None
        return room_key(user_id, self.prefix)

    def join(self, connection: RealtimeConnection, user: Any) -> Optional[str]:
        room = self.room_for(user)
        if room is None:
            return None
        self.register(connection)
        self._rooms.setdefault(room, set()).add(connection)
        return room

    def leave(self, connection: RealtimeConnection, user: Any) -> None:
        room = self.room_for(user)
        if room is None:
            return
        members = self._rooms.get(room)
        if members is not None:
            members.discard(connection)
            if not members:
                del self._rooms[room]

    def leave_all(self, connection: RealtimeConnection) -> None:
        for room in list(self._rooms):
            members = self._rooms[room]
            members.discard(connection)
            if not members:
                del self._rooms[room]

    def members(self, user: Any) -> List[RealtimeConnection]:
        room = self.room_for(user)
        if room is None:
            return []
        return list(self._rooms.get(room, ()))

    def rooms_of(self, connection: RealtimeConnection) -> List[str]:
        return [room for room, members in self._rooms.items() if connection in members]

    @property
    def connections(self) -> List[RealtimeConnection]:
        return list(self._connections)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    @property
    def room_count(self) -> int:
        return len(self._rooms)
