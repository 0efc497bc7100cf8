"""
============================================================================
API WATCHER - REALTIME PUBLISHER
============================================================================
Fire-and-forget delivery of alert events to a user's live connections,
plus a global broadcast used as a fallback path for new alerts.

Every message on the wire is ``{"event": <name>, "data": <payload>}``.
Publishing never raises: failures are logged and reported as False.
============================================================================
"""

from typing import Any, Dict, Iterable, Optional

from api_watcher.config.constants import RealtimeEvent
from api_watcher.realtime.rooms import RoomHub, RealtimeConnection, normalize_user_id
from api_watcher.utils.logger import get_logger


logger = get_logger("RealtimePublisher")


class RealtimePublisher:
    """
    Publishes events through a RoomHub.
    """

    def __init__(self, hub: RoomHub):
        self.hub = hub
        self._sent: int = 0
        self._failed: int = 0

    # ------------------------------------------------------------------
    # CORE
    # ------------------------------------------------------------------

    async def emit_to_user(
        self,
        user: Any,
        event: RealtimeEvent,
        payload: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Publish *event* to every connection in the user's room.

        Returns False when the user id cannot be resolved or when every
        delivery attempt failed. An empty room counts as success.
        """
        user_id = normalize_user_id(user)
        if user_id is None:
            logger.error(f"[Realtime] emit_to_user called with invalid user: {user!r}")
            return False

        members = self.hub.members(user_id)
        logger.debug(f"[Realtime] Emitting {event.value} to user {user_id} ({len(members)} connections)")

        if not members:
            return True

        delivered = await self._deliver(members, event, payload)
        return delivered > 0

    async def emit_global(self, event: RealtimeEvent, payload: Optional[Dict[str, Any]] = None) -> bool:
        """Broadcast *event* to every connected client."""
        connections = self.hub.connections
        if not connections:
            return True

        delivered = await self._deliver(connections, event, payload)
        return delivered > 0

    async def _deliver(
        self,
        connections: Iterable[RealtimeConnection],
        event: RealtimeEvent,
        payload: Optional[Dict[str, Any]],
    ) -> int:
        message = {"event": event.value, "data": payload if payload is not None else {}}
        delivered = 0

        for connection in connections:
            if connection.closed:
                self.hub.unregister(connection)
                continue
            try:
                await connection.send_json(message)
                delivered += 1
                self._sent += 1
            except Exception as e:
                self._failed += 1
                logger.warning(f"[Realtime] Failed to deliver {event.value}: {e}")
                self.hub.unregister(connection)

        return delivered

    # ------------------------------------------------------------------
    # CONVENIENCE WRAPPERS
    # ------------------------------------------------------------------

    async def emit_refresh_unread_count(self, user: Any) -> bool:
        return await self.emit_to_user(user, RealtimeEvent.REFRESH_UNREAD_COUNT)

    async def _emit_with_refresh(
        self,
        user: Any,
        event: RealtimeEvent,
        payload: Optional[Dict[str, Any]] = None,
    ) -> bool:
        success = await self.emit_to_user(user, event, payload)
        if success:
            await self.emit_refresh_unread_count(user)
        return success

    async def emit_new_alert(self, user: Any, alert: Dict[str, Any]) -> bool:
        return await self._emit_with_refresh(user, RealtimeEvent.NEW_ALERT, alert)

    async def emit_alert_read(self, user: Any, alert_id: int) -> bool:
        return await self._emit_with_refresh(user, RealtimeEvent.ALERT_READ, {"alertId": alert_id})

    async def emit_mark_all_read(self, user: Any, modified_count: int = 0) -> bool:
        return await self._emit_with_refresh(
            user, RealtimeEvent.MARK_ALL_READ, {"modifiedCount": modified_count}
        )

    async def emit_resolved(self, user: Any, alert_id: int, monitor_id: Optional[int] = None) -> bool:
        return await self._emit_with_refresh(
            user, RealtimeEvent.ALERT_RESOLVED, {"alertId": alert_id, "apiId": monitor_id}
        )

    async def emit_cleared(self, user: Any, deleted_count: int = 0) -> bool:
        return await self._emit_with_refresh(
            user, RealtimeEvent.CLEAR_ALL_ALERTS, {"deletedCount": deleted_count}
        )

    def get_stats(self) -> Dict[str, Any]:
        return {
            "sent": self._sent,
            "failed": self._failed,
            "connections": self.hub.connection_count,
            "rooms": self.hub.room_count,
        }
