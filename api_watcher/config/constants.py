"""
Constants Module for API Watcher

Event names published to realtime clients and webhook receivers, plus
the defaults shared by the monitoring pipeline.
"""

from __future__ import annotations

from enum import Enum
from typing import Final


class RealtimeEvent(str, Enum):
    """Events pushed to connected clients."""

    NEW_ALERT = "newAlert"
    GLOBAL_ALERT = "globalAlert"
    ALERT_READ = "alertRead"
    ALERT_RESOLVED = "alertResolved"
    MARK_ALL_READ = "markAllRead"
    CLEAR_ALL_ALERTS = "clearAllAlerts"
    REFRESH_UNREAD_COUNT = "refreshUnreadCount"
    STATUS_CHANGE = "statusChange"


class ClientMessage(str, Enum):
    """Messages a websocket client may send."""

    JOIN = "join"
    LEAVE = "leave"


class WebhookEvent(str, Enum):
    """Event names carried in webhook payloads."""

    STATUS_CHANGE = "status_change"
    PERFORMANCE_ISSUE = "performance_issue"


SIGNATURE_HEADER: Final[str] = "X-API-Watcher-Signature"

DEFAULT_ALERT_LIMIT: Final[int] = 100

# Uptime is reported as a percentage
UPTIME_UP: Final[float] = 100.0
UPTIME_DOWN: Final[float] = 0.0

MAX_ERROR_MESSAGE_LENGTH: Final[int] = 200
