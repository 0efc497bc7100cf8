"""
Configuration Package for API Watcher

This package contains all configuration-related modules including:
- Settings management with environment variable support
- Constants and event names used throughout the application
"""

from api_watcher.config.settings import (
    Settings,
    DatabaseSettings,
    MonitoringSettings,
    NotificationSettings,
    RealtimeSettings,
    LoggingSettings,
    Environment,
    DatabaseType,
    get_settings,
)

from api_watcher.config.constants import (
    RealtimeEvent,
    ClientMessage,
    WebhookEvent,
    SIGNATURE_HEADER,
)

__all__ = [
    # Settings
    "Settings",
    "DatabaseSettings",
    "MonitoringSettings",
    "NotificationSettings",
    "RealtimeSettings",
    "LoggingSettings",
    "Environment",
    "DatabaseType",
    "get_settings",

    # Constants
    "RealtimeEvent",
    "ClientMessage",
    "WebhookEvent",
    "SIGNATURE_HEADER",
]
