"""
Database Package for API Watcher

Provides the ORM models, the async DatabaseManager and the repositories
the monitoring pipeline persists through.
"""

from api_watcher.database.models import (
    Base,
    User,
    Monitor,
    ProbeResult,
    Alert,
    MonitorStatus,
    ProbeStatus,
    ErrorType,
    HTTPMethod,
    AlertType,
    AlertSeverity,
)

from api_watcher.database.manager import (
    DatabaseManager,
    BaseRepository,
    UserRepository,
    MonitorRepository,
    HistoryRepository,
    AlertRepository,
)

__all__ = [
    # Models
    "Base",
    "User",
    "Monitor",
    "ProbeResult",
    "Alert",

    # Enumerations
    "MonitorStatus",
    "ProbeStatus",
    "ErrorType",
    "HTTPMethod",
    "AlertType",
    "AlertSeverity",

    # Manager and repositories
    "DatabaseManager",
    "BaseRepository",
    "UserRepository",
    "MonitorRepository",
    "HistoryRepository",
    "AlertRepository",
]
