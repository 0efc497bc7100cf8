"""
Alert Exception Classes for API Watcher

Raised by the alert lifecycle operations (read, resolve) when the
requested alert is missing or belongs to someone else, and by alert
creation when a monitor has no resolvable owner.
"""

from __future__ import annotations

from typing import Any, Optional

from api_watcher.exceptions.base import ApiWatcherException


class AlertException(ApiWatcherException):
    """Parent class for alert lifecycle errors."""

    default_error_code = 3000

    def __init__(
        self,
        message: str,
        alert_id: Optional[int] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if alert_id is not None:
            self.details["alert_id"] = alert_id


class AlertNotFoundError(AlertException):
    """The alert does not exist."""

    default_error_code = 3001

    def __init__(self, alert_id: int, **kwargs: Any) -> None:
        super().__init__(f"Alert {alert_id} not found", alert_id=alert_id, **kwargs)


class AlertOwnershipError(AlertException):
    """The alert exists but belongs to a different owner."""

    default_error_code = 3002

    def __init__(self, alert_id: int, owner_id: Any, **kwargs: Any) -> None:
        super().__init__(
            f"Alert {alert_id} does not belong to user {owner_id}",
            alert_id=alert_id,
            **kwargs
        )
        self.details["owner_id"] = str(owner_id)


class MissingOwnerError(AlertException):
    """A monitor's owner cannot be resolved, so no alert can be addressed."""

    default_error_code = 3003

    def __init__(self, monitor_id: Any, **kwargs: Any) -> None:
        super().__init__(f"Monitor {monitor_id} has no resolvable owner", **kwargs)
        self.details["monitor_id"] = str(monitor_id)
