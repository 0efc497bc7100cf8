"""
Exceptions Package for API Watcher

Provides the exception hierarchy used for error handling
throughout the application.
"""

from api_watcher.exceptions.base import (
    ApiWatcherException,
    ConfigurationError,
    InitializationError,
)

from api_watcher.exceptions.database import (
    DatabaseException,
    DatabaseConnectionError,
    DatabaseQueryError,
)

from api_watcher.exceptions.alerts import (
    AlertException,
    AlertNotFoundError,
    AlertOwnershipError,
    MissingOwnerError,
)

__all__ = [
    # Base exceptions
    "ApiWatcherException",
    "ConfigurationError",
    "InitializationError",

    # Database exceptions
    "DatabaseException",
    "DatabaseConnectionError",
    "DatabaseQueryError",

    # Alert exceptions
    "AlertException",
    "AlertNotFoundError",
    "AlertOwnershipError",
    "MissingOwnerError",
]
