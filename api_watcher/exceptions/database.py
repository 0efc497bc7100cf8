"""
Database Exception Classes for API Watcher

Specialized exceptions for persistence failures. Repositories wrap
SQLAlchemy errors in these so callers never depend on the driver.
"""

from __future__ import annotations

from typing import Any, Optional

from api_watcher.exceptions.base import ApiWatcherException


class DatabaseException(ApiWatcherException):
    """
    Base Database Exception

    Parent class for all database-related exceptions.
    """

    default_error_code = 2000

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if table:
            self.details["table"] = table


class DatabaseConnectionError(DatabaseException):
    """
    Database Connection Error

    Raised when unable to establish or maintain database connection.
    """

    default_error_code = 2001

    def __init__(
        self,
        message: str = "Unable to connect to database",
        host: Optional[str] = None,
        database: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if host:
            self.details["host"] = host

        if database:
            self.details["database"] = database


class DatabaseQueryError(DatabaseException):
    """
    Database Query Error

    Raised when a read or write against the store fails.
    """

    default_error_code = 2002

    def __init__(
        self,
        message: str = "Database query failed",
        operation: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if operation:
            self.details["operation"] = operation
