"""
Base Exception Classes for API Watcher

Every project exception carries a numeric code and a details dict so
that log lines stay greppable across components.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ApiWatcherException(Exception):
    """
    Base Exception Class

    Attributes:
        message: Human-readable error message
        error_code: Numeric code, one range per component
        details: Structured context for the log line
        cause: The underlying exception, if any
    """

    default_error_code: int = 1000

    def __init__(
        self,
        message: str = "An error occurred",
        error_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)

        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        self.cause = cause

    def log_format(self) -> str:
        """Single-line rendering used by every component's error logs."""
        parts = [
            self.__class__.__name__,
            f"[{self.error_code}] {self.message}",
        ]
        if self.details:
            parts.append(f"details={self.details}")
        if self.cause:
            parts.append(f"cause={self.cause!r}")
        return " | ".join(parts)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


class ConfigurationError(ApiWatcherException):
    """Raised when settings cannot be loaded or are inconsistent."""

    default_error_code = 1100

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        if config_key:
            self.details["config_key"] = config_key


class InitializationError(ApiWatcherException):
    """Raised when a component fails to start."""

    default_error_code = 1200

    def __init__(self, message: str, component: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        if component:
            self.details["component"] = component
