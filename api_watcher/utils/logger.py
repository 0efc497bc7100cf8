"""
============================================================================
API WATCHER - LOGGING UTILITY
============================================================================
loguru-based logging with a console sink, an optional rotating file sink
and a separate error file.

Components obtain a bound logger through ``get_logger(name)`` at import
time; ``setup_logging(settings)`` is called once by the application
entry point and can be called again to reconfigure sinks.
============================================================================
"""

import sys
from typing import Optional

from loguru import logger

from api_watcher.config.settings import LoggingSettings, Settings


CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[name]}:{function}:{line} - {message}"


# Records emitted through the bare logger still render {extra[name]}
logger.configure(extra={"name": "api_watcher"})


# ============================================================================
# LOGGER CONFIGURATION
# ============================================================================

def setup_logging(settings: Settings) -> None:
    """
    Configure loguru sinks from the logging settings section.

    Args:
        settings: Application settings instance
    """
    log_settings: LoggingSettings = settings.logging
    log_level = log_settings.level.value

    # Remove default loguru handler
    logger.remove()

    if log_settings.console_enabled:
        logger.add(
            sys.stdout,
            format=CONSOLE_FORMAT,
            level=log_level,
            colorize=log_settings.console_colored,
            backtrace=True,
            diagnose=settings.debug,
        )

    if log_settings.file_enabled:
        log_settings.file_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_settings.file_path,
            format=FILE_FORMAT,
            level=log_level,
            rotation=log_settings.file_rotation,
            retention=log_settings.file_retention,
            compression="zip",
            serialize=log_settings.json_enabled,
            backtrace=True,
            diagnose=settings.debug,
        )

    # Error log file (separate file for errors)
    if log_settings.error_file_enabled:
        log_settings.error_file_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_settings.error_file_path,
            format=FILE_FORMAT,
            level="ERROR",
            rotation="1 day",
            retention="7 days",
            compression="zip",
            backtrace=True,
            diagnose=settings.debug,
        )

    logger.info("Logging system initialized")
    logger.info(f"Log level: {log_level}")
    logger.info(f"Console logging: {log_settings.console_enabled}")
    logger.info(f"File logging: {log_settings.file_enabled}")


def get_logger(name: Optional[str] = None):
    """
    Get logger instance with optional name.

    Args:
        name: Logger name (usually the component name)

    Returns:
        Logger instance
    """
    if name:
        return logger.bind(name=name)
    return logger
