"""
Utilities Package for API Watcher

Logging setup, validation and small helpers shared across packages.
"""

from api_watcher.utils.logger import get_logger, setup_logging
from api_watcher.utils.helpers import TimeHelper, StringHelper
from api_watcher.utils.validators import TargetValidator

__all__ = [
    "get_logger",
    "setup_logging",
    "TimeHelper",
    "StringHelper",
    "TargetValidator",
]
