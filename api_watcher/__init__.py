"""
API Watcher

Periodic HTTP endpoint monitoring with transition-based alerting,
multi-channel notifications and realtime alert delivery.
"""

__version__ = "1.0.0"
