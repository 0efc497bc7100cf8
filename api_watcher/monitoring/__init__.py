"""
============================================================================
API WATCHER - MONITORING PACKAGE
============================================================================
Runtime monitoring pipeline:
    • Prober             — one classified HTTP probe per monitor
    • StatusUpdater      — history, status, uptime EMA, transition detection
    • MonitoringEngine   — the due-check sweep with per-monitor isolation
    • AlertManager       — alert creation, publishing, notification, lifecycle
    • Scheduler          — periodic job runner that drives the sweep

monitoring/
├── __init__.py          ← this file
├── prober.py            ← Prober + ProbeOutcome
├── status.py            ← StatusUpdater + AlertSink protocol
├── engine.py            ← MonitoringEngine
├── alerts.py            ← AlertManager
└── scheduler.py         ← Scheduler + ScheduledJob
============================================================================
"""

from api_watcher.monitoring.prober import Prober, ProbeOutcome
from api_watcher.monitoring.status import AlertSink, StatusChange, StatusUpdater
from api_watcher.monitoring.engine import MonitoringEngine
from api_watcher.monitoring.alerts import AlertManager
from api_watcher.monitoring.scheduler import Scheduler, ScheduledJob

__all__ = [
    # Probing
    "Prober",
    "ProbeOutcome",

    # Status
    "AlertSink",
    "StatusChange",
    "StatusUpdater",

    # Sweep
    "MonitoringEngine",

    # Alerts
    "AlertManager",

    # Scheduler
    "Scheduler",
    "ScheduledJob",
]
