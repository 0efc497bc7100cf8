"""
============================================================================
API WATCHER - STATUS UPDATER
============================================================================
Persists a probe outcome and derives what it means for the monitor:

    1. append the outcome to the probe history
    2. update status, last_checked, last latency and the uptime EMA
    3. detect a transition (previous != unknown and previous != new)
    4. evaluate the performance condition on every check

Transitions and performance issues are handed to an injected AlertSink.
============================================================================
"""

from dataclasses import dataclass
from typing import Optional, Protocol

from api_watcher.config.settings import Settings
from api_watcher.database.manager import MonitorRepository, HistoryRepository
from api_watcher.database.models import Monitor, MonitorStatus, ProbeResult
from api_watcher.monitoring.prober import ProbeOutcome
from api_watcher.utils.logger import get_logger


logger = get_logger("StatusUpdater")


class AlertSink(Protocol):
    """Receiver for the alert-worthy events a check can produce."""

    async def on_status_change(
        self,
        monitor: Monitor,
        previous_status: MonitorStatus,
        outcome: ProbeOutcome,
    ) -> None:
        ...

    async def on_performance_issue(self, monitor: Monitor, outcome: ProbeOutcome) -> None:
        ...


@dataclass
class StatusChange:
    """What a single applied check meant for its monitor."""
    monitor_id: int
    previous_status: MonitorStatus
    new_status: MonitorStatus
    uptime: float
    is_transition: bool
    performance_issue: bool


def is_transition(previous: MonitorStatus, new: MonitorStatus) -> bool:
    """A transition excludes the baseline unknown state."""
    return previous != MonitorStatus.UNKNOWN and previous != new


def has_performance_issue(monitor: Monitor, outcome: ProbeOutcome) -> bool:
    return (
        outcome.is_up
        and outcome.response_time > monitor.expected_response_time
        and bool(monitor.notify_on_performance_issue)
    )


class StatusUpdater:
    """
    Applies probe outcomes to monitors.
    """

    def __init__(
        self,
        monitor_repo: MonitorRepository,
        history_repo: HistoryRepository,
        settings: Settings,
        alert_sink: Optional[AlertSink] = None,
    ):
        self.monitor_repo = monitor_repo
        self.history_repo = history_repo
        self.settings = settings
        self.alert_sink = alert_sink

    async def apply(self, monitor: Monitor, outcome: ProbeOutcome) -> StatusChange:
        """
        Persist *outcome* for *monitor* and notify the alert sink.

        Persistence failures propagate as DatabaseQueryError.
        """
        await self.history_repo.append(
            ProbeResult(
                monitor_id=monitor.id,
                status=outcome.status,
                status_code=outcome.status_code,
                response_time=outcome.response_time,
                message=outcome.message,
                timestamp=outcome.checked_at,
                request_size=outcome.request_size,
                response_size=outcome.response_size,
                error_type=outcome.error_type,
            )
        )

        previous_status = monitor.record_check(
            status=outcome.status,
            response_time=outcome.response_time,
            checked_at=outcome.checked_at,
            weight=self.settings.monitoring.uptime_weight,
        )
        await self.monitor_repo.save(monitor)

        change = StatusChange(
            monitor_id=monitor.id,
            previous_status=previous_status,
            new_status=monitor.status,
            uptime=monitor.uptime,
            is_transition=is_transition(previous_status, monitor.status),
            performance_issue=has_performance_issue(monitor, outcome),
        )

        logger.debug(
            f"[StatusUpdater] Monitor {monitor.id} {previous_status.value} → "
            f"{monitor.status.value}, uptime={monitor.uptime:.2f}%"
        )

        if self.alert_sink is not None:
            if change.is_transition:
                await self.alert_sink.on_status_change(monitor, previous_status, outcome)
            if change.performance_issue:
                await self.alert_sink.on_performance_issue(monitor, outcome)

        return change
