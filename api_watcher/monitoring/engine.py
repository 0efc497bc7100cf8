"""
============================================================================
API WATCHER - MONITORING ENGINE
============================================================================
The due-check sweep. One call to ``run_due_checks()`` selects every due
monitor and drives each one through

    Prober.probe() → StatusUpdater.apply() → (AlertSink)

as an independent task bounded by a semaphore. A failure while handling
one monitor is logged and never stops the rest of the batch.

The sweep is triggered by the Scheduler at the monitoring tick.
============================================================================
"""

import asyncio
from datetime import datetime
from typing import Optional, Dict, Any

from api_watcher.config.settings import Settings
from api_watcher.database.manager import MonitorRepository
from api_watcher.database.models import Monitor
from api_watcher.exceptions import ApiWatcherException
from api_watcher.monitoring.prober import Prober
from api_watcher.monitoring.status import StatusUpdater
from api_watcher.utils.helpers import TimeHelper
from api_watcher.utils.logger import get_logger


logger = get_logger("MonitoringEngine")


class MonitoringEngine:
    """
    Runs due-check sweeps with bounded concurrency and per-monitor
    failure isolation.
    """

    def __init__(
        self,
        monitor_repo: MonitorRepository,
        prober: Prober,
        status_updater: StatusUpdater,
        settings: Settings,
    ):
        self.settings = settings
        self.monitor_repo = monitor_repo
        self.prober = prober
        self.status_updater = status_updater

        # --- concurrency control ---
        self._semaphore = asyncio.Semaphore(settings.monitoring.max_concurrent_probes)
        self._in_flight: int = 0

        # --- counters ---
        self._sweeps: int = 0
        self._checks: int = 0
        self._failures: int = 0

        logger.info(
            f"MonitoringEngine created — "
            f"max_concurrent={settings.monitoring.max_concurrent_probes}"
        )

    @property
    def in_flight_checks(self) -> int:
        return self._in_flight

    def get_stats(self) -> Dict[str, Any]:
        return {
            "sweeps": self._sweeps,
            "checks": self._checks,
            "failures": self._failures,
            "in_flight": self._in_flight,
        }

    # ------------------------------------------------------------------
    # PUBLIC API
    # ------------------------------------------------------------------

    async def run_due_checks(self, now: Optional[datetime] = None) -> int:
        """
        Check every monitor that is due at *now*.

        Returns
        -------
        int
            Number of due monitors processed in this sweep.
        """
        now = now or TimeHelper.get_utc_now()
        self._sweeps += 1

        monitors = await self.monitor_repo.find_due(now)
        if not monitors:
            logger.debug("[Engine] No monitors due")
            return 0

        logger.info(f"[Engine] Sweep found {len(monitors)} monitors to check")

        # Wait for all, but don't let one failure crash the rest
        results = await asyncio.gather(
            *(self._run_guarded(monitor) for monitor in monitors),
            return_exceptions=True
        )

        failed = 0
        for monitor, result in zip(monitors, results):
            if isinstance(result, BaseException):
                failed += 1
                self._log_failure(monitor, result)

        self._checks += len(monitors)
        self._failures += failed

        if failed:
            logger.warning(f"[Engine] Sweep finished: {len(monitors)} checked, {failed} failed")
        else:
            logger.info(f"[Engine] Sweep finished: {len(monitors)} checked")

        return len(monitors)

    async def check_monitor(self, monitor: Monitor) -> None:
        """Probe one monitor and apply the outcome."""
        outcome = await self.prober.probe(monitor)
        await self.status_updater.apply(monitor, outcome)

    # ------------------------------------------------------------------
    # GUARDED SINGLE CHECK
    # ------------------------------------------------------------------

    async def _run_guarded(self, monitor: Monitor) -> None:
        async with self._semaphore:
            self._in_flight += 1
            try:
                await self.check_monitor(monitor)
            finally:
                self._in_flight -= 1

    @staticmethod
    def _log_failure(monitor: Monitor, error: BaseException) -> None:
        if isinstance(error, ApiWatcherException):
            logger.error(f"[Engine] Check for monitor {monitor.id} failed: {error.log_format()}")
        else:
            logger.opt(exception=error).error(
                f"[Engine] Check for monitor {monitor.id} ({monitor.url}) raised: {error}"
            )
