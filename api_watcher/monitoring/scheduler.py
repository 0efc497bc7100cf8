"""
============================================================================
API WATCHER - BACKGROUND TASK SCHEDULER
============================================================================
A lightweight, asyncio-native scheduler that runs periodic jobs as
coroutines in the application's event loop.

Registered Jobs
---------------
1.  due_check_sweep     (every MONITOR_SWEEP_INTERVAL, default 60 s)
    MonitoringEngine.run_due_checks(): probe every due monitor.

2.  cooldown_gc         (every 1 h, only with a HighLatency cooldown)
    Removes expired entries from the AlertManager's cooldown map.

Overlap Policy
--------------
A job whose previous run is still in flight is not started again; the
tick is skipped, logged and counted in ``skipped_count``.
============================================================================
"""

import asyncio
import time
from datetime import datetime
from typing import Optional, Dict, Any, Callable, List, Set, TYPE_CHECKING
from dataclasses import dataclass, field

from api_watcher.config.settings import Settings
from api_watcher.utils.logger import get_logger

if TYPE_CHECKING:
    from api_watcher.monitoring.alerts import AlertManager
    from api_watcher.monitoring.engine import MonitoringEngine


logger = get_logger("Scheduler")


# ============================================================================
# JOB DEFINITION
# ============================================================================

@dataclass
class ScheduledJob:
    """
    Describes a single periodic background job.

    Attributes
    ----------
    name : str
        Identifier used in logs.
    interval_seconds : int
        How often the job runs.
    coroutine_factory : Callable
        An async callable (no arguments) that performs the work.
    enabled : bool
        Can be toggled at runtime.
    running : bool
        True while an execution is in flight.
    last_run : Optional[float]
        Epoch timestamp of the last successful execution.
    next_run : float
        Epoch timestamp when the job should next execute.
    run_count / error_count / skipped_count : int
        Successful, failed and overlap-skipped executions since startup.
    """
    name: str
    interval_seconds: int
    coroutine_factory: Callable
    enabled: bool = True
    running: bool = False
    last_run: Optional[float] = None
    last_result: Any = None
    next_run: float = field(default_factory=time.time)
    run_count: int = 0
    error_count: int = 0
    skipped_count: int = 0


# ============================================================================
# SCHEDULER
# ============================================================================

class Scheduler:
    """
    Asyncio-based periodic job scheduler.

    Usage
    -----
        scheduler = Scheduler(settings, engine=engine, alert_manager=alerts)
        await scheduler.start()
        # ... later ...
        await scheduler.stop()
    """

    def __init__(
        self,
        settings: Settings,
        engine: Optional["MonitoringEngine"] = None,
        alert_manager: Optional["AlertManager"] = None,
        tick_interval: float = 1.0,
    ):
        self.settings = settings
        self.engine = engine
        self.alert_manager = alert_manager

        self._jobs: Dict[str, ScheduledJob] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._running = False
        self._loop_task: Optional[asyncio.Task] = None
        self._tick_interval = tick_interval  # how often the main loop wakes up to check jobs
        self._skip_overlapping = settings.monitoring.skip_overlapping_sweeps

        self._register_builtin_jobs()

        logger.info(f"Scheduler created with {len(self._jobs)} built-in jobs")

    # ------------------------------------------------------------------
    # JOB REGISTRATION
    # ------------------------------------------------------------------

    def register_job(
        self,
        name: str,
        interval_seconds: int,
        coroutine_factory: Callable,
        enabled: bool = True,
    ) -> None:
        """
        Register a new periodic job. It first runs on the next tick.
        """
        if name in self._jobs:
            logger.warning(f"[Scheduler] Job '{name}' already registered, overwriting")

        self._jobs[name] = ScheduledJob(
            name=name,
            interval_seconds=interval_seconds,
            coroutine_factory=coroutine_factory,
            enabled=enabled,
            next_run=time.time(),
        )
        logger.debug(f"[Scheduler] Registered job '{name}' (interval={interval_seconds}s)")

    def enable_job(self, name: str) -> bool:
        """Enable a job by name. Returns True if found."""
        if name in self._jobs:
            self._jobs[name].enabled = True
            return True
        return False

    def disable_job(self, name: str) -> bool:
        """Disable a job by name. Returns True if found."""
        if name in self._jobs:
            self._jobs[name].enabled = False
            return True
        return False

    def get_job(self, name: str) -> Optional[ScheduledJob]:
        return self._jobs.get(name)

    def _register_builtin_jobs(self) -> None:
        if self.engine is not None:
            self.register_job(
                "due_check_sweep",
                interval_seconds=self.settings.monitoring.sweep_interval,
                coroutine_factory=self.engine.run_due_checks,
            )

        if self.alert_manager is not None and self.settings.monitoring.high_latency_cooldown > 0:
            self.register_job(
                "cooldown_gc",
                interval_seconds=3600,
                coroutine_factory=self.alert_manager.purge_cooldowns,
            )

    # ------------------------------------------------------------------
    # LIFECYCLE
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the scheduler loop."""
        if self._running:
            logger.warning("Scheduler is already running")
            return
        self._running = True
        self._loop_task = asyncio.create_task(self._main_loop())
        logger.info("✓ Scheduler started")

    async def stop(self) -> None:
        """Stop the loop and cancel job runs still in flight."""
        self._running = False
        if self._loop_task:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        # a task cancelled before its first step never reaches _execute_job's finally
        for job in self._jobs.values():
            job.running = False
        logger.info("✓ Scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # MAIN LOOP
    # ------------------------------------------------------------------

    async def _main_loop(self) -> None:
        logger.info("[Scheduler] Main loop started")
        while self._running:
            self.tick()

            try:
                await asyncio.sleep(self._tick_interval)
            except asyncio.CancelledError:
                break

        logger.info("[Scheduler] Main loop exited")

    def tick(self, now: Optional[float] = None) -> List[asyncio.Task]:
        """
        Launch every enabled job whose next_run has arrived.

        Returns the tasks started on this tick.
        """
        now = time.time() if now is None else now
        started: List[asyncio.Task] = []

        for job in self._jobs.values():
            if not job.enabled or now < job.next_run:
                continue

            # Advance next_run immediately so we don't re-trigger
            job.next_run = now + job.interval_seconds

            if job.running and self._skip_overlapping:
                job.skipped_count += 1
                logger.warning(
                    f"[Scheduler] Job '{job.name}' still running, skipping this tick "
                    f"(skipped {job.skipped_count} times)"
                )
                continue

            job.running = True
            task = asyncio.create_task(self._execute_job(job))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            started.append(task)

        return started

    # ------------------------------------------------------------------
    # JOB EXECUTION
    # ------------------------------------------------------------------

    async def _execute_job(self, job: ScheduledJob) -> None:
        """
        Run a single job, capture timing and errors.
        """
        start_time = time.time()
        try:
            logger.debug(f"[Scheduler] Running job '{job.name}'…")
            job.last_result = await job.coroutine_factory()
            elapsed = time.time() - start_time

            job.run_count += 1
            job.last_run = time.time()
            logger.debug(
                f"[Scheduler] Job '{job.name}' completed in {elapsed:.2f}s "
                f"(run #{job.run_count})"
            )

        except Exception as e:
            job.error_count += 1
            elapsed = time.time() - start_time
            logger.opt(exception=e).error(
                f"[Scheduler] Job '{job.name}' FAILED after {elapsed:.2f}s: {e}"
            )
        finally:
            job.running = False

    # ------------------------------------------------------------------
    # DIAGNOSTICS
    # ------------------------------------------------------------------

    def get_job_stats(self) -> List[Dict[str, Any]]:
        """Return status of all registered jobs."""
        stats = []
        for job in self._jobs.values():
            stats.append({
                "name": job.name,
                "interval_seconds": job.interval_seconds,
                "enabled": job.enabled,
                "running": job.running,
                "run_count": job.run_count,
                "error_count": job.error_count,
                "skipped_count": job.skipped_count,
                "last_run": (
                    datetime.fromtimestamp(job.last_run).isoformat()
                    if job.last_run else None
                ),
                "next_run": datetime.fromtimestamp(job.next_run).isoformat(),
            })
        return stats
