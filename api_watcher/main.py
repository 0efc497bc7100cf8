"""
============================================================================
API WATCHER - MAIN APPLICATION
============================================================================
Wires every layer together and owns the startup / shutdown order.

Startup Order
-------------
1.  Load settings & configure logging
2.  Initialize DatabaseManager (create tables if needed)
3.  Start RealtimeServer (aiohttp websocket + /health)
4.  Wire the alert pipeline: RealtimePublisher, NotificationDispatcher,
    AlertManager
5.  Wire Prober, StatusUpdater and MonitoringEngine
6.  Start Scheduler (drives the due-check sweep)

Shutdown Order (reverse)
------------------------
On SIGINT or SIGTERM:
    stop scheduler → close prober / dispatcher clients →
    stop realtime server → close DB → exit
============================================================================
"""

import asyncio
import signal
import sys
from typing import Optional

from api_watcher.config.settings import Settings, get_settings
from api_watcher.database.manager import (
    DatabaseManager,
    MonitorRepository,
    HistoryRepository,
    AlertRepository,
    UserRepository,
)
from api_watcher.exceptions import ApiWatcherException, InitializationError
from api_watcher.monitoring.alerts import AlertManager
from api_watcher.monitoring.engine import MonitoringEngine
from api_watcher.monitoring.prober import Prober
from api_watcher.monitoring.scheduler import Scheduler
from api_watcher.monitoring.status import StatusUpdater
from api_watcher.notifications.dispatcher import NotificationDispatcher
from api_watcher.realtime.publisher import RealtimePublisher
from api_watcher.realtime.rooms import RoomHub
from api_watcher.realtime.server import RealtimeServer, TokenResolver
from api_watcher.utils.logger import get_logger, setup_logging


logger = get_logger("Main")


# ============================================================================
# APPLICATION CLASS
# ============================================================================

class ApiWatcherApplication:
    """
    Top-level application orchestrator.

    Owns every subsystem; components receive their collaborators through
    their constructors.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        token_resolver: Optional[TokenResolver] = None,
    ):
        self.settings = settings or get_settings()
        self.token_resolver = token_resolver

        # --- subsystems (populated during startup) ---
        self.db_manager: Optional[DatabaseManager] = None
        self.hub: Optional[RoomHub] = None
        self.realtime_server: Optional[RealtimeServer] = None
        self.publisher: Optional[RealtimePublisher] = None
        self.dispatcher: Optional[NotificationDispatcher] = None
        self.alert_manager: Optional[AlertManager] = None
        self.prober: Optional[Prober] = None
        self.engine: Optional[MonitoringEngine] = None
        self.scheduler: Optional[Scheduler] = None

        self._stop_event = asyncio.Event()
        self._is_running = False

    @property
    def is_running(self) -> bool:
        return self._is_running

    # ==================================================================
    # PHASE 1: DATABASE
    # ==================================================================

    async def _init_database(self) -> None:
        logger.info("── Phase 1: Database ─────────────────────────────")
        self.db_manager = DatabaseManager(self.settings)
        await self.db_manager.initialize()

        if not await self.db_manager.check_connection():
            raise InitializationError("Database connection check failed", component="database")

        logger.info(f"  ✓ Connected to {self.settings.database.type.value}")

    # ==================================================================
    # PHASE 2: REALTIME
    # ==================================================================

    async def _init_realtime(self) -> None:
        logger.info("── Phase 2: Realtime ─────────────────────────────")
        self.hub = RoomHub(prefix=self.settings.realtime.room_prefix)
        self.publisher = RealtimePublisher(self.hub)

        if self.settings.realtime.enabled:
            self.realtime_server = RealtimeServer(
                self.settings,
                self.hub,
                token_resolver=self.token_resolver,
            )
            await self.realtime_server.start()
        else:
            logger.info("  Realtime server disabled — events are published to no one")

    # ==================================================================
    # PHASE 3: ALERT PIPELINE
    # ==================================================================

    def _init_alerts(self) -> None:
        logger.info("── Phase 3: Alert pipeline ───────────────────────")
        self.dispatcher = NotificationDispatcher(self.settings)
        self.alert_manager = AlertManager(
            AlertRepository(self.db_manager),
            UserRepository(self.db_manager),
            self.settings,
            publisher=self.publisher,
            dispatcher=self.dispatcher,
        )

    # ==================================================================
    # PHASE 4: MONITORING
    # ==================================================================

    def _init_monitoring(self) -> None:
        logger.info("── Phase 4: Monitoring ───────────────────────────")
        monitor_repo = MonitorRepository(self.db_manager)

        self.prober = Prober(self.settings)
        status_updater = StatusUpdater(
            monitor_repo,
            HistoryRepository(self.db_manager),
            self.settings,
            alert_sink=self.alert_manager,
        )
        self.engine = MonitoringEngine(monitor_repo, self.prober, status_updater, self.settings)
        self.scheduler = Scheduler(
            self.settings,
            engine=self.engine,
            alert_manager=self.alert_manager,
        )

    # ==================================================================
    # FULL STARTUP SEQUENCE
    # ==================================================================

    async def startup(self) -> bool:
        """
        Execute the complete startup sequence.
        Returns False (and logs errors) if any phase fails.
        """
        logger.info("=" * 74)
        logger.info(f"  STARTING {self.settings.app_name} v{self.settings.app_version} …")
        logger.info("=" * 74)

        try:
            await self._init_database()
            await self._init_realtime()
            self._init_alerts()
            self._init_monitoring()
            await self.scheduler.start()
        except ApiWatcherException as e:
            logger.error(f"  ✗ Startup failed: {e.log_format()}")
            return False
        except OSError as e:
            logger.error(f"  ✗ Startup failed: {e}")
            return False

        self._is_running = True

        logger.info("=" * 74)
        logger.info("  ✓ ALL SYSTEMS OPERATIONAL")
        logger.info(
            f"  Sweep every {self.settings.monitoring.sweep_interval}s, "
            f"{self.settings.monitoring.max_concurrent_probes} concurrent probes"
        )
        if self.realtime_server:
            logger.info(
                f"  Realtime: ws://{self.settings.realtime.host}:{self.settings.realtime.port}"
                f"{self.settings.realtime.ws_path}"
            )
        logger.info("=" * 74)
        return True

    # ==================================================================
    # SHUTDOWN SEQUENCE
    # ==================================================================

    async def shutdown(self) -> None:
        """
        Graceful shutdown in reverse order. A failure in one subsystem
        doesn't prevent the others from cleaning up.
        """
        if not self._is_running and self.db_manager is None:
            return

        logger.info("=" * 74)
        logger.info("  SHUTTING DOWN …")
        logger.info("=" * 74)

        self._is_running = False
        self._stop_event.set()

        steps = (
            ("Scheduler", self.scheduler.stop if self.scheduler else None),
            ("Prober", self.prober.close if self.prober else None),
            ("NotificationDispatcher", self.dispatcher.close if self.dispatcher else None),
            ("RealtimeServer", self.realtime_server.stop if self.realtime_server else None),
            ("Database", self.db_manager.close if self.db_manager else None),
        )

        for name, step in steps:
            if step is None:
                continue
            try:
                await step()
                logger.info(f"  ✓ {name} stopped")
            except Exception as e:
                logger.opt(exception=e).error(f"  ✗ {name} stop error: {e}")

        self.db_manager = None

        logger.info("=" * 74)
        logger.info("  ✓ SHUTDOWN COMPLETE")
        logger.info("=" * 74)

    # ==================================================================
    # RUN
    # ==================================================================

    def request_stop(self) -> None:
        self._stop_event.set()

    async def run(self) -> None:
        """Block until a stop is requested."""
        await self._stop_event.wait()


# ============================================================================
# SIGNAL HANDLER SETUP
# ============================================================================

def _install_signal_handlers(app: ApiWatcherApplication) -> None:
    """
    Install SIGTERM / SIGINT handlers so the service shuts down gracefully
    even when killed by the OS.
    """
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, app.request_stop)
        except (NotImplementedError, RuntimeError):
            # Not supported on Windows; KeyboardInterrupt still works
            pass


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

async def main(settings: Optional[Settings] = None) -> int:
    """
    Async main — creates the app, starts it, and runs until shutdown.

    Returns the process exit code.
    """
    settings = settings or get_settings()
    setup_logging(settings)

    app = ApiWatcherApplication(settings)
    _install_signal_handlers(app)

    if not await app.startup():
        logger.error("  ✗ Startup failed — exiting")
        await app.shutdown()
        return 1

    try:
        await app.run()
        logger.info("  ⚡ Stop requested — initiating graceful shutdown…")
    finally:
        await app.shutdown()

    return 0


def cli() -> None:
    """Console script entry point (``api-watcher``)."""
    try:
        exit_code = asyncio.run(main())
    except ApiWatcherException as e:
        logger.error(f"Fatal error: {e.log_format()}")
        exit_code = 1
    except KeyboardInterrupt:
        exit_code = 0
    sys.exit(exit_code)


if __name__ == "__main__":
    cli()
