"""
============================================================================
API WATCHER - DATABASE MANAGER
============================================================================
Async engine and session management plus the repositories the monitoring
pipeline persists through:

    MonitorRepository   ← due selection and monitor state writes
    HistoryRepository   ← append-only probe history
    AlertRepository     ← alert lifecycle and per-owner queries
    UserRepository      ← read-only owner directory

Every SQLAlchemy failure leaves a repository as DatabaseQueryError.
============================================================================
"""

import asyncio
from typing import Optional, AsyncGenerator, Dict, Any, List
from contextlib import asynccontextmanager
from datetime import datetime

from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    AsyncEngine,
    async_sessionmaker
)
from sqlalchemy import event, text, select, update, delete, func, or_
from sqlalchemy.orm import selectinload
from sqlalchemy.exc import SQLAlchemyError

from api_watcher.config.settings import Settings
from api_watcher.config.constants import DEFAULT_ALERT_LIMIT
from api_watcher.database.models import (
    Base, User, Monitor, ProbeResult, Alert, AlertSeverity, AlertType
)
from api_watcher.exceptions import DatabaseConnectionError, DatabaseQueryError
from api_watcher.utils.logger import get_logger


logger = get_logger(__name__)


# ============================================================================
# DATABASE MANAGER CLASS
# ============================================================================

class DatabaseManager:
    """
    Owns the async engine and hands out transactional sessions.
    """

    def __init__(self, settings: Settings):
        """
        Initialize database manager.

        Args:
            settings: Application settings instance
        """
        self.settings = settings
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker] = None
        self._is_initialized = False
        self._lock = asyncio.Lock()

        self.database_url = settings.database.url

        logger.info(f"DatabaseManager initialized with URL: {self._mask_password(self.database_url)}")

    @staticmethod
    def _mask_password(url: str) -> str:
        """
        Mask password in database URL for logging.
        """
        if "://" not in url:
            return url

        protocol, rest = url.split("://", 1)
        if "@" not in rest:
            return url

        credentials, host_part = rest.split("@", 1)
        if ":" in credentials:
            user, _ = credentials.split(":", 1)
            return f"{protocol}://{user}:****@{host_part}"

        return url

    def _get_engine_kwargs(self) -> Dict[str, Any]:
        """Engine options; pool sizing applies to server databases only."""
        db_settings = self.settings.database
        kwargs: Dict[str, Any] = {"echo": db_settings.echo}

        if not db_settings.is_sqlite:
            kwargs.update(
                pool_size=db_settings.pool_size,
                max_overflow=db_settings.max_overflow,
                pool_timeout=db_settings.pool_timeout,
                pool_recycle=db_settings.pool_recycle,
                pool_pre_ping=True,
            )

        return kwargs

    async def initialize(self) -> None:
        """
        Initialize database engine and session factory.
        Creates all tables if they don't exist.

        Raises:
            DatabaseConnectionError: If the engine cannot reach the database
        """
        async with self._lock:
            if self._is_initialized:
                logger.warning("Database already initialized")
                return

            try:
                if self.settings.database.is_sqlite:
                    self.settings.database.sqlite_path.parent.mkdir(parents=True, exist_ok=True)

                self.engine = create_async_engine(
                    self.database_url,
                    **self._get_engine_kwargs()
                )

                self._register_event_listeners()

                self.session_factory = async_sessionmaker(
                    self.engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                    autoflush=False,
                )

                await self.create_tables()

                self._is_initialized = True
                logger.info("Database initialized successfully")

            except SQLAlchemyError as e:
                logger.error(f"Failed to initialize database: {e}")
                raise DatabaseConnectionError(
                    message=f"Failed to initialize database: {e}",
                    host=None if self.settings.database.is_sqlite else self.settings.database.host,
                    database=self.settings.database.name,
                    cause=e
                ) from e

    def _register_event_listeners(self) -> None:
        """Register SQLAlchemy event listeners for connection management."""

        @event.listens_for(self.engine.sync_engine, "connect")
        def receive_connect(dbapi_conn, connection_record):
            logger.debug("New database connection established")

    async def create_tables(self) -> None:
        """Create all database tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")

    @asynccontextmanager
    async def session(self, operation: Optional[str] = None) -> AsyncGenerator[AsyncSession, None]:
        """
        Provide a transactional scope for database operations.

        Commits on success, rolls back on failure.

        Yields:
            AsyncSession instance

        Raises:
            DatabaseQueryError: If a statement or the commit fails
        """
        if not self._is_initialized:
            await self.initialize()

        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Session error{f' during {operation}' if operation else ''}: {e}")
            raise DatabaseQueryError(
                message=str(e),
                operation=operation,
                cause=e
            ) from e
        except BaseException:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def check_connection(self) -> bool:
        """
        Check if database connection is alive.

        Returns:
            True if connection is alive, False otherwise
        """
        try:
            async with self.session("check_connection") as session:
                await session.execute(text("SELECT 1"))
            return True
        except DatabaseQueryError as e:
            logger.error(f"Database connection check failed: {e}")
            return False

    @property
    def is_initialized(self) -> bool:
        return self._is_initialized

    async def close(self) -> None:
        """
        Close database connections and cleanup resources.
        """
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            logger.info("Database connections closed")
        self._is_initialized = False


# ============================================================================
# DATABASE REPOSITORY BASE CLASS
# ============================================================================

class BaseRepository:
    """
    Base repository class for database operations.
    """

    model = None

    def __init__(self, db_manager: DatabaseManager):
        """
        Initialize repository.

        Args:
            db_manager: DatabaseManager instance
        """
        self.db = db_manager
        self.logger = get_logger(self.__class__.__name__)

    async def get_by_id(self, record_id: int):
        """
        Get record by ID.

        Returns:
            Model instance or None
        """
        async with self.db.session(f"get {self.model.__tablename__}") as session:
            return await session.get(self.model, record_id)

    async def create(self, model_instance):
        """
        Insert a new record and return it with generated fields populated.
        """
        async with self.db.session(f"create {self.model.__tablename__}") as session:
            session.add(model_instance)
            await session.flush()
            await session.refresh(model_instance)
            return model_instance


# ============================================================================
# USER REPOSITORY
# ============================================================================

class UserRepository(BaseRepository):
    """Read access to monitor owners and their channel preferences."""

    model = User


# ============================================================================
# MONITOR REPOSITORY
# ============================================================================

class MonitorRepository(BaseRepository):
    """Repository for Monitor model operations."""

    model = Monitor

    async def find_due(self, now: datetime) -> List[Monitor]:
        """
        Get monitors that were never checked or whose interval has elapsed.

        The interval is read from each row as it stands now, so an edited
        check_interval takes effect on the next sweep.
        """
        async with self.db.session("find due monitors") as session:
            result = await session.execute(
                select(Monitor).where(
                    or_(
                        Monitor.last_checked.is_(None),
                        Monitor.last_checked <= now
                    )
                ).order_by(Monitor.id.asc())
            )
            return [monitor for monitor in result.scalars().all() if monitor.is_due(now)]

    async def save(self, monitor: Monitor) -> Monitor:
        """Persist the monitor's mutable state."""
        async with self.db.session("save monitor") as session:
            return await session.merge(monitor)


# ============================================================================
# HISTORY REPOSITORY
# ============================================================================

class HistoryRepository(BaseRepository):
    """Append-only store of probe results."""

    model = ProbeResult

    async def append(self, probe_result: ProbeResult) -> ProbeResult:
        return await self.create(probe_result)

    async def list_for_monitor(self, monitor_id: int, limit: int = 50) -> List[ProbeResult]:
        """Most recent history entries for one monitor, newest first."""
        async with self.db.session("list history") as session:
            result = await session.execute(
                select(ProbeResult)
                .where(ProbeResult.monitor_id == monitor_id)
                .order_by(ProbeResult.timestamp.desc(), ProbeResult.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())


# ============================================================================
# ALERT REPOSITORY
# ============================================================================

class AlertRepository(BaseRepository):
    """Repository for Alert model operations. All queries are owner-scoped."""

    model = Alert

    @staticmethod
    def _with_relations(query):
        return query.options(selectinload(Alert.owner), selectinload(Alert.monitor))

    async def create(self, alert: Alert) -> Alert:
        """Insert an alert and return it enriched with owner and monitor."""
        async with self.db.session("create alert") as session:
            session.add(alert)
            await session.flush()
            result = await session.execute(
                self._with_relations(select(Alert))
                .where(Alert.id == alert.id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one()

    async def get_by_id(self, alert_id: int) -> Optional[Alert]:
        async with self.db.session("get alert") as session:
            result = await session.execute(
                self._with_relations(select(Alert)).where(Alert.id == alert_id)
            )
            return result.scalar_one_or_none()

    async def find_by_owner(
        self,
        owner_id: int,
        resolved: Optional[bool] = None,
        severity: Optional[AlertSeverity] = None,
        alert_type: Optional[AlertType] = None,
        monitor_id: Optional[int] = None,
        limit: int = DEFAULT_ALERT_LIMIT,
    ) -> List[Alert]:
        """Owner's alerts, newest first, with optional filters."""
        query = self._with_relations(select(Alert)).where(Alert.owner_id == owner_id)

        if resolved is not None:
            query = query.where(Alert.resolved == resolved)
        if severity is not None:
            query = query.where(Alert.severity == severity)
        if alert_type is not None:
            query = query.where(Alert.alert_type == alert_type)
        if monitor_id is not None:
            query = query.where(Alert.monitor_id == monitor_id)

        query = query.order_by(Alert.created_at.desc(), Alert.id.desc()).limit(limit)

        async with self.db.session("find alerts by owner") as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def update_read_flag(self, alert_id: int, read: bool = True) -> None:
        async with self.db.session("update alert read flag") as session:
            await session.execute(
                update(Alert)
                .where(Alert.id == alert_id)
                .values(read=read)
                .execution_options(synchronize_session=False)
            )

    async def update_resolved_flag(self, alert_id: int, resolved_at: datetime) -> None:
        async with self.db.session("update alert resolved flag") as session:
            await session.execute(
                update(Alert)
                .where(Alert.id == alert_id)
                .values(resolved=True, resolved_at=resolved_at)
                .execution_options(synchronize_session=False)
            )

    async def bulk_mark_read(self, owner_id: int) -> int:
        """Mark every unread alert of one owner as read; returns rows changed."""
        async with self.db.session("bulk mark alerts read") as session:
            result = await session.execute(
                update(Alert)
                .where(Alert.owner_id == owner_id, Alert.read.is_(False))
                .values(read=True)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount or 0

    async def delete_all_by_owner(self, owner_id: int) -> int:
        """Delete every alert of one owner; returns rows deleted."""
        async with self.db.session("delete alerts by owner") as session:
            result = await session.execute(
                delete(Alert)
                .where(Alert.owner_id == owner_id)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount or 0

    async def count_unread(self, owner_id: int) -> int:
        async with self.db.session("count unread alerts") as session:
            result = await session.execute(
                select(func.count(Alert.id)).where(
                    Alert.owner_id == owner_id,
                    Alert.read.is_(False)
                )
            )
            return result.scalar() or 0

    async def counts_by_resolved(self, owner_id: int) -> Dict[str, int]:
        """Returns {"resolved": n, "unresolved": m} for one owner."""
        async with self.db.session("count alerts by resolved") as session:
            result = await session.execute(
                select(Alert.resolved, func.count(Alert.id))
                .where(Alert.owner_id == owner_id)
                .group_by(Alert.resolved)
            )
            counts = {"resolved": 0, "unresolved": 0}
            for resolved, count in result.all():
                counts["resolved" if resolved else "unresolved"] = count
            return counts


# ============================================================================
# END OF DATABASE MANAGER MODULE
# ============================================================================
