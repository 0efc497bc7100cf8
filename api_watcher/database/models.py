"""
============================================================================
API WATCHER - DATABASE MODELS
============================================================================
SQLAlchemy ORM models for the monitoring and alerting pipeline:

    User          ← owner directory (read-only to the pipeline)
    Monitor       ← an HTTP target under periodic observation
    ProbeResult   ← immutable history entry, one per probe
    Alert         ← user-visible record of a transition or slow response

All timestamps are naive UTC.
============================================================================
"""

import enum
from datetime import datetime, timedelta
from typing import Optional, Dict, Any

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text,
    Float, JSON, Enum, ForeignKey, Index, func, inspect
)
from sqlalchemy.orm import relationship, declarative_base

from api_watcher.config.constants import UPTIME_UP, UPTIME_DOWN
from api_watcher.utils.helpers import TimeHelper


# ============================================================================
# BASE MODEL CONFIGURATION
# ============================================================================

Base = declarative_base()


class TimestampMixin:
    """
    Mixin to add created_at and updated_at timestamps to models.
    """
    created_at = Column(
        DateTime,
        nullable=False,
        default=TimeHelper.get_utc_now,
        server_default=func.now(),
        index=True
    )
    updated_at = Column(
        DateTime,
        nullable=False,
        default=TimeHelper.get_utc_now,
        onupdate=TimeHelper.get_utc_now,
        server_default=func.now()
    )


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ============================================================================
# ENUMERATIONS
# ============================================================================

class MonitorStatus(str, enum.Enum):
    """Current status of a monitor"""
    UP = "up"
    DOWN = "down"
    UNKNOWN = "unknown"


class ProbeStatus(str, enum.Enum):
    """Outcome of a single probe"""
    UP = "up"
    DOWN = "down"


class ErrorType(str, enum.Enum):
    """Classification of what went wrong during a probe"""
    NONE = "none"
    TIMEOUT = "timeout"
    CONNECTION = "connection"
    SERVER = "server"
    CLIENT = "client"
    UNKNOWN = "unknown"


class HTTPMethod(str, enum.Enum):
    """HTTP methods for monitoring"""
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"


class AlertType(str, enum.Enum):
    """Alert type enumeration"""
    DOWNTIME = "Downtime"
    HIGH_LATENCY = "HighLatency"
    ERROR_RATE = "ErrorRate"
    SSL_ISSUE = "SSLIssue"
    OTHER = "Other"


class AlertSeverity(str, enum.Enum):
    """Alert severity enumeration"""
    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    INFO = "Info"


# ============================================================================
# USER MODEL
# ============================================================================

class User(Base, TimestampMixin):
    """
    Monitor owner together with their notification channel preferences.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)

    name = Column(String(255), nullable=True)
    email = Column(String(320), nullable=False, unique=True, index=True)

    # Channel preferences
    email_notifications = Column(Boolean, default=True, nullable=False)
    sms_notifications = Column(Boolean, default=False, nullable=False)
    phone_number = Column(String(32), nullable=True)
    webhook_notifications = Column(Boolean, default=False, nullable=False)
    webhook_url = Column(Text, nullable=True)

    # Relationships
    monitors = relationship("Monitor", back_populates="owner", passive_deletes=True)
    alerts = relationship("Alert", back_populates="owner", passive_deletes=True)

    @property
    def wants_email(self) -> bool:
        return bool(self.email_notifications and self.email)

    @property
    def wants_sms(self) -> bool:
        return bool(self.sms_notifications and self.phone_number)

    @property
    def wants_webhook(self) -> bool:
        return bool(self.webhook_notifications and self.webhook_url)

    def to_dict(self) -> Dict[str, Any]:
        """Public projection used inside realtime payloads"""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
        }


# ============================================================================
# MONITOR MODEL
# ============================================================================

class Monitor(Base, TimestampMixin):
    """
    An externally-owned HTTP endpoint probed on a fixed interval.
    """
    __tablename__ = "monitors"

    id = Column(Integer, primary_key=True, autoincrement=True)

    owner_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # Target
    name = Column(String(100), nullable=False)
    url = Column(Text, nullable=False)
    method = Column(Enum(HTTPMethod), nullable=False, default=HTTPMethod.GET)
    headers = Column(JSON, default=dict, nullable=False)
    body = Column(Text, default="", nullable=False)
    tags = Column(JSON, default=list, nullable=False)

    # Expectations
    expected_status = Column(Integer, default=200, nullable=False)
    expected_response_time = Column(Integer, default=1000, nullable=False)  # ms
    check_interval = Column(Integer, default=5, nullable=False)  # minutes

    # Notification toggles
    notify_on_down = Column(Boolean, default=True, nullable=False)
    notify_on_up = Column(Boolean, default=True, nullable=False)
    notify_on_performance_issue = Column(Boolean, default=True, nullable=False)

    # Monitoring state
    status = Column(
        Enum(MonitorStatus),
        nullable=False,
        default=MonitorStatus.UNKNOWN,
        index=True
    )
    last_checked = Column(DateTime, nullable=True)
    next_check = Column(DateTime, nullable=True, index=True)
    response_time = Column(Integer, nullable=True)  # last latency, ms
    uptime = Column(Float, nullable=True)  # percentage, None until first check

    # Relationships
    owner = relationship("User", back_populates="monitors")
    history = relationship(
        "ProbeResult",
        back_populates="monitor",
        cascade="all, delete-orphan",
        passive_deletes=True
    )
    alerts = relationship(
        "Alert",
        back_populates="monitor",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    __table_args__ = (
        Index("idx_monitor_owner_status", "owner_id", "status"),
    )

    @property
    def timeout_seconds(self) -> float:
        """Probe timeout: twice the expected response time."""
        return (self.expected_response_time * 2) / 1000.0

    def is_due(self, now: datetime) -> bool:
        """A monitor is due when never checked or its interval has elapsed."""
        if self.last_checked is None:
            return True
        return now - self.last_checked >= timedelta(minutes=self.check_interval)

    def record_check(
        self,
        status: ProbeStatus,
        response_time: int,
        checked_at: datetime,
        weight: float = 0.1,
    ) -> MonitorStatus:
        """
        Apply a probe outcome to the monitor state.

        Returns the status the monitor had before this check.
        """
        previous_status = self.status or MonitorStatus.UNKNOWN

        self.status = MonitorStatus(status.value)
        self.last_checked = checked_at
        self.response_time = response_time
        self.next_check = checked_at + timedelta(minutes=self.check_interval)

        observed = UPTIME_UP if status == ProbeStatus.UP else UPTIME_DOWN
        if self.uptime is None:
            self.uptime = observed
        else:
            self.uptime = self.uptime * (1 - weight) + observed * weight
        # guard against float drift at the edges
        self.uptime = min(UPTIME_UP, max(UPTIME_DOWN, self.uptime))

        return previous_status

    def summary(self) -> Dict[str, Any]:
        """Short projection embedded in alert payloads"""
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert monitor to dictionary"""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "name": self.name,
            "url": self.url,
            "method": self.method.value if self.method else None,
            "expected_status": self.expected_status,
            "expected_response_time": self.expected_response_time,
            "check_interval": self.check_interval,
            "status": self.status.value if self.status else None,
            "last_checked": _isoformat(self.last_checked),
            "response_time": self.response_time,
            "uptime": round(self.uptime, 2) if self.uptime is not None else None,
            "tags": list(self.tags or []),
        }


# ============================================================================
# PROBE RESULT MODEL
# ============================================================================

class ProbeResult(Base):
    """
    Immutable history entry written once per probe.
    """
    __tablename__ = "probe_results"

    id = Column(Integer, primary_key=True, autoincrement=True)

    monitor_id = Column(
        Integer,
        ForeignKey("monitors.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    status = Column(Enum(ProbeStatus), nullable=False)
    status_code = Column(Integer, default=0, nullable=False)
    response_time = Column(Integer, nullable=False)  # ms
    message = Column(Text, default="", nullable=False)
    timestamp = Column(DateTime, nullable=False, default=TimeHelper.get_utc_now)
    request_size = Column(Integer, default=0, nullable=False)
    response_size = Column(Integer, default=0, nullable=False)
    error_type = Column(Enum(ErrorType), nullable=False, default=ErrorType.NONE)

    monitor = relationship("Monitor", back_populates="history")

    __table_args__ = (
        Index("idx_probe_monitor_time", "monitor_id", "timestamp"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "monitor_id": self.monitor_id,
            "status": self.status.value,
            "status_code": self.status_code,
            "response_time": self.response_time,
            "message": self.message,
            "timestamp": _isoformat(self.timestamp),
            "error_type": self.error_type.value,
        }


# ============================================================================
# ALERT MODEL
# ============================================================================

class Alert(Base, TimestampMixin):
    """
    User-visible alert with read / resolved lifecycle.
    """
    __tablename__ = "alerts"

    id = Column(Integer, primary_key=True, autoincrement=True)

    owner_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    monitor_id = Column(
        Integer,
        ForeignKey("monitors.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    alert_type = Column(Enum(AlertType), nullable=False, index=True)
    severity = Column(Enum(AlertSeverity), nullable=False, index=True)
    message = Column(Text, nullable=False)

    read = Column(Boolean, default=False, nullable=False, index=True)
    resolved = Column(Boolean, default=False, nullable=False, index=True)
    resolved_at = Column(DateTime, nullable=True)

    details = Column(JSON, default=dict, nullable=False)

    # Relationships
    owner = relationship("User", back_populates="alerts")
    monitor = relationship("Monitor", back_populates="alerts")

    __table_args__ = (
        Index("idx_alert_owner_read", "owner_id", "read"),
    )

    def mark_as_read(self):
        """Mark alert as read"""
        self.read = True

    def resolve(self, when: Optional[datetime] = None):
        """Mark alert as resolved"""
        self.resolved = True
        self.resolved_at = when or TimeHelper.get_utc_now()

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert alert to dictionary. Owner and monitor summaries are
        embedded only when those relationships were loaded.
        """
        data = {
            "id": self.id,
            "user": self.owner_id,
            "api": self.monitor_id,
            "alertType": self.alert_type.value,
            "severity": self.severity.value,
            "message": self.message,
            "read": self.read,
            "resolved": self.resolved,
            "resolvedAt": _isoformat(self.resolved_at),
            "details": dict(self.details or {}),
            "createdAt": _isoformat(self.created_at),
        }

        unloaded = inspect(self).unloaded
        if "owner" not in unloaded and self.owner is not None:
            data["user"] = self.owner.to_dict()
        if "monitor" not in unloaded and self.monitor is not None:
            data["api"] = self.monitor.summary()
        return data
