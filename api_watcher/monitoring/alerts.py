"""
============================================================================
API WATCHER - ALERT MANAGER
============================================================================
Turns transitions and performance issues into Alert records, publishes
them to the owner's live connections and hands them to the notification
dispatcher. Also owns the read / resolve / mark-all-read / clear-all
lifecycle.

Rules
-----
up → down              Downtime / Critical
down → up              Other / Info (recovery)
slow but up            HighLatency / Medium, on every qualifying check
                       unless a cooldown is configured
down → down, up → up   nothing

Creation order is persist → publish → notify. Publishing and
notification are best-effort: their failures are logged and never undo
the persisted alert. A monitor without a resolvable owner is skipped
with a warning.

Cooldown Logic
--------------
With MONITOR_HIGH_LATENCY_COOLDOWN > 0, a HighLatency alert for a
monitor suppresses further HighLatency alerts for that monitor until the
cooldown has passed. Transition alerts are never subject to cooldown.
============================================================================
"""

import time
from typing import Optional, Dict, List, Any, Awaitable, TYPE_CHECKING

from api_watcher.config.constants import DEFAULT_ALERT_LIMIT, RealtimeEvent
from api_watcher.config.settings import Settings
from api_watcher.database.manager import AlertRepository, UserRepository
from api_watcher.database.models import (
    Alert, AlertType, AlertSeverity, Monitor, MonitorStatus, User
)
from api_watcher.exceptions import AlertNotFoundError, AlertOwnershipError, MissingOwnerError
from api_watcher.monitoring.prober import ProbeOutcome
from api_watcher.realtime.rooms import normalize_user_id
from api_watcher.utils.helpers import TimeHelper
from api_watcher.utils.logger import get_logger

if TYPE_CHECKING:
    from api_watcher.notifications.dispatcher import NotificationDispatcher
    from api_watcher.realtime.publisher import RealtimePublisher


logger = get_logger("AlertManager")


class AlertManager:
    """
    Alert engine and alert lifecycle service.

    Parameters
    ----------
    alert_repo : AlertRepository
    user_repo : UserRepository
        Read-only owner directory.
    settings : Settings
    publisher : RealtimePublisher | None
        When None, alerts are persisted but not pushed to clients.
    dispatcher : NotificationDispatcher | None
        When None, no outbound notifications are sent.
    """

    def __init__(
        self,
        alert_repo: AlertRepository,
        user_repo: UserRepository,
        settings: Settings,
        publisher: Optional["RealtimePublisher"] = None,
        dispatcher: Optional["NotificationDispatcher"] = None,
    ):
        self.settings = settings
        self.alert_repo = alert_repo
        self.user_repo = user_repo
        self.publisher = publisher
        self.dispatcher = dispatcher

        # --- cooldown tracking: monitor_id → timestamp of last HighLatency alert ---
        self._cooldown_map: Dict[int, float] = {}
        self._cooldown_seconds = settings.monitoring.high_latency_cooldown

        self._created: int = 0
        self._skipped_no_owner: int = 0

        logger.info(f"AlertManager created — high_latency_cooldown={self._cooldown_seconds}s")

    # ------------------------------------------------------------------
    # ALERT SINK
    # ------------------------------------------------------------------

    async def on_status_change(
        self,
        monitor: Monitor,
        previous_status: MonitorStatus,
        outcome: ProbeOutcome,
    ) -> Optional[Alert]:
        """Handle a genuine transition reported by the StatusUpdater."""
        new_status = MonitorStatus(outcome.status.value)

        if new_status == MonitorStatus.DOWN:
            logger.warning(f"[AlertManager] 🔴 DOWNTIME DETECTED — monitor {monitor.id} ({monitor.url})")
        else:
            logger.info(f"[AlertManager] 🟢 RECOVERY DETECTED — monitor {monitor.id} ({monitor.url})")

        await self._broadcast_status_change(monitor, previous_status, new_status, outcome)

        owner = await self._resolve_owner(monitor)
        if owner is None:
            return None

        if new_status == MonitorStatus.DOWN:
            alert_type, severity = AlertType.DOWNTIME, AlertSeverity.CRITICAL
            message = f"{monitor.name} is down: {outcome.message}"
        else:
            alert_type, severity = AlertType.OTHER, AlertSeverity.INFO
            message = f"{monitor.name} has recovered and is back up"

        alert = await self.create_alert(
            owner_id=owner.id,
            monitor_id=monitor.id,
            alert_type=alert_type,
            severity=severity,
            message=message,
            details={
                "previousStatus": previous_status.value,
                "currentStatus": new_status.value,
                "statusCode": outcome.status_code,
                "responseTime": outcome.response_time,
                "message": outcome.message,
                "errorType": outcome.error_type.value,
                "url": monitor.url,
            },
        )

        notify = monitor.notify_on_up if new_status == MonitorStatus.UP else monitor.notify_on_down
        if notify and self.dispatcher is not None:
            await self.dispatcher.notify_status_change(monitor, owner, previous_status, outcome)

        return alert

    async def on_performance_issue(self, monitor: Monitor, outcome: ProbeOutcome) -> Optional[Alert]:
        """Handle an up-but-slow check."""
        if self._in_cooldown(monitor.id):
            logger.debug(f"[AlertManager] HighLatency alert suppressed by cooldown — monitor={monitor.id}")
            return None

        logger.warning(
            f"[AlertManager] ⚠️  SLOW RESPONSE — monitor {monitor.id} "
            f"({outcome.response_time}ms > {monitor.expected_response_time}ms)"
        )

        owner = await self._resolve_owner(monitor)
        if owner is None:
            return None

        alert = await self.create_alert(
            owner_id=owner.id,
            monitor_id=monitor.id,
            alert_type=AlertType.HIGH_LATENCY,
            severity=AlertSeverity.MEDIUM,
            message=(
                f"{monitor.name} responded in {outcome.response_time}ms, "
                f"exceeding the expected {monitor.expected_response_time}ms"
            ),
            details={
                "responseTime": outcome.response_time,
                "expectedResponseTime": monitor.expected_response_time,
                "statusCode": outcome.status_code,
                "url": monitor.url,
            },
        )
        self._start_cooldown(monitor.id)

        if self.dispatcher is not None:
            await self.dispatcher.notify_performance_issue(monitor, owner, outcome)

        return alert

    # ------------------------------------------------------------------
    # CREATION
    # ------------------------------------------------------------------

    async def create_alert(
        self,
        owner_id: int,
        monitor_id: int,
        alert_type: AlertType,
        severity: AlertSeverity,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> Alert:
        """
        Persist an alert, then publish it. Persistence errors propagate;
        publish errors do not.
        """
        alert = await self.alert_repo.create(
            Alert(
                owner_id=owner_id,
                monitor_id=monitor_id,
                alert_type=alert_type,
                severity=severity,
                message=message,
                details=details or {},
            )
        )
        self._created += 1

        logger.info(
            f"[AlertManager] Alert persisted — id={alert.id}, "
            f"type={alert_type.value}, severity={severity.value}, user={owner_id}"
        )

        await self._publish_new_alert(alert)
        return alert

    async def _publish_new_alert(self, alert: Alert) -> None:
        if self.publisher is None:
            return
        try:
            data = alert.to_dict()
            await self.publisher.emit_new_alert(alert.owner_id, data)
            if self.settings.realtime.global_fallback:
                await self.publisher.emit_global(RealtimeEvent.GLOBAL_ALERT, data)
        except Exception as e:
            logger.opt(exception=e).error(f"[AlertManager] Failed to publish alert {alert.id}: {e}")

    async def _broadcast_status_change(
        self,
        monitor: Monitor,
        previous_status: MonitorStatus,
        new_status: MonitorStatus,
        outcome: ProbeOutcome,
    ) -> None:
        if self.publisher is None:
            return
        try:
            await self.publisher.emit_global(
                RealtimeEvent.STATUS_CHANGE,
                {
                    "apiId": monitor.id,
                    "name": monitor.name,
                    "oldStatus": previous_status.value,
                    "newStatus": new_status.value,
                    "timestamp": outcome.checked_at.isoformat(),
                },
            )
        except Exception as e:
            logger.opt(exception=e).error(f"[AlertManager] Failed to broadcast status change: {e}")

    async def _resolve_owner(self, monitor: Monitor) -> Optional[User]:
        owner_id = normalize_user_id(monitor.owner_id)
        owner = await self.user_repo.get_by_id(owner_id) if owner_id is not None else None

        if owner is None:
            self._skipped_no_owner += 1
            logger.warning(f"[AlertManager] {MissingOwnerError(monitor.id).log_format()}")
        return owner

    # ------------------------------------------------------------------
    # COOLDOWN LOGIC
    # ------------------------------------------------------------------

    def _in_cooldown(self, monitor_id: int) -> bool:
        """Returns True while a HighLatency alert for this monitor is suppressed."""
        if self._cooldown_seconds <= 0:
            return False

        last_alert_time = self._cooldown_map.get(monitor_id, 0)
        return time.time() - last_alert_time < self._cooldown_seconds

    def _start_cooldown(self, monitor_id: int) -> None:
        if self._cooldown_seconds > 0:
            self._cooldown_map[monitor_id] = time.time()

    async def purge_cooldowns(self) -> int:
        """Drop cooldown entries that have already expired."""
        cutoff = time.time() - self._cooldown_seconds
        stale = [monitor_id for monitor_id, ts in self._cooldown_map.items() if ts < cutoff]
        for monitor_id in stale:
            del self._cooldown_map[monitor_id]
        if stale:
            logger.debug(f"[AlertManager] Purged {len(stale)} expired cooldown entries")
        return len(stale)

    # ------------------------------------------------------------------
    # LIFECYCLE (owner-scoped)
    # ------------------------------------------------------------------

    async def get_alert(self, user: Any, alert_id: int) -> Alert:
        """
        Fetch one alert belonging to *user*.

        Raises
        ------
        AlertNotFoundError, AlertOwnershipError
        """
        owner_id = normalize_user_id(user)
        alert = await self.alert_repo.get_by_id(alert_id)
        if alert is None:
            raise AlertNotFoundError(alert_id)
        if owner_id is None or alert.owner_id != owner_id:
            raise AlertOwnershipError(alert_id, user)
        return alert

    async def mark_as_read(self, user: Any, alert_id: int) -> Alert:
        """Idempotently mark one alert as read."""
        alert = await self.get_alert(user, alert_id)

        if not alert.read:
            await self.alert_repo.update_read_flag(alert.id, True)
            alert.mark_as_read()

        if self.publisher is not None:
            await self._safe_emit("alert_read", self.publisher.emit_alert_read(alert.owner_id, alert.id))
        return alert

    async def resolve(self, user: Any, alert_id: int) -> Alert:
        """Resolve one alert. Resolving an already-resolved alert is a no-op."""
        alert = await self.get_alert(user, alert_id)

        if alert.resolved:
            logger.debug(f"[AlertManager] Alert {alert.id} already resolved")
            return alert

        resolved_at = TimeHelper.get_utc_now()
        await self.alert_repo.update_resolved_flag(alert.id, resolved_at)
        alert.resolve(resolved_at)

        if self.publisher is not None:
            await self._safe_emit(
                "alert_resolved",
                self.publisher.emit_resolved(alert.owner_id, alert.id, alert.monitor_id),
            )
        return alert

    async def mark_all_read(self, user: Any) -> int:
        """Mark all of the owner's unread alerts as read; returns how many changed."""
        owner_id = normalize_user_id(user)
        if owner_id is None:
            return 0

        modified = await self.alert_repo.bulk_mark_read(owner_id)
        logger.info(f"[AlertManager] Marked {modified} alerts read for user {owner_id}")

        if self.publisher is not None:
            await self._safe_emit("mark_all_read", self.publisher.emit_mark_all_read(owner_id, modified))
        return modified

    async def clear_all(self, user: Any) -> int:
        """Delete all of the owner's alerts; returns how many were deleted."""
        owner_id = normalize_user_id(user)
        if owner_id is None:
            return 0

        deleted = await self.alert_repo.delete_all_by_owner(owner_id)
        logger.info(f"[AlertManager] Cleared {deleted} alerts for user {owner_id}")

        if self.publisher is not None:
            await self._safe_emit("clear_all", self.publisher.emit_cleared(owner_id, deleted))
        return deleted

    async def get_unread_count(self, user: Any) -> int:
        owner_id = normalize_user_id(user)
        if owner_id is None:
            return 0
        return await self.alert_repo.count_unread(owner_id)

    async def get_user_alerts(
        self,
        user: Any,
        resolved: Optional[bool] = None,
        severity: Optional[AlertSeverity] = None,
        alert_type: Optional[AlertType] = None,
        monitor_id: Optional[int] = None,
        limit: int = DEFAULT_ALERT_LIMIT,
    ) -> List[Alert]:
        owner_id = normalize_user_id(user)
        if owner_id is None:
            return []
        return await self.alert_repo.find_by_owner(
            owner_id,
            resolved=resolved,
            severity=severity,
            alert_type=alert_type,
            monitor_id=monitor_id,
            limit=limit,
        )

    async def get_alert_counts(self, user: Any) -> Dict[str, int]:
        owner_id = normalize_user_id(user)
        if owner_id is None:
            return {"resolved": 0, "unresolved": 0}
        return await self.alert_repo.counts_by_resolved(owner_id)

    # ------------------------------------------------------------------
    # PUBLISH HELPERS
    # ------------------------------------------------------------------

    @staticmethod
    async def _safe_emit(label: str, call: Awaitable[Any]) -> None:
        try:
            await call
        except Exception as e:
            logger.opt(exception=e).error(f"[AlertManager] Realtime {label} publish failed: {e}")

    # ------------------------------------------------------------------
    # DIAGNOSTIC
    # ------------------------------------------------------------------

    def get_stats(self) -> Dict[str, Any]:
        return {
            "alerts_created": self._created,
            "skipped_no_owner": self._skipped_no_owner,
            "cooldown_entries": len(self._cooldown_map),
        }
