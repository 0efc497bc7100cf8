"""
============================================================================
API WATCHER - NOTIFICATION DISPATCHER
============================================================================
Fans a status change or performance issue out to every channel the
owner enabled (email, SMS, webhook).

Each channel builds its own payload and is attempted independently: an
exception in one channel is logged and recorded as a failed attempt,
and never prevents the others. There are no retries.
============================================================================
"""

import asyncio
import hashlib
import hmac
import json
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from api_watcher.config.constants import WebhookEvent
from api_watcher.config.settings import Settings
from api_watcher.database.models import Monitor, MonitorStatus, User
from api_watcher.monitoring.prober import ProbeOutcome
from api_watcher.notifications.transports import EmailTransport, SmsTransport, WebhookTransport
from api_watcher.utils.helpers import StringHelper, TimeHelper
from api_watcher.utils.logger import get_logger
from api_watcher.utils.validators import TargetValidator


logger = get_logger("NotificationDispatcher")


class EmailSender(Protocol):
    async def send_email(self, to: str, subject: str, html: str) -> bool: ...


class SmsSender(Protocol):
    async def send_sms(self, to: str, text: str) -> bool: ...


class WebhookSender(Protocol):
    async def send_webhook(self, url: str, body: bytes, signature: str) -> bool: ...


# ============================================================================
# WEBHOOK ENCODING
# ============================================================================

def encode_payload(payload: Dict[str, Any]) -> bytes:
    """Serialise a webhook payload to the exact bytes that get signed."""
    return json.dumps(payload, separators=(",", ":"), sort_keys=True, default=str).encode("utf-8")


def sign_body(body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


# ============================================================================
# DISPATCHER
# ============================================================================

class NotificationDispatcher:
    """
    Delivers notifications through injected transports.
    """

    def __init__(
        self,
        settings: Settings,
        email: Optional[EmailSender] = None,
        sms: Optional[SmsSender] = None,
        webhook: Optional[WebhookSender] = None,
    ):
        self.settings = settings
        self.email = email if email is not None else EmailTransport(settings)
        self.sms = sms if sms is not None else SmsTransport()
        self.webhook = webhook if webhook is not None else WebhookTransport(settings)
        self._secret = settings.notifications.webhook_secret.get_secret_value()
        self._prefix = settings.notifications.subject_prefix

    async def close(self) -> None:
        close = getattr(self.webhook, "close", None)
        if close is not None:
            await close()

    # ------------------------------------------------------------------
    # PUBLIC API
    # ------------------------------------------------------------------

    async def notify_status_change(
        self,
        monitor: Monitor,
        owner: User,
        previous_status: MonitorStatus,
        outcome: ProbeOutcome,
    ) -> Dict[str, bool]:
        """
        Send a status-change notification on every enabled channel.

        Returns
        -------
        dict
            channel name → whether that attempt succeeded.
        """
        current = outcome.status.value.upper()
        previous = previous_status.value.upper()
        when = TimeHelper.format_datetime(outcome.checked_at) + " UTC"
        name = StringHelper.escape_html(monitor.name)

        subject = f"{self._prefix} {monitor.name} is {current}"
        html = (
            "<h2>API Status Change</h2>"
            f"<p>Your API <strong>{name}</strong> status has changed from "
            f"<strong>{previous}</strong> to <strong>{current}</strong>.</p>"
            f"<p><strong>URL:</strong> {StringHelper.escape_html(monitor.url)}</p>"
            f"<p><strong>Status Code:</strong> {outcome.status_code}</p>"
            f"<p><strong>Response Time:</strong> {outcome.response_time}ms</p>"
            f"<p><strong>Message:</strong> {StringHelper.escape_html(outcome.message)}</p>"
            f"<p><strong>Time:</strong> {when}</p>"
        )
        sms_text = (
            f"API Watcher: {monitor.name} is {current}. "
            f"Status code: {outcome.status_code}. Time: {when}"
        )
        payload = {
            "event": WebhookEvent.STATUS_CHANGE.value,
            "api": monitor.summary(),
            "previousStatus": previous_status.value,
            "currentStatus": outcome.status.value,
            "statusCode": outcome.status_code,
            "responseTime": outcome.response_time,
            "message": outcome.message,
            "timestamp": outcome.checked_at.isoformat(),
        }

        return await self._dispatch(monitor, owner, subject, html, sms_text, payload)

    async def notify_performance_issue(
        self,
        monitor: Monitor,
        owner: User,
        outcome: ProbeOutcome,
    ) -> Dict[str, bool]:
        """Send a performance-issue notification on every enabled channel."""
        when = TimeHelper.format_datetime(outcome.checked_at) + " UTC"
        name = StringHelper.escape_html(monitor.name)

        subject = f"{self._prefix} {monitor.name} - Performance Issue Detected"
        html = (
            "<h2>API Performance Issue</h2>"
            f"<p>Your API <strong>{name}</strong> is responding slower than expected.</p>"
            f"<p><strong>URL:</strong> {StringHelper.escape_html(monitor.url)}</p>"
            f"<p><strong>Status:</strong> {outcome.status.value.upper()}</p>"
            f"<p><strong>Response Time:</strong> {outcome.response_time}ms "
            f"(Expected: {monitor.expected_response_time}ms)</p>"
            f"<p><strong>Time:</strong> {when}</p>"
        )
        sms_text = (
            f"API Watcher: {monitor.name} performance issue. "
            f"Response time: {outcome.response_time}ms "
            f"(Expected: {monitor.expected_response_time}ms). Time: {when}"
        )
        payload = {
            "event": WebhookEvent.PERFORMANCE_ISSUE.value,
            "api": monitor.summary(),
            "status": outcome.status.value,
            "responseTime": outcome.response_time,
            "expectedResponseTime": monitor.expected_response_time,
            "timestamp": outcome.checked_at.isoformat(),
        }

        return await self._dispatch(monitor, owner, subject, html, sms_text, payload)

    # ------------------------------------------------------------------
    # CHANNEL FAN-OUT
    # ------------------------------------------------------------------

    async def _dispatch(
        self,
        monitor: Monitor,
        owner: User,
        subject: str,
        html: str,
        sms_text: str,
        payload: Dict[str, Any],
    ) -> Dict[str, bool]:
        attempts: Dict[str, Callable[[], Awaitable[bool]]] = {}

        if owner.wants_email:
            attempts["email"] = lambda: self.email.send_email(owner.email, subject, html)
        if owner.wants_sms:
            attempts["sms"] = lambda: self.sms.send_sms(owner.phone_number, sms_text)
        if owner.wants_webhook:
            body = encode_payload(payload)
            signature = sign_body(body, self._secret)
            attempts["webhook"] = lambda: self.webhook.send_webhook(owner.webhook_url, body, signature)

        rejected = self._invalid_targets(owner, attempts)
        for channel in rejected:
            del attempts[channel]

        if not attempts and not rejected:
            logger.debug(f"[Dispatcher] No channels enabled for owner {owner.id}")
            return {}

        results = await asyncio.gather(
            *(self._attempt(channel, monitor, send) for channel, send in attempts.items())
        )
        outcome = dict(zip(attempts, results))
        outcome.update({channel: False for channel in rejected})
        return outcome

    @staticmethod
    def _invalid_targets(owner: User, attempts: Dict[str, Callable[[], Awaitable[bool]]]) -> List[str]:
        """Channels whose destination would be rejected before sending."""
        rejected = []
        if "email" in attempts and not TargetValidator.is_valid_email(owner.email):
            rejected.append("email")
        if "webhook" in attempts and not TargetValidator.is_valid_url(owner.webhook_url):
            rejected.append("webhook")
        for channel in rejected:
            logger.warning(f"[Dispatcher] Invalid {channel} target for owner {owner.id}, not sending")
        return rejected

    @staticmethod
    async def _attempt(
        channel: str,
        monitor: Monitor,
        send: Callable[[], Awaitable[bool]],
    ) -> bool:
        try:
            delivered = bool(await send())
        except Exception as e:
            logger.opt(exception=e).error(
                f"[Dispatcher] {channel} notification for monitor {monitor.id} failed: {e}"
            )
            return False

        if not delivered:
            logger.warning(f"[Dispatcher] {channel} notification for monitor {monitor.id} was not delivered")
        return delivered
