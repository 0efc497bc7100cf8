from __future__ import annotations

import hashlib
import hmac
import json
from typing import List

import httpx
import pytest

from api_watcher.config.constants import SIGNATURE_HEADER
from api_watcher.database import ErrorType, MonitorStatus, ProbeStatus, User
from api_watcher.monitoring.prober import ProbeOutcome
from api_watcher.notifications import (
    EmailTransport,
    NotificationDispatcher,
    WebhookTransport,
    encode_payload,
    sign_body,
)

from conftest import WEBHOOK_SECRET, build_monitor


class ExplodingEmail:
    def __init__(self) -> None:
        self.calls = 0

    async def send_email(self, to: str, subject: str, html: str) -> bool:
        self.calls += 1
        raise OSError("SMTP server unreachable")


class RecordingEmail:
    def __init__(self) -> None:
        self.sent: List[tuple] = []

    async def send_email(self, to: str, subject: str, html: str) -> bool:
        self.sent.append((to, subject, html))
        return True


class RecordingSms:
    def __init__(self) -> None:
        self.sent: List[tuple] = []

    async def send_sms(self, to: str, text: str) -> bool:
        self.sent.append((to, text))
        return True


class RecordingWebhook:
    def __init__(self, accept: bool = True) -> None:
        self.sent: List[tuple] = []
        self.accept = accept

    async def send_webhook(self, url: str, body: bytes, signature: str) -> bool:
        self.sent.append((url, body, signature))
        return self.accept


def _owner(**overrides) -> User:
    fields = {
        "id": 7,
        "name": "Dana",
        "email": "dana@example.com",
        "email_notifications": True,
        "sms_notifications": False,
        "phone_number": None,
        "webhook_notifications": True,
        "webhook_url": "https://hooks.example.com/api-watcher",
    }
    fields.update(overrides)
    return User(**fields)


def _monitor():
    monitor = build_monitor(name="Orders <prod>", url="https://orders.example.com/ping")
    monitor.id = 11
    return monitor


def _down() -> ProbeOutcome:
    return ProbeOutcome(
        status=ProbeStatus.DOWN,
        status_code=503,
        response_time=87,
        message="API returned unexpected status code: 503",
        error_type=ErrorType.SERVER,
    )


@pytest.mark.asyncio
async def test_failing_email_does_not_block_webhook(settings) -> None:
    email = ExplodingEmail()
    webhook = RecordingWebhook()
    dispatcher = NotificationDispatcher(settings, email=email, sms=RecordingSms(), webhook=webhook)

    results = await dispatcher.notify_status_change(_monitor(), _owner(), MonitorStatus.UP, _down())

    assert results == {"email": False, "webhook": True}
    assert email.calls == 1
    assert len(webhook.sent) == 1

    url, body, signature = webhook.sent[0]
    assert url == "https://hooks.example.com/api-watcher"
    expected = hmac.new(WEBHOOK_SECRET.encode(), body, hashlib.sha256).hexdigest()
    assert signature == f"sha256={expected}"

    payload = json.loads(body)
    assert payload["event"] == "status_change"
    assert payload["api"] == {"id": 11, "name": "Orders <prod>", "url": "https://orders.example.com/ping"}
    assert payload["previousStatus"] == "up"
    assert payload["currentStatus"] == "down"
    assert payload["statusCode"] == 503


@pytest.mark.asyncio
async def test_email_and_sms_content(settings) -> None:
    email = RecordingEmail()
    sms = RecordingSms()
    dispatcher = NotificationDispatcher(settings, email=email, sms=sms, webhook=RecordingWebhook())
    owner = _owner(sms_notifications=True, phone_number="+15550100", webhook_notifications=False)

    results = await dispatcher.notify_status_change(_monitor(), owner, MonitorStatus.UP, _down())

    assert results == {"email": True, "sms": True}
    to, subject, html = email.sent[0]
    assert to == "dana@example.com"
    assert subject == "[API Watcher] Orders <prod> is DOWN"
    assert "Orders &lt;prod&gt;" in html
    assert "<strong>UP</strong> to <strong>DOWN</strong>" in html

    phone, text = sms.sent[0]
    assert phone == "+15550100"
    assert text.startswith("API Watcher: Orders <prod> is DOWN. Status code: 503.")


@pytest.mark.asyncio
async def test_performance_notification_payload(settings) -> None:
    webhook = RecordingWebhook()
    email = RecordingEmail()
    dispatcher = NotificationDispatcher(settings, email=email, webhook=webhook)
    outcome = ProbeOutcome(status=ProbeStatus.UP, status_code=200, response_time=2400)

    await dispatcher.notify_performance_issue(_monitor(), _owner(), outcome)

    assert email.sent[0][1] == "[API Watcher] Orders <prod> - Performance Issue Detected"
    payload = json.loads(webhook.sent[0][1])
    assert payload["event"] == "performance_issue"
    assert payload["responseTime"] == 2400
    assert payload["expectedResponseTime"] == 1000
    assert payload["status"] == "up"


@pytest.mark.asyncio
async def test_no_enabled_channels(settings) -> None:
    dispatcher = NotificationDispatcher(
        settings, email=RecordingEmail(), sms=RecordingSms(), webhook=RecordingWebhook()
    )
    owner = _owner(email_notifications=False, webhook_notifications=False)

    assert await dispatcher.notify_status_change(_monitor(), owner, MonitorStatus.UP, _down()) == {}


@pytest.mark.asyncio
async def test_invalid_webhook_url_is_not_called(settings) -> None:
    webhook = RecordingWebhook()
    dispatcher = NotificationDispatcher(settings, email=RecordingEmail(), webhook=webhook)
    owner = _owner(webhook_url="ftp://hooks.example.com/drop")

    results = await dispatcher.notify_status_change(_monitor(), owner, MonitorStatus.UP, _down())

    assert results == {"email": True, "webhook": False}
    assert webhook.sent == []


@pytest.mark.asyncio
async def test_rejected_webhook_counts_as_failure(settings) -> None:
    dispatcher = NotificationDispatcher(
        settings, email=RecordingEmail(), webhook=RecordingWebhook(accept=False)
    )

    results = await dispatcher.notify_status_change(_monitor(), _owner(), MonitorStatus.UP, _down())

    assert results == {"email": True, "webhook": False}


def test_payload_encoding_is_canonical() -> None:
    assert encode_payload({"b": 1, "a": [1, 2]}) == b'{"a":[1,2],"b":1}'
    body = encode_payload({"event": "status_change"})
    assert sign_body(body, "k") == "sha256=" + hmac.new(b"k", body, hashlib.sha256).hexdigest()


# ----- TRANSPORTS -----

@pytest.mark.asyncio
async def test_webhook_transport_posts_signed_body(settings) -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204)

    transport = WebhookTransport(settings, transport=httpx.MockTransport(handler))
    delivered = await transport.send_webhook("https://hooks.example.com/x", b'{"a":1}', "sha256=abc")
    await transport.close()

    assert delivered is True
    assert seen[0].method == "POST"
    assert seen[0].content == b'{"a":1}'
    assert seen[0].headers[SIGNATURE_HEADER] == "sha256=abc"
    assert seen[0].headers["Content-Type"] == "application/json"


@pytest.mark.asyncio
async def test_webhook_transport_reports_rejection(settings) -> None:
    transport = WebhookTransport(settings, transport=httpx.MockTransport(lambda r: httpx.Response(500)))
    assert await transport.send_webhook("https://hooks.example.com/x", b"{}", "sha256=0") is False
    await transport.close()


@pytest.mark.asyncio
async def test_unconfigured_email_transport_skips(settings) -> None:
    transport = EmailTransport(settings)
    assert transport.configured is False
    assert await transport.send_email("dana@example.com", "s", "<p>x</p>") is False
