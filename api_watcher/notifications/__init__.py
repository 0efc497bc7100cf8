"""
Notifications Package for API Watcher

Outbound channel transports and the dispatcher that fans alerts out
to an owner's enabled channels.
"""

from api_watcher.notifications.transports import (
    EmailTransport,
    SmsTransport,
    WebhookTransport,
)
from api_watcher.notifications.dispatcher import (
    NotificationDispatcher,
    encode_payload,
    sign_body,
)

__all__ = [
    "EmailTransport",
    "SmsTransport",
    "WebhookTransport",
    "NotificationDispatcher",
    "encode_payload",
    "sign_body",
]
