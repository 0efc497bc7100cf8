"""
============================================================================
API WATCHER - OUTBOUND TRANSPORTS
============================================================================
One class per notification channel:

    EmailTransport    ← SMTP (smtplib, run in a worker thread)
    SmsTransport      ← placeholder; logs the text, no provider wired
    WebhookTransport  ← signed JSON POST via httpx

Each ``send_*`` returns True on delivery and False when the channel is
not configured or the receiver rejected the message. Transport-level
errors are raised to the dispatcher, which isolates them per channel.
============================================================================
"""

import asyncio
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional

import httpx

from api_watcher.config.constants import SIGNATURE_HEADER
from api_watcher.config.settings import Settings
from api_watcher.utils.logger import get_logger


logger = get_logger("Transports")


# ============================================================================
# EMAIL
# ============================================================================

class EmailTransport:
    """SMTP email delivery."""

    def __init__(self, settings: Settings):
        self.settings = settings.notifications

    @property
    def configured(self) -> bool:
        return self.settings.email_configured

    async def send_email(self, to: str, subject: str, html: str) -> bool:
        if not self.configured:
            logger.warning("[Email] SMTP not configured, skipping")
            return False

        await asyncio.to_thread(self._send_sync, to, subject, html)
        logger.info(f"[Email] Sent to {to}")
        return True

    def _send_sync(self, to: str, subject: str, html: str) -> None:
        msg = MIMEMultipart("alternative")
        msg["From"] = self.settings.email_from
        msg["To"] = to
        msg["Subject"] = subject
        msg.attach(MIMEText(html, "html"))

        with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=30) as server:
            if self.settings.smtp_starttls:
                server.starttls()
            if self.settings.smtp_user:
                server.login(
                    self.settings.smtp_user,
                    self.settings.smtp_password.get_secret_value()
                )
            server.send_message(msg)


# ============================================================================
# SMS
# ============================================================================

class SmsTransport:
    """
    Placeholder SMS channel. No provider is integrated; the message is
    logged and reported as delivered.
    """

    async def send_sms(self, to: str, text: str) -> bool:
        logger.info(f"[SMS] Would send to {to}: {text}")
        return True


# ============================================================================
# WEBHOOK
# ============================================================================

class WebhookTransport:
    """POSTs pre-encoded JSON bodies with an integrity header."""

    def __init__(
        self,
        settings: Settings,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = settings.notifications.webhook_timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            transport=transport,
            timeout=httpx.Timeout(self.timeout),
            headers={"User-Agent": settings.monitoring.user_agent},
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def send_webhook(self, url: str, body: bytes, signature: str) -> bool:
        """
        POST *body* to *url*.

        Parameters
        ----------
        body : bytes
            The exact JSON bytes the signature was computed over.
        signature : str
            Value for the signature header (``sha256=<hex>``).
        """
        response = await self._client.post(
            url,
            content=body,
            headers={
                "Content-Type": "application/json",
                SIGNATURE_HEADER: signature,
            },
        )

        if response.is_success:
            logger.info(f"[Webhook] Delivered to {url} ({response.status_code})")
            return True

        logger.warning(f"[Webhook] {url} rejected delivery with status {response.status_code}")
        return False
