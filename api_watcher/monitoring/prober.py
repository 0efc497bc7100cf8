"""
============================================================================
API WATCHER - PROBER
============================================================================
Issues exactly one HTTP request for a monitor and classifies the outcome.

Classification
--------------
• Any HTTP response is captured; the probe is UP iff the returned code
  equals the monitor's expected code, otherwise DOWN.
• Transport failures (timeout, DNS, refused connection, anything else
  raised by httpx) always yield DOWN with an error classification.
• Latency is wall-clock from dispatch to completion or failure.

The Prober never raises for network or status problems; callers always
receive a ProbeOutcome.
============================================================================
"""

import json
import socket
import time
from datetime import datetime
from typing import Optional, Dict, Any

import httpx

from api_watcher.config.constants import MAX_ERROR_MESSAGE_LENGTH
from api_watcher.config.settings import Settings
from api_watcher.database.models import Monitor, ProbeStatus, ErrorType, HTTPMethod
from api_watcher.utils.helpers import TimeHelper, StringHelper
from api_watcher.utils.logger import get_logger


logger = get_logger("Prober")


MESSAGE_UP = "API is up and running"
MESSAGE_TIMEOUT = "Request timed out"
MESSAGE_DNS = "DNS lookup failed"

_DNS_ERROR_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "temporary failure in name resolution",
    "no address associated with hostname",
)


# ============================================================================
# PROBE OUTCOME
# ============================================================================

class ProbeOutcome:
    """
    Value object carrying everything a single probe produced.
    """
    __slots__ = (
        "status", "status_code", "response_time", "message", "error_type",
        "request_size", "response_size", "checked_at",
    )

    def __init__(
        self,
        status: ProbeStatus,
        status_code: int = 0,
        response_time: int = 0,
        message: str = "",
        error_type: ErrorType = ErrorType.NONE,
        request_size: int = 0,
        response_size: int = 0,
        checked_at: Optional[datetime] = None,
    ):
        self.status = status
        self.status_code = status_code
        self.response_time = response_time
        self.message = message
        self.error_type = error_type
        self.request_size = request_size
        self.response_size = response_size
        self.checked_at = checked_at or TimeHelper.get_utc_now()

    @property
    def is_up(self) -> bool:
        return self.status == ProbeStatus.UP

    def to_dict(self) -> Dict[str, Any]:
        data = {slot: getattr(self, slot) for slot in self.__slots__}
        data["status"] = self.status.value
        data["error_type"] = self.error_type.value
        data["checked_at"] = self.checked_at.isoformat()
        return data

    def __repr__(self) -> str:
        return (
            f"ProbeOutcome(status={self.status.value}, code={self.status_code}, "
            f"latency={self.response_time}ms, error={self.error_type.value})"
        )


# ============================================================================
# PROBER
# ============================================================================

class Prober:
    """
    Performs monitor probes through a shared httpx.AsyncClient.

    Each request carries its own timeout of twice the monitor's expected
    response time; there are no retries.
    """

    def __init__(
        self,
        settings: Settings,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Parameters
        ----------
        settings : Settings
            Application settings (user agent, redirect policy).
        client : httpx.AsyncClient | None
            Externally owned client. When omitted the Prober creates and
            owns one.
        transport : httpx.AsyncBaseTransport | None
            Transport for the owned client (tests pass a MockTransport).
        """
        self.settings = settings
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            transport=transport,
            verify=True,
            headers={"User-Agent": settings.monitoring.user_agent},
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # REQUEST CONSTRUCTION
    # ------------------------------------------------------------------

    def _build_request(self, monitor: Monitor) -> httpx.Request:
        """
        Build the request; non-GET bodies that parse as JSON go out as
        JSON, anything else verbatim.
        """
        method = monitor.method.value if monitor.method else HTTPMethod.GET.value
        headers = dict(monitor.headers or {})
        timeout = httpx.Timeout(monitor.timeout_seconds)

        kwargs: Dict[str, Any] = {}
        if method != HTTPMethod.GET.value and monitor.body:
            try:
                kwargs["json"] = json.loads(monitor.body)
            except ValueError:
                kwargs["content"] = monitor.body.encode("utf-8")

        return self._client.build_request(
            method,
            monitor.url,
            headers=headers,
            timeout=timeout,
            **kwargs
        )

    # ------------------------------------------------------------------
    # PUBLIC API
    # ------------------------------------------------------------------

    async def probe(self, monitor: Monitor) -> ProbeOutcome:
        """
        Execute one probe against *monitor*.

        Returns
        -------
        ProbeOutcome
            Always returned; transport failures are folded into it.
        """
        request_size = 0
        start_time = time.perf_counter()

        try:
            request = self._build_request(monitor)
            request_size = len(request.content)
            start_time = time.perf_counter()

            response = await self._client.send(
                request,
                follow_redirects=self.settings.monitoring.follow_redirects,
            )
            elapsed_ms = self._elapsed_ms(start_time)

        except httpx.TimeoutException:
            elapsed_ms = self._elapsed_ms(start_time)
            logger.warning(f"[Prober] {monitor.url} → timed out after {elapsed_ms}ms")
            return ProbeOutcome(
                status=ProbeStatus.DOWN,
                response_time=elapsed_ms,
                message=MESSAGE_TIMEOUT,
                error_type=ErrorType.TIMEOUT,
                request_size=request_size,
            )
        except httpx.ConnectError as e:
            elapsed_ms = self._elapsed_ms(start_time)
            message = MESSAGE_DNS if self._is_dns_failure(e) else self._error_message(e)
            logger.warning(f"[Prober] {monitor.url} → connection failed: {message}")
            return ProbeOutcome(
                status=ProbeStatus.DOWN,
                response_time=elapsed_ms,
                message=message,
                error_type=ErrorType.CONNECTION,
                request_size=request_size,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            elapsed_ms = self._elapsed_ms(start_time)
            logger.warning(f"[Prober] {monitor.url} → {type(e).__name__}: {e}")
            return ProbeOutcome(
                status=ProbeStatus.DOWN,
                response_time=elapsed_ms,
                message=self._error_message(e),
                error_type=ErrorType.UNKNOWN,
                request_size=request_size,
            )

        return self._classify_response(monitor, response, elapsed_ms, request_size)

    # ------------------------------------------------------------------
    # CLASSIFICATION HELPERS
    # ------------------------------------------------------------------

    def _classify_response(
        self,
        monitor: Monitor,
        response: httpx.Response,
        elapsed_ms: int,
        request_size: int,
    ) -> ProbeOutcome:
        code = response.status_code
        response_size = len(response.content)

        if code != monitor.expected_status:
            logger.warning(
                f"[Prober] {monitor.url} → status {code} "
                f"(expected {monitor.expected_status})"
            )
            return ProbeOutcome(
                status=ProbeStatus.DOWN,
                status_code=code,
                response_time=elapsed_ms,
                message=f"API returned unexpected status code: {code}",
                error_type=self._error_type_for_code(code),
                request_size=request_size,
                response_size=response_size,
            )

        if elapsed_ms > monitor.expected_response_time:
            message = (
                f"API is up but response time ({elapsed_ms}ms) exceeds "
                f"expected time ({monitor.expected_response_time}ms)"
            )
        else:
            message = MESSAGE_UP

        logger.debug(f"[Prober] {monitor.url} → {code} in {elapsed_ms}ms")

        return ProbeOutcome(
            status=ProbeStatus.UP,
            status_code=code,
            response_time=elapsed_ms,
            message=message,
            error_type=ErrorType.NONE,
            request_size=request_size,
            response_size=response_size,
        )

    @staticmethod
    def _elapsed_ms(start_time: float) -> int:
        return int(round((time.perf_counter() - start_time) * 1000))

    @staticmethod
    def _error_type_for_code(code: int) -> ErrorType:
        if code >= 500:
            return ErrorType.SERVER
        if 400 <= code < 500:
            return ErrorType.CLIENT
        return ErrorType.UNKNOWN

    @staticmethod
    def _is_dns_failure(exc: BaseException) -> bool:
        """Walk the exception chain looking for a name-resolution error."""
        seen = set()
        current: Optional[BaseException] = exc
        while current is not None and id(current) not in seen:
            seen.add(id(current))
            if isinstance(current, socket.gaierror):
                return True
            text = str(current).lower()
            if any(marker in text for marker in _DNS_ERROR_MARKERS):
                return True
            current = current.__cause__ or current.__context__
        return False

    @staticmethod
    def _error_message(exc: BaseException) -> str:
        text = str(exc) or type(exc).__name__
        return StringHelper.truncate(text, MAX_ERROR_MESSAGE_LENGTH)
