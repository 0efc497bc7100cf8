from __future__ import annotations

import asyncio
import json
from typing import List

import httpx
import pytest

from api_watcher.database import ErrorType, HTTPMethod, ProbeStatus
from api_watcher.monitoring.prober import MESSAGE_DNS, MESSAGE_TIMEOUT, MESSAGE_UP, Prober

from conftest import build_monitor


def _prober(settings, handler) -> Prober:
    return Prober(settings, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_expected_status_is_up(settings) -> None:
    prober = _prober(settings, lambda request: httpx.Response(200, text="ok"))

    outcome = await prober.probe(build_monitor())
    await prober.close()

    assert outcome.status == ProbeStatus.UP
    assert outcome.status_code == 200
    assert outcome.message == MESSAGE_UP
    assert outcome.error_type == ErrorType.NONE
    assert outcome.response_size == 2
    assert outcome.response_time >= 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "code, error_type",
    [(500, ErrorType.SERVER), (503, ErrorType.SERVER), (404, ErrorType.CLIENT), (204, ErrorType.UNKNOWN)],
)
async def test_unexpected_status_is_down(settings, code: int, error_type: ErrorType) -> None:
    prober = _prober(settings, lambda request: httpx.Response(code))

    outcome = await prober.probe(build_monitor())
    await prober.close()

    assert outcome.status == ProbeStatus.DOWN
    assert outcome.status_code == code
    assert outcome.error_type == error_type
    assert outcome.message == f"API returned unexpected status code: {code}"


@pytest.mark.asyncio
async def test_custom_expected_status(settings) -> None:
    prober = _prober(settings, lambda request: httpx.Response(201))

    outcome = await prober.probe(build_monitor(expected_status=201))
    await prober.close()

    assert outcome.is_up


@pytest.mark.asyncio
async def test_timeout_is_down(settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    prober = _prober(settings, handler)
    outcome = await prober.probe(build_monitor())
    await prober.close()

    assert outcome.status == ProbeStatus.DOWN
    assert outcome.status_code == 0
    assert outcome.error_type == ErrorType.TIMEOUT
    assert outcome.message == MESSAGE_TIMEOUT


@pytest.mark.asyncio
async def test_dns_failure_has_distinct_message(settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("[Errno -2] Name or service not known", request=request)

    prober = _prober(settings, handler)
    outcome = await prober.probe(build_monitor(url="https://no-such-host.invalid/"))
    await prober.close()

    assert outcome.status == ProbeStatus.DOWN
    assert outcome.error_type == ErrorType.CONNECTION
    assert outcome.message == MESSAGE_DNS


@pytest.mark.asyncio
async def test_refused_connection_keeps_error_text(settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Connection refused", request=request)

    prober = _prober(settings, handler)
    outcome = await prober.probe(build_monitor())
    await prober.close()

    assert outcome.error_type == ErrorType.CONNECTION
    assert outcome.message == "Connection refused"


@pytest.mark.asyncio
async def test_other_transport_error_is_unknown(settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.RemoteProtocolError("x" * 500, request=request)

    prober = _prober(settings, handler)
    outcome = await prober.probe(build_monitor())
    await prober.close()

    assert outcome.status == ProbeStatus.DOWN
    assert outcome.error_type == ErrorType.UNKNOWN
    assert len(outcome.message) <= 200


@pytest.mark.asyncio
async def test_slow_response_is_up_with_latency_message(settings) -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(0.05)
        return httpx.Response(200)

    prober = _prober(settings, handler)
    outcome = await prober.probe(build_monitor(expected_response_time=10))
    await prober.close()

    assert outcome.status == ProbeStatus.UP
    assert outcome.response_time > 10
    assert outcome.message == (
        f"API is up but response time ({outcome.response_time}ms) exceeds expected time (10ms)"
    )


@pytest.mark.asyncio
async def test_json_body_and_headers_are_sent(settings) -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    prober = _prober(settings, handler)
    monitor = build_monitor(
        method=HTTPMethod.POST,
        headers={"X-Api-Key": "k-123"},
        body='{"ping": true}',
    )
    outcome = await prober.probe(monitor)
    await prober.close()

    request = seen[0]
    assert request.method == "POST"
    assert request.headers["X-Api-Key"] == "k-123"
    assert request.headers["User-Agent"] == settings.monitoring.user_agent
    assert request.headers["Content-Type"] == "application/json"
    assert json.loads(request.content) == {"ping": True}
    assert outcome.request_size == len(request.content)


@pytest.mark.asyncio
async def test_non_json_body_is_sent_verbatim(settings) -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    prober = _prober(settings, handler)
    await prober.probe(build_monitor(method=HTTPMethod.PUT, body="plain text"))
    await prober.close()

    assert seen[0].content == b"plain text"


@pytest.mark.asyncio
async def test_get_ignores_body(settings) -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    prober = _prober(settings, handler)
    outcome = await prober.probe(build_monitor(body='{"ignored": 1}'))
    await prober.close()

    assert seen[0].content == b""
    assert outcome.request_size == 0
