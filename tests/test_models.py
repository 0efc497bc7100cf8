from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from api_watcher.database import MonitorStatus, ProbeStatus

from conftest import build_monitor


NOW = datetime(2024, 5, 1, 12, 0, 0)


def test_never_checked_monitor_is_due() -> None:
    monitor = build_monitor(last_checked=None)
    assert monitor.is_due(NOW) is True


@pytest.mark.parametrize(
    "minutes_ago, due",
    [(6, True), (5, True), (4, False), (0, False)],
)
def test_monitor_due_after_interval_elapses(minutes_ago: int, due: bool) -> None:
    monitor = build_monitor(check_interval=5, last_checked=NOW - timedelta(minutes=minutes_ago))
    assert monitor.is_due(NOW) is due


def test_timeout_is_twice_expected_response_time() -> None:
    assert build_monitor(expected_response_time=1500).timeout_seconds == 3.0


def test_first_check_sets_uptime_directly() -> None:
    up = build_monitor()
    up.record_check(ProbeStatus.UP, 120, NOW)
    assert up.uptime == 100.0

    down = build_monitor()
    down.record_check(ProbeStatus.DOWN, 120, NOW)
    assert down.uptime == 0.0


def test_uptime_moving_average_after_failures() -> None:
    monitor = build_monitor()
    monitor.record_check(ProbeStatus.UP, 100, NOW)
    monitor.record_check(ProbeStatus.DOWN, 100, NOW + timedelta(minutes=5))
    assert monitor.uptime == pytest.approx(90.0)
    monitor.record_check(ProbeStatus.DOWN, 100, NOW + timedelta(minutes=10))
    assert monitor.uptime == pytest.approx(81.0)
    monitor.record_check(ProbeStatus.UP, 100, NOW + timedelta(minutes=15))
    assert monitor.uptime == pytest.approx(82.9)


def test_record_check_returns_previous_status_and_schedules_next() -> None:
    monitor = build_monitor(check_interval=10)

    previous = monitor.record_check(ProbeStatus.DOWN, 250, NOW)
    assert previous == MonitorStatus.UNKNOWN
    assert monitor.status == MonitorStatus.DOWN
    assert monitor.last_checked == NOW
    assert monitor.response_time == 250
    assert monitor.next_check == NOW + timedelta(minutes=10)

    previous = monitor.record_check(ProbeStatus.UP, 90, NOW + timedelta(minutes=10))
    assert previous == MonitorStatus.DOWN
    assert monitor.status == MonitorStatus.UP


def test_uptime_stays_within_bounds() -> None:
    monitor = build_monitor()
    monitor.record_check(ProbeStatus.UP, 1, NOW)
    for i in range(50):
        monitor.record_check(ProbeStatus.UP, 1, NOW + timedelta(minutes=i + 1))
    assert 0.0 <= monitor.uptime <= 100.0
