from __future__ import annotations

from datetime import timedelta
from typing import List

import httpx
import pytest

from api_watcher.database import AlertSeverity, AlertType, MonitorStatus, ProbeStatus
from api_watcher.monitoring.engine import MonitoringEngine
from api_watcher.monitoring.prober import Prober
from api_watcher.monitoring.status import StatusUpdater
from api_watcher.utils.helpers import TimeHelper

from conftest import FakeConnection


def _engine(settings, monitor_repo, history_repo, alert_manager, handler) -> MonitoringEngine:
    prober = Prober(settings, transport=httpx.MockTransport(handler))
    updater = StatusUpdater(monitor_repo, history_repo, settings, alert_sink=alert_manager)
    return MonitoringEngine(monitor_repo, prober, updater, settings)


@pytest.mark.asyncio
async def test_outage_and_recovery_end_to_end(
    settings, monitor_repo, history_repo, alert_manager, dispatcher, hub, make_user, make_monitor
) -> None:
    owner = await make_user()
    monitor = await make_monitor(owner)
    codes: List[int] = [503, 503, 200]

    engine = _engine(
        settings, monitor_repo, history_repo, alert_manager,
        lambda request: httpx.Response(codes.pop(0)),
    )
    conn = FakeConnection()
    hub.join(conn, owner.id)

    start = TimeHelper.get_utc_now()
    for sweep in range(3):
        processed = await engine.run_due_checks(now=start + timedelta(minutes=6 * sweep))
        assert processed == 1

    stored = await monitor_repo.get_by_id(monitor.id)
    assert stored.status == MonitorStatus.UP
    assert stored.uptime == pytest.approx(10.0)

    history = await history_repo.list_for_monitor(monitor.id)
    assert [h.status for h in history] == [ProbeStatus.UP, ProbeStatus.DOWN, ProbeStatus.DOWN]

    alerts = await alert_manager.get_user_alerts(owner)
    assert len(alerts) == 1
    assert alerts[0].alert_type == AlertType.OTHER
    assert alerts[0].severity == AlertSeverity.INFO
    assert len(dispatcher.status_changes) == 1
    assert "newAlert" in conn.events()

    await engine.prober.close()


@pytest.mark.asyncio
async def test_monitor_not_rechecked_before_interval(
    settings, monitor_repo, history_repo, alert_manager, make_user, make_monitor
) -> None:
    owner = await make_user()
    await make_monitor(owner, check_interval=5)
    engine = _engine(
        settings, monitor_repo, history_repo, alert_manager,
        lambda request: httpx.Response(200),
    )

    now = TimeHelper.get_utc_now()
    assert await engine.run_due_checks(now=now) == 1
    assert await engine.run_due_checks(now=now + timedelta(minutes=2)) == 0
    assert await engine.run_due_checks(now=now + timedelta(minutes=6)) == 1

    await engine.prober.close()


@pytest.mark.asyncio
async def test_one_failing_monitor_does_not_stop_the_sweep(
    settings, monitor_repo, history_repo, alert_manager, make_user, make_monitor
) -> None:
    owner = await make_user()
    healthy = await make_monitor(owner, url="https://ok.example.com/")
    broken = await make_monitor(owner, url="https://broken.example.com/")

    engine = _engine(
        settings, monitor_repo, history_repo, alert_manager,
        lambda request: httpx.Response(200),
    )

    original_apply = engine.status_updater.apply

    async def flaky_apply(monitor, outcome):
        if monitor.id == broken.id:
            raise RuntimeError("storage hiccup")
        return await original_apply(monitor, outcome)

    engine.status_updater.apply = flaky_apply

    assert await engine.run_due_checks() == 2

    stats = engine.get_stats()
    assert stats["checks"] == 2
    assert stats["failures"] == 1
    assert stats["in_flight"] == 0
    assert (await monitor_repo.get_by_id(healthy.id)).status == MonitorStatus.UP
    assert (await monitor_repo.get_by_id(broken.id)).status == MonitorStatus.UNKNOWN

    await engine.prober.close()


@pytest.mark.asyncio
async def test_transport_errors_never_escape_a_sweep(
    settings, monitor_repo, history_repo, alert_manager, make_user, make_monitor
) -> None:
    owner = await make_user()
    monitor = await make_monitor(owner)

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Connection refused", request=request)

    engine = _engine(settings, monitor_repo, history_repo, alert_manager, handler)

    assert await engine.run_due_checks() == 1
    assert engine.get_stats()["failures"] == 0
    assert (await monitor_repo.get_by_id(monitor.id)).status == MonitorStatus.DOWN

    await engine.prober.close()


@pytest.mark.asyncio
async def test_shortened_interval_applies_on_next_sweep(
    settings, monitor_repo, history_repo, alert_manager, make_user, make_monitor
) -> None:
    owner = await make_user()
    monitor = await make_monitor(owner, check_interval=60)
    engine = _engine(
        settings, monitor_repo, history_repo, alert_manager,
        lambda request: httpx.Response(200),
    )

    now = TimeHelper.get_utc_now()
    assert await engine.run_due_checks(now=now) == 1

    later = now + timedelta(minutes=6)
    assert await monitor_repo.find_due(later) == []

    stored = await monitor_repo.get_by_id(monitor.id)
    stored.check_interval = 5
    await monitor_repo.save(stored)

    assert [m.id for m in await monitor_repo.find_due(later)] == [monitor.id]
    assert await engine.run_due_checks(now=later) == 1

    await engine.prober.close()
