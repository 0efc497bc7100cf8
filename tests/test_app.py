from __future__ import annotations

import pytest

from api_watcher.config import settings as settings_module
from api_watcher.exceptions import ConfigurationError, DatabaseQueryError, InitializationError
from api_watcher.main import ApiWatcherApplication


@pytest.mark.asyncio
async def test_application_starts_and_stops(settings) -> None:
    app = ApiWatcherApplication(settings)

    assert await app.startup() is True
    assert app.is_running
    assert app.scheduler.is_running
    assert app.realtime_server is None
    assert app.alert_manager.publisher is app.publisher
    assert app.engine.status_updater.alert_sink is app.alert_manager

    await app.shutdown()

    assert app.is_running is False
    assert app.scheduler.is_running is False
    assert app.db_manager is None


@pytest.mark.asyncio
async def test_run_returns_after_stop_request(settings) -> None:
    app = ApiWatcherApplication(settings)
    assert await app.startup() is True

    app.request_stop()
    await app.run()
    await app.shutdown()


def test_invalid_environment_raises_configuration_error(monkeypatch) -> None:
    monkeypatch.setenv("MONITOR_SWEEP_INTERVAL", "0")
    settings_module.get_settings.cache_clear()
    try:
        with pytest.raises(ConfigurationError):
            settings_module.get_settings()
    finally:
        settings_module.get_settings.cache_clear()


def test_database_url_and_ws_path(settings) -> None:
    assert settings.database.url.startswith("sqlite+aiosqlite:///")
    assert settings.database.url.endswith("watcher.db")
    assert settings_module.RealtimeSettings(ws_path="live").ws_path == "/live"


def test_exception_log_format_carries_code_details_and_cause() -> None:
    error = InitializationError("Database connection check failed", component="database")

    assert str(error) == "[1200] Database connection check failed"
    assert error.log_format() == (
        "InitializationError | [1200] Database connection check failed"
        " | details={'component': 'database'}"
    )

    wrapped = DatabaseQueryError("insert failed", cause=ValueError("boom"))
    assert wrapped.log_format().endswith("cause=ValueError('boom')")
