from __future__ import annotations

import itertools
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

from api_watcher.config.settings import (
    DatabaseSettings,
    MonitoringSettings,
    NotificationSettings,
    RealtimeSettings,
    Settings,
)
from api_watcher.database import (
    AlertRepository,
    DatabaseManager,
    HistoryRepository,
    HTTPMethod,
    Monitor,
    MonitorRepository,
    User,
    UserRepository,
)
from api_watcher.monitoring.alerts import AlertManager
from api_watcher.realtime import RealtimePublisher, RoomHub


WEBHOOK_SECRET = "test-webhook-secret"

_emails = itertools.count(1)


def make_settings(tmp_path: Path, **monitoring: Any) -> Settings:
    return Settings(
        database=DatabaseSettings(type="sqlite", sqlite_path=tmp_path / "watcher.db"),
        monitoring=MonitoringSettings(**monitoring),
        notifications=NotificationSettings(webhook_secret=WEBHOOK_SECRET),
        realtime=RealtimeSettings(enabled=False),
    )


def build_monitor(**overrides: Any) -> Monitor:
    """Unsaved monitor with every column default spelled out."""
    fields: Dict[str, Any] = {
        "name": "Billing API",
        "url": "https://api.example.com/health",
        "method": HTTPMethod.GET,
        "headers": {},
        "body": "",
        "tags": [],
        "expected_status": 200,
        "expected_response_time": 1000,
        "check_interval": 5,
        "notify_on_down": True,
        "notify_on_up": True,
        "notify_on_performance_issue": True,
    }
    fields.update(overrides)
    return Monitor(**fields)


class FakeConnection:
    """Stands in for a websocket; records every JSON frame."""

    def __init__(self, fail: bool = False) -> None:
        self.sent: List[Dict[str, Any]] = []
        self.fail = fail
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send_json(self, data: Any) -> None:
        if self.fail:
            raise ConnectionResetError("socket gone")
        self.sent.append(data)

    async def close(self) -> None:
        self._closed = True

    def events(self) -> List[str]:
        return [frame["event"] for frame in self.sent]


class RecordingDispatcher:
    def __init__(self) -> None:
        self.status_changes: List[tuple] = []
        self.performance_issues: List[tuple] = []

    async def notify_status_change(self, monitor, owner, previous_status, outcome):
        self.status_changes.append((monitor.id, owner.id, previous_status, outcome.status))
        return {}

    async def notify_performance_issue(self, monitor, owner, outcome):
        self.performance_issues.append((monitor.id, owner.id, outcome.response_time))
        return {}


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path)


@pytest_asyncio.fixture
async def db(settings: Settings):
    manager = DatabaseManager(settings)
    await manager.initialize()
    yield manager
    await manager.close()


@pytest.fixture
def monitor_repo(db: DatabaseManager) -> MonitorRepository:
    return MonitorRepository(db)


@pytest.fixture
def history_repo(db: DatabaseManager) -> HistoryRepository:
    return HistoryRepository(db)


@pytest.fixture
def alert_repo(db: DatabaseManager) -> AlertRepository:
    return AlertRepository(db)


@pytest.fixture
def user_repo(db: DatabaseManager) -> UserRepository:
    return UserRepository(db)


@pytest.fixture
def make_user(user_repo: UserRepository):
    async def _make(**overrides: Any) -> User:
        fields: Dict[str, Any] = {
            "name": "Owner",
            "email": f"owner{next(_emails)}@example.com",
            "email_notifications": True,
            "sms_notifications": False,
            "webhook_notifications": False,
        }
        fields.update(overrides)
        return await user_repo.create(User(**fields))

    return _make


@pytest.fixture
def make_monitor(monitor_repo: MonitorRepository):
    async def _make(owner: Optional[User] = None, **overrides: Any) -> Monitor:
        monitor = build_monitor(owner_id=owner.id if owner else None, **overrides)
        return await monitor_repo.create(monitor)

    return _make


@pytest.fixture
def hub() -> RoomHub:
    return RoomHub()


@pytest.fixture
def publisher(hub: RoomHub) -> RealtimePublisher:
    return RealtimePublisher(hub)


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def alert_manager(
    alert_repo: AlertRepository,
    user_repo: UserRepository,
    settings: Settings,
    publisher: RealtimePublisher,
    dispatcher: RecordingDispatcher,
) -> AlertManager:
    return AlertManager(alert_repo, user_repo, settings, publisher=publisher, dispatcher=dispatcher)
