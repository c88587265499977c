"""Shared test fixtures and configuration for backend tests."""
from typing import List, Optional, Tuple

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from agora.config import AppSettings, RealtimeSettings, reset_config, set_config
from agora.main import create_app
from agora.notifications import NotificationService
from agora.realtime import RealtimeCoordinator

# Short debounce window so expiry tests finish quickly.
TYPING_WINDOW = 0.2


class FakeWebSocket:
    """Stand-in for a FastAPI WebSocket that records every frame sent to it."""

    def __init__(self, fail: bool = False) -> None:
        self.sent: List[dict] = []
        self.fail = fail

    async def send_json(self, data: dict) -> None:
        if self.fail:
            raise RuntimeError("socket is closed")
        self.sent.append(data)

    def events(self, name: Optional[str] = None) -> List[dict]:
        if name is None:
            return list(self.sent)
        return [frame for frame in self.sent if frame["event"] == name]

    def payloads(self, name: str) -> list:
        return [frame["data"] for frame in self.events(name)]

    def clear(self) -> None:
        self.sent.clear()


async def join(
    coordinator: RealtimeCoordinator, user_id: Optional[str] = None
) -> Tuple[str, FakeWebSocket]:
    """Open a fake connection, optionally authenticate it, and reset its log."""
    ws = FakeWebSocket()
    connection_id = coordinator.connect(ws)
    if user_id is not None:
        await coordinator.handle(connection_id, "authenticate", user_id)
    ws.clear()
    return connection_id, ws


@pytest.fixture(autouse=True)
def default_settings():
    """Pin settings to defaults so no settings file on disk leaks into tests."""
    set_config(AppSettings())
    yield
    reset_config()


@pytest.fixture(autouse=True)
def memory_notifications():
    """Use an in-memory NotificationService for each test."""
    NotificationService.reset_instance()
    service = NotificationService.get_instance(db_path=":memory:")
    yield service
    NotificationService.reset_instance()


@pytest_asyncio.fixture
async def coordinator():
    coord = RealtimeCoordinator(typing_window_seconds=TYPING_WINDOW)
    yield coord
    coord.shutdown()


@pytest.fixture
def api_client():
    """TestClient running the full app (lifespan included) on one event loop."""
    settings = AppSettings(
        realtime=RealtimeSettings(typing_debounce_ms=int(TYPING_WINDOW * 1000))
    )
    app = create_app(settings)
    with TestClient(app) as client:
        yield client
