"""Shared fixtures: fake connections and fresh registry/coordinator instances."""

from typing import Any, Dict, List

import pytest
from fastapi.testclient import TestClient

from ephemeral_chat.core import state
from ephemeral_chat.services.connection import ClientConnection
from ephemeral_chat.services.room_access import RoomAccessGate
from ephemeral_chat.services.room_registry import RoomRegistry
from ephemeral_chat.services.session_coordinator import SessionCoordinator

# Short window so expiry can be observed in real time
TEST_INACTIVITY_TIMEOUT = 0.3

PROTECTED_CODE = "VAULT7"
PROTECTED_PASSWORD = "hunter2"


class FakeConnection(ClientConnection):
    """Records what the coordinator queues instead of writing to a socket."""

    def __init__(self, connection_id: str | None = None) -> None:
        super().__init__(connection_id)
        self.sent: List[Dict[str, Any]] = []
        self.closed = False

    def send(self, payload: Dict[str, Any]) -> None:
        self.sent.append(payload)

    def close(self) -> None:
        self.closed = True

    def of_type(self, event_type: str) -> List[Dict[str, Any]]:
        return [p for p in self.sent if p.get("type") == event_type]

    def types(self) -> List[str]:
        return [p.get("type") for p in self.sent]


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def registry() -> RoomRegistry:
    return RoomRegistry(inactivity_timeout=TEST_INACTIVITY_TIMEOUT, reserved_codes=[PROTECTED_CODE])


@pytest.fixture
def coordinator(registry: RoomRegistry) -> SessionCoordinator:
    return SessionCoordinator(
        room_registry=registry,
        access_gate=RoomAccessGate(PROTECTED_CODE, PROTECTED_PASSWORD),
        max_message_length=1000,
    )


@pytest.fixture
def make_connection():
    def _make(connection_id: str | None = None) -> FakeConnection:
        return FakeConnection(connection_id)
    return _make


def install_state(monkeypatch: pytest.MonkeyPatch, inactivity_timeout: float | None = None):
    """Swap the global singletons for fresh ones."""
    gate = RoomAccessGate(PROTECTED_CODE, PROTECTED_PASSWORD)
    room_registry = RoomRegistry(inactivity_timeout=inactivity_timeout, reserved_codes=[PROTECTED_CODE])
    coordinator = SessionCoordinator(room_registry=room_registry, access_gate=gate)

    monkeypatch.setattr(state, "access_gate", gate)
    monkeypatch.setattr(state, "room_registry", room_registry)
    monkeypatch.setattr(state, "session_coordinator", coordinator)
    return state


@pytest.fixture
def app_state(monkeypatch: pytest.MonkeyPatch):
    return install_state(monkeypatch)


@pytest.fixture
def short_lived_state(monkeypatch: pytest.MonkeyPatch):
    """Global state whose rooms expire after TEST_INACTIVITY_TIMEOUT."""
    return install_state(monkeypatch, inactivity_timeout=TEST_INACTIVITY_TIMEOUT)


@pytest.fixture
def client(app_state):
    from ephemeral_chat.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def short_lived_client(short_lived_state):
    from ephemeral_chat.main import app

    with TestClient(app) as test_client:
        yield test_client
