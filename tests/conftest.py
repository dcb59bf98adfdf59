"""Fixtures for nuheat2mqtt tests."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from nuheat import KeyValueStore, SessionStore, ThermostatState
from nuheat2mqtt.context import NodeServerContext
from nuheat2mqtt.hub import Hub
from nuheat2mqtt.poller import PollCoordinator
from nuheat2mqtt.reconciler import Reconciler

# Vendor state for thermostat 12345 (Celsius)
MOCK_THERMOSTAT_STATE = ThermostatState(
    serial_number="12345",
    room="Bathroom",
    temperature=22.0,
    set_point=25.0,
    operating_mode=1,
    heating=True,
)

# Vendor listing with two thermostats in one group
MOCK_GROUPS = {
    "Groups": [
        {
            "groupName": "Home",
            "Thermostats": [
                {"SerialNumber": 12345, "Room": "Bathroom"},
                {"SerialNumber": 67890, "Room": "Kitchen"},
            ],
        }
    ]
}


class RecordingPublisher:
    """Stand-in for the MQTT publish call; records every message."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, str, bool]] = []
        self.accept = True

    def __call__(self, topic: str, payload: str, retain: bool) -> bool:
        if not self.accept:
            return False
        self.messages.append((topic, payload, retain))
        return True

    def topics(self) -> list[str]:
        return [topic for topic, _, _ in self.messages]

    def last(self, topic: str) -> str | None:
        for sent_topic, payload, _ in reversed(self.messages):
            if sent_topic == topic:
                return payload
        return None

    def clear(self) -> None:
        self.messages.clear()


@pytest.fixture
def publisher() -> RecordingPublisher:
    """Recording MQTT publisher."""
    return RecordingPublisher()


@pytest.fixture
def hub(publisher: RecordingPublisher, tmp_path: Path) -> Hub:
    """Hub adapter persisting to a temporary directory."""
    return Hub(publisher, KeyValueStore(tmp_path / "hub.json"))


@pytest.fixture
def session_store(tmp_path: Path) -> SessionStore:
    """Session store in a temporary directory."""
    return SessionStore(tmp_path / "session.json")


@pytest.fixture
def mock_nuheat_client() -> Generator[MagicMock, None, None]:
    """Create a mock NuHeatClient instance."""
    mock_instance = MagicMock()

    mock_instance.authenticate = AsyncMock(return_value="session-1")
    mock_instance.list_groups = AsyncMock(return_value=MOCK_GROUPS)
    mock_instance.fetch_device = AsyncMock(return_value=MOCK_THERMOSTAT_STATE)
    mock_instance.write_setpoint = AsyncMock()
    mock_instance.update_credentials = MagicMock()

    yield mock_instance


@pytest.fixture
def context(
    mock_nuheat_client: MagicMock,
    hub: Hub,
    session_store: SessionStore,
) -> NodeServerContext:
    """Context wired to the mock client and the recording hub."""
    return NodeServerContext(mock_nuheat_client, hub, session_store)


@pytest.fixture
def reconciler(context: NodeServerContext) -> Reconciler:
    """Reconciler without the pacing delay."""
    return Reconciler(context, discovery_delay=0)


@pytest.fixture
def coordinator(reconciler: Reconciler, context: NodeServerContext) -> PollCoordinator:
    """Poll coordinator attached to the context."""
    coordinator = PollCoordinator(reconciler)
    context.coordinator = coordinator
    return coordinator
