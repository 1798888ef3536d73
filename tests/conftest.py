"""
Global pytest configuration and fixtures for brb tests

Provides:
- Mock chat connection
- Recording renderer
- Test configuration
"""

import asyncio
from typing import Any, Dict, List, Optional, Tuple

import pytest

from common.config import Config
from lib.connection import ConnectionAdapter, ConnectionError, ConnectionState, NotConnectedError


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom settings"""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "core: Core infrastructure tests")


# ============================================================================
# Mock Connection
# ============================================================================

class MockConnection(ConnectionAdapter):
    """
    In-memory chat connection.

    Events queued with ``push`` are yielded by recv_events; ``fail_with``
    makes the stream raise once the queue is drained, ``fail_connect``
    makes connect() raise.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.channel_name = 'testchannel'
        self.connect_count = 0
        self.disconnect_count = 0
        self.fail_connect: Optional[Exception] = None
        self.fail_with: Optional[Exception] = None
        self.hold_open = False
        self._events: List[Tuple[str, Dict[str, Any]]] = []

    def push(self, event: str, data: Dict[str, Any]) -> None:
        self._events.append((event, data))

    async def connect(self) -> None:
        self.connect_count += 1
        self._set_state(ConnectionState.CONNECTING)
        if self.fail_connect is not None:
            self._set_state(ConnectionState.ERRORED, str(self.fail_connect))
            raise self.fail_connect
        await asyncio.sleep(0)
        self._set_state(ConnectionState.CONNECTED)

    async def disconnect(self) -> None:
        self.disconnect_count += 1
        if self._state is not ConnectionState.ERRORED:
            self._set_state(ConnectionState.DISCONNECTED)

    async def recv_events(self):
        if not self.is_connected:
            raise NotConnectedError("Not connected")
        while self._events:
            yield self._events.pop(0)
            await asyncio.sleep(0)
        if self.fail_with is not None:
            self._set_state(ConnectionState.ERRORED, str(self.fail_with))
            raise self.fail_with
        while self.hold_open:
            await asyncio.sleep(0.01)


@pytest.fixture
def mock_connection():
    """Mock chat connection (connects immediately, no events)"""
    return MockConnection()


@pytest.fixture
def failing_connection():
    """Mock chat connection whose connect() fails"""
    conn = MockConnection()
    conn.fail_connect = ConnectionError("Connection refused")
    return conn


# ============================================================================
# Rendering
# ============================================================================

class RecordingRenderer:
    """Renderer stand-in that keeps every snapshot it is given."""

    def __init__(self):
        self.snapshots = []

    def __call__(self, snapshot):
        self.snapshots.append(snapshot)

    @property
    def last(self):
        return self.snapshots[-1]


@pytest.fixture
def renderer():
    """Renderer that records snapshots"""
    return RecordingRenderer()


# ============================================================================
# Configuration
# ============================================================================

@pytest.fixture
def config():
    """Default configuration"""
    return Config()


@pytest.fixture
def config_home(tmp_path, monkeypatch):
    """Point the per-user config directory at a temp dir"""
    monkeypatch.setenv('XDG_CONFIG_HOME', str(tmp_path))
    path = tmp_path / 'brb'
    path.mkdir()
    return path
