"""Pytest fixtures for testing."""

import json
from typing import Any

import pytest

from copilot_stream.client.transport import CloseHandler, FrameHandler, Transport
from copilot_stream.config.settings import Settings
from copilot_stream.core.exceptions import TransportError
from copilot_stream.events.emitter import EventEmitter
from copilot_stream.events.models import SessionEvent
from copilot_stream.events.types import SessionEventType
from copilot_stream.stream.accumulator import SessionAccumulator
from copilot_stream.stream.models import DataCard


class FakeTransport(Transport):
    """In-memory transport driven by the test."""

    def __init__(self):
        self.open_calls = 0
        self.close_calls = 0
        self.sent: list[dict[str, Any]] = []
        self.fail_opens = 0
        self.fail_send: Exception | None = None
        self._on_frame: FrameHandler | None = None
        self._on_close: CloseHandler | None = None

    @property
    def is_open(self) -> bool:
        return self._on_frame is not None

    async def open(self, on_frame: FrameHandler, on_close: CloseHandler) -> None:
        self.open_calls += 1
        if self.fail_opens > 0:
            self.fail_opens -= 1
            raise TransportError("Connection refused")
        self._on_frame = on_frame
        self._on_close = on_close

    async def send(self, payload: dict[str, Any]) -> None:
        if self.fail_send is not None:
            raise self.fail_send
        self.sent.append(payload)

    async def close(self) -> None:
        self.close_calls += 1
        self._on_frame = None
        self._on_close = None

    def deliver(self, frame: str | dict[str, Any]) -> None:
        """Push one frame as if it arrived from the server."""
        assert self._on_frame is not None, "transport is not open"
        self._on_frame(frame if isinstance(frame, str) else json.dumps(frame))

    def drop(self, error: Exception | None = None) -> None:
        """Simulate the server closing the channel."""
        on_close = self._on_close
        self._on_frame = None
        self._on_close = None
        assert on_close is not None, "transport is not open"
        on_close(error)


class EventRecorder:
    """Collects every session event published on an emitter."""

    def __init__(self, emitter: EventEmitter):
        self.events: list[SessionEvent] = []
        emitter.subscribe("*", self.events.append)

    def of_type(self, event_type: SessionEventType) -> list[SessionEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def types(self) -> list[SessionEventType]:
        return [e.event_type for e in self.events]


@pytest.fixture
def settings() -> Settings:
    """Create test settings with short timers."""
    return Settings(
        base_url="http://testserver",
        reconnect_delay_seconds=0.05,
        max_reconnect_attempts=5,
        grace_period_seconds=0.02,
        initial_grace_period_seconds=0.04,
        connect_timeout_seconds=1.0,
        log_level="DEBUG",
    )


@pytest.fixture
def emitter() -> EventEmitter:
    """Create event emitter for testing."""
    return EventEmitter()


@pytest.fixture
def recorder(emitter: EventEmitter) -> EventRecorder:
    """Record all events published on the test emitter."""
    return EventRecorder(emitter)


@pytest.fixture
def fake_transport() -> FakeTransport:
    """Create in-memory transport for testing."""
    return FakeTransport()


@pytest.fixture
def accumulator(emitter: EventEmitter) -> SessionAccumulator:
    """Create session accumulator for testing."""
    return SessionAccumulator(emitter)


@pytest.fixture
def article_card() -> DataCard:
    """Create an article data card."""
    return DataCard(id="1", type="article", data={"id": "1", "title": "Apple beats estimates"})
