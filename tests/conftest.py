"""
Test Configuration
==================

Shared fakes and fixtures for the camrelay test-suite.
"""

from __future__ import annotations

import pytest

import camrelay.api.services.state as state
from camrelay.core.config.settings import RelaySettings


class FakeConnection:
    """Records every payload the broker sends to a peer."""

    def __init__(self, fail: bool = False):
        self.sent: list[dict] = []
        self._fail = fail

    async def send_json(self, data):
        if self._fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)

    def of_type(self, kind: str) -> list[dict]:
        return [m for m in self.sent if m.get("type") == kind]


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, t: int = 0):
        self.t = t

    def __call__(self) -> int:
        return self.t

    def advance(self, ms: int) -> None:
        self.t += ms


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock(1_000_000)


@pytest.fixture
def fresh_state(monkeypatch: pytest.MonkeyPatch):
    """Isolate the per-process singletons and pin settings for API tests."""

    state._settings = RelaySettings(system_sample_interval_s=60.0, max_queue_size=10)
    state._broker = None
    state._metrics = None
    state._pipeline = None
    yield state
    if state._metrics is not None:
        state._metrics.stop_system_monitoring()
    state._settings = None
    state._broker = None
    state._metrics = None
    state._pipeline = None
