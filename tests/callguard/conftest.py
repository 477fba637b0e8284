from __future__ import annotations

import pytest

import callguard.circuit_breaker.breaker as breaker_mod
from tests.callguard.support.fakes import FakeClock, FakeLogger, RecordingSleep


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def fake_clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    """Drive the breaker's millisecond clock by hand."""
    clock = FakeClock()
    monkeypatch.setattr(breaker_mod, "_now_ms", clock.now_ms)
    return clock


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
