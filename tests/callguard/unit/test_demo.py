from __future__ import annotations

import asyncio
import sys
from collections.abc import Iterator

import pytest

import callguard.demo as demo_mod
from callguard.circuit_breaker import (
    BreakerSnapshot,
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
)
from callguard.demo import exercise, main, unreliable_service
from callguard.errors import ServiceUnavailableError
from tests.callguard.support.fakes import FakeLogger, RecordingSleep


def _seconds(values: list[int]) -> Iterator[int]:
    return iter(values)


def test_unreliable_service_fails_on_even_seconds(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(demo_mod, "_epoch_seconds", lambda: 1_700_000_000)

    with pytest.raises(ServiceUnavailableError, match="service failed"):
        unreliable_service()


def test_unreliable_service_succeeds_on_odd_seconds(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(demo_mod, "_epoch_seconds", lambda: 1_700_000_001)

    assert unreliable_service() == "Success!"


@pytest.mark.asyncio
async def test_exercise_walks_breaker_through_recovery(
    monkeypatch: pytest.MonkeyPatch,
    fake_logger: FakeLogger,
    recording_sleep: RecordingSleep,
) -> None:
    seconds = _seconds([1, 2, 4, 5])
    monkeypatch.setattr(demo_mod, "_epoch_seconds", lambda: next(seconds))
    breaker = CircuitBreaker(
        "svc",
        config=CircuitBreakerConfig(
            failure_threshold=1,
            timeout_ms=1_000,
            recovery_time_ms=0,
            open_threshold_count=1,
        ),
    )

    outcomes = await exercise(
        breaker,
        unreliable_service,
        iterations=5,
        interval_ms=250,
        logger=fake_logger,
        sleep=recording_sleep,
    )

    assert outcomes == ["success", "failed", "failed", "rejected", "success"]
    assert recording_sleep.delays == [0.25] * 4
    assert [(level, event) for level, event, _ in fake_logger.calls] == [
        ("info", "service_returned"),
        ("warning", "service_failed"),
        ("warning", "service_failed"),
        ("info", "service_open"),
        ("info", "service_returned"),
    ]
    assert fake_logger.calls[0][2]["result"] == "Success!"
    assert "ServiceUnavailableError" in str(fake_logger.calls[1][2]["error"])
    open_snapshot = fake_logger.calls[3][2]["breaker"]
    assert isinstance(open_snapshot, BreakerSnapshot)
    assert open_snapshot.state == CircuitState.HALF_OPEN
    assert breaker.state == CircuitState.CLOSED


@pytest.mark.asyncio
async def test_exercise_reports_open_rejections_as_timeouts(
    monkeypatch: pytest.MonkeyPatch,
    fake_logger: FakeLogger,
    recording_sleep: RecordingSleep,
) -> None:
    monkeypatch.setattr(demo_mod, "_epoch_seconds", lambda: 2)
    breaker = CircuitBreaker(
        "svc",
        config=CircuitBreakerConfig(failure_threshold=0, recovery_time_ms=60_000),
    )

    outcomes = await exercise(
        breaker,
        unreliable_service,
        iterations=3,
        interval_ms=0,
        logger=fake_logger,
        sleep=recording_sleep,
    )

    assert outcomes == ["failed", "timeout", "timeout"]
    timeout_fields = fake_logger.calls[1][2]
    assert fake_logger.calls[1][1] == "service_timed_out"
    assert str(timeout_fields["reason"]).startswith("circuit_open: svc")


@pytest.mark.asyncio
async def test_exercise_reports_deadline_as_timeout(
    fake_logger: FakeLogger,
    recording_sleep: RecordingSleep,
) -> None:
    breaker = CircuitBreaker(
        "svc",
        config=CircuitBreakerConfig(timeout_ms=10, recovery_time_ms=60_000),
    )
    release = asyncio.Event()

    async def _never_in_time() -> str:
        await release.wait()
        return "late"

    try:
        outcomes = await exercise(
            breaker,
            _never_in_time,
            iterations=2,
            interval_ms=0,
            logger=fake_logger,
            sleep=recording_sleep,
        )
    finally:
        release.set()

    assert outcomes == ["timeout", "timeout"]
    assert str(fake_logger.calls[0][2]["reason"]).startswith("deadline_exceeded")
    assert str(fake_logger.calls[1][2]["reason"]).startswith("circuit_open")
    assert recording_sleep.delays == [0.0]


def test_main_runs_configured_iterations(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(sys.stderr, "isatty", lambda: False, raising=False)
    monkeypatch.setattr(demo_mod, "_epoch_seconds", lambda: 3)
    monkeypatch.setenv("CALLGUARD_ITERATIONS", "2")
    monkeypatch.setenv("CALLGUARD_INTERVAL_MS", "0")
    monkeypatch.setenv("CALLGUARD_LOG_LEVEL", "warning")

    assert main() == 0


def test_main_logs_and_reports_unexpected_loop_error(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.setattr(sys.stderr, "isatty", lambda: False, raising=False)
    monkeypatch.setenv("CALLGUARD_ITERATIONS", "1")

    async def _broken_exercise(*args: object, **kwargs: object) -> list[str]:
        raise RuntimeError("loop broke")

    monkeypatch.setattr(demo_mod, "exercise", _broken_exercise)

    assert main() == 1

    err = capsys.readouterr().err
    assert '"event": "demo_crashed"' in err
    assert "RuntimeError: loop broke" in err
