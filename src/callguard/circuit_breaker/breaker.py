"""Core circuit breaker implementation."""

import sys
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from callguard.circuit_breaker.exceptions import (
    BreakerBusyError,
    CircuitOpenError,
    DeadlineExceededError,
    FunctionError,
)
from callguard.circuit_breaker.state import (
    REJECTED,
    BreakerSnapshot,
    CircuitState,
    Rejected,
)
from callguard.circuit_breaker.timed_call import run_with_deadline


def _now_ms() -> int:
    return time.monotonic_ns() // 1_000_000


def _utcnow() -> datetime:
    return datetime.now(UTC)


class _CallGate:
    """Allow at most one in-flight ``call`` per breaker instance."""

    def __init__(self) -> None:
        is_gil_enabled = getattr(sys, "_is_gil_enabled", None)
        self._gil_enabled = True if is_gil_enabled is None else bool(is_gil_enabled())
        self._thread_lock: threading.Lock | None = None
        if not self._gil_enabled:
            self._thread_lock = threading.Lock()
        self._held = False

    def try_acquire(self) -> bool:
        if self._thread_lock is None:
            if self._held:
                return False
            self._held = True
            return True

        with self._thread_lock:
            if self._held:
                return False
            self._held = True
            return True

    def release(self) -> None:
        if self._thread_lock is None:
            self._held = False
            return
        with self._thread_lock:
            self._held = False


@dataclass(slots=True)
class CircuitBreakerConfig:
    """Circuit breaker policy values.

    Zero is legal everywhere and makes the breaker maximally strict or lenient.

    Attributes:
        failure_threshold: Consecutive failures while ``CLOSED`` that must be
            exceeded before opening.
        timeout_ms: Deadline for every protected call, in milliseconds.
        recovery_time_ms: Milliseconds since the last failure before an
            ``OPEN`` breaker may move to ``HALF_OPEN``.
        open_threshold_count: Consecutive ``HALF_OPEN`` successes required to
            close again.
    """

    failure_threshold: int = 5
    timeout_ms: int = 1_000
    recovery_time_ms: int = 30_000
    open_threshold_count: int = 2

    def __post_init__(self) -> None:
        if self.failure_threshold < 0:
            raise ValueError("failure_threshold must be >= 0")
        if self.timeout_ms < 0:
            raise ValueError("timeout_ms must be >= 0")
        if self.recovery_time_ms < 0:
            raise ValueError("recovery_time_ms must be >= 0")
        if self.open_threshold_count < 0:
            raise ValueError("open_threshold_count must be >= 0")


class CircuitBreaker:
    """Stateful guard around an unreliable, possibly slow operation.

    One logical caller drives a breaker sequentially. Overlapping calls on the
    same instance are refused with ``BreakerBusyError``.
    """

    def __init__(
        self,
        name: str,
        *,
        config: CircuitBreakerConfig | None = None,
    ) -> None:
        """Build a closed circuit breaker.

        Args:
            name: Breaker name used in errors and worker labels.
            config: Breaker policy. Defaults to ``CircuitBreakerConfig()``.
        """
        self._name = name
        self._config = CircuitBreakerConfig() if config is None else config
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time = 0
        self._last_failure_at: datetime | None = None
        self._open_success_count = 0
        self._call_gate = _CallGate()

    @property
    def name(self) -> str:
        return self._name

    @property
    def config(self) -> CircuitBreakerConfig:
        return self._config

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def last_failure_time(self) -> int:
        """Monotonic milliseconds of the last failure, only comparable in-process."""
        return self._last_failure_time

    @property
    def last_failure_at(self) -> datetime | None:
        """Wall-clock UTC time of the last failure, if any."""
        return self._last_failure_at

    @property
    def open_success_count(self) -> int:
        return self._open_success_count

    def snapshot(self) -> BreakerSnapshot:
        """Return a point-in-time copy of the breaker internals."""
        return BreakerSnapshot(
            name=self._name,
            state=self._state,
            failure_count=self._failure_count,
            last_failure_time=self._last_failure_time,
            last_failure_at=self._last_failure_at,
            open_success_count=self._open_success_count,
        )

    async def call(
        self,
        func: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """Invoke ``func`` under circuit breaker protection.

        Args:
            func: Operation to execute, sync or async. It runs at most once.
            *args: Positional arguments forwarded to ``func``.
            **kwargs: Keyword arguments forwarded to ``func``.

        Returns:
            The result of ``func`` when attempted and successful, or
            ``REJECTED`` when the breaker declined the call while moving from
            ``OPEN`` to ``HALF_OPEN``.

        Raises:
            FunctionError: ``func`` ran and raised; the original exception is
                available as ``.error``.
            DeadlineExceededError: ``func`` produced no result within
                ``timeout_ms``.
            CircuitOpenError: The circuit is open and the recovery window has
                not elapsed.
            BreakerBusyError: Another call on this breaker is still in flight.
        """
        if not self._call_gate.try_acquire():
            raise BreakerBusyError(self._name)
        try:
            if self._state == CircuitState.OPEN:
                return self._handle_open()
            if self._state == CircuitState.HALF_OPEN:
                return await self._handle_half_open(func, args, kwargs)
            return await self._handle_closed(func, args, kwargs)
        finally:
            self._call_gate.release()

    def _handle_open(self) -> Rejected:
        elapsed = _now_ms() - self._last_failure_time
        if elapsed < self._config.recovery_time_ms:
            raise CircuitOpenError(
                self._name,
                retry_after_ms=self._config.recovery_time_ms - elapsed,
            )

        self._state = CircuitState.HALF_OPEN
        self._open_success_count = 0
        self._failure_count = 0
        return REJECTED

    async def _handle_closed(
        self,
        func: Callable[..., Any],
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> Any:
        worker = await run_with_deadline(
            self._name, func, *args, timeout_ms=self._config.timeout_ms, **kwargs
        )
        if worker is None:
            self._trip()
            raise DeadlineExceededError(self._name, self._config.timeout_ms)

        try:
            result = worker.result()
        except Exception as exc:
            self._record_failure_time()
            self._failure_count += 1
            if self._failure_count > self._config.failure_threshold:
                self._state = CircuitState.OPEN
            raise FunctionError(self._name, exc) from exc

        self._failure_count = 0
        return result

    async def _handle_half_open(
        self,
        func: Callable[..., Any],
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> Any:
        worker = await run_with_deadline(
            self._name, func, *args, timeout_ms=self._config.timeout_ms, **kwargs
        )
        if worker is None:
            self._trip()
            raise DeadlineExceededError(self._name, self._config.timeout_ms)

        try:
            result = worker.result()
        except Exception as exc:
            self._trip()
            raise FunctionError(self._name, exc) from exc

        self._open_success_count += 1
        if self._open_success_count >= self._config.open_threshold_count:
            self._state = CircuitState.CLOSED
            self._open_success_count = 0
            self._failure_count = 0
        return result

    def _trip(self) -> None:
        """Open immediately, restarting the failure count at one."""
        self._record_failure_time()
        self._failure_count = 1
        self._open_success_count = 0
        self._state = CircuitState.OPEN

    def _record_failure_time(self) -> None:
        self._last_failure_time = _now_ms()
        self._last_failure_at = _utcnow()
