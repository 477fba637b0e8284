"""Async circuit breaker guarding calls to an unreliable operation.

This package implements the circuit breaker pattern from *Release It!*.

Key behavior notes:
  - Every call runs the operation on a fresh isolated worker and waits for it
    up to ``timeout_ms``. A worker that misses the deadline is abandoned, never
    cancelled, and its late result is discarded.
  - A timeout opens the circuit immediately, whatever the failure count.
    Ordinary failures open it only once ``failure_threshold`` is exceeded.
  - The call that finds an ``OPEN`` breaker past its recovery window is not
    attempted: it moves the breaker to ``HALF_OPEN`` and returns ``REJECTED``.
    Subsequent calls are trial calls; ``open_threshold_count`` consecutive
    successes close the circuit and any failure reopens it.
  - The breaker never logs or emits events. It is driven by one sequential
    caller.
"""

from callguard.circuit_breaker.breaker import CircuitBreaker, CircuitBreakerConfig
from callguard.circuit_breaker.exceptions import (
    BreakerBusyError,
    BreakerTimeoutError,
    CircuitBreakerError,
    CircuitOpenError,
    DeadlineExceededError,
    FunctionError,
)
from callguard.circuit_breaker.state import (
    REJECTED,
    BreakerSnapshot,
    CallRejected,
    CircuitState,
)

__all__ = [
    "REJECTED",
    "BreakerBusyError",
    "BreakerSnapshot",
    "BreakerTimeoutError",
    "CallRejected",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitOpenError",
    "CircuitState",
    "DeadlineExceededError",
    "FunctionError",
]
