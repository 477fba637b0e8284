"""Circuit breaker exceptions.

Callers can distinguish between:
  - The protected operation failing (``FunctionError``).
  - A timeout-class outcome (``BreakerTimeoutError``), either because the call
    exceeded its deadline (``DeadlineExceededError``) or because the circuit is
    open and the call was never attempted (``CircuitOpenError``).
"""


class CircuitBreakerError(Exception):
    """Base exception for the circuit breaker package."""


class FunctionError(CircuitBreakerError):
    """Raised when the protected operation ran and raised its own error.

    Attributes:
        breaker_name: Name of the breaker that ran the operation.
        error: The operation's exception, forwarded unchanged.
    """

    def __init__(self, breaker_name: str, error: Exception) -> None:
        """Wrap an operation failure.

        Args:
            breaker_name: Breaker that ran the operation.
            error: Exception raised by the operation.
        """
        self.breaker_name = breaker_name
        self.error = error
        super().__init__(f"function_error: {breaker_name} {error!r}")


class BreakerTimeoutError(CircuitBreakerError, TimeoutError):
    """Base class for timeout-class breaker outcomes."""


class DeadlineExceededError(BreakerTimeoutError):
    """Raised when the operation produced no result within the call timeout.

    Attributes:
        breaker_name: Name of the breaker enforcing the deadline.
        timeout_ms: Deadline that elapsed, in milliseconds.
    """

    def __init__(self, breaker_name: str, timeout_ms: int) -> None:
        """Initialize a deadline payload.

        Args:
            breaker_name: Breaker enforcing the deadline.
            timeout_ms: Elapsed deadline in milliseconds.
        """
        self.breaker_name = breaker_name
        self.timeout_ms = timeout_ms
        super().__init__(f"deadline_exceeded: {breaker_name} timeout={timeout_ms}ms")


class CircuitOpenError(BreakerTimeoutError):
    """Raised when a call is rejected because the circuit is open.

    Attributes:
        breaker_name: Name of the breaker rejecting the call.
        retry_after_ms: Milliseconds until the breaker may leave ``OPEN``.
    """

    def __init__(self, breaker_name: str, retry_after_ms: int) -> None:
        """Initialize a circuit-open exception payload.

        Args:
            breaker_name: Breaker rejecting the call.
            retry_after_ms: Milliseconds until the recovery window elapses.
        """
        self.breaker_name = breaker_name
        self.retry_after_ms = retry_after_ms
        super().__init__(
            f"circuit_open: {breaker_name} retry_after={retry_after_ms}ms"
        )


class BreakerBusyError(CircuitBreakerError):
    """Raised when ``call`` overlaps another in-flight call on the same breaker."""

    def __init__(self, breaker_name: str) -> None:
        self.breaker_name = breaker_name
        super().__init__(f"breaker_busy: {breaker_name}")
