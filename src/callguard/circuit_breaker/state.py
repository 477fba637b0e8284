"""Circuit breaker state primitives."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum, StrEnum
from typing import Final, Literal


class CircuitState(StrEnum):
    """Circuit breaker state values."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CallRejected(Enum):
    """Marker returned when the breaker declines a call while leaving ``OPEN``.

    The call that moves the breaker into ``HALF_OPEN`` is itself not attempted.
    A dedicated marker keeps that outcome apart from an operation that returns
    ``None``.
    """

    REJECTED = "rejected"


REJECTED: Final = CallRejected.REJECTED
Rejected = Literal[CallRejected.REJECTED]


@dataclass(frozen=True)
class BreakerSnapshot:
    """Point-in-time view of breaker internals useful for logging.

    Attributes:
        name: Breaker name.
        state: Current breaker state.
        failure_count: Consecutive failures counted so far.
        last_failure_time: Monotonic millisecond timestamp of the last failure
            or timeout, ``0`` when none happened yet. Only meaningful relative
            to other readings in the same process.
        last_failure_at: Wall-clock UTC time of the same failure, if any.
        open_success_count: Consecutive successful trial calls while ``HALF_OPEN``.
    """

    name: str
    state: CircuitState
    failure_count: int
    last_failure_time: int
    last_failure_at: datetime | None
    open_success_count: int
