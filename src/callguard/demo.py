"""Demo runner exercising a circuit breaker against a flaky service."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Literal

from callguard.circuit_breaker import (
    REJECTED,
    BreakerTimeoutError,
    CircuitBreaker,
    FunctionError,
)
from callguard.errors import ServiceUnavailableError
from callguard.logging import (
    StructuredLogger,
    configure_structlog,
    log_exception,
    log_info,
    log_warning,
)
from callguard.settings import DemoSettings

Outcome = Literal["success", "rejected", "failed", "timeout"]


def _epoch_seconds() -> int:
    return int(time.time())


def unreliable_service() -> str:
    """Fail on even wall-clock seconds, succeed on odd ones."""
    if _epoch_seconds() % 2 == 0:
        raise ServiceUnavailableError("service failed")
    return "Success!"


async def exercise(
    breaker: CircuitBreaker,
    operation: Callable[[], object],
    *,
    iterations: int,
    interval_ms: int,
    logger: StructuredLogger,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> list[Outcome]:
    """Call ``operation`` through ``breaker`` repeatedly and log each outcome.

    Args:
        breaker: Breaker guarding the operation.
        operation: Zero-argument operation, sync or async.
        iterations: Number of calls to make.
        interval_ms: Pause between consecutive calls, in milliseconds.
        logger: Structured logger receiving one event per call.
        sleep: Awaitable sleep used between calls.

    Returns:
        One outcome label per call, in call order.
    """
    outcomes: list[Outcome] = []
    for index in range(iterations):
        if index:
            await sleep(interval_ms / 1000)

        try:
            result = await breaker.call(operation)
        except FunctionError as error:
            log_warning(
                logger,
                "service_failed",
                error=repr(error.error),
                breaker=breaker.snapshot(),
            )
            outcomes.append("failed")
            continue
        except BreakerTimeoutError as error:
            log_warning(
                logger,
                "service_timed_out",
                reason=str(error),
                breaker=breaker.snapshot(),
            )
            outcomes.append("timeout")
            continue

        if result is REJECTED:
            log_info(logger, "service_open", breaker=breaker.snapshot())
            outcomes.append("rejected")
        else:
            log_info(
                logger,
                "service_returned",
                result=result,
                breaker=breaker.snapshot(),
            )
            outcomes.append("success")
    return outcomes


def main() -> int:
    """Run the demo loop configured from ``CALLGUARD_*`` environment values.

    Returns ``0`` when the loop completes and ``1`` when it stops on an
    unexpected error.
    """
    settings = DemoSettings()
    logger = configure_structlog(log_level=settings.log_level)
    breaker = CircuitBreaker(settings.breaker_name, config=settings.breaker_config())

    log_info(
        logger,
        "demo_started",
        iterations=settings.iterations,
        interval_ms=settings.interval_ms,
        breaker=breaker.snapshot(),
    )
    try:
        outcomes = asyncio.run(
            exercise(
                breaker,
                unreliable_service,
                iterations=settings.iterations,
                interval_ms=settings.interval_ms,
                logger=logger,
            )
        )
    except Exception:
        log_exception(logger, "demo_crashed", breaker=breaker.snapshot())
        return 1
    log_info(
        logger,
        "demo_finished",
        outcomes={label: outcomes.count(label) for label in sorted(set(outcomes))},
        breaker=breaker.snapshot(),
    )
    return 0
