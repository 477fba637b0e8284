"""Timed execution of a protected operation on an isolated worker.

Every call gets a fresh worker. Coroutine functions run as their own
``asyncio.Task``; plain callables run on a new daemon thread so a blocking or
hung operation never stalls the event loop. An awaitable returned by a plain
callable is scheduled on the loop and counts as that worker's outcome. The caller waits for the worker up
to a deadline and, when the deadline passes, detaches it: the worker is neither
cancelled nor awaited, and whatever it produces later is discarded.
"""

import asyncio
import inspect
import threading
from collections.abc import Callable
from contextlib import suppress
from typing import Any, TypeVar

T = TypeVar("T")

_detached: set[asyncio.Future[Any]] = set()
_chained: set[asyncio.Future[Any]] = set()


def _callable_name(func: Callable[..., object]) -> str:
    callable_name = getattr(func, "__qualname__", None)
    if callable_name is None:
        callable_name = getattr(func, "__name__", None)
    if callable_name is None:
        callable_name = func.__class__.__qualname__
    return str(callable_name)


def is_async_callable(func: Callable[..., object]) -> bool:
    """Return whether calling ``func`` produces a coroutine.

    Covers coroutine functions, ``functools.partial`` wrappers of them and
    callable instances defining ``async def __call__``.
    """
    if inspect.iscoroutinefunction(func):
        return True
    return inspect.iscoroutinefunction(getattr(func, "__call__", None))


def _discard_outcome(worker: asyncio.Future[Any]) -> None:
    _detached.discard(worker)
    if not worker.cancelled():
        worker.exception()


def detach(worker: asyncio.Future[Any]) -> None:
    """Stop tracking ``worker`` and drop its eventual outcome."""
    if worker.done():
        _discard_outcome(worker)
        return
    _detached.add(worker)
    worker.add_done_callback(_discard_outcome)


def detached_count() -> int:
    """Return how many abandoned workers are still running."""
    return len(_detached)


def _spawn_thread(
    loop: asyncio.AbstractEventLoop,
    name: str,
    func: Callable[..., T],
    args: tuple[Any, ...],
    kwargs: dict[str, Any],
) -> asyncio.Future[T]:
    future: asyncio.Future[T] = loop.create_future()

    def _copy_outcome(inner: asyncio.Future[Any]) -> None:
        _chained.discard(inner)
        if future.done():
            if not inner.cancelled():
                inner.exception()
            return
        if inner.cancelled():
            future.cancel()
        elif inner.exception() is not None:
            future.set_exception(inner.exception())
        else:
            future.set_result(inner.result())

    def _settle(result: Any, error: BaseException | None) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
            return
        # Plain callables may hand back an awaitable, e.g. ``lambda: fetch()``.
        if inspect.isawaitable(result):
            inner = asyncio.ensure_future(result, loop=loop)
            _chained.add(inner)
            inner.add_done_callback(_copy_outcome)
            return
        future.set_result(result)

    def _run() -> None:
        result: Any = None
        error: BaseException | None = None
        try:
            result = func(*args, **kwargs)
        except BaseException as exc:
            error = exc
        # The loop may already be closed when an abandoned worker finishes.
        with suppress(RuntimeError):
            loop.call_soon_threadsafe(_settle, result, error)

    thread = threading.Thread(target=_run, name=name, daemon=True)
    thread.start()
    return future


def spawn_worker(
    name: str,
    func: Callable[..., Any],
    *args: Any,
    **kwargs: Any,
) -> asyncio.Future[Any]:
    """Start ``func`` on a new isolated worker and return its future."""
    loop = asyncio.get_running_loop()
    worker_name = f"circuit_breaker:{name}:{_callable_name(func)}"
    if is_async_callable(func):
        return loop.create_task(func(*args, **kwargs), name=worker_name)
    return _spawn_thread(loop, worker_name, func, args, kwargs)


async def run_with_deadline(
    name: str,
    func: Callable[..., Any],
    *args: Any,
    timeout_ms: int,
    **kwargs: Any,
) -> asyncio.Future[Any] | None:
    """Run ``func`` on a fresh worker and wait for it up to ``timeout_ms``.

    Args:
        name: Breaker name, used to label the worker.
        func: Operation to execute. Sync or async.
        *args: Positional arguments forwarded to ``func``.
        timeout_ms: Maximum wait in milliseconds. ``0`` does not wait at all.
        **kwargs: Keyword arguments forwarded to ``func``.

    Returns:
        The finished worker future, whose ``result()`` yields the operation's
        value or raises its exception, or ``None`` when the deadline elapsed
        first. A worker that missed the deadline is detached.
    """
    worker = spawn_worker(name, func, *args, **kwargs)
    try:
        done, _ = await asyncio.wait({worker}, timeout=timeout_ms / 1000)
    except asyncio.CancelledError:
        detach(worker)
        raise
    if not done:
        detach(worker)
        return None
    return worker
