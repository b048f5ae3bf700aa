"""Bounded-concurrency primitives for the ingestion pipeline.

Two patterns are exposed:

1. **throttled_gather** -- a drop-in replacement for ``asyncio.gather`` that
   wraps each awaitable in a semaphore acquire/release.  The batch uploader
   uses it to dispatch degraded sub-batches together without unbounded
   fan-out against provider rate limits.

2. **BackgroundDispatcher** -- fire-and-forget scheduling of pipeline
   invocations that keeps a strong reference to every task (the event loop
   only keeps weak ones) and lets one-shot callers such as the CLI wait for
   everything to settle via :meth:`BackgroundDispatcher.drain`.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Coroutine, TypeVar

import structlog

from docingest.utils.logging import get_logger

_T = TypeVar("_T")

_logger: structlog.BoundLogger = get_logger(__name__)


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently, at most ``semaphore`` slots at a time.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Semaphore bounding how many run at once.
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input coroutines.
    """

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    tasks = [_wrapped(c) for c in coros]
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)


class BackgroundDispatcher:
    """Schedules coroutines as background tasks and tracks them until done.

    Exceptions escaping a task are logged, never re-raised into the loop's
    default handler.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def dispatch(
        self,
        factory: Callable[[], Coroutine[Any, Any, _T]],
        name: str | None = None,
    ) -> asyncio.Task[_T]:
        """Start ``factory()`` as a task and return it."""
        task = asyncio.get_running_loop().create_task(factory(), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every dispatched task, including ones scheduled while
        waiting, has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            _logger.warning("background_task_cancelled", task=task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            _logger.error(
                "background_task_failed",
                task=task.get_name(),
                error=str(exc),
                error_type=type(exc).__name__,
            )
