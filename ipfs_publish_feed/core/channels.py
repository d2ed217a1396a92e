"""Helpers for racing awaitables against the process-wide shutdown event.

Every suspension point in the pipeline goes through :func:`race_shutdown`, so
a pending stream read, queue receive, backoff or snapshot reply gives up as
soon as shutdown is requested instead of being checked between operations.
When the work and the shutdown event are both ready at the same time,
shutdown wins and the work's result is discarded.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

T = TypeVar("T")


class ShutdownRequested(Exception):
    """Raised when shutdown fires before the raced work completes."""


async def race_shutdown(
    work: Awaitable[T],
    shutdown_event: asyncio.Event,
    discard: Callable[[T], Awaitable[Any]] | None = None,
) -> T:
    """Await ``work`` unless ``shutdown_event`` fires first.

    ``discard`` is awaited with the work's result when the work completed but
    lost the race, so resources such as open responses can be released.
    """

    if shutdown_event.is_set():
        if asyncio.iscoroutine(work):
            work.close()
        raise ShutdownRequested

    work_task = asyncio.ensure_future(work)
    stop_task = asyncio.ensure_future(shutdown_event.wait())
    try:
        await asyncio.wait({work_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (work_task, stop_task):
            if not task.done():
                task.cancel()
        await asyncio.wait({work_task, stop_task})

    if not stop_task.cancelled():
        if not work_task.cancelled() and work_task.exception() is None and discard is not None:
            await discard(work_task.result())
        raise ShutdownRequested

    return work_task.result()


async def send_or_cancel(queue: asyncio.Queue[T], item: T, shutdown_event: asyncio.Event) -> bool:
    """Put ``item`` on ``queue`` unless shutdown fires first; return whether it was delivered."""

    try:
        await race_shutdown(queue.put(item), shutdown_event)
    except ShutdownRequested:
        return False
    return True


async def receive_or_cancel(queue: asyncio.Queue[T], shutdown_event: asyncio.Event) -> T:
    """Take the next item from ``queue``, raising :class:`ShutdownRequested` on shutdown."""

    return await race_shutdown(queue.get(), shutdown_event)
