"""Detached fire-and-forget work (summary regeneration and similar side effects)."""

import asyncio
from collections.abc import Coroutine
from typing import Any

from expertise_engine.core.errors import BackgroundTaskError
from expertise_engine.core.logging import get_logger

logger = get_logger(__name__)

# Strong references so the event loop does not garbage-collect running tasks
_running: set[asyncio.Task] = set()


def spawn_background(coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task:
    """Schedule ``coro`` without awaiting it.

    Failures are logged as BackgroundTaskError and never reach the caller.
    Must be called from inside a running event loop.
    """
    task = asyncio.create_task(coro, name=name)
    _running.add(task)
    task.add_done_callback(_on_done)
    return task


def _on_done(task: asyncio.Task) -> None:
    _running.discard(task)
    if task.cancelled():
        logger.info(f"Background task {task.get_name()} cancelled")
        return
    exc = task.exception()
    if exc is not None:
        error = BackgroundTaskError(task.get_name(), exc)
        logger.warning(str(error), exc_info=exc)


async def drain_background() -> None:
    """Wait for every task spawned so far. Used on shutdown and in tests."""
    while _running:
        await asyncio.gather(*list(_running), return_exceptions=True)
        # Let done-callbacks run before re-checking
        await asyncio.sleep(0)
