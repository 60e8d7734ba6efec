"""
Fire-and-forget side effects.

Metrics writes and token-usage tracking must never delay or fail the request
that triggered them. Call sites hand the coroutine to ``BestEffortRunner``
instead of wrapping each one in try/except: the runner schedules it on the
running loop, holds a strong reference until it completes, and logs (then
drops) any exception it raises.

Nothing awaits a spawned task on the request path. ``drain()`` exists for
shutdown and for tests that need to observe the side effects.
"""

from __future__ import annotations

import asyncio
from typing import Any, Coroutine

from shared.logging import get_logger

log = get_logger(__name__)


class BestEffortRunner:
    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], label: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=label)
        self._tasks.add(task)
        task.add_done_callback(self._finished)
        return task

    def _finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            log.debug("best_effort_task_cancelled", task=task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            log.warning(
                "best_effort_task_failed",
                task=task.get_name(),
                error=str(exc),
                error_type=type(exc).__name__,
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for every outstanding task; stragglers past *timeout* are cancelled."""
        if not self._tasks:
            return
        tasks = list(self._tasks)
        done, still_running = await asyncio.wait(tasks, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
