"""Supervised background tasks."""

from __future__ import annotations

import asyncio
import logging
from typing import Coroutine, Set

logger = logging.getLogger(__name__)


class TaskSupervisor:
    """
    Owns fire-and-forget tasks spawned on behalf of webhook requests.

    Holds a strong reference to every task until it finishes and routes
    any failure to a single log sink instead of an unobserved exception.
    """

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.info("Background task %s cancelled", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Error in background task {task.get_name()}: {exc}",
                exc_info=exc,
                extra={"task": task.get_name()},
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def join(self) -> None:
        """Wait for every running task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel running tasks. Abandoned monitors persist nothing further."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Cancelled %d background task(s)", len(tasks))
