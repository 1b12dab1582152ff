"""Background task runner for fire-and-forget side effects.

Cache writes, chat persistence and document ingestion run as detached
asyncio tasks. The runner keeps a strong reference to every task until it
finishes and logs any exception it raised, so a failed side effect never
reaches the caller that scheduled it.
"""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)


class BackgroundTaskRunner:
    """Schedules detached coroutines and logs their failures."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task[Any]:
        """Schedule a coroutine on the running loop without awaiting it.

        Args:
            coro: Coroutine to run
            name: Task name used in failure logs

        Returns:
            The scheduled task
        """
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)

        if task.cancelled():
            logger.warning("Background task cancelled", extra={"structured": {"task": task.get_name()}})
            return

        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Background task failed: {exc}",
                exc_info=exc,
                extra={"structured": {"task": task.get_name(), "error": type(exc).__name__}},
            )

    @property
    def pending(self) -> int:
        """Number of tasks still running."""
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every scheduled task (including ones scheduled meanwhile) finishes."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
