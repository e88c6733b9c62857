from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)


class TaskRegistry:
    """Named background tasks owned by one component, cancelled together on dispose."""

    def __init__(self, prefix: str):
        self.prefix = prefix
        self._running: dict[str, asyncio.Task[Any]] = {}

    def start(self, name: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=f"{self.prefix}-{name}")
        self._running[name] = task
        task.add_done_callback(lambda t: self._finished(name, t))
        return task

    def _finished(self, name: str, task: asyncio.Task[Any]) -> None:
        if self._running.get(name) is task:
            self._running.pop(name, None)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "Background task %s failed",
                task.get_name(),
                exc_info=task.exception(),
            )

    def get(self, name: str) -> asyncio.Task[Any] | None:
        return self._running.get(name)

    def is_running(self, name: str) -> bool:
        task = self._running.get(name)
        return task is not None and not task.done()

    async def cancel(self, name: str) -> None:
        task = self._running.pop(name, None)
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def cancel_all(self) -> None:
        for name in list(self._running):
            await self.cancel(name)
