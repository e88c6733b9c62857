from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from companion.services.task_registry import TaskRegistry

logger = logging.getLogger(__name__)

OnlineCallback = Callable[[], Awaitable[object]]
HealthProbe = Callable[[], Awaitable[bool]]


class ConnectivityMonitor:
    """
    Tracks the online/offline signal.

    The signal is set explicitly (OS network events) or by polling a health
    probe. Callbacks registered with ``on_online`` run as background tasks on
    every offline -> online transition.
    """

    def __init__(self, probe: HealthProbe | None = None, online: bool = True):
        self._probe = probe
        self._online = online
        self._callbacks: list[OnlineCallback] = []
        self._tasks = TaskRegistry("connectivity")
        self._callback_seq = 0

    def is_online(self) -> bool:
        return self._online

    def on_online(self, callback: OnlineCallback) -> None:
        self._callbacks.append(callback)

    def set_online(self, online: bool) -> None:
        was_online = self._online
        self._online = online
        if online and not was_online:
            logger.info("Back online, running %d reconnect handler(s)", len(self._callbacks))
            for callback in self._callbacks:
                self._callback_seq += 1
                self._tasks.start(f"on-online-{self._callback_seq}", callback())
        elif was_online and not online:
            logger.info("Gone offline")

    async def check(self) -> bool:
        """Probe once and update the signal. Without a probe the signal is unchanged."""
        if self._probe is None:
            return self._online
        try:
            online = await self._probe()
        except Exception as e:
            logger.warning("Connectivity probe failed: %s", e)
            online = False
        self.set_online(online)
        return online

    def start_polling(self, interval_seconds: float) -> None:
        if self._tasks.is_running("poll"):
            return
        self._tasks.start("poll", self._poll(interval_seconds))

    async def _poll(self, interval_seconds: float) -> None:
        while True:
            await self.check()
            await asyncio.sleep(interval_seconds)

    async def dispose(self) -> None:
        await self._tasks.cancel_all()
