"""
Review reminders.

A periodic due-check: asks the server how many cards are due and raises a
notification when the count is positive. Display and permission handling
belong to the host platform and are reached through the ``Notifier`` protocol.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

from companion.services.task_registry import TaskRegistry
from companion.utils.time import utcnow

logger = logging.getLogger(__name__)

REVIEW_URL = "/review"
REMINDER_TAG = "review-reminder"


class Permission(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"
    DEFAULT = "default"           # not asked yet
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class Notification:
    title: str
    body: str = ""
    url: str = REVIEW_URL
    tag: str = REMINDER_TAG
    data: dict[str, Any] = field(default_factory=dict)


class Notifier(Protocol):
    def permission(self) -> Permission: ...

    async def request_permission(self) -> Permission: ...

    def show(self, notification: Notification) -> None: ...


class LoggingNotifier:
    """
    Notifier that records and logs notifications instead of displaying them.

    Clicking a shown notification navigates through ``on_click``.
    """

    def __init__(
        self,
        permission: Permission = Permission.DEFAULT,
        grant_on_request: bool = True,
        on_click: Callable[[str], None] | None = None,
    ):
        self._permission = permission
        self._grant_on_request = grant_on_request
        self._on_click = on_click
        self.shown: list[Notification] = []

    def permission(self) -> Permission:
        return self._permission

    async def request_permission(self) -> Permission:
        if self._permission == Permission.DEFAULT:
            self._permission = (
                Permission.GRANTED if self._grant_on_request else Permission.DENIED
            )
        return self._permission

    def show(self, notification: Notification) -> None:
        if self._permission != Permission.GRANTED:
            logger.warning("Notification permission not granted")
            return
        # Same tag replaces the previous notification
        self.shown = [n for n in self.shown if n.tag != notification.tag]
        self.shown.append(notification)
        logger.info("Notification: %s (%s)", notification.title, notification.body)

    def click(self, notification: Notification) -> None:
        if self._on_click is not None:
            self._on_click(notification.url)


def reminder_for(due_count: int) -> Notification:
    noun = "card" if due_count == 1 else "cards"
    return Notification(
        title=f"You have {due_count} {noun} due for review",
        body="Click to start reviewing now!",
        data={"url": REVIEW_URL, "due_count": due_count},
    )


class NotificationScheduler:
    def __init__(self, notifier: Notifier, due_count: Callable[[], Awaitable[int]]):
        self._notifier = notifier
        self._due_count = due_count
        self._tasks = TaskRegistry("reminders")
        self._enabled = False
        self.last_check_time: datetime | None = None

    def is_enabled(self) -> bool:
        return self._enabled

    async def check_due(self) -> int | None:
        """
        Query the due count and notify when it is positive.

        Returns the count, or None when permission is missing or the query
        failed.
        """
        if self._notifier.permission() != Permission.GRANTED:
            return None
        self.last_check_time = utcnow()
        try:
            count = await self._due_count()
        except Exception as e:
            logger.warning("Due-card check failed: %s", e)
            return None
        if count > 0:
            self._notifier.show(reminder_for(count))
        return count

    async def start(self, interval_minutes: float = 60) -> bool:
        """
        Check now, then every ``interval_minutes``. Restarts a running schedule.

        Returns False without scheduling anything when permission is missing.
        """
        await self.stop()
        if self._notifier.permission() != Permission.GRANTED:
            logger.warning("Cannot start reminders: notification permission not granted")
            return False
        self._enabled = True
        self._tasks.start("periodic", self._run(interval_minutes * 60))
        logger.info("Review reminders started (every %s min)", interval_minutes)
        return True

    async def _run(self, interval_seconds: float) -> None:
        while True:
            await self.check_due()
            await asyncio.sleep(interval_seconds)

    async def stop(self) -> None:
        if self._enabled:
            logger.info("Review reminders stopped")
        await self._tasks.cancel_all()
        self._enabled = False

    async def dispose(self) -> None:
        await self.stop()
