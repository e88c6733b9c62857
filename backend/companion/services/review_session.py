"""
Client-side review session.

Wires the offline durability engine together for one user:

    due_cards -> server when online, else the local card cache
    review -> SM-2 (optimistic local state) -> offline queue -> drain when online
    lookup -> translation LRU -> server /translate on a miss
    reminders -> periodic due-count checks

Construct with ``Companion.create(...)`` and release with ``dispose()``.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

import httpx

from companion.config import Settings, settings as default_settings
from companion.models.review import Card, DrainResult, Flashcard, ReviewAttempt
from companion.services import sm2
from companion.services.connectivity import ConnectivityMonitor
from companion.services.notifications import LoggingNotifier, NotificationScheduler, Notifier
from companion.services.offline_queue import OfflineQueue, QueueStorageError
from companion.services.review_client import ReviewClient, SubmissionError
from companion.services.task_registry import TaskRegistry
from companion.services.translation_cache import TranslationCache, TranslationCacheEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReviewOutcome:
    card: Card               # locally scheduled state, pending server confirmation
    local_id: str
    durable: bool = True     # False if the local queue was unavailable
    submitted: bool = False  # only meaningful when not durable


class Companion:
    def __init__(
        self,
        client: ReviewClient,
        queue: OfflineQueue,
        cache: TranslationCache,
        reminders: NotificationScheduler,
        connectivity: ConnectivityMonitor,
        settings: Settings = default_settings,
    ):
        self.client = client
        self.queue = queue
        self.cache = cache
        self.reminders = reminders
        self.connectivity = connectivity
        self.settings = settings
        self._tasks = TaskRegistry("companion")
        self._disposed = False

    @classmethod
    async def create(
        cls,
        user_id: str,
        settings: Settings = default_settings,
        notifier: Notifier | None = None,
        online: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> Companion:
        client = ReviewClient(
            settings.server_url, user_id, settings.request_timeout, transport=transport
        )

        async def probe() -> bool:
            return await client.health(timeout=settings.health_timeout)

        connectivity = ConnectivityMonitor(probe=probe, online=online)
        try:
            queue = await OfflineQueue.create(
                settings.data_dir / settings.queue_filename,
                client.submit,
                connectivity.is_online,
                backoff_base_seconds=settings.retry_backoff_base_seconds,
                backoff_max_seconds=settings.retry_backoff_max_seconds,
            )
        except QueueStorageError:
            await client.aclose()
            raise
        reminders = NotificationScheduler(notifier or LoggingNotifier(), client.due_count)
        companion = cls(
            client,
            queue,
            TranslationCache(settings.translation_cache_size),
            reminders,
            connectivity,
            settings,
        )
        connectivity.on_online(companion.reconcile)
        return companion

    async def start(self, poll_connectivity: bool = True, reminders: bool = True) -> None:
        """App foreground: reconcile with the server and begin background checks."""
        if poll_connectivity:
            self.connectivity.start_polling(self.settings.connectivity_poll_seconds)
        if reminders:
            await self.reminders.start(self.settings.reminder_interval_minutes)
        if self.connectivity.is_online():
            self._tasks.start("reconcile", self.reconcile())

    async def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        await self.reminders.dispose()
        await self.connectivity.dispose()
        await self._tasks.cancel_all()
        await self.queue.dispose()
        self.cache.clear()
        await self.client.aclose()

    async def review(self, card: Card, attempt: ReviewAttempt | dict) -> ReviewOutcome:
        """
        Record a review locally and schedule its submission.

        Raises pydantic.ValidationError for a malformed attempt; nothing is
        queued in that case.
        """
        if not isinstance(attempt, ReviewAttempt):
            attempt = ReviewAttempt.model_validate(attempt)
        updated = sm2.update(card, attempt.quality)

        try:
            queued = await self.queue.enqueue(attempt)
        except QueueStorageError:
            return await self._submit_directly(updated, attempt)

        try:
            await self.queue.remember_review(attempt.vocabulary_id, updated)
        except QueueStorageError as e:
            logger.warning("Cached card for %s not updated: %s", attempt.vocabulary_id, e)

        if self.connectivity.is_online():
            self._tasks.start(f"drain-{queued.local_id}", self.queue.drain())
        return ReviewOutcome(card=updated, local_id=queued.local_id)

    async def _submit_directly(self, card: Card, attempt: ReviewAttempt) -> ReviewOutcome:
        local_id = str(uuid.uuid4())
        submitted = False
        if self.connectivity.is_online():
            try:
                await self.client.submit(attempt, local_id)
                submitted = True
            except SubmissionError as e:
                logger.warning("Review for %s lost: queue unavailable and submit failed: %s",
                               attempt.vocabulary_id, e)
        else:
            logger.warning("Review for %s lost: queue unavailable while offline",
                           attempt.vocabulary_id)
        return ReviewOutcome(card=card, local_id=local_id, durable=False, submitted=submitted)

    async def sync(self) -> DrainResult:
        return await self.queue.drain()

    async def retry(self) -> DrainResult:
        return await self.queue.retry()

    async def lookup(self, text: str) -> TranslationCacheEntry:
        """Translate ``text``, served from the session cache when possible."""
        return await self.cache.get_or_fetch(text, self.client.translate)

    async def reconcile(self) -> DrainResult:
        """Submit queued reviews, then refresh the offline card cache."""
        result = await self.queue.drain()
        if self.connectivity.is_online():
            try:
                await self.refresh_cards()
            except (SubmissionError, QueueStorageError) as e:
                logger.warning("Offline card cache not refreshed: %s", e)
        return result

    async def refresh_cards(self) -> int:
        due = await self.client.due_cards(
            include_cards=True, limit=self.settings.offline_card_limit
        )
        return await self.queue.cache_cards(due.cards or [])

    async def due_cards(self) -> list[Flashcard]:
        """
        Cards due for review now.

        Refreshed from the server when online. Offline, or when the server
        cannot be reached, they come from the local cache with local reviews
        already applied.
        """
        if self.connectivity.is_online():
            try:
                await self.refresh_cards()
            except SubmissionError as e:
                logger.warning("Due cards unavailable from server, using cache: %s", e)
        return await self.queue.cached_cards()
