"""
Offline review queue.

Every review attempt is written to the local durable store before any network
I/O, then reconciled with the server by ``drain()``:

    PENDING -> SUBMITTING -> removed (server acknowledged)
                          -> FAILED  (kept, retried on the next drain)

There is no terminal failure state; an entry leaves the queue only when the
server acknowledges it or it is discarded explicitly. The entry's ``local_id``
doubles as the server idempotency key, so a retry after an interrupted
submission is not double-counted.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import timedelta
from pathlib import Path

from companion.db.queue_store import QueueStorageError, QueueStore
from companion.models.review import Card, DrainResult, Flashcard, QueuedAttempt, ReviewAttempt
from companion.services.review_client import SubmissionError
from companion.utils.time import to_db, utcnow

logger = logging.getLogger(__name__)

Submitter = Callable[[ReviewAttempt, str], Awaitable[object]]

__all__ = ["OfflineQueue", "QueueStorageError", "Submitter"]


def _always_online() -> bool:
    return True


class OfflineQueue:
    def __init__(
        self,
        store: QueueStore,
        submit: Submitter,
        is_online: Callable[[], bool] = _always_online,
        backoff_base_seconds: float = 0.0,
        backoff_max_seconds: float = 3600.0,
    ):
        self._store = store
        self._submit = submit
        self._is_online = is_online
        self.backoff_base_seconds = backoff_base_seconds
        self.backoff_max_seconds = backoff_max_seconds
        self._inflight: asyncio.Future[DrainResult] | None = None

    @classmethod
    async def create(
        cls,
        db_path: Path,
        submit: Submitter,
        is_online: Callable[[], bool] = _always_online,
        **kwargs,
    ) -> OfflineQueue:
        store = QueueStore(db_path)
        recovered = await store.open()
        if recovered:
            logger.info("Recovered %d interrupted submission(s) to pending", recovered)
        return cls(store, submit, is_online, **kwargs)

    async def dispose(self) -> None:
        """Let an in-flight drain finish, then close the store."""
        if self._inflight is not None and not self._inflight.done():
            await asyncio.wait([self._inflight])
        await self._store.close()

    def is_online(self) -> bool:
        return self._is_online()

    async def enqueue(self, attempt: ReviewAttempt | dict) -> QueuedAttempt:
        """
        Persist an attempt as PENDING and return immediately.

        Raises pydantic.ValidationError for a malformed attempt (nothing is
        stored) and QueueStorageError when the durable store is unavailable.
        """
        if not isinstance(attempt, ReviewAttempt):
            attempt = ReviewAttempt.model_validate(attempt)

        local_id = str(uuid.uuid4())
        try:
            await self._store.append(local_id, attempt)
        except QueueStorageError as e:
            logger.warning(
                "Review for %s could not be queued durably: %s", attempt.vocabulary_id, e
            )
            raise
        queued = await self._store.get(local_id)
        if queued is None:
            raise QueueStorageError(f"Queued attempt {local_id} was not persisted")
        return queued

    async def drain(self, force: bool = False) -> DrainResult:
        """
        Submit every PENDING/FAILED entry in enqueue order.

        A call made while another drain is running joins it and gets the same
        result. ``force`` ignores retry backoff.
        """
        if not self.is_online():
            return DrainResult()
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.ensure_future(self._drain(force))
        return await asyncio.shield(self._inflight)

    async def retry(self) -> DrainResult:
        return await self.drain(force=True)

    async def _drain(self, force: bool) -> DrainResult:
        result = DrainResult()
        use_backoff = self.backoff_base_seconds > 0 and not force
        cursor = 0
        try:
            while self.is_online():
                not_before = to_db(utcnow()) if use_backoff else None
                entry = await self._store.next_ready(cursor, not_before)
                if entry is None:
                    break
                cursor = entry.seq
                if not await self._store.mark_submitting(entry.seq):
                    continue  # discarded or cleared meanwhile

                try:
                    await self._submit(entry.attempt, entry.local_id)
                except Exception as e:
                    if isinstance(e, SubmissionError) and not e.is_transient:
                        # Kept, but a plain retry will not help
                        logger.error(
                            "Server rejected %s with %s: %s",
                            entry.local_id,
                            e.status,
                            e.detail,
                        )
                    else:
                        logger.warning(
                            "Submission of %s failed (attempt %d): %s",
                            entry.local_id,
                            entry.submission_attempts + 1,
                            e,
                        )
                    await self._store.mark_failed(
                        entry.seq, str(e), self._next_attempt_at(entry)
                    )
                    result.failed += 1
                    result.failed_ids.append(entry.local_id)
                    continue

                await self._store.remove(entry.seq)
                result.synced += 1
        except QueueStorageError as e:
            logger.warning("Offline queue storage error during drain: %s", e)

        if result.synced or result.failed:
            logger.info(
                "Offline queue drained: %d synced, %d failed", result.synced, result.failed
            )
        return result

    def _next_attempt_at(self, entry: QueuedAttempt) -> str | None:
        if self.backoff_base_seconds <= 0:
            return None
        delay = min(
            self.backoff_max_seconds,
            self.backoff_base_seconds * 2 ** entry.submission_attempts,
        )
        return to_db(utcnow() + timedelta(seconds=delay))

    async def discard(self, local_id: str) -> bool:
        return await self._store.remove_by_local_id(local_id)

    async def clear(self) -> int:
        removed = await self._store.clear()
        logger.info("Offline queue cleared (%d entries)", removed)
        return removed

    async def get(self, local_id: str) -> QueuedAttempt | None:
        return await self._store.get(local_id)

    async def pending(self) -> list[QueuedAttempt]:
        return await self._store.list_all()

    async def count(self) -> int:
        return await self._store.count()

    async def cache_cards(self, cards: list[Flashcard]) -> int:
        """Keep ``cards`` for offline review, replacing the previous set."""
        stored = await self._store.replace_cached_cards(cards)
        logger.info("Cached %d card(s) for offline review", stored)
        return stored

    async def cached_cards(self, due_only: bool = True) -> list[Flashcard]:
        return await self._store.list_cached_cards(to_db(utcnow()) if due_only else None)

    async def remember_review(self, vocabulary_id: str, card: Card) -> bool:
        """Store the locally scheduled state of a reviewed card, if it is cached."""
        return await self._store.update_cached_card(vocabulary_id, card)
