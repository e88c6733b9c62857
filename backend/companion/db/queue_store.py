"""
Client-local durable store for review attempts awaiting submission.

An append-only SQLite log: ``seq`` gives enqueue order, ``local_id`` is the
client identifier (also sent to the server as the idempotency key). Rows are
deleted once the server acknowledges them.

The same file holds the last known state of due cards so reviews can go on
while offline.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import aiosqlite

from companion.models.review import Card, Flashcard, QueuedAttempt, QueueStatus, ReviewAttempt
from companion.utils.time import to_db, utcnow

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS queued_attempts (
    seq                 INTEGER PRIMARY KEY AUTOINCREMENT,
    local_id            TEXT NOT NULL UNIQUE,
    payload             TEXT NOT NULL,
    status              TEXT NOT NULL DEFAULT 'pending',
    submission_attempts INTEGER NOT NULL DEFAULT 0,
    last_error          TEXT,
    next_attempt_at     TEXT,
    enqueued_at         TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_queued_status ON queued_attempts(status, seq);

CREATE TABLE IF NOT EXISTS cached_cards (
    vocabulary_id    TEXT PRIMARY KEY,
    id               TEXT NOT NULL,
    user_id          TEXT NOT NULL,
    ease_factor      REAL NOT NULL,
    interval         INTEGER NOT NULL,
    repetitions      INTEGER NOT NULL,
    due_at           TEXT NOT NULL,
    last_reviewed_at TEXT,
    created_at       TEXT NOT NULL,
    cached_at        TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_cached_due ON cached_cards(due_at);
"""

_RETRYABLE = (QueueStatus.PENDING.value, QueueStatus.FAILED.value)


class QueueStorageError(Exception):
    """Raised when the local durable queue cannot be read or written."""


def _row_to_queued(row: aiosqlite.Row) -> QueuedAttempt:
    d = dict(row)
    d["attempt"] = ReviewAttempt.model_validate_json(d.pop("payload"))
    return QueuedAttempt(**d)


class QueueStore:
    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._db: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def open(self) -> int:
        """
        Open the store and create the schema.

        Entries left in SUBMITTING by an interrupted process are returned to
        PENDING. Returns how many were recovered.
        """
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(self.db_path)
            self._db.row_factory = aiosqlite.Row
            await self._db.executescript(SCHEMA_SQL)
            cursor = await self._db.execute(
                "UPDATE queued_attempts SET status = ? WHERE status = ?",
                (QueueStatus.PENDING.value, QueueStatus.SUBMITTING.value),
            )
            await self._db.commit()
        except (aiosqlite.Error, OSError) as e:
            raise QueueStorageError(f"Cannot open queue store {self.db_path}: {e}") from e
        return cursor.rowcount or 0

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    @property
    def is_open(self) -> bool:
        return self._db is not None

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise QueueStorageError("Queue store is not open")
        return self._db

    async def _write(self, sql: str, params: tuple = ()) -> int:
        async with self._lock:
            try:
                db = self._conn()
                cursor = await db.execute(sql, params)
                await db.commit()
            except aiosqlite.Error as e:
                raise QueueStorageError(str(e)) from e
        return cursor.rowcount or 0

    async def _read(self, sql: str, params: tuple = ()) -> list[aiosqlite.Row]:
        async with self._lock:
            try:
                cursor = await self._conn().execute(sql, params)
                return list(await cursor.fetchall())
            except aiosqlite.Error as e:
                raise QueueStorageError(str(e)) from e

    async def append(self, local_id: str, attempt: ReviewAttempt) -> int:
        async with self._lock:
            try:
                db = self._conn()
                cursor = await db.execute(
                    """INSERT INTO queued_attempts (local_id, payload, status, enqueued_at)
                       VALUES (?, ?, ?, ?)""",
                    (
                        local_id,
                        attempt.model_dump_json(),
                        QueueStatus.PENDING.value,
                        to_db(utcnow()),
                    ),
                )
                await db.commit()
            except aiosqlite.Error as e:
                raise QueueStorageError(str(e)) from e
        return cursor.lastrowid

    async def next_ready(
        self, after_seq: int, not_before: str | None = None
    ) -> QueuedAttempt | None:
        """First PENDING/FAILED entry past ``after_seq``, in enqueue order."""
        sql = "SELECT * FROM queued_attempts WHERE seq > ? AND status IN (?, ?)"
        params: tuple = (after_seq, *_RETRYABLE)
        if not_before is not None:
            sql += " AND (next_attempt_at IS NULL OR next_attempt_at <= ?)"
            params += (not_before,)
        rows = await self._read(sql + " ORDER BY seq LIMIT 1", params)
        return _row_to_queued(rows[0]) if rows else None

    async def mark_submitting(self, seq: int) -> bool:
        """Claim an entry for submission. False if it was removed or already claimed."""
        changed = await self._write(
            "UPDATE queued_attempts SET status = ? WHERE seq = ? AND status IN (?, ?)",
            (QueueStatus.SUBMITTING.value, seq, *_RETRYABLE),
        )
        return changed > 0

    async def mark_failed(
        self, seq: int, error: str, next_attempt_at: str | None = None
    ) -> None:
        await self._write(
            """UPDATE queued_attempts
               SET status = ?, submission_attempts = submission_attempts + 1,
                   last_error = ?, next_attempt_at = ?
               WHERE seq = ?""",
            (QueueStatus.FAILED.value, error, next_attempt_at, seq),
        )

    async def remove(self, seq: int) -> None:
        await self._write("DELETE FROM queued_attempts WHERE seq = ?", (seq,))

    async def remove_by_local_id(self, local_id: str) -> bool:
        changed = await self._write(
            "DELETE FROM queued_attempts WHERE local_id = ?", (local_id,)
        )
        return changed > 0

    async def clear(self) -> int:
        return await self._write("DELETE FROM queued_attempts")

    async def get(self, local_id: str) -> QueuedAttempt | None:
        rows = await self._read(
            "SELECT * FROM queued_attempts WHERE local_id = ?", (local_id,)
        )
        return _row_to_queued(rows[0]) if rows else None

    async def list_all(self) -> list[QueuedAttempt]:
        rows = await self._read("SELECT * FROM queued_attempts ORDER BY seq")
        return [_row_to_queued(r) for r in rows]

    async def count(self) -> int:
        rows = await self._read("SELECT COUNT(*) FROM queued_attempts")
        return rows[0][0]

    # --- Cached cards ---

    async def replace_cached_cards(self, cards: list[Flashcard]) -> int:
        """
        Replace the cached cards with ``cards``.

        Cards with a review still in the queue keep their cached state; it is
        newer than what the server reported. Returns how many were stored.
        """
        stored = 0
        cached_at = to_db(utcnow())
        async with self._lock:
            try:
                db = self._conn()
                await db.execute(
                    """DELETE FROM cached_cards WHERE vocabulary_id NOT IN
                       (SELECT json_extract(payload, '$.vocabulary_id') FROM queued_attempts
                        WHERE json_extract(payload, '$.vocabulary_id') IS NOT NULL)"""
                )
                for card in cards:
                    cursor = await db.execute(
                        """INSERT OR IGNORE INTO cached_cards
                           (vocabulary_id, id, user_id, ease_factor, interval, repetitions,
                            due_at, last_reviewed_at, created_at, cached_at)
                           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                        (
                            card.vocabulary_id,
                            card.id,
                            card.user_id,
                            card.ease_factor,
                            card.interval,
                            card.repetitions,
                            card.due_at,
                            card.last_reviewed_at,
                            card.created_at,
                            cached_at,
                        ),
                    )
                    stored += cursor.rowcount or 0
                await db.commit()
            except aiosqlite.Error as e:
                await db.rollback()
                raise QueueStorageError(str(e)) from e
        return stored

    async def update_cached_card(self, vocabulary_id: str, card: Card) -> bool:
        """Record a locally scheduled review. False if the card is not cached."""
        changed = await self._write(
            """UPDATE cached_cards
               SET ease_factor = ?, interval = ?, repetitions = ?, due_at = ?,
                   last_reviewed_at = ?
               WHERE vocabulary_id = ?""",
            (
                card.ease_factor,
                card.interval,
                card.repetitions,
                to_db(card.due_at),
                to_db(utcnow()),
                vocabulary_id,
            ),
        )
        return changed > 0

    async def list_cached_cards(self, due_before: str | None = None) -> list[Flashcard]:
        sql = "SELECT * FROM cached_cards"
        params: tuple = ()
        if due_before is not None:
            sql += " WHERE due_at <= ?"
            params = (due_before,)
        rows = await self._read(sql + " ORDER BY due_at", params)
        return [Flashcard(**{k: r[k] for k in r.keys() if k != "cached_at"}) for r in rows]

    async def clear_cached_cards(self) -> int:
        return await self._write("DELETE FROM cached_cards")
