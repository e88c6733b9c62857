import uuid
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from companion.config import settings
from companion.models.review import Flashcard, ReviewRecord, ReviewSubmission
from companion.models.vocabulary import Vocabulary, VocabularyCreate
from companion.services import sm2
from companion.services.translation_cache import normalize
from companion.utils.time import to_db, utcnow

_db_path: Path | None = None

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;
PRAGMA foreign_keys=ON;

CREATE TABLE IF NOT EXISTS vocabulary (
    id              TEXT PRIMARY KEY,
    user_id         TEXT NOT NULL,
    term            TEXT NOT NULL,
    term_normalized TEXT NOT NULL,
    translation     TEXT NOT NULL,
    context         TEXT NOT NULL DEFAULT '',
    kind            TEXT NOT NULL DEFAULT 'word',
    is_known        INTEGER NOT NULL DEFAULT 0,
    created_at      TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_vocabulary_user ON vocabulary(user_id, created_at);

CREATE TABLE IF NOT EXISTS flashcards (
    id               TEXT PRIMARY KEY,
    vocabulary_id    TEXT NOT NULL UNIQUE REFERENCES vocabulary(id) ON DELETE CASCADE,
    user_id          TEXT NOT NULL,
    ease_factor      REAL NOT NULL DEFAULT 2.5,
    interval         INTEGER NOT NULL DEFAULT 1,
    repetitions      INTEGER NOT NULL DEFAULT 0,
    due_at           TEXT NOT NULL DEFAULT (datetime('now')),
    last_reviewed_at TEXT,
    created_at       TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_flashcards_due ON flashcards(user_id, due_at);

CREATE TABLE IF NOT EXISTS review_attempts (
    id              TEXT PRIMARY KEY,
    user_id         TEXT NOT NULL,
    vocabulary_id   TEXT NOT NULL REFERENCES vocabulary(id) ON DELETE CASCADE,
    flashcard_id    TEXT NOT NULL,
    quality         INTEGER NOT NULL,
    exercise_type   TEXT,
    response_ms     INTEGER,
    idempotency_key TEXT NOT NULL,
    new_ease_factor REAL NOT NULL,
    new_interval    INTEGER NOT NULL,
    new_repetitions INTEGER NOT NULL,
    new_due_at      TEXT NOT NULL,
    created_at      TEXT NOT NULL DEFAULT (datetime('now')),
    UNIQUE (user_id, idempotency_key)
);
CREATE INDEX IF NOT EXISTS idx_attempts_user_time ON review_attempts(user_id, created_at);
CREATE INDEX IF NOT EXISTS idx_attempts_vocabulary ON review_attempts(vocabulary_id);

CREATE TABLE IF NOT EXISTS translation_cache (
    id              TEXT PRIMARY KEY,
    source_text     TEXT NOT NULL,
    target_language TEXT NOT NULL DEFAULT 'el',
    translated_text TEXT NOT NULL,
    created_at      TEXT NOT NULL DEFAULT (datetime('now')),
    UNIQUE (source_text, target_language)
);

CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);
INSERT OR IGNORE INTO schema_version(version) VALUES (1);
"""


async def init_sqlite(data_dir: Path) -> None:
    global _db_path
    _db_path = data_dir / settings.sqlite_filename
    async with aiosqlite.connect(_db_path) as db:
        await db.executescript(SCHEMA_SQL)
        await db.commit()


async def get_db() -> AsyncIterator[aiosqlite.Connection]:
    assert _db_path is not None, "SQLite not initialized"
    async with aiosqlite.connect(_db_path) as db:
        db.row_factory = aiosqlite.Row
        await db.execute("PRAGMA foreign_keys=ON")
        yield db


def _now() -> str:
    return to_db(utcnow())


# --- Vocabulary ---


def _row_to_vocabulary(row: aiosqlite.Row) -> Vocabulary:
    d = dict(row)
    d["is_known"] = bool(d["is_known"])
    return Vocabulary(**d)


async def create_vocabulary(
    db: aiosqlite.Connection, user_id: str, body: VocabularyCreate
) -> Vocabulary:
    """Insert a vocabulary item together with its card in the initial state."""
    vocab_id = str(uuid.uuid4())
    now = _now()
    card = sm2.new_card()
    await db.execute(
        """INSERT INTO vocabulary
           (id, user_id, term, term_normalized, translation, context, kind, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            vocab_id,
            user_id,
            body.term,
            normalize(body.term),
            body.translation,
            body.context,
            body.kind.value,
            now,
        ),
    )
    await db.execute(
        """INSERT INTO flashcards
           (id, vocabulary_id, user_id, ease_factor, interval, repetitions, due_at, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            str(uuid.uuid4()),
            vocab_id,
            user_id,
            card.ease_factor,
            card.interval,
            card.repetitions,
            to_db(card.due_at),
            now,
        ),
    )
    await db.commit()
    return await get_vocabulary(db, user_id, vocab_id)  # type: ignore[return-value]


async def get_vocabulary(
    db: aiosqlite.Connection, user_id: str, vocab_id: str
) -> Vocabulary | None:
    cursor = await db.execute(
        "SELECT * FROM vocabulary WHERE id = ? AND user_id = ?", (vocab_id, user_id)
    )
    row = await cursor.fetchone()
    if row is None:
        return None
    vocab = _row_to_vocabulary(row)
    vocab.card = await get_flashcard_for_vocabulary(db, user_id, vocab_id)
    return vocab


async def list_vocabulary(
    db: aiosqlite.Connection, user_id: str, offset: int = 0, limit: int = 50
) -> tuple[list[Vocabulary], int]:
    cursor = await db.execute(
        "SELECT COUNT(*) FROM vocabulary WHERE user_id = ?", (user_id,)
    )
    total = (await cursor.fetchone())[0]

    cursor = await db.execute(
        """SELECT * FROM vocabulary WHERE user_id = ?
           ORDER BY created_at DESC LIMIT ? OFFSET ?""",
        (user_id, limit, offset),
    )
    rows = await cursor.fetchall()
    return [_row_to_vocabulary(r) for r in rows], total


async def delete_vocabulary(db: aiosqlite.Connection, user_id: str, vocab_id: str) -> bool:
    """Delete a vocabulary item; its card and review history cascade."""
    cursor = await db.execute(
        "DELETE FROM vocabulary WHERE id = ? AND user_id = ?", (vocab_id, user_id)
    )
    await db.commit()
    return (cursor.rowcount or 0) > 0


# --- Flashcards / reviews ---


def _row_to_flashcard(row: aiosqlite.Row) -> Flashcard:
    return Flashcard(**dict(row))


async def get_flashcard_for_vocabulary(
    db: aiosqlite.Connection, user_id: str, vocab_id: str
) -> Flashcard | None:
    cursor = await db.execute(
        "SELECT * FROM flashcards WHERE vocabulary_id = ? AND user_id = ?",
        (vocab_id, user_id),
    )
    row = await cursor.fetchone()
    return _row_to_flashcard(row) if row else None


async def count_due(db: aiosqlite.Connection, user_id: str, now: str | None = None) -> int:
    cursor = await db.execute(
        "SELECT COUNT(*) FROM flashcards WHERE user_id = ? AND due_at <= ?",
        (user_id, now or _now()),
    )
    return (await cursor.fetchone())[0]


async def list_due(
    db: aiosqlite.Connection, user_id: str, limit: int = 50, now: str | None = None
) -> list[Flashcard]:
    """Cards with due_at <= now, most overdue first."""
    cursor = await db.execute(
        """SELECT * FROM flashcards WHERE user_id = ? AND due_at <= ?
           ORDER BY due_at ASC LIMIT ?""",
        (user_id, now or _now(), limit),
    )
    rows = await cursor.fetchall()
    return [_row_to_flashcard(r) for r in rows]


def _row_to_record(row: aiosqlite.Row, idempotent: bool = False) -> ReviewRecord:
    return ReviewRecord(
        id=row["id"],
        vocabulary_id=row["vocabulary_id"],
        flashcard_id=row["flashcard_id"],
        quality=row["quality"],
        exercise_type=row["exercise_type"],
        response_ms=row["response_ms"],
        created_at=row["created_at"],
        ease_factor=row["new_ease_factor"],
        interval=row["new_interval"],
        repetitions=row["new_repetitions"],
        due_at=row["new_due_at"],
        idempotent=idempotent,
    )


async def get_attempt_by_key(
    db: aiosqlite.Connection, user_id: str, idempotency_key: str
) -> ReviewRecord | None:
    cursor = await db.execute(
        "SELECT * FROM review_attempts WHERE user_id = ? AND idempotency_key = ?",
        (user_id, idempotency_key),
    )
    row = await cursor.fetchone()
    return _row_to_record(row, idempotent=True) if row else None


class CardNotFoundError(Exception):
    pass


async def record_review(
    db: aiosqlite.Connection,
    user_id: str,
    body: ReviewSubmission,
    now: datetime | None = None,
) -> ReviewRecord:
    """
    Apply a review: run SM-2 on the card and append the attempt, atomically.

    A repeated idempotency key returns the originally stored record with
    ``idempotent=True`` and changes nothing. Raises CardNotFoundError if the
    user has no card for the vocabulary item.
    """
    # Held from the key lookup to the card write so reviews of one card serialize
    await db.execute("BEGIN IMMEDIATE")
    try:
        existing = await get_attempt_by_key(db, user_id, body.idempotency_key)
        if existing:
            await db.rollback()
            return existing

        card_row = await get_flashcard_for_vocabulary(db, user_id, body.vocabulary_id)
        if card_row is None:
            raise CardNotFoundError(body.vocabulary_id)

        now = now or utcnow()
        updated = sm2.update(card_row.to_card(), body.quality, now=now)
        # Offline reviews keep the time they happened, never a future one
        reviewed_at = to_db(min(body.created_at, now))
        attempt_id = str(uuid.uuid4())

        await db.execute(
            """UPDATE flashcards
               SET ease_factor = ?, interval = ?, repetitions = ?, due_at = ?,
                   last_reviewed_at = ?
               WHERE id = ?""",
            (
                updated.ease_factor,
                updated.interval,
                updated.repetitions,
                to_db(updated.due_at),
                to_db(now),
                card_row.id,
            ),
        )
        await db.execute(
            """INSERT INTO review_attempts
               (id, user_id, vocabulary_id, flashcard_id, quality, exercise_type,
                response_ms, idempotency_key, new_ease_factor, new_interval,
                new_repetitions, new_due_at, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                attempt_id,
                user_id,
                body.vocabulary_id,
                card_row.id,
                body.quality,
                body.exercise_type.value if body.exercise_type else None,
                body.response_ms,
                body.idempotency_key,
                updated.ease_factor,
                updated.interval,
                updated.repetitions,
                to_db(updated.due_at),
                reviewed_at,
            ),
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    cursor = await db.execute("SELECT * FROM review_attempts WHERE id = ?", (attempt_id,))
    return _row_to_record(await cursor.fetchone())


# --- Statistics read model ---


async def get_attempt_summary(
    db: aiosqlite.Connection, user_id: str, since: str, success_quality: int = 4
) -> dict:
    """Total attempts, attempts with quality >= success_quality, and mean response time."""
    cursor = await db.execute(
        """SELECT COUNT(*) AS total,
                  SUM(CASE WHEN quality >= ? THEN 1 ELSE 0 END) AS success,
                  AVG(response_ms) AS avg_response_ms
           FROM review_attempts
           WHERE user_id = ? AND created_at >= ?""",
        (success_quality, user_id, since),
    )
    row = await cursor.fetchone()
    return {
        "total": row["total"] or 0,
        "success": row["success"] or 0,
        "avg_response_ms": row["avg_response_ms"],
    }


async def list_activity_dates(db: aiosqlite.Connection, user_id: str) -> list[str]:
    """Distinct UTC dates with at least one attempt, newest first (all time)."""
    cursor = await db.execute(
        """SELECT DISTINCT DATE(created_at) AS day FROM review_attempts
           WHERE user_id = ? ORDER BY day DESC""",
        (user_id,),
    )
    return [row[0] for row in await cursor.fetchall()]


async def get_item_quality(
    db: aiosqlite.Connection, user_id: str, since: str, min_attempts: int
) -> list[dict]:
    """Per-item mean quality for items with at least ``min_attempts`` attempts, hardest first."""
    cursor = await db.execute(
        """SELECT a.vocabulary_id, v.term, v.translation,
                  AVG(a.quality) AS avg_quality,
                  COUNT(*) AS attempt_count,
                  (SELECT a2.new_ease_factor FROM review_attempts a2
                   WHERE a2.vocabulary_id = a.vocabulary_id AND a2.user_id = a.user_id
                   ORDER BY a2.created_at DESC LIMIT 1) AS latest_ease_factor
           FROM review_attempts a
           JOIN vocabulary v ON v.id = a.vocabulary_id
           WHERE a.user_id = ? AND a.created_at >= ?
           GROUP BY a.vocabulary_id, v.term, v.translation
           HAVING COUNT(*) >= ?
           ORDER BY avg_quality ASC, attempt_count DESC""",
        (user_id, since, min_attempts),
    )
    return [dict(row) for row in await cursor.fetchall()]


async def get_activity_by_day(
    db: aiosqlite.Connection, user_id: str, since: str
) -> list[dict]:
    cursor = await db.execute(
        """SELECT DATE(created_at) AS date, COUNT(*) AS count
           FROM review_attempts
           WHERE user_id = ? AND created_at >= ?
           GROUP BY DATE(created_at)
           ORDER BY date""",
        (user_id, since),
    )
    return [dict(row) for row in await cursor.fetchall()]


async def get_exercise_type_stats(
    db: aiosqlite.Connection, user_id: str, since: str
) -> list[dict]:
    cursor = await db.execute(
        """SELECT exercise_type AS type, COUNT(*) AS count, AVG(quality) AS avg_quality
           FROM review_attempts
           WHERE user_id = ? AND created_at >= ? AND exercise_type IS NOT NULL
           GROUP BY exercise_type
           ORDER BY count DESC""",
        (user_id, since),
    )
    return [dict(row) for row in await cursor.fetchall()]


# --- Translation memo ---


async def get_cached_translation(
    db: aiosqlite.Connection, text: str, target_language: str
) -> str | None:
    cursor = await db.execute(
        "SELECT translated_text FROM translation_cache WHERE source_text = ? AND target_language = ?",
        (text, target_language),
    )
    row = await cursor.fetchone()
    return row[0] if row else None


async def save_translation(
    db: aiosqlite.Connection, text: str, target_language: str, translated: str
) -> None:
    await db.execute(
        """INSERT OR IGNORE INTO translation_cache
           (id, source_text, target_language, translated_text, created_at)
           VALUES (?, ?, ?, ?, ?)""",
        (str(uuid.uuid4()), text, target_language, translated, _now()),
    )
    await db.commit()
