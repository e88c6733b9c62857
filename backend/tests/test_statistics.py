from datetime import date, timedelta

import pytest

from companion.db.sqlite import create_vocabulary, record_review
from companion.models.review import ReviewSubmission
from companion.models.vocabulary import VocabularyCreate
from companion.services.statistics import (
    compute_stats,
    current_streak,
    difficulty_category,
    difficulty_score,
    success_rate,
)
from companion.utils.time import utcnow

TODAY = date(2026, 5, 10)


def days_ago(*offsets):
    return [TODAY - timedelta(days=o) for o in offsets]


def test_streak_stops_at_first_gap():
    assert current_streak(days_ago(0, 1, 2, 4), TODAY) == 3


def test_streak_requires_activity_today():
    assert current_streak(days_ago(1, 2), TODAY) == 0


def test_streak_empty():
    assert current_streak([], TODAY) == 0


def test_success_rate_percent():
    assert success_rate(0, 0) == 0.0
    assert success_rate(3, 2) == 66.7


def test_difficulty_scoring():
    assert difficulty_score(5.0, 2.5, 3) == 0
    assert difficulty_score(0.0, 1.3, 10) == 97
    assert difficulty_category(97) == "very_hard"
    assert difficulty_category(55) == "hard"
    assert difficulty_category(30) == "medium"
    assert difficulty_category(29) == "easy"


async def _review(db, vocab_id, quality, key, days_back=0, exercise="flashcard"):
    await record_review(
        db,
        "u1",
        ReviewSubmission(
            vocabulary_id=vocab_id,
            quality=quality,
            exercise_type=exercise,
            response_ms=1000 + quality * 100,
            idempotency_key=key,
            created_at=utcnow() - timedelta(days=days_back),
        ),
    )


@pytest.mark.asyncio
async def test_compute_stats_over_review_log(db):
    easy = await create_vocabulary(db, "u1", VocabularyCreate(term="cat", translation="γάτα"))
    hard = await create_vocabulary(db, "u1", VocabularyCreate(term="ephemeral", translation="εφήμερος"))

    for i, q in enumerate([5, 4, 5]):
        await _review(db, easy.id, q, f"e{i}", days_back=i)
    for i, q in enumerate([1, 2, 3]):
        await _review(db, hard.id, q, f"h{i}", days_back=i, exercise="cloze_blank")
    await _review(db, hard.id, 0, "h-old", days_back=4, exercise="cloze_blank")

    stats = await compute_stats(db, "u1", days=30)

    assert stats.summary.total_attempts == 7
    assert stats.summary.success_count == 3
    assert stats.summary.success_rate == 42.9
    assert stats.summary.current_streak == 3
    assert stats.summary.avg_response_time_ms == round((1500 + 1400 + 1500 + 1100 + 1200 + 1300 + 1000) / 7)

    assert [h.term for h in stats.hardest_items] == ["ephemeral", "cat"]
    assert stats.hardest_items[0].avg_quality == 1.5
    assert stats.hardest_items[0].attempt_count == 4

    assert sum(d.count for d in stats.activity_by_day) == 7
    assert {e.type: e.count for e in stats.exercise_types} == {"flashcard": 3, "cloze_blank": 4}
    assert stats.difficulty[0].term == "ephemeral"


@pytest.mark.asyncio
async def test_stats_are_scoped_to_user_and_window(db):
    vocab = await create_vocabulary(db, "u1", VocabularyCreate(term="dog", translation="σκύλος"))
    await _review(db, vocab.id, 5, "old", days_back=40)

    stats = await compute_stats(db, "u1", days=30)
    assert stats.summary.total_attempts == 0
    assert stats.summary.avg_response_time_ms is None

    other = await compute_stats(db, "someone-else", days=30)
    assert other.summary.total_attempts == 0
    assert other.summary.current_streak == 0
