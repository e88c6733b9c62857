import asyncio

import aiosqlite
import pytest

from companion.config import settings
from companion.db.sqlite import (
    CardNotFoundError,
    create_vocabulary,
    get_flashcard_for_vocabulary,
    record_review,
)
from companion.models.review import ReviewSubmission
from companion.models.vocabulary import VocabularyCreate

USER = "user-1"


def submission(vocab_id, key, quality=5):
    return ReviewSubmission(vocabulary_id=vocab_id, quality=quality, idempotency_key=key)


async def connect(data_dir):
    conn = await aiosqlite.connect(data_dir / settings.sqlite_filename)
    conn.row_factory = aiosqlite.Row
    await conn.execute("PRAGMA foreign_keys=ON")
    return conn


@pytest.mark.asyncio
async def test_concurrent_reviews_of_one_card_both_apply(db, data_dir):
    vocab = await create_vocabulary(db, USER, VocabularyCreate(term="tide", translation="παλίρροια"))
    first, second = await connect(data_dir), await connect(data_dir)
    try:
        records = await asyncio.gather(
            record_review(first, USER, submission(vocab.id, "k1")),
            record_review(second, USER, submission(vocab.id, "k2")),
        )
    finally:
        await first.close()
        await second.close()

    assert sorted(r.repetitions for r in records) == [1, 2]
    card = await get_flashcard_for_vocabulary(db, USER, vocab.id)
    assert card.repetitions == 2
    assert card.interval == 6
    assert card.ease_factor == pytest.approx(2.7)


@pytest.mark.asyncio
async def test_concurrent_replays_of_one_key_apply_once(db, data_dir):
    vocab = await create_vocabulary(db, USER, VocabularyCreate(term="tide", translation="παλίρροια"))
    first, second = await connect(data_dir), await connect(data_dir)
    try:
        records = await asyncio.gather(
            record_review(first, USER, submission(vocab.id, "same")),
            record_review(second, USER, submission(vocab.id, "same")),
        )
    finally:
        await first.close()
        await second.close()

    assert sorted(r.idempotent for r in records) == [False, True]
    assert records[0].id == records[1].id
    card = await get_flashcard_for_vocabulary(db, USER, vocab.id)
    assert card.repetitions == 1


@pytest.mark.asyncio
async def test_missing_card_leaves_no_open_transaction(db):
    with pytest.raises(CardNotFoundError):
        await record_review(db, USER, submission("nope", "k"))

    vocab = await create_vocabulary(db, USER, VocabularyCreate(term="sand", translation="άμμος"))
    record = await record_review(db, USER, submission(vocab.id, "k"))
    assert record.repetitions == 1
