from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio

from companion import app
from companion.db.sqlite import create_vocabulary, get_attempt_by_key, get_flashcard_for_vocabulary
from companion.models.vocabulary import VocabularyCreate
from companion.services import sm2
from companion.services.notifications import LoggingNotifier, Permission
from companion.services.offline_queue import QueueStorageError
from companion.services.review_client import SubmissionError
from companion.services.review_session import Companion

USER = "user-1"


@pytest_asyncio.fixture
async def vocab(db):
    return await create_vocabulary(db, USER, VocabularyCreate(term="window", translation="παράθυρο"))


@pytest.fixture
def notifier():
    return LoggingNotifier(permission=Permission.GRANTED)


async def make_companion(notifier, online):
    return await Companion.create(
        USER,
        notifier=notifier,
        online=online,
        transport=httpx.ASGITransport(app=app),
    )


@pytest_asyncio.fixture
async def offline(db, notifier):
    companion = await make_companion(notifier, online=False)
    yield companion
    await companion.dispose()


@pytest_asyncio.fixture
async def online(db, notifier):
    companion = await make_companion(notifier, online=True)
    yield companion
    await companion.dispose()


def attempt(vocab, quality=4):
    return {
        "vocabulary_id": vocab.id,
        "quality": quality,
        "exercise_type": "flashcard",
        "response_ms": 900,
    }


@pytest.mark.asyncio
async def test_offline_review_is_queued_then_synced(offline, vocab, db):
    outcome = await offline.review(sm2.new_card(), attempt(vocab))

    assert outcome.durable
    assert outcome.card.repetitions == 1
    assert outcome.card.interval == 1
    assert await offline.queue.count() == 1
    assert await get_attempt_by_key(db, USER, outcome.local_id) is None

    offline.connectivity.set_online(True)
    await offline.sync()

    assert await offline.queue.count() == 0
    record = await get_attempt_by_key(db, USER, outcome.local_id)
    assert record is not None
    assert record.quality == 4

    card = await get_flashcard_for_vocabulary(db, USER, vocab.id)
    assert card.repetitions == outcome.card.repetitions


@pytest.mark.asyncio
async def test_resubmitting_after_lost_ack_is_not_double_counted(offline, vocab, db):
    outcome = await offline.review(sm2.new_card(), attempt(vocab, quality=5))
    entry = await offline.queue.get(outcome.local_id)

    # server applied it but the acknowledgement never reached the queue
    await offline.client.submit(entry.attempt, entry.local_id)

    offline.connectivity.set_online(True)
    result = await offline.sync()

    assert result.synced == 1
    card = await get_flashcard_for_vocabulary(db, USER, vocab.id)
    assert card.repetitions == 1


@pytest.mark.asyncio
async def test_invalid_review_is_not_queued(offline, vocab):
    with pytest.raises(ValueError):
        await offline.review(sm2.new_card(), attempt(vocab, quality=7))
    assert await offline.queue.count() == 0


@pytest.mark.asyncio
async def test_unknown_card_stays_queued_as_failed(offline):
    outcome = await offline.review(
        sm2.new_card(), {"vocabulary_id": "missing", "quality": 3}
    )
    offline.connectivity.set_online(True)
    result = await offline.retry()

    entry = await offline.queue.get(outcome.local_id)
    assert entry is not None
    assert result.synced == 0
    assert "No card" in entry.last_error


@pytest.mark.asyncio
async def test_queue_failure_falls_back_to_direct_submit(online, vocab, db):
    online.queue.enqueue = AsyncMock(side_effect=QueueStorageError("disk full"))

    outcome = await online.review(sm2.new_card(), attempt(vocab))

    assert not outcome.durable
    assert outcome.submitted
    assert await get_attempt_by_key(db, USER, outcome.local_id) is not None


@pytest.mark.asyncio
async def test_due_reminder_reflects_server_state(online, vocab, notifier):
    assert await online.reminders.check_due() == 1
    assert notifier.shown[0].title == "You have 1 card due for review"

    await online.review(sm2.new_card(), attempt(vocab))
    await online.sync()
    assert await online.reminders.check_due() == 0


@pytest.mark.asyncio
async def test_lookup_is_served_from_cache(online):
    online.client.translate = AsyncMock(return_value=("παράθυρο", ["φεγγίτης"]))

    first = await online.lookup("Window")
    second = await online.lookup("window")

    assert first.translation == second.translation == "παράθυρο"
    assert second.alternative_translations == ["φεγγίτης"]
    online.client.translate.assert_awaited_once()


@pytest.mark.asyncio
async def test_dispose_is_idempotent(online):
    await online.dispose()
    await online.dispose()


@pytest.mark.asyncio
async def test_due_cards_stay_reviewable_offline(online, vocab, db):
    assert [c.vocabulary_id for c in await online.due_cards()] == [vocab.id]

    online.connectivity.set_online(False)
    cached = await online.due_cards()
    assert [c.vocabulary_id for c in cached] == [vocab.id]

    outcome = await online.review(cached[0].to_card(), attempt(vocab))
    assert await online.due_cards() == []
    assert await online.queue.count() == 1

    online.connectivity.set_online(True)
    result = await online.reconcile()

    assert result.synced == 1
    assert await get_attempt_by_key(db, USER, outcome.local_id) is not None
    # reviewed on the server too, so nothing is due or cached any more
    assert await online.queue.cached_cards(due_only=False) == []


@pytest.mark.asyncio
async def test_due_cards_fall_back_to_cache_when_server_fails(online, vocab):
    await online.refresh_cards()
    online.client.due_cards = AsyncMock(side_effect=SubmissionError("Bad Gateway", status=502))

    cards = await online.due_cards()

    assert [c.vocabulary_id for c in cards] == [vocab.id]
