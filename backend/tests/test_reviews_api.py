import pytest

USER = "user-1"


@pytest.fixture
def vocab(client):
    res = client.post("/vocabulary", json={"term": "ephemeral", "translation": "εφήμερος"})
    assert res.status_code == 201
    return res.json()


def review_payload(vocab_id, quality=4, key="k-1", **extra):
    return {
        "vocabulary_id": vocab_id,
        "quality": quality,
        "exercise_type": "flashcard",
        "response_ms": 1500,
        "idempotency_key": key,
        **extra,
    }


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_new_vocabulary_has_a_due_card(client, vocab):
    card = vocab["card"]
    assert card["ease_factor"] == 2.5
    assert card["interval"] == 1
    assert card["repetitions"] == 0
    assert vocab["term_normalized"] == "ephemeral"

    due = client.get("/reviews/due", params={"include_cards": True}).json()
    assert due["count"] == 1
    assert due["cards"][0]["vocabulary_id"] == vocab["id"]


def test_submit_review_applies_sm2(client, vocab):
    res = client.post("/reviews", json=review_payload(vocab["id"], quality=5))

    assert res.status_code == 200
    record = res.json()
    assert record["repetitions"] == 1
    assert record["interval"] == 1
    assert record["ease_factor"] == pytest.approx(2.6)
    assert record["idempotent"] is False
    assert record["next_due_count"] == 0

    card = client.get(f"/vocabulary/{vocab['id']}").json()["card"]
    assert card["repetitions"] == 1
    assert card["last_reviewed_at"] is not None


def test_replayed_key_is_applied_once(client, vocab):
    first = client.post("/reviews", json=review_payload(vocab["id"], key="same")).json()
    replay = client.post("/reviews", json=review_payload(vocab["id"], quality=1, key="same")).json()

    assert replay["idempotent"] is True
    assert replay["id"] == first["id"]
    assert replay["quality"] == first["quality"] == 4

    card = client.get(f"/vocabulary/{vocab['id']}").json()["card"]
    assert card["repetitions"] == 1

    stats = client.get("/reviews/stats").json()
    assert stats["summary"]["total_attempts"] == 1


def test_lapse_resets_schedule(client, vocab):
    client.post("/reviews", json=review_payload(vocab["id"], quality=5, key="a"))
    client.post("/reviews", json=review_payload(vocab["id"], quality=5, key="b"))
    record = client.post("/reviews", json=review_payload(vocab["id"], quality=1, key="c")).json()

    assert record["repetitions"] == 0
    assert record["interval"] == 1
    assert record["ease_factor"] >= 1.3


def test_offline_timestamp_is_kept_but_never_in_future(client, vocab):
    past = client.post(
        "/reviews",
        json=review_payload(vocab["id"], key="past", created_at="2026-01-02T10:00:00Z"),
    ).json()
    assert past["created_at"] == "2026-01-02 10:00:00"

    future = client.post(
        "/reviews",
        json=review_payload(vocab["id"], key="future", created_at="2999-01-01T00:00:00Z"),
    ).json()
    assert future["created_at"] < "2999"


def test_missing_user_header_is_rejected(client, vocab):
    res = client.post(
        "/reviews", json=review_payload(vocab["id"]), headers={"X-User-Id": ""}
    )
    assert res.status_code == 401


@pytest.mark.parametrize(
    "override",
    [{"quality": 6}, {"quality": -1}, {"vocabulary_id": ""}, {"idempotency_key": ""}, {"exercise_type": "essay"}],
)
def test_invalid_review_is_rejected(client, vocab, override):
    res = client.post("/reviews", json={**review_payload(vocab["id"]), **override})
    assert res.status_code == 422


def test_review_for_unknown_vocabulary_is_404(client):
    res = client.post("/reviews", json=review_payload("does-not-exist"))
    assert res.status_code == 404


def test_other_users_cards_are_invisible(client, vocab):
    res = client.post(
        "/reviews", json=review_payload(vocab["id"]), headers={"X-User-Id": "intruder"}
    )
    assert res.status_code == 404
    assert client.get("/reviews/due", headers={"X-User-Id": "intruder"}).json()["count"] == 0
    assert client.get("/reviews/due", headers={"X-User-Id": USER}).json()["count"] == 1


def test_delete_vocabulary_cascades(client, vocab):
    client.post("/reviews", json=review_payload(vocab["id"]))

    assert client.delete(f"/vocabulary/{vocab['id']}").status_code == 204
    assert client.get(f"/vocabulary/{vocab['id']}").status_code == 404
    assert client.get("/reviews/due").json()["count"] == 0
    assert client.get("/reviews/stats").json()["summary"]["total_attempts"] == 0
    assert client.delete(f"/vocabulary/{vocab['id']}").status_code == 404


def test_stats_endpoint_shape(client, vocab):
    for i, q in enumerate([2, 3, 4, 5]):
        client.post("/reviews", json=review_payload(vocab["id"], quality=q, key=f"s{i}"))

    stats = client.get("/reviews/stats", params={"days": 7}).json()

    assert stats["period"]["days"] == 7
    assert stats["summary"]["total_attempts"] == 4
    assert stats["summary"]["success_count"] == 2
    assert stats["summary"]["success_rate"] == 50.0
    assert stats["summary"]["current_streak"] == 1
    assert stats["hardest_items"][0]["term"] == "ephemeral"
    assert stats["exercise_types"] == [{"type": "flashcard", "count": 4, "avg_quality": 3.5}]


def test_vocabulary_list_pagination(client):
    for term in ["one", "two", "three"]:
        client.post("/vocabulary", json={"term": term, "translation": term.upper()})

    page = client.get("/vocabulary", params={"limit": 2}).json()
    assert page["total"] == 3
    assert len(page["items"]) == 2
