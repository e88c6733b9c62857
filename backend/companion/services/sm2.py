"""
SuperMemo-2 scheduler.

Pure computation: maps a card's memory state and a recall quality (0-5) to the
next state. No I/O.

    quality 0-2  lapse: repetitions -> 0, interval -> 1 day
    quality 3    hard pass
    quality 4    good
    quality 5    easy
"""
from __future__ import annotations

import math
from datetime import datetime, timedelta

from companion.models.review import MIN_EASE_FACTOR, Card
from companion.utils.time import utcnow

PASS_THRESHOLD = 3
FIRST_INTERVAL = 1   # days, after the first pass
SECOND_INTERVAL = 6  # days, after the second consecutive pass


def new_card(now: datetime | None = None) -> Card:
    return Card(due_at=now or utcnow())


def round_half_up(value: float) -> int:
    # halves round up: 12.5 -> 13
    return math.floor(value + 0.5)


def next_ease_factor(ease_factor: float, quality: int) -> float:
    miss = 5 - quality
    return max(MIN_EASE_FACTOR, ease_factor + (0.1 - miss * (0.08 + miss * 0.02)))


def update(card: Card, quality: int, now: datetime | None = None) -> Card:
    """Return the card's state after a review of the given quality."""
    if isinstance(quality, bool) or not isinstance(quality, int) or not 0 <= quality <= 5:
        raise ValueError(f"quality must be an integer in 0..5, got {quality!r}")

    ease_factor = next_ease_factor(card.ease_factor, quality)

    if quality < PASS_THRESHOLD:
        repetitions = 0
        interval = FIRST_INTERVAL
    else:
        repetitions = card.repetitions + 1
        if repetitions == 1:
            interval = FIRST_INTERVAL
        elif repetitions == 2:
            interval = SECOND_INTERVAL
        else:
            interval = max(1, round_half_up(card.interval * ease_factor))

    due_at = (now or utcnow()) + timedelta(days=interval)
    return Card(
        ease_factor=ease_factor,
        interval=interval,
        repetitions=repetitions,
        due_at=due_at,
    )
