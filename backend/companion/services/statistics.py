"""
Review statistics read model.

Derives success rate, streak, response time, hardest items, daily activity
and a difficulty ranking from the review_attempts log. The SQL lives in
``companion.db.sqlite``; everything here past the fetch is pure computation.
"""
from __future__ import annotations

from datetime import date, timedelta

import aiosqlite

from companion.db.sqlite import (
    get_activity_by_day,
    get_attempt_summary,
    get_exercise_type_stats,
    get_item_quality,
    list_activity_dates,
)
from companion.models.review import INITIAL_EASE_FACTOR
from companion.models.stats import (
    DayActivity,
    DifficultyEntry,
    ExerciseTypeStats,
    HardItem,
    ReviewStats,
    StatsPeriod,
    StatsSummary,
)
from companion.utils.time import to_db, utcnow

SUCCESS_QUALITY = 4          # recall success; distinct from the SM-2 pass mark of 3
HARDEST_MIN_ATTEMPTS = 3
HARDEST_LIMIT = 10
DIFFICULTY_MIN_ATTEMPTS = 2


def current_streak(activity_dates: list[date], today: date) -> int:
    """
    Count consecutive days with activity ending today.

    ``activity_dates`` must be distinct and sorted newest first. A day
    without activity (including today) ends the streak.
    """
    streak = 0
    for offset, day in enumerate(activity_dates):
        if day != today - timedelta(days=offset):
            break
        streak += 1
    return streak


def success_rate(total: int, successes: int) -> float:
    if total == 0:
        return 0.0
    return round(successes / total * 100, 1)


def difficulty_score(avg_quality: float, latest_ease_factor: float, attempt_count: int) -> int:
    """0-100, higher is harder: low mean quality, low ease, and stuck items score high."""
    score = (5 - avg_quality) * 15 + (INITIAL_EASE_FACTOR - latest_ease_factor) * 10
    if attempt_count > 5 and avg_quality < 3:
        score += 10
    return round(max(0.0, min(100.0, score)))


def difficulty_category(score: int) -> str:
    if score >= 70:
        return "very_hard"
    if score >= 50:
        return "hard"
    if score >= 30:
        return "medium"
    return "easy"


def _round1(value: float | None) -> float:
    return round(float(value or 0), 1)


async def compute_stats(
    db: aiosqlite.Connection,
    user_id: str,
    days: int = 30,
    today: date | None = None,
) -> ReviewStats:
    now = utcnow()
    since = to_db(now - timedelta(days=days))
    today = today or now.date()

    summary = await get_attempt_summary(db, user_id, since, SUCCESS_QUALITY)
    activity_dates = [date.fromisoformat(d) for d in await list_activity_dates(db, user_id)]
    items = await get_item_quality(db, user_id, since, DIFFICULTY_MIN_ATTEMPTS)

    hardest = [
        HardItem(
            vocabulary_id=item["vocabulary_id"],
            term=item["term"],
            translation=item["translation"],
            avg_quality=_round1(item["avg_quality"]),
            attempt_count=item["attempt_count"],
        )
        for item in items
        if item["attempt_count"] >= HARDEST_MIN_ATTEMPTS
    ][:HARDEST_LIMIT]

    difficulty = []
    for item in items:
        ease = item["latest_ease_factor"] or INITIAL_EASE_FACTOR
        score = difficulty_score(item["avg_quality"], ease, item["attempt_count"])
        difficulty.append(
            DifficultyEntry(
                vocabulary_id=item["vocabulary_id"],
                term=item["term"],
                difficulty_score=score,
                avg_quality=_round1(item["avg_quality"]),
                attempt_count=item["attempt_count"],
                latest_ease_factor=_round1(ease),
                category=difficulty_category(score),
            )
        )
    difficulty.sort(key=lambda d: d.difficulty_score, reverse=True)

    avg_ms = summary["avg_response_ms"]
    return ReviewStats(
        period=StatsPeriod(days=days, since=since),
        summary=StatsSummary(
            total_attempts=summary["total"],
            success_count=summary["success"],
            success_rate=success_rate(summary["total"], summary["success"]),
            current_streak=current_streak(activity_dates, today),
            avg_response_time_ms=round(avg_ms) if avg_ms is not None else None,
        ),
        hardest_items=hardest,
        activity_by_day=[DayActivity(**row) for row in await get_activity_by_day(db, user_id, since)],
        exercise_types=[
            ExerciseTypeStats(type=row["type"], count=row["count"], avg_quality=_round1(row["avg_quality"]))
            for row in await get_exercise_type_stats(db, user_id, since)
        ],
        difficulty=difficulty,
    )
