"""
Review submission & scheduling router.

Endpoints:
  POST /reviews        submit one review attempt (idempotent by key), runs SM-2
  GET  /reviews/due    count (and optionally list) of cards due now
  GET  /reviews/stats  statistics over the last N days
"""
from __future__ import annotations

import logging

import aiosqlite
from fastapi import APIRouter, Depends, HTTPException, Query

from companion.config import settings
from companion.db.sqlite import (
    CardNotFoundError,
    count_due,
    get_db,
    list_due,
    record_review,
)
from companion.models.review import DueCards, ReviewRecord, ReviewSubmission
from companion.models.stats import ReviewStats
from companion.routers.deps import get_user_id
from companion.services.statistics import compute_stats

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("", response_model=ReviewRecord)
async def submit_review(
    body: ReviewSubmission,
    user_id: str = Depends(get_user_id),
    db: aiosqlite.Connection = Depends(get_db),
) -> ReviewRecord:
    """Persist a review attempt and the card's new schedule. Replays return the stored record."""
    try:
        record = await record_review(db, user_id, body)
    except CardNotFoundError:
        raise HTTPException(status_code=404, detail="No card for this vocabulary item")

    if record.idempotent:
        logger.info("Replayed review %s for user %s", body.idempotency_key, user_id)
    record.next_due_count = await count_due(db, user_id)
    return record


@router.get("/due", response_model=DueCards)
async def due_cards(
    include_cards: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=500),
    user_id: str = Depends(get_user_id),
    db: aiosqlite.Connection = Depends(get_db),
) -> DueCards:
    count = await count_due(db, user_id)
    cards = await list_due(db, user_id, limit=limit) if include_cards else None
    return DueCards(count=count, cards=cards)


@router.get("/stats", response_model=ReviewStats)
async def review_stats(
    days: int = Query(default=settings.stats_default_days, ge=1, le=3650),
    user_id: str = Depends(get_user_id),
    db: aiosqlite.Connection = Depends(get_db),
) -> ReviewStats:
    return await compute_stats(db, user_id, days=days)
