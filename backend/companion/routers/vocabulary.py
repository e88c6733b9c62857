import aiosqlite
from fastapi import APIRouter, Depends, HTTPException, Query

from companion.db.sqlite import (
    create_vocabulary,
    delete_vocabulary,
    get_db,
    get_vocabulary,
    list_vocabulary,
)
from companion.models.vocabulary import Vocabulary, VocabularyCreate, VocabularyList
from companion.routers.deps import get_user_id

router = APIRouter()


@router.post("", response_model=Vocabulary, status_code=201)
async def create_item(
    body: VocabularyCreate,
    user_id: str = Depends(get_user_id),
    db: aiosqlite.Connection = Depends(get_db),
):
    """Save a looked-up word; its review card starts due immediately."""
    return await create_vocabulary(db, user_id, body)


@router.get("", response_model=VocabularyList)
async def list_items(
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    user_id: str = Depends(get_user_id),
    db: aiosqlite.Connection = Depends(get_db),
):
    items, total = await list_vocabulary(db, user_id, offset, limit)
    return VocabularyList(items=items, total=total, offset=offset, limit=limit)


@router.get("/{vocab_id}", response_model=Vocabulary)
async def get_item(
    vocab_id: str,
    user_id: str = Depends(get_user_id),
    db: aiosqlite.Connection = Depends(get_db),
):
    vocab = await get_vocabulary(db, user_id, vocab_id)
    if not vocab:
        raise HTTPException(status_code=404, detail="Vocabulary item not found")
    return vocab


@router.delete("/{vocab_id}", status_code=204)
async def delete_item(
    vocab_id: str,
    user_id: str = Depends(get_user_id),
    db: aiosqlite.Connection = Depends(get_db),
) -> None:
    deleted = await delete_vocabulary(db, user_id, vocab_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Vocabulary item not found")
