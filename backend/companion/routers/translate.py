import aiosqlite
from fastapi import APIRouter, Depends, HTTPException

from companion.db.sqlite import get_db
from companion.models.translation import TranslateRequest, TranslationResult
from companion.services.translator import TranslationUnavailableError, translate

router = APIRouter()


@router.post("", response_model=TranslationResult)
async def translate_text(
    body: TranslateRequest, db: aiosqlite.Connection = Depends(get_db)
) -> TranslationResult:
    text = body.text.strip()
    if not text:
        raise HTTPException(status_code=400, detail="Text is required")
    try:
        return await translate(db, text)
    except TranslationUnavailableError as e:
        raise HTTPException(status_code=502, detail=f"Translation failed: {e}")
