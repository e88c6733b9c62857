from enum import Enum

from pydantic import BaseModel, Field

from companion.models.review import Flashcard


class VocabularyKind(str, Enum):
    WORD = "word"
    PHRASE = "phrase"


class VocabularyCreate(BaseModel):
    term: str = Field(min_length=1)
    translation: str = Field(min_length=1)
    context: str = ""
    kind: VocabularyKind = VocabularyKind.WORD


class Vocabulary(BaseModel):
    id: str
    user_id: str
    term: str
    term_normalized: str
    translation: str
    context: str
    kind: VocabularyKind
    is_known: bool
    created_at: str
    card: Flashcard | None = None


class VocabularyList(BaseModel):
    items: list[Vocabulary]
    total: int
    offset: int
    limit: int
