from companion.models.review import (
    Card,
    DrainResult,
    DueCards,
    ExerciseType,
    Flashcard,
    QueuedAttempt,
    QueueStatus,
    ReviewAttempt,
    ReviewRecord,
    ReviewSubmission,
)
from companion.models.stats import ReviewStats
from companion.models.translation import TranslateRequest, TranslationResult
from companion.models.vocabulary import (
    Vocabulary,
    VocabularyCreate,
    VocabularyKind,
    VocabularyList,
)

__all__ = [
    "Card",
    "DrainResult",
    "DueCards",
    "ExerciseType",
    "Flashcard",
    "QueueStatus",
    "QueuedAttempt",
    "ReviewAttempt",
    "ReviewRecord",
    "ReviewStats",
    "ReviewSubmission",
    "TranslateRequest",
    "TranslationResult",
    "Vocabulary",
    "VocabularyCreate",
    "VocabularyKind",
    "VocabularyList",
]
