from pydantic import BaseModel


class StatsPeriod(BaseModel):
    days: int
    since: str


class StatsSummary(BaseModel):
    total_attempts: int
    success_count: int
    success_rate: float           # percent, one decimal
    current_streak: int
    avg_response_time_ms: int | None


class HardItem(BaseModel):
    vocabulary_id: str
    term: str
    translation: str
    avg_quality: float
    attempt_count: int


class DayActivity(BaseModel):
    date: str
    count: int


class ExerciseTypeStats(BaseModel):
    type: str
    count: int
    avg_quality: float


class DifficultyEntry(BaseModel):
    vocabulary_id: str
    term: str
    difficulty_score: int         # 0-100, higher = harder
    avg_quality: float
    attempt_count: int
    latest_ease_factor: float
    category: str                 # easy | medium | hard | very_hard


class ReviewStats(BaseModel):
    period: StatsPeriod
    summary: StatsSummary
    hardest_items: list[HardItem]
    activity_by_day: list[DayActivity]
    exercise_types: list[ExerciseTypeStats]
    difficulty: list[DifficultyEntry]
