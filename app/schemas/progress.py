from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Literal
from datetime import datetime

CURRENT_VERSION = 1

ReviewType = Literal["one_day", "one_week"]
TopicStatus = Literal["not-started", "review-due", "completed"]

REVIEW_TYPES = ("one_day", "one_week")  # priority order


class QuizAttempt(BaseModel):
    date: datetime
    score: int = Field(ge=0, le=100)
    correct: int = Field(ge=0)
    total: int = Field(ge=0)


class ReviewSlot(BaseModel):
    due_date: datetime
    completed: bool = False


class ReviewSchedule(BaseModel):
    one_day: ReviewSlot
    one_week: ReviewSlot


class QuizResultEntry(BaseModel):
    item_id: str
    user_answer: str
    is_correct: bool


class ActiveQuizPosition(BaseModel):
    current_index: int = Field(ge=0)
    shuffled_item_ids: List[str]
    results: List[QuizResultEntry] = []
    started_at: datetime


class ActiveReviewPosition(ActiveQuizPosition):
    review_type: ReviewType


class TopicProgress(BaseModel):
    topic_id: str
    quiz_attempts: List[QuizAttempt] = []
    best_score: Optional[int] = None
    completed_at: Optional[datetime] = None
    review_schedule: Optional[ReviewSchedule] = None
    active_quiz: Optional[ActiveQuizPosition] = None
    active_review: Optional[ActiveReviewPosition] = None


class LearningProgress(BaseModel):
    version: int = CURRENT_VERSION
    topics: Dict[str, TopicProgress] = {}
    last_updated: datetime
    dismissed_review_alerts: List[str] = []  # "{topic_id}-{review_type}"


class DueReview(BaseModel):
    topic_id: str
    review_type: ReviewType


class TopicStatusResponse(BaseModel):
    topic_id: str
    status: TopicStatus
    next_review_type: Optional[ReviewType] = None
    best_score: Optional[int] = None
