import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.progress import ProgressSnapshot

from app.schemas.progress import (
    CURRENT_VERSION,
    ActiveQuizPosition,
    ActiveReviewPosition,
    REVIEW_TYPES,
    DueReview,
    LearningProgress,
    QuizAttempt,
    TopicProgress,
)
from app.services.review_scheduler import (
    create_review_schedule,
    get_topic_status,
    is_review_due,
    mark_review_completed,
)
from app.services.text_similarity import round_score

logger = logging.getLogger(__name__)


def alert_key(topic_id: str, review_type: str) -> str:
    return f"{topic_id}-{review_type}"


# Actions

@dataclass(frozen=True)
class RecordQuizAttempt:
    topic_id: str
    correct: int
    total: int


@dataclass(frozen=True)
class MarkReviewCompleted:
    topic_id: str
    review_type: str


@dataclass(frozen=True)
class SaveQuizPosition:
    topic_id: str
    position: ActiveQuizPosition


@dataclass(frozen=True)
class ClearQuizPosition:
    topic_id: str


@dataclass(frozen=True)
class SaveReviewPosition:
    topic_id: str
    position: ActiveReviewPosition


@dataclass(frozen=True)
class ClearReviewPosition:
    topic_id: str


@dataclass(frozen=True)
class ScheduleReview:
    topic_id: str


@dataclass(frozen=True)
class DismissReviewAlert:
    topic_id: str
    review_type: str


ProgressAction = Union[
    RecordQuizAttempt,
    MarkReviewCompleted,
    SaveQuizPosition,
    ClearQuizPosition,
    SaveReviewPosition,
    ClearReviewPosition,
    ScheduleReview,
    DismissReviewAlert,
]


def create_initial_progress(now: datetime) -> LearningProgress:
    return LearningProgress(version=CURRENT_VERSION, topics={}, last_updated=now, dismissed_review_alerts=[])


def create_initial_topic_progress(topic_id: str) -> TopicProgress:
    return TopicProgress(topic_id=topic_id)


def calculate_percentage(correct: int, total: int) -> int:
    if total <= 0:
        return 0
    return round_score(correct / total * 100)


def _with_topic(progress: LearningProgress, topic: TopicProgress, now: datetime, **changes) -> LearningProgress:
    topics: Dict[str, TopicProgress] = dict(progress.topics)
    topics[topic.topic_id] = topic
    return progress.model_copy(update={"topics": topics, "last_updated": now, **changes})


def _record_quiz_attempt(progress, action: RecordQuizAttempt, now):
    topic = progress.topics.get(action.topic_id) or create_initial_topic_progress(action.topic_id)
    percentage = calculate_percentage(action.correct, action.total)
    is_first_completion = topic.completed_at is None

    attempt = QuizAttempt(date=now, score=percentage, correct=action.correct, total=action.total)
    topic = topic.model_copy(update={
        "quiz_attempts": [*topic.quiz_attempts, attempt],
        "best_score": percentage if topic.best_score is None else max(topic.best_score, percentage),
        "completed_at": topic.completed_at or now,
        "review_schedule": create_review_schedule(now) if is_first_completion else topic.review_schedule,
    })
    return _with_topic(progress, topic, now)


def _mark_review_completed(progress, action: MarkReviewCompleted, now):
    topic = progress.topics.get(action.topic_id)
    if topic is None or topic.review_schedule is None:
        return progress
    schedule = mark_review_completed(topic.review_schedule, action.review_type)
    return _with_topic(progress, topic.model_copy(update={"review_schedule": schedule}), now)


def _save_quiz_position(progress, action: SaveQuizPosition, now):
    topic = progress.topics.get(action.topic_id) or create_initial_topic_progress(action.topic_id)
    return _with_topic(progress, topic.model_copy(update={"active_quiz": action.position}), now)


def _clear_quiz_position(progress, action: ClearQuizPosition, now):
    topic = progress.topics.get(action.topic_id)
    if topic is None:
        return progress
    return _with_topic(progress, topic.model_copy(update={"active_quiz": None}), now)


def _save_review_position(progress, action: SaveReviewPosition, now):
    topic = progress.topics.get(action.topic_id) or create_initial_topic_progress(action.topic_id)
    return _with_topic(progress, topic.model_copy(update={"active_review": action.position}), now)


def _clear_review_position(progress, action: ClearReviewPosition, now):
    topic = progress.topics.get(action.topic_id)
    if topic is None:
        return progress
    return _with_topic(progress, topic.model_copy(update={"active_review": None}), now)


def _schedule_review(progress, action: ScheduleReview, now):
    topic = progress.topics.get(action.topic_id) or create_initial_topic_progress(action.topic_id)
    # Stale dismissals must not hide the new cycle
    stale = {alert_key(action.topic_id, review_type) for review_type in REVIEW_TYPES}
    dismissed = [key for key in progress.dismissed_review_alerts if key not in stale]
    topic = topic.model_copy(update={"review_schedule": create_review_schedule(now)})
    return _with_topic(progress, topic, now, dismissed_review_alerts=dismissed)


def _dismiss_review_alert(progress, action: DismissReviewAlert, now):
    key = alert_key(action.topic_id, action.review_type)
    if key in progress.dismissed_review_alerts:
        return progress
    return progress.model_copy(update={
        "dismissed_review_alerts": [*progress.dismissed_review_alerts, key],
        "last_updated": now,
    })


_HANDLERS = {
    RecordQuizAttempt: _record_quiz_attempt,
    MarkReviewCompleted: _mark_review_completed,
    SaveQuizPosition: _save_quiz_position,
    ClearQuizPosition: _clear_quiz_position,
    SaveReviewPosition: _save_review_position,
    ClearReviewPosition: _clear_review_position,
    ScheduleReview: _schedule_review,
    DismissReviewAlert: _dismiss_review_alert,
}


def apply_action(progress: LearningProgress, action: ProgressAction, now: datetime) -> LearningProgress:
    """
    Редьюсер прогресса: (состояние, действие) -> новое состояние

    Входное состояние не изменяется; неприменимое действие (например,
    очистка позиции у темы без прогресса) возвращает то же состояние.

    Args:
        progress: Текущий агрегат
        action: Одно из действий модуля
        now: Время изменения (ставится в last_updated)

    Returns:
        LearningProgress: Новый агрегат
    """
    handler = _HANDLERS.get(type(action))
    if handler is None:
        raise TypeError(f"Unknown progress action: {action!r}")
    return handler(progress, action, now)


# Queries

def get_topic_progress(progress: Optional[LearningProgress], topic_id: str) -> Optional[TopicProgress]:
    if progress is None:
        return None
    return progress.topics.get(topic_id)


def get_topic_status_by_id(progress: Optional[LearningProgress], topic_id: str, now: datetime) -> str:
    return get_topic_status(get_topic_progress(progress, topic_id), now)


def get_due_reviews(progress: Optional[LearningProgress], now: datetime) -> List[DueReview]:
    """Одна запись на тему: one_day, если он просрочен, иначе one_week"""
    if progress is None:
        return []

    due = []
    for topic in progress.topics.values():
        state = is_review_due(topic.review_schedule, now)
        if state.one_day:
            due.append(DueReview(topic_id=topic.topic_id, review_type="one_day"))
        elif state.one_week:
            due.append(DueReview(topic_id=topic.topic_id, review_type="one_week"))
    return due


def get_quiz_position(progress: Optional[LearningProgress], topic_id: str) -> Optional[ActiveQuizPosition]:
    topic = get_topic_progress(progress, topic_id)
    return topic.active_quiz if topic else None


def get_review_position(
    progress: Optional[LearningProgress],
    topic_id: str,
    review_type: str
) -> Optional[ActiveReviewPosition]:
    """Позиция повторения только для того же слота (one_day/one_week)"""
    topic = get_topic_progress(progress, topic_id)
    if topic is None or topic.active_review is None:
        return None
    if topic.active_review.review_type != review_type:
        return None
    return topic.active_review


def is_review_alert_dismissed(progress: Optional[LearningProgress], topic_id: str, review_type: str) -> bool:
    if progress is None:
        return False
    return alert_key(topic_id, review_type) in progress.dismissed_review_alerts


def now_for(progress: Optional[LearningProgress]) -> datetime:
    """Текущее время в той же зоне, что и сохраненный прогресс (naive -> локальное)"""
    if progress is not None and progress.last_updated.tzinfo is not None:
        return datetime.now(progress.last_updated.tzinfo)
    return datetime.now()


# Remote mirror storage

async def get_stored_progress(db: AsyncSession, owner: str) -> Optional[LearningProgress]:
    """
    Сохраненный агрегат владельца

    Returns:
        LearningProgress или None, если для владельца ничего не сохранено
    """
    result = await db.execute(select(ProgressSnapshot).where(ProgressSnapshot.owner == owner))
    snapshot = result.scalar_one_or_none()
    if snapshot is None:
        return None
    return LearningProgress.model_validate_json(snapshot.payload)


async def replace_stored_progress(db: AsyncSession, owner: str, progress: LearningProgress) -> LearningProgress:
    """Полная замена агрегата владельца (без слияния по темам)"""
    result = await db.execute(select(ProgressSnapshot).where(ProgressSnapshot.owner == owner))
    snapshot = result.scalar_one_or_none()
    payload = progress.model_dump_json()

    if snapshot is None:
        db.add(ProgressSnapshot(owner=owner, version=progress.version, payload=payload))
    else:
        snapshot.version = progress.version
        snapshot.payload = payload
        snapshot.updated_at = datetime.utcnow()

    await db.commit()
    logger.info("Stored progress for %s (%d topics)", owner, len(progress.topics))
    return progress
