from datetime import datetime, time, timedelta
from typing import NamedTuple, Optional

from app.schemas.progress import ReviewSchedule, ReviewSlot, TopicProgress, REVIEW_TYPES

ONE_DAY = timedelta(days=1)


class ReviewDueState(NamedTuple):
    one_day: bool
    one_week: bool
    any_due: bool


def start_of_day_after(moment: datetime, days: int) -> datetime:
    """Полночь (по локальным часам moment) через days календарных дней"""
    return datetime.combine((moment + timedelta(days=days)).date(), time.min, tzinfo=moment.tzinfo)


def create_review_schedule(completed_at: datetime) -> ReviewSchedule:
    """
    Расписание повторений после первого прохождения темы

    one_day - начало следующего дня, one_week - начало дня через 7 дней
    """
    return ReviewSchedule(
        one_day=ReviewSlot(due_date=start_of_day_after(completed_at, 1), completed=False),
        one_week=ReviewSlot(due_date=start_of_day_after(completed_at, 7), completed=False),
    )


def is_review_due(schedule: Optional[ReviewSchedule], now: datetime) -> ReviewDueState:
    if schedule is None:
        return ReviewDueState(False, False, False)

    one_day = not schedule.one_day.completed and now >= schedule.one_day.due_date
    one_week = not schedule.one_week.completed and now >= schedule.one_week.due_date
    return ReviewDueState(one_day, one_week, one_day or one_week)


def get_next_review_type(schedule: Optional[ReviewSchedule], now: datetime) -> Optional[str]:
    """Самое раннее просроченное повторение: one_day раньше one_week"""
    state = is_review_due(schedule, now)
    if state.one_day:
        return "one_day"
    if state.one_week:
        return "one_week"
    return None


def mark_review_completed(schedule: ReviewSchedule, review_type: str) -> ReviewSchedule:
    """Отмечает повторение выполненным; новые слоты не создаются"""
    if review_type not in REVIEW_TYPES:
        raise ValueError(f"Unknown review type: {review_type}")
    slot = getattr(schedule, review_type).model_copy(update={"completed": True})
    return schedule.model_copy(update={review_type: slot})


def get_topic_status(progress: Optional[TopicProgress], now: datetime) -> str:
    if progress is None or not progress.quiz_attempts:
        return "not-started"
    if is_review_due(progress.review_schedule, now).any_due:
        return "review-due"
    return "completed"


def format_review_date(due_date: datetime, now: datetime) -> str:
    diff = due_date - now
    if diff < timedelta(0):
        return "overdue"

    hours = int(diff.total_seconds() // 3600)
    days = diff // ONE_DAY

    if hours < 24:
        return "in 1 hour" if hours <= 1 else f"in {hours} hours"
    if days == 1:
        return "tomorrow"
    return f"in {days} days"
