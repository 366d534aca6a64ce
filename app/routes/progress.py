import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.schemas.progress import DueReview, LearningProgress, TopicStatusResponse
from app.services import progress_service
from app.services.review_scheduler import get_next_review_type

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/progress", tags=["progress"])

DEFAULT_OWNER = "default"


def get_owner(x_progress_token: Optional[str] = Header(default=None)) -> str:
    """Непрозрачный токен владельца прогресса (без аутентификации)"""
    return x_progress_token or DEFAULT_OWNER


@router.get("", response_model=LearningProgress)
async def read_progress(owner: str = Depends(get_owner), db: AsyncSession = Depends(get_db)):
    """Текущий агрегат прогресса; 404 если ничего не сохранено"""
    progress = await progress_service.get_stored_progress(db, owner)
    if progress is None:
        raise HTTPException(status_code=404, detail="No progress stored")
    return progress


@router.post("", response_model=LearningProgress)
async def write_progress(
    progress: LearningProgress,
    owner: str = Depends(get_owner),
    db: AsyncSession = Depends(get_db)
):
    """Полностью заменяет сохраненный агрегат"""
    return await progress_service.replace_stored_progress(db, owner, progress)


@router.get("/due", response_model=List[DueReview])
async def due_reviews(owner: str = Depends(get_owner), db: AsyncSession = Depends(get_db)):
    progress = await progress_service.get_stored_progress(db, owner)
    return progress_service.get_due_reviews(progress, progress_service.now_for(progress))


@router.get("/topics/{topic_id}/status", response_model=TopicStatusResponse)
async def topic_status(topic_id: str, owner: str = Depends(get_owner), db: AsyncSession = Depends(get_db)):
    progress = await progress_service.get_stored_progress(db, owner)
    now = progress_service.now_for(progress)
    topic = progress_service.get_topic_progress(progress, topic_id)

    return TopicStatusResponse(
        topic_id=topic_id,
        status=progress_service.get_topic_status_by_id(progress, topic_id, now),
        next_review_type=get_next_review_type(topic.review_schedule, now) if topic else None,
        best_score=topic.best_score if topic else None,
    )
