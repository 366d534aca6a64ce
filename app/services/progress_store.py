import asyncio
import contextlib
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

import httpx
from pydantic import ValidationError

from app.config import get_settings, Settings
from app.schemas.progress import (
    ActiveQuizPosition,
    ActiveReviewPosition,
    DueReview,
    LearningProgress,
    TopicProgress,
)
from app.services import progress_service
from app.services.progress_service import ProgressAction

logger = logging.getLogger(__name__)

TOKEN_HEADER = "X-Progress-Token"


class LocalProgressCache:
    """Локальная копия прогресса в JSON-файле (источник истины для сессии)"""

    def __init__(self, path):
        self.path = Path(path)

    def load(self) -> Optional[LearningProgress]:
        """Прогресс из файла; None если файла нет или он поврежден"""
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as e:
            logger.warning("Discarding unreadable progress cache %s: %s", self.path, e)
            return None
        except OSError as e:
            logger.warning("Failed to read progress cache %s: %s", self.path, e)
            return None

        try:
            return LearningProgress.model_validate_json(raw)
        except ValidationError as e:
            logger.warning("Discarding corrupt progress cache %s: %s", self.path, e.error_count())
            return None

    def save(self, progress: LearningProgress) -> bool:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(progress.model_dump_json(), encoding="utf-8")
            return True
        except OSError as e:
            logger.error("Failed to save progress to %s: %s", self.path, e)
            return False


class RemoteProgressClient:
    """HTTP-клиент удаленной копии прогресса (GET/POST /api/progress)"""

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._client = client

    @property
    def headers(self) -> dict:
        return {TOKEN_HEADER: self.token} if self.token else {}

    def _open_client(self):
        if self._client is not None:
            return contextlib.nullcontext(self._client)
        return httpx.AsyncClient(timeout=self.timeout)

    async def fetch(self) -> Optional[dict]:
        """
        Сырой агрегат с сервера; None если сервер его не знает (404)

        Raises:
            httpx.HTTPError: Сеть или ответ не 2xx
            ValueError: Тело не JSON
        """
        async with self._open_client() as client:
            response = await client.get(f"{self.base_url}/api/progress", headers=self.headers)
            if response.status_code == 404:
                return None
            response.raise_for_status()
            return response.json()

    async def save(self, progress: LearningProgress) -> None:
        async with self._open_client() as client:
            response = await client.post(
                f"{self.base_url}/api/progress",
                content=progress.model_dump_json(),
                headers={"Content-Type": "application/json", **self.headers},
            )
            response.raise_for_status()


class ProgressStore:
    """
    Владелец агрегата LearningProgress

    load(): сервер -> локальный кэш -> пустой прогресс.
    dispatch(): чистый редьюсер, затем сразу запись в кэш и отложенная
    (debounce) отправка на сервер; ошибки сервера только логируются.
    """

    def __init__(
        self,
        cache: LocalProgressCache,
        remote: Optional[RemoteProgressClient] = None,
        debounce_seconds: float = 1.0,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.cache = cache
        self.remote = remote
        self.debounce_seconds = debounce_seconds
        self.clock = clock
        self._progress: Optional[LearningProgress] = None
        self._loaded = False
        self._closed = False
        self._timer: Optional[asyncio.Task] = None
        self._push_task: Optional[asyncio.Task] = None

    @property
    def progress(self) -> Optional[LearningProgress]:
        return self._progress

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    async def _fetch_remote(self) -> Optional[LearningProgress]:
        if self.remote is None:
            return None
        try:
            data = await self.remote.fetch()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Remote progress unavailable, using local cache: %s", e)
            return None

        if not isinstance(data, dict) or not data.get("version"):
            return None
        try:
            return LearningProgress.model_validate(data)
        except ValidationError as e:
            logger.warning("Remote progress rejected: %d validation errors", e.error_count())
            return None

    async def load(self) -> Optional[LearningProgress]:
        """
        Загружает прогресс; если store закрыт во время загрузки - ничего не меняет

        Returns:
            LearningProgress: Загруженный агрегат или None после close()
        """
        remote_progress = await self._fetch_remote()
        if self._closed:
            logger.debug("Progress store closed during load, result discarded")
            return None

        if remote_progress is not None:
            self._progress = remote_progress
            self.cache.save(remote_progress)
        else:
            self._progress = self.cache.load() or progress_service.create_initial_progress(self.clock())

        self._loaded = True
        return self._progress

    def dispatch(self, action: ProgressAction) -> Optional[LearningProgress]:
        """Применяет действие; до load() и после close() ничего не делает"""
        if not self._loaded or self._closed:
            logger.debug("Ignoring %s: progress store not ready", type(action).__name__)
            return self._progress

        updated = progress_service.apply_action(self._progress, action, self.clock())
        if updated is self._progress:
            return updated

        self._progress = updated
        self.cache.save(updated)
        self._schedule_remote_save()
        return updated

    def _schedule_remote_save(self):
        if self.remote is None:
            return
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        try:
            self._timer = asyncio.get_running_loop().create_task(self._save_after_quiet_window())
        except RuntimeError:
            logger.warning("No running event loop, remote progress sync skipped")
            self._timer = None

    async def _save_after_quiet_window(self):
        await asyncio.sleep(self.debounce_seconds)
        # Past the timer: a new dispatch starts a new timer instead of cancelling this push
        self._timer = None
        self._push_task = asyncio.current_task()
        await self._push(self._progress)

    async def _push(self, progress: Optional[LearningProgress]):
        if progress is None or self.remote is None:
            return
        try:
            await self.remote.save(progress)
        except httpx.HTTPError as e:
            logger.warning("Remote progress sync failed, local cache kept: %s", e)

    async def flush(self):
        """Отправляет ожидающее изменение сразу, не дожидаясь таймера"""
        pending = self._timer is not None and not self._timer.done()
        if pending:
            self._timer.cancel()
            self._timer = None
        if self._push_task is not None and not self._push_task.done():
            await self._push_task
        if pending:
            await self._push(self._progress)

    async def close(self, flush: bool = True):
        if flush and self._loaded and not self._closed:
            await self.flush()
        self._closed = True
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    # Mutations

    def record_quiz_attempt(self, topic_id: str, correct: int, total: int):
        return self.dispatch(progress_service.RecordQuizAttempt(topic_id, correct, total))

    def mark_review_completed(self, topic_id: str, review_type: str):
        return self.dispatch(progress_service.MarkReviewCompleted(topic_id, review_type))

    def save_quiz_position(self, topic_id: str, position: ActiveQuizPosition):
        return self.dispatch(progress_service.SaveQuizPosition(topic_id, position))

    def clear_quiz_position(self, topic_id: str):
        return self.dispatch(progress_service.ClearQuizPosition(topic_id))

    def save_review_position(self, topic_id: str, position: ActiveReviewPosition):
        return self.dispatch(progress_service.SaveReviewPosition(topic_id, position))

    def clear_review_position(self, topic_id: str):
        return self.dispatch(progress_service.ClearReviewPosition(topic_id))

    def schedule_review(self, topic_id: str):
        return self.dispatch(progress_service.ScheduleReview(topic_id))

    def dismiss_review_alert(self, topic_id: str, review_type: str):
        return self.dispatch(progress_service.DismissReviewAlert(topic_id, review_type))

    # Queries

    def get_topic_progress(self, topic_id: str) -> Optional[TopicProgress]:
        return progress_service.get_topic_progress(self._progress, topic_id)

    def get_topic_status(self, topic_id: str) -> str:
        return progress_service.get_topic_status_by_id(self._progress, topic_id, self.clock())

    def get_due_reviews(self) -> List[DueReview]:
        return progress_service.get_due_reviews(self._progress, self.clock())

    def get_quiz_position(self, topic_id: str) -> Optional[ActiveQuizPosition]:
        return progress_service.get_quiz_position(self._progress, topic_id)

    def get_review_position(self, topic_id: str, review_type: str) -> Optional[ActiveReviewPosition]:
        return progress_service.get_review_position(self._progress, topic_id, review_type)

    def is_review_alert_dismissed(self, topic_id: str, review_type: str) -> bool:
        return progress_service.is_review_alert_dismissed(self._progress, topic_id, review_type)


def build_progress_store(settings: Optional[Settings] = None) -> ProgressStore:
    settings = settings or get_settings()
    remote = None
    if settings.PROGRESS_API_URL:
        remote = RemoteProgressClient(settings.PROGRESS_API_URL, token=settings.PROGRESS_API_TOKEN)
    return ProgressStore(
        LocalProgressCache(settings.PROGRESS_CACHE_PATH),
        remote=remote,
        debounce_seconds=settings.PROGRESS_SAVE_DEBOUNCE_SECONDS,
    )


def describe_progress(store: ProgressStore) -> List[str]:
    """
    Сводка загруженного прогресса: статус каждой темы и просроченные повторения

    Returns:
        list: Строки для вывода в консоль
    """
    progress = store.progress
    if progress is None:
        return []

    lines = []
    for topic_id, topic in progress.topics.items():
        best = f"{topic.best_score}%" if topic.best_score is not None else "-"
        lines.append(f"{topic_id}: {store.get_topic_status(topic_id)}, best {best}")
    for review in store.get_due_reviews():
        if not store.is_review_alert_dismissed(review.topic_id, review.review_type):
            lines.append(f"Review due: {review.topic_id} ({review.review_type})")
    return lines


# Синхронизация и сводка прогресса из консоли
async def main():
    store = build_progress_store()
    await store.load()
    try:
        for line in describe_progress(store) or ["No progress yet"]:
            print(line)
    finally:
        await store.close()


if __name__ == "__main__":
    logging.basicConfig(level=get_settings().LOG_LEVEL.upper())
    asyncio.run(main())
