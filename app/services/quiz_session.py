import logging
import random
from datetime import datetime
from typing import Callable, List, NamedTuple, Optional, Sequence

from app.schemas.progress import ActiveQuizPosition, ActiveReviewPosition, QuizResultEntry
from app.schemas.vocabulary import VocabularyItem

logger = logging.getLogger(__name__)

DEFAULT_PHASES = ("spelling", "pronunciation", "translation")


class QuizScore(NamedTuple):
    correct: int
    total: int


class PhaseResult(NamedTuple):
    phase: str
    user_answer: str
    is_correct: bool


def check_spelling(user_input: str, word: str) -> bool:
    """Сравнение без учета регистра и лишних пробелов"""
    def normalize(s: str) -> str:
        return " ".join(s.lower().split())
    return normalize(user_input) == normalize(word)


def check_cloze_answer(user_input: str, answer: str) -> bool:
    return user_input.strip().lower() == answer.lower()


class QuizSession:
    """
    Сессия квиза по теме: перемешанные карточки, текущий индекс, результаты

    Сохраненная позиция восстанавливается, только если все id карточек
    по-прежнему существуют; иначе она отбрасывается и колода перемешивается заново.
    on_complete вызывается ровно один раз за прохождение.
    """

    def __init__(
        self,
        items: Sequence[VocabularyItem],
        saved_position: Optional[ActiveQuizPosition] = None,
        on_complete: Optional[Callable[[QuizScore], None]] = None,
        on_position_change: Optional[Callable[[ActiveQuizPosition], None]] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.items = list(items)
        self.on_complete = on_complete
        self.on_position_change = on_position_change
        self.rng = rng or random.Random()
        self.clock = clock
        self._completion_reported = False

        restored = self._restore(saved_position) if saved_position else None
        if restored is not None:
            self.shuffled_items, self.current_index, self.results = restored
            self.started_at = saved_position.started_at
        else:
            if saved_position is not None:
                logger.info("Discarding stale quiz position (unknown item ids)")
            self.shuffled_items = self._shuffle()
            self.current_index = 0
            self.results: List[QuizResultEntry] = []
            self.started_at = self.clock()

    def _shuffle(self) -> List[VocabularyItem]:
        shuffled = list(self.items)
        self.rng.shuffle(shuffled)
        return shuffled

    def _restore(self, position: ActiveQuizPosition):
        by_id = {item.id: item for item in self.items}
        ids = position.shuffled_item_ids
        if any(item_id not in by_id for item_id in ids):
            return None
        if any(result.item_id not in by_id for result in position.results):
            return None
        if position.current_index > len(ids):
            return None
        return [by_id[item_id] for item_id in ids], position.current_index, list(position.results)

    @property
    def current_item(self) -> Optional[VocabularyItem]:
        if self.current_index < len(self.shuffled_items):
            return self.shuffled_items[self.current_index]
        return None

    @property
    def is_complete(self) -> bool:
        return self.current_index >= len(self.shuffled_items)

    @property
    def score(self) -> QuizScore:
        correct = sum(1 for result in self.results if result.is_correct)
        return QuizScore(correct=correct, total=len(self.shuffled_items))

    def record_answer(self, user_answer: str, is_correct: bool):
        item = self.current_item
        if item is None:
            return
        self.results.append(QuizResultEntry(item_id=item.id, user_answer=user_answer, is_correct=is_correct))
        self._notify_position()

    def record_phases(self, pipeline: "ItemPhasePipeline"):
        """Записывает итог многошагового вопроса (верно, только если верны все шаги)"""
        self.record_answer(pipeline.user_answer, pipeline.is_correct)

    def next_question(self):
        self.current_index += 1
        self._notify_position()
        self.check_completion()

    def check_completion(self) -> bool:
        """Сообщает о завершении (on_complete) не более одного раза"""
        if not self.is_complete:
            return False
        if not self._completion_reported:
            self._completion_reported = True
            if self.on_complete:
                self.on_complete(self.score)
        return True

    def reset_quiz(self):
        self.shuffled_items = self._shuffle()
        self.current_index = 0
        self.results = []
        self.started_at = self.clock()
        self._completion_reported = False
        self._notify_position()

    def to_quiz_position(self) -> ActiveQuizPosition:
        return ActiveQuizPosition(
            current_index=self.current_index,
            shuffled_item_ids=[item.id for item in self.shuffled_items],
            results=list(self.results),
            started_at=self.started_at,
        )

    def to_review_position(self, review_type: str) -> ActiveReviewPosition:
        return ActiveReviewPosition(review_type=review_type, **self.to_quiz_position().model_dump())

    def _notify_position(self):
        if self.on_position_change:
            self.on_position_change(self.to_quiz_position())


class ItemPhasePipeline:
    """Шаги одного вопроса (по умолчанию: spelling -> pronunciation -> translation)"""

    def __init__(self, phases: Sequence[str] = DEFAULT_PHASES):
        if not phases:
            raise ValueError("a phase pipeline needs at least one phase")
        self.phases = tuple(phases)
        self.phase_results: List[PhaseResult] = []

    @property
    def current_phase(self) -> Optional[str]:
        if self.is_done:
            return None
        return self.phases[len(self.phase_results)]

    @property
    def is_done(self) -> bool:
        return len(self.phase_results) >= len(self.phases)

    @property
    def is_correct(self) -> bool:
        return self.is_done and all(result.is_correct for result in self.phase_results)

    @property
    def user_answer(self) -> str:
        # The first phase's typed answer stands for the whole item
        return self.phase_results[0].user_answer if self.phase_results else ""

    def record_phase(self, is_correct: bool, user_answer: str = "") -> Optional[str]:
        """
        Записывает результат текущего шага

        Returns:
            str: Следующий шаг или None, если вопрос завершен
        """
        if self.is_done:
            raise RuntimeError("all phases already recorded")
        self.phase_results.append(PhaseResult(self.current_phase, user_answer, is_correct))
        return self.current_phase
