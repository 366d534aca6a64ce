import logging
from functools import lru_cache

from fastapi import APIRouter, Depends, Form, HTTPException

from app.config import get_settings
from app.schemas.pronunciation import (
    PhaseRequest,
    PronunciationPhaseResponse,
    PronunciationRequest,
    PronunciationResponse,
)
from app.schemas.translation import ProviderStatus, TranslationRequest, TranslationResponse
from app.schemas.vocabulary import AnswerResult, VocabularyItem
from app.services import pronunciation_service, translation_service, vocabulary_service
from app.services.llm_service import TranslationChecker, build_translation_checker
from app.services.quiz_session import check_cloze_answer, check_spelling

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/quiz", tags=["quiz"])
settings = get_settings()


@lru_cache()
def get_translation_checker() -> TranslationChecker:
    return build_translation_checker(settings)


def _item_or_404(topic_id: str, item_id: str) -> VocabularyItem:
    item = vocabulary_service.get_item(settings.VOCABULARY_DATA_DIR, topic_id, item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Item not found")
    return item


@router.post("/pronunciation", response_model=PronunciationResponse)
async def evaluate_pronunciation(request: PronunciationRequest):
    """Оценка произношения по тексту распознавания (или лучшему из вариантов)"""
    threshold = request.passing_threshold
    if threshold is None:
        threshold = settings.PRONUNCIATION_PASSING_THRESHOLD
    transcript = request.transcript
    if request.alternatives and not request.error:
        transcript = pronunciation_service.find_best_alternative(request.alternatives, request.expected).best_match

    if request.case_sensitive and not request.error:
        result = pronunciation_service.evaluate_pronunciation(
            transcript, request.expected, passing_threshold=threshold, case_sensitive=True
        )
    else:
        result = pronunciation_service.evaluate_attempt(
            transcript, request.expected, error=request.error, passing_threshold=threshold
        )

    return PronunciationResponse(
        result=result,
        transcript=transcript if not request.error else "",
        feedback=pronunciation_service.get_pronunciation_feedback(result),
    )


@router.post("/pronunciation/phase", response_model=PronunciationPhaseResponse)
async def evaluate_pronunciation_phase(request: PhaseRequest):
    """Фаза произношения: слово + первое предложение-пример"""
    item = _item_or_404(request.topic_id, request.item_id)
    word_result, sentence_result, passed = pronunciation_service.evaluate_word_and_sentence(
        item,
        request.word_transcript,
        request.sentence_transcript,
        passing_threshold=settings.PRONUNCIATION_PASSING_THRESHOLD,
    )
    return PronunciationPhaseResponse(
        word=word_result,
        sentence=sentence_result,
        sentence_text=item.examples[0].english,
        is_passing=passed,
    )


@router.post("/spelling", response_model=AnswerResult)
async def check_spelling_answer(
    topic_id: str = Form(...),
    item_id: str = Form(...),
    user_answer: str = Form(...)
):
    item = _item_or_404(topic_id, item_id)
    return AnswerResult(
        is_correct=check_spelling(user_answer, item.word),
        user_answer=user_answer,
        correct_answer=item.word,
    )


@router.post("/cloze", response_model=AnswerResult)
async def check_cloze(
    topic_id: str = Form(...),
    item_id: str = Form(...),
    sentence: str = Form(...),
    user_answer: str = Form(...)
):
    """Проверка пропуска: ответ - форма слова, найденная в этом предложении"""
    item = _item_or_404(topic_id, item_id)
    if sentence not in [example.english for example in item.examples]:
        raise HTTPException(status_code=400, detail="Sentence is not an example of this item")

    match = translation_service.find_vocabulary_word_in_sentence(sentence, item.word, item.word_family)
    answer = match.matched if match else item.word
    return AnswerResult(
        is_correct=check_cloze_answer(user_answer, answer),
        user_answer=user_answer,
        correct_answer=answer,
    )


@router.post("/translation", response_model=TranslationResponse)
async def evaluate_translation(
    request: TranslationRequest,
    checker: TranslationChecker = Depends(get_translation_checker)
):
    """
    Оценка перевода третьего примера

    Локальная оценка решает, засчитан ли ответ; внешний сервис только
    добавляет грамматику и советы (при сбое score=-1).
    """
    item = _item_or_404(request.topic_id, request.item_id)
    evaluation = translation_service.evaluate_translation(item, request.user_translation)

    if request.use_checker:
        check = await translation_service.check_translation(
            checker, evaluation.source, request.user_translation, item.word
        )
    else:
        check = translation_service.unavailable_result(checker.name)

    return TranslationResponse(
        evaluation=evaluation,
        check=check,
        is_correct=evaluation.classification == "correct",
    )


@router.get("/translation/provider", response_model=ProviderStatus)
async def translation_provider(checker: TranslationChecker = Depends(get_translation_checker)):
    return ProviderStatus(provider=checker.name, available=await checker.is_available())
