import logging
from collections import Counter
from typing import List, Optional, Tuple

from app.schemas.pronunciation import PronunciationResult, BestAlternative
from app.schemas.vocabulary import VocabularyItem
from app.services.text_similarity import (
    normalize_text,
    strip_punctuation,
    split_words,
    edit_distance_score,
    phonetic_similarity,
    round_score,
)

logger = logging.getLogger(__name__)

DEFAULT_PASSING_THRESHOLD = 70

# Capture errors that still produce a (failing) evaluation instead of a retry prompt
SCORED_SPEECH_ERRORS = {"no-speech", "transcription-failed", "non-english-detected"}


def _word_match_score(recognized_words: List[str], expected_words: List[str]) -> Tuple[float, int]:
    if not expected_words:
        return 100.0, 0
    if not recognized_words:
        return 0.0, 0

    remaining = Counter(expected_words)
    matched = 0
    for word in recognized_words:
        if remaining[word] > 0:
            matched += 1
            remaining[word] -= 1

    return matched / len(expected_words) * 100, matched


def _phonetic_score(recognized_words: List[str], expected_words: List[str]) -> float:
    if not expected_words:
        return 100.0
    if not recognized_words:
        return 0.0

    total = 0.0
    used = set()
    for expected_word in expected_words:
        best_similarity = 0.0
        best_index = -1
        for i, recognized_word in enumerate(recognized_words):
            if i in used:
                continue
            similarity = phonetic_similarity(recognized_word, expected_word)
            if similarity > best_similarity:
                best_similarity = similarity
                best_index = i

        total += best_similarity
        if best_index >= 0:
            used.add(best_index)

    return total / len(expected_words)


def evaluate_pronunciation(
    recognized: str,
    expected: str,
    passing_threshold: int = DEFAULT_PASSING_THRESHOLD,
    case_sensitive: bool = False
) -> PronunciationResult:
    """
    Оценивает произношение: сравнивает распознанный текст с ожидаемым

    Итог = 40% совпадение слов + 30% фонетика (Soundex) + 30% редакционное расстояние.
    Пустой transcript допустим и всегда дает непроходной результат.

    Args:
        recognized: Распознанный текст (может быть пустым)
        expected: Ожидаемое слово или предложение
        passing_threshold: Проходной балл
        case_sensitive: Учитывать регистр

    Returns:
        PronunciationResult: Баллы по компонентам и итог
    """
    clean = strip_punctuation if case_sensitive else normalize_text
    normalized_recognized = clean(recognized or "")
    normalized_expected = clean(expected or "")

    recognized_words = split_words(normalized_recognized)
    expected_words = split_words(normalized_expected)

    word_score, matched_words = _word_match_score(recognized_words, expected_words)
    phonetic = _phonetic_score(recognized_words, expected_words)
    edit_score = edit_distance_score(normalized_recognized, normalized_expected)

    overall = round_score(word_score * 0.4 + phonetic * 0.3 + edit_score * 0.3)

    return PronunciationResult(
        is_exact_match=normalized_recognized == normalized_expected,
        word_match_score=round_score(word_score),
        phonetic_score=round_score(phonetic),
        edit_distance_score=round_score(edit_score),
        overall_score=overall,
        is_passing=overall >= passing_threshold,
        recognized_words=recognized_words,
        expected_words=expected_words,
        matched_words=matched_words,
    )


def find_best_alternative(alternatives: List[str], expected: str) -> BestAlternative:
    """Выбирает вариант распознавания с наибольшим баллом (при равенстве - первый)"""
    if not alternatives:
        return BestAlternative(best_match="", score=0)

    best_match = alternatives[0]
    best_score = 0
    for alternative in alternatives:
        result = evaluate_pronunciation(alternative, expected)
        if result.overall_score > best_score:
            best_score = result.overall_score
            best_match = alternative

    return BestAlternative(best_match=best_match, score=best_score)


def get_pronunciation_feedback(result: PronunciationResult) -> str:
    if not result.recognized_words:
        return "No speech detected. Please try again and speak clearly."
    if result.is_exact_match:
        return "Perfect pronunciation!"
    if result.overall_score >= 90:
        return "Excellent! Your pronunciation is very accurate."
    if result.overall_score >= 80:
        return "Great job! Minor differences detected."
    if result.overall_score >= 70:
        return "Good effort! Keep practicing for better accuracy."
    if result.overall_score >= 50:
        return "Getting there! Try listening to the pronunciation and try again."
    return "Keep practicing! Listen carefully to the correct pronunciation."


def evaluate_attempt(
    transcript: str,
    expected: str,
    error: Optional[str] = None,
    passing_threshold: int = DEFAULT_PASSING_THRESHOLD
) -> PronunciationResult:
    """
    Оценка попытки с учетом ошибки захвата речи

    no-speech, transcription-failed и non-english-detected превращаются
    в пустой (непроходной) результат, а не в исключение.
    """
    if error in SCORED_SPEECH_ERRORS:
        logger.info("Speech capture error %s scored as empty attempt", error)
        transcript = ""
    return evaluate_pronunciation(transcript, expected, passing_threshold=passing_threshold)


def evaluate_word_and_sentence(
    item: VocabularyItem,
    word_transcript: str,
    sentence_transcript: str,
    passing_threshold: int = DEFAULT_PASSING_THRESHOLD
) -> Tuple[PronunciationResult, PronunciationResult, bool]:
    """
    Двухшаговая фаза произношения: слово, затем первое предложение-пример

    Returns:
        tuple: (результат слова, результат предложения, пройдены ли оба)
    """
    word_result = evaluate_pronunciation(word_transcript, item.word, passing_threshold=passing_threshold)
    sentence_result = evaluate_pronunciation(
        sentence_transcript, item.examples[0].english, passing_threshold=passing_threshold
    )
    return word_result, sentence_result, word_result.is_passing and sentence_result.is_passing
