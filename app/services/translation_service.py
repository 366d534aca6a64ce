import logging
import re
from typing import List, Optional, Sequence, Union

from pydantic import BaseModel

from app.config import get_settings
from app.schemas.translation import TranslationCheckResult, TranslationEvaluation, GrammarError
from app.schemas.vocabulary import VocabularyItem, WordFamilyEntry
from app.services.llm_service import TranslationChecker, TranslationCheckerError
from app.services.text_similarity import normalize_text, split_words, round_score

logger = logging.getLogger(__name__)
settings = get_settings()

VOWELS = "aeiou"
SIBILANT_ENDINGS = ("s", "x", "z", "ch", "sh")
QUOTED_TERM_RE = re.compile(r"['\"]([^'\"]+)['\"]")


class VocabularyMatch(BaseModel):
    matched: str  # original case from the sentence
    start: int
    end: int


FamilyLike = Union[WordFamilyEntry, dict, str]


def _family_words(word_family: Sequence[FamilyLike]) -> List[str]:
    words = []
    for entry in word_family or []:
        if isinstance(entry, str):
            words.append(entry)
        elif isinstance(entry, dict):
            words.append(entry.get("word", ""))
        else:
            words.append(entry.word)
    return [w for w in words if w]


def _ends_with_consonant_y(word: str) -> bool:
    return word.endswith("y") and word[-2:-1] not in VOWELS


def generate_word_variations(word: str) -> List[str]:
    """
    Регулярные словоформы: множественное число, -ing, -ed, 3-е лицо, -er, -est

    Returns:
        list: Исходное слово и формы без повторов (порядок сохраняется)
    """
    lower = word.lower()
    variations = [word]

    # Plural
    if _ends_with_consonant_y(lower):
        variations.append(lower[:-1] + "ies")  # baby -> babies
    elif lower.endswith(SIBILANT_ENDINGS):
        variations.append(lower + "es")
    elif lower.endswith("f"):
        variations.append(lower[:-1] + "ves")  # leaf -> leaves
    elif lower.endswith("fe"):
        variations.append(lower[:-2] + "ves")  # knife -> knives
    else:
        variations.append(lower + "s")

    # -ing
    if lower.endswith("ie"):
        variations.append(lower[:-2] + "ying")  # die -> dying
    elif lower.endswith("e") and not lower.endswith("ee"):
        variations.append(lower[:-1] + "ing")  # make -> making
    else:
        variations.append(lower + "ing")

    # -ed
    if lower.endswith("e"):
        variations.append(lower + "d")  # bake -> baked
    elif _ends_with_consonant_y(lower):
        variations.append(lower[:-1] + "ied")  # try -> tried
    else:
        variations.append(lower + "ed")

    # Third person singular
    if _ends_with_consonant_y(lower):
        variations.append(lower[:-1] + "ies")
    elif lower.endswith(SIBILANT_ENDINGS + ("o",)):
        variations.append(lower + "es")
    else:
        variations.append(lower + "s")

    # Comparative / agent
    variations.append(lower + "r" if lower.endswith("e") else lower + "er")

    # Superlative
    variations.append(lower + "st" if lower.endswith("e") else lower + "est")

    return list(dict.fromkeys(variations))


def _word_pattern(candidate: str):
    return re.compile(rf"\b{re.escape(candidate)}\b", re.IGNORECASE)


def contains_vocabulary_word(translation: str, word: str, word_family: Sequence[FamilyLike] = ()) -> bool:
    """Есть ли в переводе слово (или его форма, или родственное слово) целиком"""
    candidates = list(generate_word_variations(word))
    for family_word in _family_words(word_family):
        candidates.extend(generate_word_variations(family_word))

    return any(_word_pattern(candidate).search(translation) for candidate in candidates)


def find_vocabulary_word_in_sentence(
    sentence: str,
    word: str,
    word_family: Sequence[FamilyLike] = ()
) -> Optional[VocabularyMatch]:
    """
    Находит слово в предложении с сохранением регистра

    Порядок: само слово -> его формы -> родственные слова -> их формы
    """
    def find_first(candidates: List[str]) -> Optional[VocabularyMatch]:
        for candidate in candidates:
            match = _word_pattern(candidate).search(sentence)
            if match:
                return VocabularyMatch(matched=match.group(0), start=match.start(), end=match.end())
        return None

    family = _family_words(word_family)
    found = find_first([word]) or find_first(generate_word_variations(word)) or find_first(family)
    if found:
        return found

    for family_word in family:
        found = find_first(generate_word_variations(family_word))
        if found:
            return found
    return None


def calculate_translation_similarity(user_text: str, reference_text: str) -> int:
    """
    Покрытие слов эталона (80%) + штраф за разницу длины (20%)

    Returns:
        int: 0-100, 0 если в одном из текстов нет слов
    """
    user_words = split_words(normalize_text(user_text))
    reference_words = split_words(normalize_text(reference_text))
    if not user_words or not reference_words:
        return 0

    reference_set = set(reference_words)
    user_set = set(user_words)
    matches = sum(1 for word in reference_set if word in user_set)

    coverage = matches / len(reference_set)
    length_ratio = min(len(user_words), len(reference_words)) / max(len(user_words), len(reference_words))
    score = round_score(coverage * 80 + length_ratio * 20)
    return min(100, max(0, score))


def classify_translation(
    contains_word: bool,
    similarity: int,
    correct_threshold: int = 70,
    partial_threshold: int = 40
) -> str:
    if contains_word and similarity >= correct_threshold:
        return "correct"
    if contains_word and similarity >= partial_threshold:
        return "partial"
    return "incorrect"


def evaluate_translation(item: VocabularyItem, user_translation: str) -> TranslationEvaluation:
    """
    Локальная оценка перевода третьего примера карточки

    Args:
        item: Слово с примерами
        user_translation: Перевод пользователя на английский

    Returns:
        TranslationEvaluation: Наличие слова, похожесть и классификация
    """
    example = item.examples[2]
    contains_word = contains_vocabulary_word(user_translation, item.word, item.word_family)
    similarity = calculate_translation_similarity(user_translation, example.english)

    return TranslationEvaluation(
        contains_word=contains_word,
        similarity=similarity,
        classification=classify_translation(
            contains_word,
            similarity,
            settings.TRANSLATION_CORRECT_THRESHOLD,
            settings.TRANSLATION_PARTIAL_THRESHOLD,
        ),
        reference=example.english,
        source=example.vietnamese,
    )


def _quoted_terms(text: str) -> List[str]:
    return [term.lower() for term in QUOTED_TERM_RE.findall(text)]


def filter_contradictory_suggestions(user_translation: str, suggestions: List[str]) -> List[str]:
    """Убирает советы использовать то, что пользователь уже написал"""
    normalized_user = normalize_text(user_translation)
    return [
        suggestion for suggestion in suggestions
        if not any(term in normalized_user for term in _quoted_terms(suggestion))
    ]


def filter_contradictory_grammar_errors(user_translation: str, errors: List[GrammarError]) -> List[GrammarError]:
    """Убирает ошибки, чья подсказка уже есть в тексте пользователя"""
    normalized_user = normalize_text(user_translation)
    kept = []
    for error in errors:
        if any(term in normalized_user for term in _quoted_terms(error.suggestion)):
            continue
        clean_suggestion = normalize_text(error.suggestion)
        if len(clean_suggestion) > 3 and clean_suggestion in normalized_user:
            continue
        kept.append(error)
    return kept


def calculate_reference_overlap(user_text: str, reference_text: str) -> int:
    """Доля общих слов (пересечение / объединение), 0-100"""
    user_words = set(split_words(normalize_text(user_text)))
    reference_words = set(split_words(normalize_text(reference_text)))
    union = user_words | reference_words
    if not user_words or not reference_words:
        return 0
    return round_score(len(user_words & reference_words) / len(union) * 100)


def correct_check_result(user_translation: str, result: TranslationCheckResult) -> TranslationCheckResult:
    """
    Исправляет противоречивую оценку внешнего сервиса

    1. Удаляет советы/ошибки про уже написанное, +5 баллов за каждый удаленный
    2. Почти совпадающий с эталоном перевод (>= 90 / >= 80) не штрафуется
    """
    suggestions = filter_contradictory_suggestions(user_translation, result.suggestions)
    errors = filter_contradictory_grammar_errors(user_translation, result.grammar_errors)

    corrected = result.model_copy(update={
        "suggestions": suggestions,
        "grammar_errors": errors,
        "grammar_correct": not errors,
    })

    removed = (len(result.suggestions) - len(suggestions)) + (len(result.grammar_errors) - len(errors))
    if removed > 0:
        logger.debug("Dropped %d contradictory feedback entries", removed)
        corrected = corrected.model_copy(update={
            "score": min(100, corrected.score + removed * 5),
            "feedback": "Good translation!" if not suggestions and not errors else corrected.feedback,
        })

    if not result.reference_translation:
        return corrected

    overlap = calculate_reference_overlap(user_translation, result.reference_translation)

    if overlap >= 90 and corrected.score < 90:
        return corrected.model_copy(update={
            "score": max(corrected.score, 95),
            "is_correct": True,
            "feedback": "Excellent! Your translation matches the reference very closely.",
            "suggestions": [],
            "grammar_errors": [],
            "grammar_correct": True,
        })

    if overlap >= 80 and corrected.score < 80:
        return corrected.model_copy(update={
            "score": max(corrected.score, 85),
            "is_correct": True,
            "feedback": corrected.feedback or "Good translation with minor differences.",
            "suggestions": corrected.suggestions[:1] if len(corrected.suggestions) > 2 else corrected.suggestions,
        })

    return corrected


def unavailable_result(provider: str) -> TranslationCheckResult:
    return TranslationCheckResult(
        grammar_correct=True,
        grammar_errors=[],
        is_correct=True,
        score=-1,
        feedback=f"Translation check unavailable ({provider})",
        suggestions=[],
        reference_translation="",
    )


async def check_translation(
    checker: TranslationChecker,
    source: str,
    translation: str,
    word: str
) -> TranslationCheckResult:
    """
    Проверка перевода внешним сервисом с пост-обработкой

    Никогда не бросает исключение: сбой сервиса дает score=-1, is_correct=True.
    """
    try:
        result = await checker.check(source, translation, word)
    except TranslationCheckerError as e:
        logger.error("Translation check failed (%s): %s", checker.name, e)
        return unavailable_result(checker.name)

    return correct_check_result(translation, result)
