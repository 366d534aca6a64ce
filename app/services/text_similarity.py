import math
import re
from typing import List

PUNCTUATION_RE = re.compile(r"[.,!?;:'\"()-]")
WHITESPACE_RE = re.compile(r"\s+")
NON_LETTER_RE = re.compile(r"[^A-Z]")

# Soundex coding table
SOUNDEX_CODES = {
    "B": "1", "F": "1", "P": "1", "V": "1",
    "C": "2", "G": "2", "J": "2", "K": "2", "Q": "2", "S": "2", "X": "2", "Z": "2",
    "D": "3", "T": "3",
    "L": "4",
    "M": "5", "N": "5",
    "R": "6",
}


def round_score(value: float) -> int:
    """Округление .5 вверх (round() в Python банковское)"""
    return int(math.floor(value + 0.5))


def normalize_text(text: str) -> str:
    """
    Нормализует текст для сравнения: нижний регистр, без пунктуации,
    одиночные пробелы, без пробелов по краям
    """
    text = PUNCTUATION_RE.sub("", text.lower())
    return WHITESPACE_RE.sub(" ", text).strip()


def strip_punctuation(text: str) -> str:
    """Вариант normalize_text с сохранением регистра"""
    return PUNCTUATION_RE.sub("", text).strip()


def split_words(text: str) -> List[str]:
    return [w for w in text.split(" ") if w] if text else []


def edit_distance(a: str, b: str) -> int:
    """
    Расстояние Левенштейна (вставка, удаление, замена стоят 1)

    Args:
        a: Первая строка
        b: Вторая строка

    Returns:
        int: Минимальное число правок
    """
    matrix = [[0] * (len(b) + 1) for _ in range(len(a) + 1)]
    for i in range(len(a) + 1):
        matrix[i][0] = i
    for j in range(len(b) + 1):
        matrix[0][j] = j

    for i in range(1, len(a) + 1):
        for j in range(1, len(b) + 1):
            cost = 0 if a[i - 1] == b[j - 1] else 1
            matrix[i][j] = min(
                matrix[i - 1][j] + 1,  # deletion
                matrix[i][j - 1] + 1,  # insertion
                matrix[i - 1][j - 1] + cost,  # substitution
            )

    return matrix[len(a)][len(b)]


def edit_distance_score(a: str, b: str) -> float:
    """Похожесть строк 0-100 на основе расстояния Левенштейна"""
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 100.0
    distance = edit_distance(a, b)
    return max(0.0, 100 * (1 - distance / max_len))


def soundex_code(word: str) -> str:
    """
    Soundex: 4-символьный фонетический код слова

    Returns:
        str: Код вида "R163" или "" для пустого/небуквенного ввода
    """
    if not word:
        return ""

    letters = NON_LETTER_RE.sub("", word.upper())
    if not letters:
        return ""

    code = letters[0]
    prev_code = SOUNDEX_CODES.get(letters[0], "")

    for letter in letters[1:]:
        if len(code) >= 4:
            break
        digit = SOUNDEX_CODES.get(letter, "")
        if digit and digit != prev_code:
            code += digit
        # Uncoded letters (vowels, H, W, Y) reset adjacency
        prev_code = digit

    return (code + "000")[:4]


def phonetic_similarity(word1: str, word2: str) -> float:
    """Фонетическая похожесть двух слов 0-100 по совпадающим позициям Soundex"""
    code1 = soundex_code(word1)
    code2 = soundex_code(word2)

    if not code1 or not code2:
        return 0.0
    if code1 == code2:
        return 100.0

    matches = sum(1 for i in range(4) if code1[i] == code2[i])
    return matches / 4 * 100
