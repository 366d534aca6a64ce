import contextlib
import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Optional

import httpx
from groq import AsyncGroq, GroqError
from openai import AsyncOpenAI, OpenAIError

from app.config import get_settings, Settings
from app.schemas.translation import TranslationCheckResult, GrammarError
from app.services.text_similarity import round_score

logger = logging.getLogger(__name__)

JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")

# Letters that only occur in Vietnamese text (not in English loanwords like "café")
VIETNAMESE_LETTERS_RE = re.compile(
    "[ăâđêôơưạảấầẩẫậắằẳẵặẹẻẽếềểễệỉịĩọỏốồổỗộớờởỡợụủũứừửữựỳỵỷỹĂÂĐÊÔƠƯ]"
)

MAX_GRAMMAR_ERRORS = 5
MAX_SUGGESTIONS = 3

SYSTEM_PROMPT = """You are an expert Vietnamese-English translation evaluator for a vocabulary learning app.

=== ABSOLUTE REQUIREMENT ===
Your "referenceTranslation" MUST contain the EXACT vocabulary word specified. This is NON-NEGOTIABLE.

WRONG (never do this):
- vocabularyWord: "portion" -> "Controlling the amount of food..."
- vocabularyWord: "scrumptious" -> "The food was delicious..."

CORRECT:
- vocabularyWord: "portion" -> "Controlling food portions..."
- vocabularyWord: "scrumptious" -> "The food was scrumptious..."

Other rules:
- Be precise with Vietnamese terms (e.g., "Cá voi lưng gù" = "Humpback whale")
- Check for spelling errors and mark grammarCorrect: false if found
- Always provide a non-empty referenceTranslation with the required vocabulary word"""


class TranslationCheckerError(Exception):
    """Сбой внешнего сервиса проверки перевода (сеть, API, ключ)"""


def build_evaluation_prompt(source: str, translation: str, word: str) -> str:
    return f"""You are evaluating an English translation of a Vietnamese sentence for a vocabulary learning app.

Vietnamese sentence: "{source}"
User's translation: "{translation}"
REQUIRED vocabulary word: "{word}"

=== ABSOLUTE REQUIREMENT ===
Your "referenceTranslation" field MUST contain the EXACT word "{word}" (not a synonym!).

=== YOUR TASK ===
1. Write a referenceTranslation that accurately translates the Vietnamese sentence and contains "{word}"
2. Evaluate the user's translation against your reference

Output ONLY valid JSON:
{{"referenceTranslation": "...", "grammarCorrect": true, "grammarErrors": [{{"message": "...", "context": "...", "suggestion": "..."}}], "isCorrect": true, "score": 0, "feedback": "Brief feedback", "suggestions": []}}

Scoring:
- 85-100: Correct meaning AND uses "{word}"
- 70-84: Correct meaning but awkward phrasing
- 50-69: Partial meaning or missing "{word}"
- Below 50: Wrong meaning or major errors

FINAL CHECK: does your referenceTranslation contain "{word}"? If NO, rewrite it!"""


def _pick(parsed: dict, camel: str, snake: str):
    return parsed.get(camel, parsed.get(snake))


def parse_check_response(response_text: str) -> TranslationCheckResult:
    """
    Разбирает JSON-ответ модели в TranslationCheckResult

    Нечитаемый ответ не бросает исключение, а дает score=-1.

    Args:
        response_text: Сырой текст ответа LLM

    Returns:
        TranslationCheckResult: Нормализованный результат
    """
    result_text = (response_text or "").strip()

    # Clean JSON response
    if result_text.startswith("```json"):
        result_text = result_text[7:]
    if result_text.startswith("```"):
        result_text = result_text[3:]
    if result_text.endswith("```"):
        result_text = result_text[:-3]

    try:
        match = JSON_OBJECT_RE.search(result_text)
        if not match:
            raise ValueError("No JSON found in response")
        parsed = json.loads(match.group(0))
        if not isinstance(parsed, dict):
            raise ValueError("JSON response is not an object")
    except ValueError:
        logger.warning("Failed to parse LLM response: %r", response_text[:200] if response_text else response_text)
        return TranslationCheckResult(
            grammar_correct=True,
            grammar_errors=[],
            is_correct=True,
            score=-1,
            feedback="Could not parse evaluation result",
            suggestions=[],
            reference_translation="",
        )

    grammar_errors = []
    raw_errors = _pick(parsed, "grammarErrors", "grammar_errors")
    if isinstance(raw_errors, list):
        for error in raw_errors:
            if not isinstance(error, dict):
                continue
            grammar_errors.append(GrammarError(
                message=error["message"] if isinstance(error.get("message"), str) else "Grammar issue",
                context=error["context"] if isinstance(error.get("context"), str) else "",
                suggestion=error["suggestion"] if isinstance(error.get("suggestion"), str) else "",
            ))
        grammar_errors = grammar_errors[:MAX_GRAMMAR_ERRORS]

    score = parsed.get("score")
    if isinstance(score, (int, float)) and not isinstance(score, bool):
        score = round_score(min(100, max(0, score)))
    else:
        score = 50

    grammar_correct = _pick(parsed, "grammarCorrect", "grammar_correct")
    is_correct = _pick(parsed, "isCorrect", "is_correct")
    feedback = parsed.get("feedback")
    suggestions = parsed.get("suggestions")
    reference = _pick(parsed, "referenceTranslation", "reference_translation")

    return TranslationCheckResult(
        grammar_correct=grammar_correct if isinstance(grammar_correct, bool) else True,
        grammar_errors=grammar_errors,
        is_correct=is_correct if isinstance(is_correct, bool) else True,
        score=score,
        feedback=feedback if isinstance(feedback, str) else "Translation evaluated.",
        suggestions=[s for s in suggestions if isinstance(s, str)][:MAX_SUGGESTIONS] if isinstance(suggestions, list) else [],
        reference_translation=reference.strip() if isinstance(reference, str) else "",
    )


def reference_problem(reference: str, source: str, word: str) -> Optional[str]:
    """Причина, по которой эталонный перевод непригоден, или None"""
    if not reference or not reference.strip():
        return "empty reference"
    if source and source in reference:
        return "contains Vietnamese"
    if VIETNAMESE_LETTERS_RE.search(reference):
        return "contains Vietnamese"
    if word.lower() not in reference.lower():
        return f'missing vocabulary word "{word}"'
    return None


class TranslationChecker(ABC):
    """
    Внешний оценщик перевода: check() и is_available()

    Реализация на каждый бэкенд переопределяет только _complete() и is_available();
    повтор при негодном эталонном переводе общий для всех.
    """

    name = "llm"

    def __init__(self, max_attempts: int = 3):
        self.max_attempts = max(1, max_attempts)

    @abstractmethod
    async def _complete(self, prompt: str) -> str:
        """Один запрос к модели; сетевые сбои -> TranslationCheckerError"""

    @abstractmethod
    async def is_available(self) -> bool:
        ...

    async def check(self, source: str, translation: str, word: str) -> TranslationCheckResult:
        """
        Оценивает перевод, повторяя запрос, пока эталонный перевод негоден

        После исчерпания попыток возвращается последний ответ без эталона.

        Raises:
            TranslationCheckerError: Сбой сети/API
        """
        prompt = build_evaluation_prompt(source, translation, word)
        result = None

        for attempt in range(1, self.max_attempts + 1):
            result = parse_check_response(await self._complete(prompt))
            problem = reference_problem(result.reference_translation, source, word)
            if problem is None:
                return result
            if attempt < self.max_attempts:
                logger.info("%s retry %d/%d: %s, retrying...", self.name, attempt, self.max_attempts, problem)

        logger.warning("%s gave no valid reference after %d attempts", self.name, self.max_attempts)
        return result.model_copy(update={"reference_translation": ""})


class OllamaTranslationChecker(TranslationChecker):
    """Локальная модель через Ollama HTTP API"""

    name = "ollama"

    def __init__(
        self,
        base_url: str,
        model: str,
        max_attempts: int = 3,
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        super().__init__(max_attempts)
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self._client = client

    def _open_client(self, timeout: Optional[float] = None):
        if self._client is not None:
            return contextlib.nullcontext(self._client)
        return httpx.AsyncClient(timeout=timeout or self.timeout)

    async def _complete(self, prompt: str) -> str:
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": 0.3},
        }
        try:
            async with self._open_client() as client:
                response = await client.post(f"{self.base_url}/api/generate", json=payload)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise TranslationCheckerError(f"Ollama API error: {e}") from e
        return data.get("response", "") if isinstance(data, dict) else ""

    async def is_available(self) -> bool:
        try:
            async with self._open_client(timeout=2.0) as client:
                response = await client.get(f"{self.base_url}/api/tags", timeout=2.0)
                return response.is_success
        except httpx.HTTPError as e:
            logger.info("Ollama not reachable at %s: %s", self.base_url, e)
            return False


class GroqTranslationChecker(TranslationChecker):
    """Облачная модель через Groq (chat completions, JSON mode)"""

    name = "groq"

    def __init__(self, api_key: str, model: str, max_attempts: int = 3, client: Optional[AsyncGroq] = None):
        super().__init__(max_attempts)
        self.api_key = api_key
        self.model = model
        self._client = client

    @property
    def client(self) -> AsyncGroq:
        if self._client is None:
            if not self.api_key:
                raise TranslationCheckerError("GROQ_API_KEY is required when using the groq provider")
            self._client = AsyncGroq(api_key=self.api_key)
        return self._client

    async def _complete(self, prompt: str) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.3,
                response_format={"type": "json_object"},
            )
        except GroqError as e:
            raise TranslationCheckerError(f"Groq API error: {e}") from e
        return response.choices[0].message.content or ""

    async def is_available(self) -> bool:
        return bool(self.api_key or self._client)


class OpenAITranslationChecker(TranslationChecker):
    """Облачная модель через OpenAI (chat completions, JSON mode)"""

    name = "openai"

    def __init__(self, api_key: str, model: str, max_attempts: int = 3, client: Optional[AsyncOpenAI] = None):
        super().__init__(max_attempts)
        self.api_key = api_key
        self.model = model
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.api_key:
                raise TranslationCheckerError("OPENAI_API_KEY is required when using the openai provider")
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def _complete(self, prompt: str) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.3,
                response_format={"type": "json_object"},
            )
        except OpenAIError as e:
            raise TranslationCheckerError(f"OpenAI API error: {e}") from e
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def is_available(self) -> bool:
        return bool(self.api_key or self._client)


def build_translation_checker(settings: Optional[Settings] = None) -> TranslationChecker:
    """
    Создает проверяющего по LLM_PROVIDER (ollama | groq | openai)

    Raises:
        ValueError: Неизвестный провайдер
    """
    settings = settings or get_settings()
    provider = settings.LLM_PROVIDER.lower()

    if provider == "ollama":
        return OllamaTranslationChecker(
            settings.OLLAMA_URL,
            settings.OLLAMA_MODEL,
            max_attempts=settings.LLM_MAX_ATTEMPTS,
            timeout=settings.LLM_TIMEOUT_SECONDS,
        )
    if provider == "groq":
        return GroqTranslationChecker(settings.GROQ_API_KEY, settings.GROQ_MODEL, max_attempts=settings.LLM_MAX_ATTEMPTS)
    if provider == "openai":
        return OpenAITranslationChecker(settings.OPENAI_API_KEY, settings.OPENAI_MODEL, max_attempts=settings.LLM_MAX_ATTEMPTS)

    raise ValueError(f"Unknown LLM_PROVIDER: {settings.LLM_PROVIDER}")
