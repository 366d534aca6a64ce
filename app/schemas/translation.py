from pydantic import BaseModel
from typing import List, Literal

TranslationClassification = Literal["correct", "partial", "incorrect"]


class GrammarError(BaseModel):
    message: str
    context: str = ""
    suggestion: str = ""


class TranslationCheckResult(BaseModel):
    grammar_correct: bool = True
    grammar_errors: List[GrammarError] = []
    is_correct: bool = True
    score: int = -1  # 0-100, -1 = checker unavailable
    feedback: str = ""
    suggestions: List[str] = []
    reference_translation: str = ""


class TranslationEvaluation(BaseModel):
    contains_word: bool
    similarity: int
    classification: TranslationClassification
    reference: str
    source: str


class TranslationRequest(BaseModel):
    topic_id: str
    item_id: str
    user_translation: str
    use_checker: bool = True


class TranslationResponse(BaseModel):
    evaluation: TranslationEvaluation
    check: TranslationCheckResult
    is_correct: bool


class ProviderStatus(BaseModel):
    provider: str
    available: bool
