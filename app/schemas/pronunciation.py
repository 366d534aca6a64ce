from pydantic import BaseModel
from typing import Optional, List


class PronunciationResult(BaseModel):
    is_exact_match: bool
    word_match_score: int
    phonetic_score: int
    edit_distance_score: int
    overall_score: int
    is_passing: bool
    recognized_words: List[str]
    expected_words: List[str]
    matched_words: int


class BestAlternative(BaseModel):
    best_match: str
    score: int


class PronunciationRequest(BaseModel):
    expected: str
    transcript: str = ""
    alternatives: List[str] = []
    error: Optional[str] = None  # SpeechErrorKind from the capture layer
    passing_threshold: Optional[int] = None
    case_sensitive: bool = False


class PronunciationResponse(BaseModel):
    result: PronunciationResult
    transcript: str
    feedback: str


class PhaseRequest(BaseModel):
    topic_id: str
    item_id: str
    word_transcript: str = ""
    sentence_transcript: str = ""


class PronunciationPhaseResponse(BaseModel):
    word: PronunciationResult
    sentence: PronunciationResult
    sentence_text: str
    is_passing: bool
