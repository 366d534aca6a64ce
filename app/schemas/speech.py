from pydantic import BaseModel
from typing import Optional, Literal

Accent = Literal["BrE", "AmE"]


class SpeechResult(BaseModel):
    transcript: str = ""
    error: Optional[str] = None  # SpeechErrorKind value


class RecognitionEvent(BaseModel):
    """Событие встроенного распознавания браузера"""
    transcript: str = ""
    error: Optional[str] = None


class SynthesisRequest(BaseModel):
    text: str
    accent: Accent = "AmE"
    slow: bool = False
