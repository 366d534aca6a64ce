import logging
from abc import ABC, abstractmethod
from typing import Optional

from openai import AsyncOpenAI, OpenAIError

from app.config import get_settings, Settings

logger = logging.getLogger(__name__)

# OpenAI voices closest to each accent
ACCENT_VOICES = {
    "BrE": "fable",
    "AmE": "alloy",
}
SLOW_RATE = 0.7
NORMAL_RATE = 1.0


class SpeechSynthesisError(Exception):
    """Сбой сервиса синтеза речи"""


def voice_for_accent(accent: str) -> str:
    return ACCENT_VOICES.get(accent, ACCENT_VOICES["AmE"])


class SpeechSynthesizer(ABC):
    @abstractmethod
    async def synthesize(self, text: str, accent: str = "AmE", slow: bool = False) -> bytes:
        """MP3 с озвучкой текста"""


class OpenAISpeechSynthesizer(SpeechSynthesizer):
    def __init__(self, api_key: str, model: str = "tts-1", client: Optional[AsyncOpenAI] = None):
        self.api_key = api_key
        self.model = model
        self._client = client

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key or self._client)

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.api_key:
                raise SpeechSynthesisError("OPENAI_API_KEY is required for speech synthesis")
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def synthesize(self, text: str, accent: str = "AmE", slow: bool = False) -> bytes:
        """
        Озвучивает слово или предложение

        Args:
            text: Текст на английском
            accent: BrE или AmE
            slow: Замедленное произношение (0.7)

        Returns:
            bytes: Аудио в формате mp3
        """
        if not text.strip():
            raise ValueError("text must not be empty")
        try:
            response = await self.client.audio.speech.create(
                model=self.model,
                voice=voice_for_accent(accent),
                input=text,
                speed=SLOW_RATE if slow else NORMAL_RATE,
                response_format="mp3",
            )
        except OpenAIError as e:
            logger.error("Speech synthesis failed: %s", e)
            raise SpeechSynthesisError(str(e)) from e
        return response.content


def build_synthesizer(settings: Optional[Settings] = None) -> OpenAISpeechSynthesizer:
    settings = settings or get_settings()
    return OpenAISpeechSynthesizer(settings.OPENAI_API_KEY, settings.OPENAI_TTS_MODEL)
