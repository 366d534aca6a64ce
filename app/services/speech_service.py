import asyncio
import logging
import re
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional

from groq import AsyncGroq, GroqError

from app.config import get_settings, Settings
from app.schemas.speech import SpeechResult

logger = logging.getLogger(__name__)

NON_ENGLISH_RE = re.compile(
    "[\u4e00-\u9fff\u3400-\u4dbf\u3040-\u309f\u30a0-\u30ff\uac00-\ud7af"  # CJK, kana, hangul
    "\u0400-\u04ff"  # Cyrillic
    "\u0600-\u06ff"  # Arabic
    "\u0e00-\u0e7f"  # Thai
    "\u0900-\u097f]"  # Devanagari
)
NON_PRINTABLE_ASCII_RE = re.compile(r"[^\x20-\x7E]")
MIN_TRANSCRIPT_LENGTH = 2


class SpeechErrorKind(str, Enum):
    NOT_ALLOWED = "not-allowed"
    NO_SPEECH = "no-speech"
    AUDIO_CAPTURE = "audio-capture"
    NETWORK = "network"
    NOT_SUPPORTED = "not-supported"
    TRANSCRIPTION_FAILED = "transcription-failed"
    NON_ENGLISH_DETECTED = "non-english-detected"
    UNKNOWN = "unknown"


class CaptureState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    TRANSCRIBING = "transcribing"
    RESULT = "result"


# Browser error names (recognition events and getUserMedia exceptions)
CAPTURE_ERRORS = {
    "not-allowed": SpeechErrorKind.NOT_ALLOWED,
    "no-speech": SpeechErrorKind.NO_SPEECH,
    "audio-capture": SpeechErrorKind.AUDIO_CAPTURE,
    "network": SpeechErrorKind.NETWORK,
    "not-supported": SpeechErrorKind.NOT_SUPPORTED,
    "NotAllowedError": SpeechErrorKind.NOT_ALLOWED,
    "NotFoundError": SpeechErrorKind.AUDIO_CAPTURE,
}


class TranscriptionError(Exception):
    """Сбой сервиса распознавания речи"""


def map_capture_error(name: Optional[str]) -> SpeechErrorKind:
    return CAPTURE_ERRORS.get(name or "", SpeechErrorKind.UNKNOWN)


def contains_non_english_characters(text: str) -> bool:
    return bool(NON_ENGLISH_RE.search(text))


def filter_to_english_only(text: str) -> str:
    return " ".join(NON_PRINTABLE_ASCII_RE.sub(" ", text).split())


def normalize_transcript(text: str) -> SpeechResult:
    """
    Приводит текст распознавания к контракту {transcript, error}

    Символы не латинских алфавитов вырезаются; если осталось меньше
    2 символов - no-speech (или non-english-detected).
    """
    text = (text or "").strip()
    had_non_english = contains_non_english_characters(text)
    if had_non_english:
        text = filter_to_english_only(text)

    if len(text) < MIN_TRANSCRIPT_LENGTH:
        kind = SpeechErrorKind.NON_ENGLISH_DETECTED if had_non_english else SpeechErrorKind.NO_SPEECH
        return SpeechResult(transcript="", error=kind.value)
    return SpeechResult(transcript=text, error=None)


def from_recognition_event(transcript: str = "", error_name: Optional[str] = None) -> SpeechResult:
    """Встроенное распознавание браузера -> тот же контракт, что и у Transcriber"""
    if error_name:
        return SpeechResult(transcript="", error=map_capture_error(error_name).value)
    if not transcript or not transcript.strip():
        return SpeechResult(transcript="", error=SpeechErrorKind.NO_SPEECH.value)
    return normalize_transcript(transcript)


class Transcriber(ABC):
    @abstractmethod
    async def transcribe(self, audio: bytes, filename: str = "speech.webm", language: str = "en") -> str:
        """Текст записи; сбой сервиса -> TranscriptionError"""


class GroqTranscriber(Transcriber):
    """Whisper через Groq API"""

    def __init__(self, api_key: str, model: str = "whisper-large-v3", client: Optional[AsyncGroq] = None):
        self.api_key = api_key
        self.model = model
        self._client = client

    @property
    def client(self) -> AsyncGroq:
        if self._client is None:
            if not self.api_key:
                raise TranscriptionError("GROQ_API_KEY is required for transcription")
            self._client = AsyncGroq(api_key=self.api_key)
        return self._client

    async def transcribe(self, audio: bytes, filename: str = "speech.webm", language: str = "en") -> str:
        try:
            transcription = await self.client.audio.transcriptions.create(
                file=(filename, audio),
                model=self.model,
                language=language,
            )
        except GroqError as e:
            raise TranscriptionError(str(e)) from e
        return transcription.text or ""


async def transcribe_audio(transcriber: Transcriber, audio: bytes, filename: str = "speech.webm") -> SpeechResult:
    if not audio:
        return SpeechResult(transcript="", error=SpeechErrorKind.NO_SPEECH.value)
    try:
        text = await transcriber.transcribe(audio, filename=filename, language="en")
    except TranscriptionError as e:
        logger.error("Transcription error: %s", e)
        return SpeechResult(transcript="", error=SpeechErrorKind.TRANSCRIPTION_FAILED.value)
    return normalize_transcript(text)


class SpeechCapture:
    """
    Захват речи: IDLE -> RECORDING -> TRANSCRIBING -> RESULT

    cancel() из любого состояния возвращает в IDLE; результат распознавания,
    пришедший после отмены или нового start(), отбрасывается.
    """

    def __init__(self, transcriber: Transcriber, max_duration: float = 30.0, filename: str = "speech.webm"):
        self.transcriber = transcriber
        self.max_duration = max_duration
        self.filename = filename
        self.state = CaptureState.IDLE
        self.result: Optional[SpeechResult] = None
        self._chunks: List[bytes] = []
        self._generation = 0
        self._auto_stop: Optional[asyncio.TimerHandle] = None
        self._auto_stop_task: Optional[asyncio.Task] = None

    @property
    def is_listening(self) -> bool:
        return self.state == CaptureState.RECORDING

    @property
    def is_processing(self) -> bool:
        return self.state == CaptureState.TRANSCRIBING

    def start(self) -> bool:
        if self.state in (CaptureState.RECORDING, CaptureState.TRANSCRIBING):
            return False

        self._generation += 1
        self._chunks = []
        self.result = None
        self.state = CaptureState.RECORDING
        self._arm_auto_stop()
        return True

    def add_chunk(self, data: bytes):
        if self.state == CaptureState.RECORDING and data:
            self._chunks.append(data)

    async def stop(self) -> Optional[SpeechResult]:
        """
        Останавливает запись и ждет распознавания

        Returns:
            SpeechResult: Результат, или None если захват отменен во время распознавания
        """
        if self.state != CaptureState.RECORDING:
            return self.result

        self._disarm_auto_stop()
        generation = self._generation
        audio = b"".join(self._chunks)
        self._chunks = []
        self.state = CaptureState.TRANSCRIBING

        result = await transcribe_audio(self.transcriber, audio, filename=self.filename)

        if generation != self._generation or self.state != CaptureState.TRANSCRIBING:
            logger.debug("Discarding stale transcription result")
            return None

        self.result = result
        self.state = CaptureState.RESULT
        return result

    def fail(self, error_name: Optional[str]) -> SpeechResult:
        """Ошибка устройства/разрешения: сразу RESULT с ошибкой"""
        self._disarm_auto_stop()
        self._generation += 1
        self._chunks = []
        self.result = SpeechResult(transcript="", error=map_capture_error(error_name).value)
        self.state = CaptureState.RESULT
        return self.result

    def cancel(self):
        self._disarm_auto_stop()
        self._generation += 1
        self._chunks = []
        self.result = None
        self.state = CaptureState.IDLE

    def _arm_auto_stop(self):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        generation = self._generation
        self._auto_stop = loop.call_later(self.max_duration, self._on_max_duration, generation)

    def _on_max_duration(self, generation: int):
        self._auto_stop = None
        if generation == self._generation and self.state == CaptureState.RECORDING:
            logger.info("Max recording duration reached, stopping")
            self._auto_stop_task = asyncio.get_running_loop().create_task(self.stop())

    def _disarm_auto_stop(self):
        if self._auto_stop is not None:
            self._auto_stop.cancel()
            self._auto_stop = None


def build_transcriber(settings: Optional[Settings] = None) -> GroqTranscriber:
    settings = settings or get_settings()
    return GroqTranscriber(settings.GROQ_API_KEY, settings.GROQ_TRANSCRIPTION_MODEL)
