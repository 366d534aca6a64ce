from functools import lru_cache

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import Response

from app.config import get_settings
from app.schemas.speech import RecognitionEvent, SpeechResult, SynthesisRequest
from app.services import speech_service, tts_service
from app.services.speech_service import Transcriber
from app.services.tts_service import SpeechSynthesizer, SpeechSynthesisError

router = APIRouter(prefix="/api/speech", tags=["speech"])
settings = get_settings()


@lru_cache()
def get_transcriber() -> Transcriber:
    return speech_service.build_transcriber(settings)


@lru_cache()
def get_synthesizer() -> SpeechSynthesizer:
    return tts_service.build_synthesizer(settings)


@router.post("/transcribe", response_model=SpeechResult)
async def transcribe(audio: UploadFile = File(...), transcriber: Transcriber = Depends(get_transcriber)):
    """Запись с микрофона -> {transcript, error}"""
    data = await audio.read()
    return await speech_service.transcribe_audio(transcriber, data, filename=audio.filename or "speech.webm")


@router.post("/recognition", response_model=SpeechResult)
async def recognition_event(event: RecognitionEvent):
    """Результат встроенного распознавания браузера в том же формате"""
    return speech_service.from_recognition_event(event.transcript, event.error)


@router.post("/synthesize")
async def synthesize(request: SynthesisRequest, synthesizer: SpeechSynthesizer = Depends(get_synthesizer)):
    if not request.text.strip():
        raise HTTPException(status_code=400, detail="Text is required")
    if not getattr(synthesizer, "is_configured", True):
        raise HTTPException(status_code=503, detail="Speech synthesis is not configured")
    try:
        audio = await synthesizer.synthesize(request.text, accent=request.accent, slow=request.slow)
    except SpeechSynthesisError as e:
        raise HTTPException(status_code=502, detail=f"Speech synthesis failed: {e}")
    return Response(content=audio, media_type="audio/mpeg")
