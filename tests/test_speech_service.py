import asyncio
from types import SimpleNamespace

import pytest

from app.config import Settings
from app.services.speech_service import (
    CaptureState,
    GroqTranscriber,
    SpeechCapture,
    SpeechErrorKind,
    Transcriber,
    TranscriptionError,
    build_transcriber,
    contains_non_english_characters,
    filter_to_english_only,
    from_recognition_event,
    map_capture_error,
    normalize_transcript,
    transcribe_audio,
)
from app.services.tts_service import (
    OpenAISpeechSynthesizer,
    SpeechSynthesisError,
    build_synthesizer,
    voice_for_accent,
)


class FakeTranscriber(Transcriber):
    def __init__(self, text="hello world", error=None):
        self.text = text
        self.error = error
        self.calls = []
        self.gate = None

    async def transcribe(self, audio, filename="speech.webm", language="en"):
        self.calls.append((audio, filename, language))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.text


@pytest.mark.parametrize("name,kind", [
    ("not-allowed", SpeechErrorKind.NOT_ALLOWED),
    ("NotAllowedError", SpeechErrorKind.NOT_ALLOWED),
    ("NotFoundError", SpeechErrorKind.AUDIO_CAPTURE),
    ("network", SpeechErrorKind.NETWORK),
    ("aborted", SpeechErrorKind.UNKNOWN),
    (None, SpeechErrorKind.UNKNOWN),
])
def test_map_capture_error(name, kind):
    assert map_capture_error(name) is kind


def test_non_english_detection():
    assert contains_non_english_characters("hello 你好") is True
    assert contains_non_english_characters("привет") is True
    assert contains_non_english_characters("café au lait") is False
    assert filter_to_english_only("hello  你好 world") == "hello world"


@pytest.mark.parametrize("text,transcript,error", [
    ("  Hello world ", "Hello world", None),
    ("Hello 你好", "Hello", None),
    ("你好", "", "non-english-detected"),
    ("a", "", "no-speech"),
    ("", "", "no-speech"),
])
def test_normalize_transcript(text, transcript, error):
    result = normalize_transcript(text)
    assert result.transcript == transcript
    assert result.error == error


def test_recognition_event():
    assert from_recognition_event("habitat").transcript == "habitat"
    assert from_recognition_event("   ").error == "no-speech"
    result = from_recognition_event("habitat", "not-allowed")
    assert result.transcript == ""
    assert result.error == "not-allowed"


def test_transcribe_audio():
    transcriber = FakeTranscriber("  scrumptious ")
    result = asyncio.run(transcribe_audio(transcriber, b"audio", "clip.webm"))
    assert result.transcript == "scrumptious"
    assert transcriber.calls == [(b"audio", "clip.webm", "en")]


def test_transcribe_empty_audio_skips_service():
    transcriber = FakeTranscriber()
    result = asyncio.run(transcribe_audio(transcriber, b""))
    assert result.error == "no-speech"
    assert transcriber.calls == []


def test_transcribe_failure():
    transcriber = FakeTranscriber(error=TranscriptionError("503"))
    result = asyncio.run(transcribe_audio(transcriber, b"audio"))
    assert result.transcript == ""
    assert result.error == "transcription-failed"


def test_groq_transcriber_sends_file_tuple():
    calls = []

    async def create(**kwargs):
        calls.append(kwargs)
        return SimpleNamespace(text="bake")

    client = SimpleNamespace(audio=SimpleNamespace(transcriptions=SimpleNamespace(create=create)))
    transcriber = GroqTranscriber("", "whisper-large-v3", client=client)
    assert asyncio.run(transcriber.transcribe(b"audio", "speech.webm")) == "bake"
    assert calls[0]["file"] == ("speech.webm", b"audio")
    assert calls[0]["language"] == "en"


def test_groq_transcriber_without_key():
    with pytest.raises(TranscriptionError):
        asyncio.run(GroqTranscriber("").transcribe(b"audio"))


def test_capture_flow():
    transcriber = FakeTranscriber("habitat")

    async def run():
        capture = SpeechCapture(transcriber, max_duration=30)
        assert capture.start() is True
        assert capture.is_listening is True
        assert capture.start() is False
        capture.add_chunk(b"ab")
        capture.add_chunk(b"")
        capture.add_chunk(b"cd")
        result = await capture.stop()
        return capture, result

    capture, result = asyncio.run(run())
    assert result.transcript == "habitat"
    assert capture.state == CaptureState.RESULT
    assert transcriber.calls[0][0] == b"abcd"


def test_capture_cancel_discards_late_result():
    transcriber = FakeTranscriber("habitat")

    async def run():
        transcriber.gate = asyncio.Event()
        capture = SpeechCapture(transcriber)
        capture.start()
        capture.add_chunk(b"audio")
        stopping = asyncio.create_task(capture.stop())
        await asyncio.sleep(0)
        assert capture.is_processing is True
        capture.cancel()
        transcriber.gate.set()
        return capture, await stopping

    capture, result = asyncio.run(run())
    assert result is None
    assert capture.state == CaptureState.IDLE
    assert capture.result is None


def test_capture_auto_stops_at_max_duration():
    transcriber = FakeTranscriber("migrate")

    async def run():
        capture = SpeechCapture(transcriber, max_duration=0.01)
        capture.start()
        capture.add_chunk(b"audio")
        await asyncio.sleep(0.1)
        return capture

    capture = asyncio.run(run())
    assert capture.state == CaptureState.RESULT
    assert capture.result.transcript == "migrate"


def test_capture_fail_reports_error():
    capture = SpeechCapture(FakeTranscriber())
    capture.start()
    result = capture.fail("NotAllowedError")
    assert result.error == "not-allowed"
    assert capture.state == CaptureState.RESULT
    assert capture.start() is True


def test_build_transcriber():
    transcriber = build_transcriber(Settings(GROQ_API_KEY="key", GROQ_TRANSCRIPTION_MODEL="whisper-x"))
    assert transcriber.model == "whisper-x"


def test_voice_for_accent():
    assert voice_for_accent("BrE") == "fable"
    assert voice_for_accent("AmE") == "alloy"
    assert voice_for_accent("AuE") == "alloy"


def test_synthesize_uses_accent_voice_and_rate():
    calls = []

    async def create(**kwargs):
        calls.append(kwargs)
        return SimpleNamespace(content=b"mp3")

    client = SimpleNamespace(audio=SimpleNamespace(speech=SimpleNamespace(create=create)))
    synthesizer = OpenAISpeechSynthesizer("", client=client)

    assert asyncio.run(synthesizer.synthesize("eagle", accent="BrE", slow=True)) == b"mp3"
    assert calls[0]["voice"] == "fable"
    assert calls[0]["speed"] == 0.7
    assert calls[0]["input"] == "eagle"


def test_synthesize_rejects_empty_text():
    synthesizer = OpenAISpeechSynthesizer("key")
    with pytest.raises(ValueError):
        asyncio.run(synthesizer.synthesize("  "))


def test_synthesizer_without_key():
    synthesizer = build_synthesizer(Settings(OPENAI_API_KEY=""))
    assert synthesizer.is_configured is False
    with pytest.raises(SpeechSynthesisError):
        asyncio.run(synthesizer.synthesize("eagle"))
