import pytest

from app.main import app
from app.routes.quiz import get_translation_checker
from app.routes.speech import get_synthesizer, get_transcriber
from app.services.llm_service import TranslationChecker, TranslationCheckerError
from app.services.speech_service import Transcriber
from app.services.tts_service import SpeechSynthesizer, SpeechSynthesisError


class FakeChecker(TranslationChecker):
    name = "fake"

    def __init__(self, response=None):
        super().__init__(max_attempts=1)
        self.response = response

    async def _complete(self, prompt):
        if self.response is None:
            raise TranslationCheckerError("offline")
        return self.response

    async def is_available(self):
        return self.response is not None


class FakeTranscriber(Transcriber):
    async def transcribe(self, audio, filename="speech.webm", language="en"):
        return "habitat"


class FakeSynthesizer(SpeechSynthesizer):
    is_configured = True

    def __init__(self, error=False):
        self.error = error

    async def synthesize(self, text, accent="AmE", slow=False):
        if self.error:
            raise SpeechSynthesisError("quota")
        return b"ID3-" + accent.encode()


@pytest.fixture
def use_checker():
    def install(checker):
        app.dependency_overrides[get_translation_checker] = lambda: checker
    return install


def test_health(client):
    assert client.get("/api/health").json() == {"status": "healthy"}


# Vocabulary

def test_list_topics(client):
    topics = client.get("/api/vocabulary/topics").json()
    assert [(t["id"], t["word_count"]) for t in topics] == [("food-and-drink", 4), ("animals", 3)]


def test_topic_items(client):
    data = client.get("/api/vocabulary/topics/animals").json()
    assert [item["word"] for item in data["items"]] == ["migrate", "habitat", "eagle"]
    assert client.get("/api/vocabulary/topics/space").status_code == 404


def test_item_detail(client):
    data = client.get("/api/vocabulary/topics/food-and-drink/items/food-001").json()
    assert data["phonetic_bre"] == "/ˈpɔː.ʃən/"
    assert data["phonetic_ame"] == "/ˈpɔːr.ʃən/"
    assert [d["definition"] for d in data["vietnamese_definitions"]] == ["khẩu phần", "phần ăn"]
    assert client.get("/api/vocabulary/topics/food-and-drink/items/nope").status_code == 404


def test_cloze_items(client):
    cloze = client.get("/api/vocabulary/topics/animals/cloze").json()
    assert sorted(c["item_id"] for c in cloze) == ["animals-001", "animals-002", "animals-003"]
    for entry in cloze:
        assert entry["before"] + entry["answer"] + entry["after"] == entry["sentence"]


# Quiz answers

def test_spelling(client):
    form = {"topic_id": "animals", "item_id": "animals-003", "user_answer": " Eagle "}
    assert client.post("/api/quiz/spelling", data=form).json()["is_correct"] is True

    form["user_answer"] = "egle"
    data = client.post("/api/quiz/spelling", data=form).json()
    assert data == {"is_correct": False, "user_answer": "egle", "correct_answer": "eagle"}


def test_spelling_unknown_item(client):
    form = {"topic_id": "animals", "item_id": "nope", "user_answer": "x"}
    assert client.post("/api/quiz/spelling", data=form).status_code == 404


def test_cloze_answer(client):
    form = {
        "topic_id": "food-and-drink",
        "item_id": "food-004",
        "sentence": "We baked cookies for the party.",
        "user_answer": "Baked",
    }
    data = client.post("/api/quiz/cloze", data=form).json()
    assert data["is_correct"] is True
    assert data["correct_answer"] == "baked"

    form["sentence"] = "Something else entirely."
    assert client.post("/api/quiz/cloze", data=form).status_code == 400


def test_pronunciation(client):
    data = client.post("/api/quiz/pronunciation", json={"expected": "habitat", "transcript": "Habitat"}).json()
    assert data["result"]["overall_score"] == 100
    assert data["feedback"] == "Perfect pronunciation!"


def test_pronunciation_zero_threshold_is_respected(client):
    body = {"expected": "eagle", "transcript": "turtle", "passing_threshold": 0}
    data = client.post("/api/quiz/pronunciation", json=body).json()
    assert data["result"]["overall_score"] < 70
    assert data["result"]["is_passing"] is True

    body.pop("passing_threshold")
    assert client.post("/api/quiz/pronunciation", json=body).json()["result"]["is_passing"] is False


def test_pronunciation_picks_best_alternative(client):
    body = {"expected": "eagle", "alternatives": ["legal", "eagle", "evil"]}
    data = client.post("/api/quiz/pronunciation", json=body).json()
    assert data["transcript"] == "eagle"
    assert data["result"]["is_passing"] is True


def test_pronunciation_capture_error(client):
    body = {"expected": "eagle", "transcript": "eagle", "error": "no-speech"}
    data = client.post("/api/quiz/pronunciation", json=body).json()
    assert data["transcript"] == ""
    assert data["result"]["is_passing"] is False
    assert data["feedback"].startswith("No speech detected")


def test_pronunciation_phase(client):
    body = {
        "topic_id": "animals",
        "item_id": "animals-003",
        "word_transcript": "eagle",
        "sentence_transcript": "an eagle flew over the mountains",
    }
    data = client.post("/api/quiz/pronunciation/phase", json=body).json()
    assert data["sentence_text"] == "An eagle flew over the mountains."
    assert data["word"]["is_exact_match"] is True
    assert data["is_passing"] is True

    body["sentence_transcript"] = ""
    assert client.post("/api/quiz/pronunciation/phase", json=body).json()["is_passing"] is False


def test_translation_with_checker(client, use_checker):
    use_checker(FakeChecker(
        '{"referenceTranslation": "The forest is a habitat for many rare birds.", "score": 92,'
        ' "isCorrect": true, "feedback": "Great", "suggestions": []}'
    ))
    body = {
        "topic_id": "animals",
        "item_id": "animals-002",
        "user_translation": "The forest is a habitat for many rare birds",
    }
    data = client.post("/api/quiz/translation", json=body).json()
    assert data["is_correct"] is True
    assert data["evaluation"]["classification"] == "correct"
    assert data["evaluation"]["source"] == "Khu rừng là môi trường sống của nhiều loài chim quý hiếm."
    assert data["check"]["score"] == 92


def test_translation_checker_unavailable(client, use_checker):
    use_checker(FakeChecker(None))
    body = {"topic_id": "animals", "item_id": "animals-002", "user_translation": "The forest has birds"}
    data = client.post("/api/quiz/translation", json=body).json()
    assert data["is_correct"] is False
    assert data["evaluation"]["contains_word"] is False
    assert data["check"]["score"] == -1
    assert data["check"]["feedback"] == "Translation check unavailable (fake)"


def test_translation_without_checker(client, use_checker):
    checker = FakeChecker('{"score": 10}')
    use_checker(checker)
    body = {
        "topic_id": "animals",
        "item_id": "animals-002",
        "user_translation": "The forest is a habitat for many rare birds",
        "use_checker": False,
    }
    data = client.post("/api/quiz/translation", json=body).json()
    assert data["is_correct"] is True
    assert data["check"]["score"] == -1


def test_translation_provider(client, use_checker):
    use_checker(FakeChecker('{"score": 10}'))
    assert client.get("/api/quiz/translation/provider").json() == {"provider": "fake", "available": True}


# Speech

def test_transcribe_upload(client):
    app.dependency_overrides[get_transcriber] = FakeTranscriber
    files = {"audio": ("speech.webm", b"fake-audio", "audio/webm")}
    data = client.post("/api/speech/transcribe", files=files).json()
    assert data == {"transcript": "habitat", "error": None}


def test_transcribe_empty_upload(client):
    app.dependency_overrides[get_transcriber] = FakeTranscriber
    files = {"audio": ("speech.webm", b"", "audio/webm")}
    assert client.post("/api/speech/transcribe", files=files).json()["error"] == "no-speech"


def test_recognition_event(client):
    data = client.post("/api/speech/recognition", json={"error": "not-allowed"}).json()
    assert data == {"transcript": "", "error": "not-allowed"}


def test_synthesize(client):
    app.dependency_overrides[get_synthesizer] = FakeSynthesizer
    response = client.post("/api/speech/synthesize", json={"text": "eagle", "accent": "BrE"})
    assert response.status_code == 200
    assert response.headers["content-type"] == "audio/mpeg"
    assert response.content == b"ID3-BrE"

    assert client.post("/api/speech/synthesize", json={"text": "  "}).status_code == 400
    assert client.post("/api/speech/synthesize", json={"text": "eagle", "accent": "AuE"}).status_code == 422


def test_synthesize_failure(client):
    app.dependency_overrides[get_synthesizer] = lambda: FakeSynthesizer(error=True)
    assert client.post("/api/speech/synthesize", json={"text": "eagle"}).status_code == 502


# Workflows

def test_workflow_lifecycle(client):
    created = client.post("/api/workflows", json={"id": "wf-route", "type": "topic", "label": "Space"}).json()
    assert created["status"] == "pending"

    status = client.get("/api/workflow-status", params={"id": "wf-route"}).json()
    assert status["label"] == "Space"

    resolved = client.post("/api/workflows/wf-route/resolve", json={"status": "failed", "message": "quota"}).json()
    assert resolved["status"] == "failed"
    assert resolved["message"] == "quota"
    assert "wf-route" in [r["id"] for r in client.get("/api/workflows").json()]


def test_workflow_unknown(client):
    assert client.get("/api/workflow-status", params={"id": "missing"}).status_code == 404
    assert client.post("/api/workflows/missing/resolve", json={"status": "completed"}).status_code == 404
