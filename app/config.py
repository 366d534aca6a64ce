from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # App
    APP_NAME: str = "Bloom English"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./bloom_english.db"

    # Content
    VOCABULARY_DATA_DIR: str = "data/vocabulary"

    # Translation checker: ollama (local) | groq | openai (cloud)
    LLM_PROVIDER: str = "ollama"
    LLM_MAX_ATTEMPTS: int = 3
    LLM_TIMEOUT_SECONDS: float = 60.0

    # Ollama
    OLLAMA_URL: str = "http://localhost:11434"
    OLLAMA_MODEL: str = "qwen2.5:7b"

    # Groq AI
    GROQ_API_KEY: str = ""
    GROQ_MODEL: str = "qwen/qwen3-32b"
    GROQ_TRANSCRIPTION_MODEL: str = "whisper-large-v3"

    # OpenAI
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_TTS_MODEL: str = "tts-1"

    # Scoring thresholds
    PRONUNCIATION_PASSING_THRESHOLD: int = 70  # %
    TRANSLATION_CORRECT_THRESHOLD: int = 70  # %
    TRANSLATION_PARTIAL_THRESHOLD: int = 40  # %

    # Progress sync
    PROGRESS_API_URL: str = "http://localhost:8000"
    PROGRESS_API_TOKEN: str = ""
    PROGRESS_CACHE_PATH: str = "bloom-english-progress.json"
    PROGRESS_SAVE_DEBOUNCE_SECONDS: float = 1.0

    # Speech
    SPEECH_MAX_DURATION_SECONDS: float = 30.0

    # Background workflows
    WORKFLOW_POLL_INTERVAL_SECONDS: float = 3.0
    WORKFLOW_TIMEOUT_SECONDS: float = 600.0  # 10 minutes
    WORKFLOW_MAX_AGE_SECONDS: float = 1800.0  # 30 minutes

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    return Settings()
