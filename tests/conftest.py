import asyncio
import os
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = ROOT / "data" / "vocabulary"

# Settings are read once at import time
os.environ.setdefault("VOCABULARY_DATA_DIR", str(DATA_DIR))
os.environ.setdefault("LLM_PROVIDER", "ollama")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from app.schemas.vocabulary import VocabularyItem  # noqa: E402


def make_item(item_id="item-1", word="portion", examples=None, word_family=None, **fields):
    examples = examples or [
        {"english": f"The {word} was small.", "vietnamese": "Phần ăn nhỏ."},
        {"english": f"I ate one {word}.", "vietnamese": "Tôi đã ăn một phần."},
        {"english": f"Every {word} is different.", "vietnamese": "Mỗi phần đều khác nhau."},
    ]
    data = {
        "id": item_id,
        "word": word,
        "phonetic": "",
        "part_of_speech": "noun",
        "definition_english": f"definition of {word}",
        "definition_vietnamese": "định nghĩa",
        "examples": examples,
        "word_family": word_family or [],
    }
    data.update(fields)
    return VocabularyItem.model_validate(data)


@pytest.fixture
def item_factory():
    return make_item


@pytest.fixture
def items():
    return [make_item(item_id=f"item-{i}", word=f"word{i}") for i in range(1, 6)]


@pytest.fixture
def data_dir():
    return str(DATA_DIR)


@pytest.fixture
def client(tmp_path):
    from fastapi.testclient import TestClient
    from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine, AsyncSession
    from sqlalchemy.pool import NullPool

    from app.database import Base, get_db
    from app.main import app
    from app import models  # noqa: F401

    # NullPool: every request runs on its own event loop
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)

    async def create_tables():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(create_tables())
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
