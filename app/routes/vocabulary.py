import random
from typing import List

from fastapi import APIRouter, HTTPException

from app.config import get_settings
from app.schemas.vocabulary import ClozeItem, TopicData, VocabularyItemDetail, VocabularyTopic
from app.services import vocabulary_service

router = APIRouter(prefix="/api/vocabulary", tags=["vocabulary"])
settings = get_settings()


def _topic_or_404(topic_id: str) -> TopicData:
    data = vocabulary_service.get_topic_data(settings.VOCABULARY_DATA_DIR, topic_id)
    if data is None:
        raise HTTPException(status_code=404, detail="Topic not found")
    return data


@router.get("/topics", response_model=List[VocabularyTopic])
async def list_topics():
    """Все темы с актуальным числом слов"""
    return vocabulary_service.load_topics(settings.VOCABULARY_DATA_DIR)


@router.get("/topics/{topic_id}", response_model=TopicData)
async def topic_items(topic_id: str):
    return _topic_or_404(topic_id)


@router.get("/topics/{topic_id}/items/{item_id}", response_model=VocabularyItemDetail)
async def item_detail(topic_id: str, item_id: str):
    """Карточка слова с разобранной транскрипцией (BrE/AmE)"""
    item = vocabulary_service.get_item(settings.VOCABULARY_DATA_DIR, topic_id, item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Item not found")

    phonetic = vocabulary_service.parse_phonetic(item.phonetic)
    return VocabularyItemDetail(
        item=item,
        phonetic_bre=phonetic.bre,
        phonetic_ame=phonetic.ame,
        vietnamese_definitions=vocabulary_service.normalize_vietnamese_definitions(item.definition_vietnamese),
    )


@router.get("/topics/{topic_id}/cloze", response_model=List[ClozeItem])
async def cloze_items(topic_id: str):
    """Предложения с пропусками для всех слов темы, в случайном порядке"""
    data = _topic_or_404(topic_id)
    rng = random.Random()
    items = list(data.items)
    rng.shuffle(items)
    return [vocabulary_service.build_cloze_item(item, rng) for item in items]
