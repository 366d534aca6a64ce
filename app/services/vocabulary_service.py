"""
Vocabulary content: topic list, topic items, phonetics and cloze items
"""
import json
import logging
import random
import re
from functools import lru_cache
from pathlib import Path
from typing import List, NamedTuple, Optional, Union

from pydantic import ValidationError

from app.schemas.vocabulary import (
    ClozeItem,
    TopicData,
    VietnameseDefinition,
    VocabularyItem,
    VocabularyTopic,
)
from app.services.translation_service import find_vocabulary_word_in_sentence

logger = logging.getLogger(__name__)

TOPIC_ID_RE = re.compile(r"^[a-z0-9][a-z0-9_-]*$")
PHONETIC_RE = re.compile(r"(.+?)\s*\(BrE\)\s*\|\s*(.+?)\s*\(AmE\)")


class ParsedPhonetic(NamedTuple):
    bre: Optional[str]
    ame: Optional[str]


def parse_phonetic(phonetic: str) -> ParsedPhonetic:
    """'/ˈtʃɒk.lət/ (BrE) | /ˈtʃɑːk.lət/ (AmE)' -> (BrE, AmE)"""
    match = PHONETIC_RE.search(phonetic or "")
    if not match:
        return ParsedPhonetic(None, None)
    return ParsedPhonetic(match.group(1).strip(), match.group(2).strip())


def normalize_vietnamese_definitions(
    definition: Union[str, List[VietnameseDefinition]]
) -> List[VietnameseDefinition]:
    if isinstance(definition, list):
        return definition
    if "|" in definition:
        parts = [part.strip() for part in definition.split("|")]
        return [VietnameseDefinition(type="", definition=part) for part in parts if part]
    return [VietnameseDefinition(type="", definition=definition)]


@lru_cache()
def _read_topic_data(data_dir: str, topic_id: str) -> Optional[TopicData]:
    path = Path(data_dir) / f"{topic_id}.json"
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        return TopicData.model_validate(raw)
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        # ValidationError is a ValueError too
        logger.error("Invalid topic file %s: %s", path, e)
        return None


def get_topic_data(data_dir: str, topic_id: str) -> Optional[TopicData]:
    """
    Карточки темы из {data_dir}/{topic_id}.json (с кэшем)

    Returns:
        TopicData или None, если темы нет или файл некорректен
    """
    if not TOPIC_ID_RE.match(topic_id or ""):
        return None
    return _read_topic_data(str(data_dir), topic_id)


def load_topics(data_dir: str) -> List[VocabularyTopic]:
    """Список тем из topics.json; word_count берется из файла темы"""
    path = Path(data_dir) / "topics.json"
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        logger.warning("No topics.json in %s", data_dir)
        return []

    topics = []
    for entry in raw:
        try:
            topic = VocabularyTopic.model_validate(entry)
        except ValidationError as e:
            logger.error("Skipping invalid topic entry %r: %s", entry.get("id") if isinstance(entry, dict) else entry, e)
            continue
        data = get_topic_data(data_dir, topic.id)
        if data is not None:
            topic = topic.model_copy(update={"word_count": len(data.items)})
        topics.append(topic)
    return topics


def get_topic(data_dir: str, topic_id: str) -> Optional[VocabularyTopic]:
    return next((topic for topic in load_topics(data_dir) if topic.id == topic_id), None)


def get_item(data_dir: str, topic_id: str, item_id: str) -> Optional[VocabularyItem]:
    data = get_topic_data(data_dir, topic_id)
    if data is None:
        return None
    return next((item for item in data.items if item.id == item_id), None)


def build_cloze_item(item: VocabularyItem, rng: Optional[random.Random] = None) -> ClozeItem:
    """
    Предложение с пропущенным словом

    Примеры перебираются в случайном порядке; если слово (или его форма)
    не найдено ни в одном, используется первый пример и базовое слово.
    """
    rng = rng or random.Random()
    indices = list(range(len(item.examples)))
    rng.shuffle(indices)

    for index in indices:
        example = item.examples[index]
        match = find_vocabulary_word_in_sentence(example.english, item.word, item.word_family)
        if match:
            return ClozeItem(
                item_id=item.id,
                sentence=example.english,
                before=example.english[:match.start],
                after=example.english[match.end:],
                answer=match.matched,
                translation=example.vietnamese,
            )

    example = item.examples[0]
    return ClozeItem(
        item_id=item.id,
        sentence=example.english,
        before="",
        after="",
        answer=item.word,
        translation=example.vietnamese,
        is_fallback=True,
    )
