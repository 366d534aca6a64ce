import json
import random

import pytest

from app.services.vocabulary_service import (
    build_cloze_item,
    get_item,
    get_topic,
    get_topic_data,
    load_topics,
    normalize_vietnamese_definitions,
    parse_phonetic,
)
from app.schemas.vocabulary import VietnameseDefinition


def test_load_topics_counts_words(data_dir):
    topics = load_topics(data_dir)
    assert [t.id for t in topics] == ["food-and-drink", "animals"]
    assert [t.word_count for t in topics] == [4, 3]


def test_get_topic(data_dir):
    assert get_topic(data_dir, "animals").name == "Animals"
    assert get_topic(data_dir, "space") is None


@pytest.mark.parametrize("topic_id", ["missing", "../topics", "", "Animals"])
def test_get_topic_data_rejects_unknown_ids(data_dir, topic_id):
    assert get_topic_data(data_dir, topic_id) is None


def test_get_item(data_dir):
    item = get_item(data_dir, "animals", "animals-002")
    assert item.word == "habitat"
    assert len(item.examples) == 3
    assert get_item(data_dir, "animals", "animals-999") is None
    assert get_item(data_dir, "space", "animals-002") is None


def test_invalid_files_are_skipped(tmp_path):
    (tmp_path / "topics.json").write_text(json.dumps([
        {"id": "good", "name": "Good"},
        {"name": "no id"},
        {"id": "broken", "name": "Broken"},
    ]), encoding="utf-8")
    (tmp_path / "good.json").write_text(json.dumps({"topic_id": "good", "items": []}), encoding="utf-8")
    (tmp_path / "broken.json").write_text(json.dumps({"topic_id": "broken", "items": [{"id": 1}]}), encoding="utf-8")

    topics = load_topics(str(tmp_path))
    assert [(t.id, t.word_count) for t in topics] == [("good", 0), ("broken", 0)]
    assert get_topic_data(str(tmp_path), "broken") is None


def test_load_topics_without_index(tmp_path):
    assert load_topics(str(tmp_path)) == []


def test_parse_phonetic():
    parsed = parse_phonetic("/ˈpɔː.ʃən/ (BrE) | /ˈpɔːr.ʃən/ (AmE)")
    assert parsed.bre == "/ˈpɔː.ʃən/"
    assert parsed.ame == "/ˈpɔːr.ʃən/"
    assert parse_phonetic("/beɪk/") == (None, None)
    assert parse_phonetic("") == (None, None)


def test_normalize_vietnamese_definitions():
    split = normalize_vietnamese_definitions("khẩu phần | phần ăn")
    assert [d.definition for d in split] == ["khẩu phần", "phần ăn"]
    assert normalize_vietnamese_definitions("di cư")[0].definition == "di cư"

    structured = [VietnameseDefinition(type="adj", definition="rất ngon")]
    assert normalize_vietnamese_definitions(structured) is structured


@pytest.mark.parametrize("seed", range(5))
def test_cloze_keeps_sentence_case(data_dir, seed):
    item = get_item(data_dir, "food-and-drink", "food-001")
    cloze = build_cloze_item(item, random.Random(seed))

    assert cloze.is_fallback is False
    assert cloze.answer.lower() == "portions"
    assert cloze.before + cloze.answer + cloze.after == cloze.sentence
    assert cloze.sentence in [e.english for e in item.examples]


def test_cloze_uses_word_family(data_dir):
    item = get_item(data_dir, "food-and-drink", "food-004")
    cloze = build_cloze_item(item, random.Random(1))
    assert cloze.answer in ("bakes", "baked", "baking")


def test_cloze_fallback(item_factory):
    item = item_factory(word="eagle", examples=[
        {"english": "A hawk circled above.", "vietnamese": "a"},
        {"english": "Birds of prey hunt at dawn.", "vietnamese": "b"},
        {"english": "The falcon dived.", "vietnamese": "c"},
    ])
    cloze = build_cloze_item(item, random.Random(3))
    assert cloze.is_fallback is True
    assert cloze.answer == "eagle"
    assert cloze.sentence == "A hawk circled above."
    assert (cloze.before, cloze.after) == ("", "")
