from pydantic import BaseModel, field_validator
from typing import Optional, List, Union
from datetime import datetime


class ExampleSentence(BaseModel):
    english: str
    vietnamese: str


class VietnameseDefinition(BaseModel):
    type: str = ""
    definition: str


class WordFamilyEntry(BaseModel):
    word: str
    part_of_speech: str
    definition: Optional[str] = None


class VocabularyItem(BaseModel):
    id: str
    word: str
    phonetic: str = ""  # "/.../ (BrE) | /.../ (AmE)" or a single transcription
    part_of_speech: str
    definition_english: str
    definition_vietnamese: Union[str, List[VietnameseDefinition]]
    difficulty: Optional[str] = None
    image_url: Optional[str] = None
    examples: List[ExampleSentence]
    collocations: List[str] = []
    synonyms: List[str] = []
    antonyms: List[str] = []
    word_family: List[WordFamilyEntry] = []

    @field_validator("examples")
    @classmethod
    def three_examples(cls, value: List[ExampleSentence]) -> List[ExampleSentence]:
        if len(value) != 3:
            raise ValueError("a vocabulary item needs exactly three example sentences")
        return value


class VocabularyTopic(BaseModel):
    id: str
    name: str
    name_vietnamese: str = ""
    description: str = ""
    icon: str = ""
    word_count: int = 0
    difficulty: Optional[str] = None
    created_at: Optional[datetime] = None


class TopicData(BaseModel):
    topic_id: str
    items: List[VocabularyItem]


class ClozeItem(BaseModel):
    item_id: str
    sentence: str
    before: str
    after: str
    answer: str
    translation: str
    is_fallback: bool = False


class VocabularyItemDetail(BaseModel):
    item: VocabularyItem
    phonetic_bre: Optional[str] = None
    phonetic_ame: Optional[str] = None
    vietnamese_definitions: List[VietnameseDefinition]


class AnswerResult(BaseModel):
    is_correct: bool
    user_answer: str
    correct_answer: str
