from datetime import date, datetime
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class QuestionType(str, Enum):
    MEANING = "meaning"  # Given hanzi, choose meaning
    HANZI = "hanzi"  # Given meaning, choose hanzi
    PINYIN = "pinyin"  # Given hanzi, type pinyin


ALL_QUESTION_TYPES = (QuestionType.MEANING, QuestionType.HANZI, QuestionType.PINYIN)


class StudyMode(str, Enum):
    FLASHCARD = "flashcard"
    MATCHING = "matching"
    WRITING = "writing"
    LIGHTNING = "lightning"
    QUIZ = "quiz"
    REVIEW = "review"
    DUE = "due"


class MasteryBucket(str, Enum):
    NEW = "new"
    LEARNING = "learning"
    KNOWN = "known"
    MASTERED = "mastered"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Vocabulary ---
class VocabItem(CamelModel):
    id: str
    hanzi: str
    pinyin: str
    meaning: str
    example_sentence: Optional[str] = None
    srs_level: Optional[int] = Field(default=None, ge=0)
    next_review_date: Optional[datetime] = None
    needs_review: bool = False

    @property
    def level(self) -> int:
        return self.srs_level or 0


class VocabSet(CamelModel):
    id: str
    title: str
    description: str = ""
    difficulty: Literal["Easy", "Medium", "Hard"] = "Medium"
    items: List[VocabItem] = []

    @field_validator("items")
    @classmethod
    def unique_item_ids(cls, items: List[VocabItem]) -> List[VocabItem]:
        seen = set()
        for item in items:
            if item.id in seen:
                raise ValueError(f"Duplicate item id: {item.id}")
            seen.add(item.id)
        return items

    def get_item(self, item_id: str) -> Optional[VocabItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None


# --- Questions ---
class ChoiceQuestion(BaseModel):
    item: VocabItem
    options: List[str]
    correct_answer: str
    user_answer: Optional[str] = None

    @model_validator(mode="after")
    def check_options(self):
        if len(set(self.options)) != len(self.options):
            raise ValueError("Options must be unique")
        if self.options.count(self.correct_answer) != 1:
            raise ValueError("Options must contain the correct answer exactly once")
        return self


class MeaningQuestion(ChoiceQuestion):
    type: Literal[QuestionType.MEANING] = QuestionType.MEANING

    @property
    def prompt(self) -> str:
        return self.item.hanzi


class HanziQuestion(ChoiceQuestion):
    type: Literal[QuestionType.HANZI] = QuestionType.HANZI

    @property
    def prompt(self) -> str:
        return self.item.meaning


class PinyinQuestion(BaseModel):
    type: Literal[QuestionType.PINYIN] = QuestionType.PINYIN
    item: VocabItem
    correct_answer: str
    user_answer: Optional[str] = None

    @property
    def options(self) -> List[str]:
        return []

    @property
    def prompt(self) -> str:
        return self.item.hanzi


QuizQuestion = Annotated[
    Union[MeaningQuestion, HanziQuestion, PinyinQuestion],
    Field(discriminator="type"),
]


# --- Results and events ---
class AnswerRecord(BaseModel):
    prompt: str
    user_answer: Optional[str]
    correct_answer: str
    is_correct: bool


class AnswerEvaluated(BaseModel):
    question: QuizQuestion
    correct: bool


class SessionResult(BaseModel):
    score: int
    total: int
    questions: List[QuizQuestion]
    mode: StudyMode = StudyMode.QUIZ
    set_id: Optional[str] = None

    @property
    def percentage(self) -> int:
        return round((self.score / self.total) * 100) if self.total > 0 else 0


# --- SRS reporting ---
class MasteryCounts(BaseModel):
    new: int = 0
    learning: int = 0
    known: int = 0
    mastered: int = 0
    total: int = 0


class DueSet(CamelModel):
    set_id: str
    set_title: str
    due_count: int


class ForecastDay(BaseModel):
    day: date
    count: int


class ReviewProgress(CamelModel):
    needs_review: int
    learned: int
    total: int


class MasteryUpdate(BaseModel):
    level: int = Field(ge=0)
    next_review_date: datetime


class LocalMasterySuggestion(CamelModel):
    """Advisory mastery change computed by the engine; never durable on its own."""

    set_id: str
    item_id: str
    srs_level: int
    next_review_date: datetime
    needs_review: bool


class AuthoritativeMasteryRecord(LocalMasterySuggestion):
    """Mastery state as confirmed by the storage layer."""

    confirmed_at: datetime
