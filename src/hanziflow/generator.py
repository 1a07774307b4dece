import logging
import random
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Iterable, List, Literal, Optional, Sequence, TypeVar

from .models import (
    ALL_QUESTION_TYPES,
    HanziQuestion,
    MeaningQuestion,
    PinyinQuestion,
    QuestionType,
    QuizQuestion,
    StudyMode,
    VocabItem,
    VocabSet,
)
from .srs import SRSScheduler

logger = logging.getLogger(__name__)

DEFAULT_COUNT = 10
REPEAT_FACTOR = 3
NUM_DISTRACTORS = 3

PoolMode = Literal["once", "repeatable"]
T = TypeVar("T")


def shuffled(seq: Iterable[T], rng: random.Random) -> List[T]:
    items = list(seq)
    rng.shuffle(items)
    return items


def active_types(types: Optional[Iterable] = None) -> List[QuestionType]:
    """Requested types in the caller's order, or all types if none are usable."""
    pool: List[QuestionType] = []
    for requested in types or []:
        try:
            qtype = QuestionType(requested)
        except ValueError:
            continue
        if qtype not in pool:
            pool.append(qtype)
    return pool or list(ALL_QUESTION_TYPES)


def pick_distractors(
    item: VocabItem,
    field: str,
    candidates: Sequence[VocabItem],
    rng: random.Random,
) -> List[str]:
    correct = getattr(item, field)
    chosen: List[str] = []
    for other in shuffled(candidates, rng):
        if other.id == item.id:
            continue
        value = getattr(other, field)
        if value and value != correct and value not in chosen:
            chosen.append(value)
        if len(chosen) == NUM_DISTRACTORS:
            break
    return chosen


def build_question(
    item: VocabItem,
    qtype: QuestionType,
    candidates: Sequence[VocabItem],
    rng: random.Random,
) -> QuizQuestion:
    if qtype == QuestionType.PINYIN:
        return PinyinQuestion(item=item, correct_answer=item.pinyin)

    field = qtype.value
    correct = getattr(item, field)
    options = shuffled([correct] + pick_distractors(item, field, candidates, rng), rng)
    if qtype == QuestionType.HANZI:
        return HanziQuestion(item=item, options=options, correct_answer=correct)
    return MeaningQuestion(item=item, options=options, correct_answer=correct)


def generate(
    items: Sequence[VocabItem],
    types: Optional[Iterable] = None,
    count: Optional[int] = None,
    pool: PoolMode = "once",
    rng: Optional[random.Random] = None,
    distractor_items: Optional[Sequence[VocabItem]] = None,
    repeat: int = REPEAT_FACTOR,
) -> List[QuizQuestion]:
    """Build a shuffled list of questions from ``items``.

    Question types cycle through the active type pool by position, so the mix
    stays balanced whatever order the items end up in. Distractors come from
    ``distractor_items`` (defaults to ``items``); with fewer than three other
    items a question simply gets fewer options.
    """
    rng = rng or random.Random()
    if not items:
        return []

    type_pool = active_types(types)
    working = list(items) * repeat if pool == "repeatable" else list(items)
    working = shuffled(working, rng)

    if count is not None and count > 0:
        working = working[:count]
    elif pool == "once":
        working = working[:DEFAULT_COUNT]

    candidates = distractor_items if distractor_items is not None else items
    return [
        build_question(item, type_pool[index % len(type_pool)], candidates, rng)
        for index, item in enumerate(working)
    ]


def in_set_order(
    items: Sequence[VocabItem],
    qtype,
    rng: Optional[random.Random] = None,
    distractor_items: Optional[Sequence[VocabItem]] = None,
) -> List[QuizQuestion]:
    """One question of ``qtype`` per item, keeping the set's order."""
    rng = rng or random.Random()
    qtype = QuestionType(qtype)
    candidates = distractor_items if distractor_items is not None else items
    return [build_question(item, qtype, candidates, rng) for item in items]


# --- Strategy Pattern: Quiz Generators ---
class QuizGenerator(ABC):
    """Selects the items of a set that a session should quiz on."""

    pool: PoolMode = "once"

    def __init__(
        self, rng: Optional[random.Random] = None, repeat: int = REPEAT_FACTOR
    ):
        self.rng = rng or random.Random()
        self.repeat = repeat

    @abstractmethod
    def select_items(self, vocab_set: VocabSet) -> List[VocabItem]:
        pass

    def generate(
        self,
        vocab_set: VocabSet,
        types: Optional[Iterable] = None,
        count: Optional[int] = None,
    ) -> List[QuizQuestion]:
        items = self.select_items(vocab_set)
        questions = generate(
            items,
            types=types,
            count=count,
            pool=self.pool,
            rng=self.rng,
            distractor_items=vocab_set.items,
            repeat=self.repeat,
        )
        logger.info(
            f"Generated {len(questions)} questions from {len(items)} items "
            f"[Set: {vocab_set.id}, Generator: {type(self).__name__}]"
        )
        return questions


class StandardQuizGenerator(QuizGenerator):
    """Quizzes every item of the set, each at most once."""

    def select_items(self, vocab_set: VocabSet) -> List[VocabItem]:
        return list(vocab_set.items)


class ReviewQuizGenerator(QuizGenerator):
    """Quizzes only the items flagged for review."""

    def select_items(self, vocab_set: VocabSet) -> List[VocabItem]:
        return [item for item in vocab_set.items if item.needs_review]


class DueReviewGenerator(QuizGenerator):
    """Quizzes the items whose review date has come."""

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        scheduler: Optional[SRSScheduler] = None,
        now: Callable[[], datetime] = datetime.now,
    ):
        super().__init__(rng)
        self.scheduler = scheduler or SRSScheduler()
        self.now = now

    def select_items(self, vocab_set: VocabSet) -> List[VocabItem]:
        return self.scheduler.due_items_in_set(vocab_set, self.now())


class LightningQuizGenerator(QuizGenerator):
    """Repeats the set so a timed round does not run out of questions."""

    pool: PoolMode = "repeatable"

    def select_items(self, vocab_set: VocabSet) -> List[VocabItem]:
        return list(vocab_set.items)


class QuizFactory:
    """Factory to select the appropriate generator."""

    @staticmethod
    def create(mode, rng: Optional[random.Random] = None) -> QuizGenerator:
        try:
            mode = StudyMode(mode)
        except ValueError:
            logger.warning(f"Unknown quiz mode {mode!r}, using standard generator")
            return StandardQuizGenerator(rng)

        if mode == StudyMode.REVIEW:
            return ReviewQuizGenerator(rng)
        if mode == StudyMode.DUE:
            return DueReviewGenerator(rng)
        if mode == StudyMode.LIGHTNING:
            return LightningQuizGenerator(rng)
        return StandardQuizGenerator(rng)
