"""Mastery tracking for vocabulary items.

The scheduler answers "what is due" and "how well is this set known". The
interval maths that moves an item up or down the ladder is a pluggable
strategy; whatever it returns is only a suggestion until the storage layer
confirms it.
"""

import logging
from collections import OrderedDict
from datetime import date, datetime, time, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Protocol

from .models import (
    DueSet,
    ForecastDay,
    LocalMasterySuggestion,
    MasteryBucket,
    MasteryCounts,
    MasteryUpdate,
    ReviewProgress,
    VocabItem,
    VocabSet,
)

logger = logging.getLogger(__name__)

# Days until the next review, indexed by the level an item has just reached.
DEFAULT_INTERVALS = (0, 1, 3, 7, 14, 30, 60, 120)


def as_day(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def days_between(start, end) -> int:
    """Whole calendar days from ``start`` to ``end``, ignoring time of day."""
    return (as_day(end) - as_day(start)).days


def bucket_for_level(level: Optional[int]) -> MasteryBucket:
    level = level or 0
    if level == 0:
        return MasteryBucket.NEW
    if level <= 2:
        return MasteryBucket.LEARNING
    if level <= 5:
        return MasteryBucket.KNOWN
    return MasteryBucket.MASTERED


def is_due(item: VocabItem, as_of) -> bool:
    if item.next_review_date is None:
        return False
    return days_between(item.next_review_date, as_of) >= 0


def days_until_due(item: VocabItem, as_of) -> Optional[int]:
    if item.next_review_date is None:
        return None
    return days_between(as_of, item.next_review_date)


def mark_review_outcome(item: VocabItem, correct: bool) -> VocabItem:
    return item.model_copy(update={"needs_review": not correct})


def item_outcomes(questions: Iterable, judge: Callable) -> Dict[str, bool]:
    """One outcome per item: correct only if every attempt at it was correct."""
    outcomes: Dict[str, bool] = OrderedDict()
    for question in questions:
        correct = judge(question, question.user_answer)
        item_id = question.item.id
        outcomes[item_id] = outcomes.get(item_id, True) and correct
    return outcomes


class NextLevelStrategy(Protocol):
    def __call__(self, current_level: int, correct: bool) -> MasteryUpdate: ...


class IntervalTableStrategy:
    """Leitner-style ladder: up one rung when correct, back to 1 when wrong."""

    def __init__(
        self,
        intervals=DEFAULT_INTERVALS,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.intervals = tuple(intervals)
        self.now = now

    def __call__(self, current_level: int, correct: bool) -> MasteryUpdate:
        level = current_level + 1 if correct else 1
        days = self.intervals[min(level, len(self.intervals) - 1)]
        midnight = datetime.combine(as_day(self.now()), time.min)
        next_review = midnight + timedelta(days=days)
        return MasteryUpdate(level=level, next_review_date=next_review)


class SRSScheduler:
    def __init__(self, compute_next_level: Optional[NextLevelStrategy] = None):
        self.compute_next_level = compute_next_level or IntervalTableStrategy()

    def due_items_in_set(self, vocab_set: VocabSet, as_of) -> List[VocabItem]:
        return [item for item in vocab_set.items if is_due(item, as_of)]

    def due_items(self, sets: Iterable[VocabSet], as_of) -> List[DueSet]:
        due = []
        for vocab_set in sets:
            count = len(self.due_items_in_set(vocab_set, as_of))
            if count:
                due.append(
                    DueSet(
                        set_id=vocab_set.id,
                        set_title=vocab_set.title,
                        due_count=count,
                    )
                )
        return due

    def bucketize(self, sets: Iterable[VocabSet]) -> MasteryCounts:
        counts = MasteryCounts()
        for vocab_set in sets:
            for item in vocab_set.items:
                bucket = bucket_for_level(item.srs_level)
                setattr(counts, bucket.value, getattr(counts, bucket.value) + 1)
                counts.total += 1
        return counts

    def review_forecast(
        self, sets: Iterable[VocabSet], as_of, days: int = 7
    ) -> List[ForecastDay]:
        start = as_day(as_of)
        forecast = OrderedDict(
            (start + timedelta(days=offset), 0) for offset in range(days)
        )
        for vocab_set in sets:
            for item in vocab_set.items:
                offset = days_until_due(item, start)
                if offset is None or offset >= days:
                    continue
                day = start + timedelta(days=max(offset, 0))
                forecast[day] += 1
        return [ForecastDay(day=day, count=count) for day, count in forecast.items()]

    def review_progress(self, vocab_set: VocabSet) -> ReviewProgress:
        flagged = sum(1 for item in vocab_set.items if item.needs_review)
        total = len(vocab_set.items)
        return ReviewProgress(
            needs_review=flagged, learned=total - flagged, total=total
        )

    def mark_review_outcome(self, item: VocabItem, correct: bool) -> VocabItem:
        return mark_review_outcome(item, correct)

    def suggest(
        self, set_id: str, item: VocabItem, correct: bool
    ) -> LocalMasterySuggestion:
        update = self.compute_next_level(item.level, correct)
        logger.debug(
            f"Suggest level {item.level} -> {update.level} for item {item.id} "
            f"[Set: {set_id}, Correct: {correct}]"
        )
        return LocalMasterySuggestion(
            set_id=set_id,
            item_id=item.id,
            srs_level=update.level,
            next_review_date=update.next_review_date,
            needs_review=not correct,
        )

    def suggest_for_questions(
        self, vocab_set: VocabSet, questions: Iterable, judge: Callable
    ) -> List[LocalMasterySuggestion]:
        """Suggestions for a batch of answered questions, at most one per item."""
        suggestions = []
        for item_id, correct in item_outcomes(questions, judge).items():
            item = vocab_set.get_item(item_id)
            if item is None:
                logger.warning(f"Answered item {item_id} is gone from {vocab_set.id}")
                continue
            suggestions.append(self.suggest(vocab_set.id, item, correct))
        return suggestions
