import re
import unicodedata
from typing import Callable, List, Optional

from .models import AnswerEvaluated, QuestionType, QuizQuestion
from .pinyin import normalize

WHITESPACE_RE = re.compile(r"\s+")


def _canonical_pinyin(text: str) -> str:
    text = unicodedata.normalize("NFC", text.strip())
    return WHITESPACE_RE.sub("", text).lower()


def is_correct(question: QuizQuestion, raw_answer: Optional[str]) -> bool:
    """Decide whether ``raw_answer`` answers ``question``.

    Hanzi answers are compared exactly since they are picked from the options.
    Meaning answers ignore case and surrounding whitespace. Pinyin answers are
    converted from numbered tones first and compared without case or spacing
    between syllables.
    """
    if raw_answer is None or not raw_answer.strip():
        return False

    if question.type == QuestionType.HANZI:
        return raw_answer == question.correct_answer

    if question.type == QuestionType.MEANING:
        return raw_answer.strip().lower() == question.correct_answer.strip().lower()

    return _canonical_pinyin(normalize(raw_answer)) == _canonical_pinyin(
        question.correct_answer
    )


class AnswerEvaluator:
    """Evaluates answers and notifies subscribers, e.g. for sound feedback."""

    def __init__(self):
        self._subscribers: List[Callable[[AnswerEvaluated], None]] = []

    def subscribe(self, callback: Callable[[AnswerEvaluated], None]):
        self._subscribers.append(callback)

    def is_correct(self, question: QuizQuestion, raw_answer: Optional[str]) -> bool:
        return is_correct(question, raw_answer)

    def evaluate(self, question: QuizQuestion, raw_answer: Optional[str]) -> bool:
        correct = is_correct(question, raw_answer)
        event = AnswerEvaluated(question=question, correct=correct)
        for callback in self._subscribers:
            callback(event)
        return correct
