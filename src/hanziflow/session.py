"""Practice session state machines.

A session moves ``idle -> in_progress -> advancing -> ... -> complete``.
Timed sessions may also end in ``expired`` when their countdown runs out.
Whichever way a session ends, its completion callbacks run once.
"""

import logging
import random
from enum import Enum
from typing import Callable, List, Optional, Sequence, Set

from .errors import InvalidStateError
from .evaluator import AnswerEvaluator
from .generator import shuffled
from .models import (
    AnswerEvaluated,
    QuestionType,
    QuizQuestion,
    SessionResult,
    StudyMode,
    VocabItem,
)
from .timers import Countdown, Scheduler

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    ADVANCING = "advancing"
    COMPLETE = "complete"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


TERMINAL_STATES = (SessionState.COMPLETE, SessionState.EXPIRED, SessionState.CANCELLED)

CompletionCallback = Callable[[SessionResult], None]


class QuizSession:
    mode = StudyMode.QUIZ
    shows_options = True

    def __init__(
        self,
        evaluator: Optional[AnswerEvaluator] = None,
        on_complete: Optional[CompletionCallback] = None,
        set_id: Optional[str] = None,
    ):
        self.evaluator = evaluator or AnswerEvaluator()
        self.set_id = set_id
        self.state = SessionState.IDLE
        self.questions: List[QuizQuestion] = []
        self.answered: List[QuizQuestion] = []
        self.index = 0
        self.result: Optional[SessionResult] = None
        self._finished = False

        self.on_state_change: List[Callable[[SessionState], None]] = []
        self.on_answer: List[Callable[[AnswerEvaluated], None]] = []
        self.on_complete: List[CompletionCallback] = []
        if on_complete is not None:
            self.on_complete.append(on_complete)

    # --- Queries ---
    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def current_question(self) -> Optional[QuizQuestion]:
        if self.state in (SessionState.IN_PROGRESS, SessionState.ADVANCING):
            return self.questions[self.index]
        return None

    @property
    def progress(self):
        return self.index, len(self.questions)

    # --- Transitions ---
    def start(self, questions: Sequence[QuizQuestion]):
        if self.state != SessionState.IDLE:
            raise InvalidStateError("start", self.state)
        self.questions = list(questions)
        self.answered = []
        self.index = 0
        self._set_state(SessionState.IN_PROGRESS)
        logger.info(
            f"Session started [Mode: {self.mode.value}, Set: {self.set_id}, "
            f"Questions: {len(self.questions)}]"
        )
        if not self.questions:
            self._finish(SessionState.COMPLETE)

    def submit(self, answer: Optional[str]) -> bool:
        if self.state != SessionState.IN_PROGRESS or self.index >= len(self.questions):
            raise InvalidStateError("submit", self.state)
        question = self.questions[self.index]
        question.user_answer = answer
        correct = self.evaluator.evaluate(question, answer)
        self.answered.append(question)
        self._set_state(SessionState.ADVANCING)
        self._emit(self.on_answer, AnswerEvaluated(question=question, correct=correct))
        return correct

    def advance(self):
        if self.state != SessionState.ADVANCING:
            raise InvalidStateError("advance", self.state)
        if self.index + 1 >= len(self.questions):
            self._finish(SessionState.COMPLETE)
        else:
            self.index += 1
            self._set_state(SessionState.IN_PROGRESS)

    def cancel(self):
        if self.is_terminal:
            return
        self._finished = True
        self._stop_timers()
        self._set_state(SessionState.CANCELLED)
        logger.info(f"Session cancelled [Mode: {self.mode.value}, Set: {self.set_id}]")

    # --- Internals ---
    def _score(self) -> int:
        # Re-evaluated here rather than cached from submit().
        return sum(
            1 for q in self.answered if self.evaluator.is_correct(q, q.user_answer)
        )

    def _finish(self, final_state: SessionState):
        if self._finished:
            return
        self._finished = True
        self._stop_timers()
        self.result = SessionResult(
            score=self._score(),
            total=len(self.answered),
            questions=list(self.answered),
            mode=self.mode,
            set_id=self.set_id,
        )
        self._set_state(final_state)
        logger.info(
            f"Session {final_state.value} [Mode: {self.mode.value}, "
            f"Set: {self.set_id}, "
            f"Score: {self.result.score}/{self.result.total}]"
        )
        self._emit(self.on_complete, self.result)

    def _stop_timers(self):
        pass

    def _set_state(self, state: SessionState):
        self.state = state
        self._emit(self.on_state_change, state)

    @staticmethod
    def _emit(listeners, *args):
        for listener in list(listeners):
            listener(*args)


class LightningSession(QuizSession):
    """A quiz that ends when its countdown reaches zero."""

    mode = StudyMode.LIGHTNING

    def __init__(
        self,
        scheduler: Scheduler,
        total_seconds: int = 90,
        evaluator: Optional[AnswerEvaluator] = None,
        on_complete: Optional[CompletionCallback] = None,
        set_id: Optional[str] = None,
    ):
        super().__init__(evaluator=evaluator, on_complete=on_complete, set_id=set_id)
        self.total_seconds = total_seconds
        self.on_tick: List[Callable[[int], None]] = []
        self.countdown = Countdown(
            scheduler,
            total_seconds,
            on_tick=lambda remaining: self._emit(self.on_tick, remaining),
            on_expire=self.expire,
        )

    @property
    def remaining_seconds(self) -> int:
        return self.countdown.remaining

    def start(self, questions: Sequence[QuizQuestion]):
        super().start(questions)
        if not self.is_terminal:
            self.countdown.start()

    def expire(self):
        if self.is_terminal:
            return
        if self.state == SessionState.IDLE:
            raise InvalidStateError("expire", self.state)
        self._finish(SessionState.EXPIRED)

    def _stop_timers(self):
        self.countdown.cancel()


class FlashcardSession(QuizSession):
    """Self-graded card review: the learner says whether they knew the card.

    Each graded card is reported to ``on_review`` listeners with the item and
    whether it was known, so the storage layer can flag it for review.
    """

    mode = StudyMode.FLASHCARD

    def __init__(
        self,
        evaluator: Optional[AnswerEvaluator] = None,
        on_complete: Optional[CompletionCallback] = None,
        set_id: Optional[str] = None,
    ):
        super().__init__(evaluator=evaluator, on_complete=on_complete, set_id=set_id)
        self.on_review: List[Callable[[VocabItem, bool], None]] = []

    def submit_recall(self, known: bool) -> bool:
        question = self.current_question
        if question is None or self.state != SessionState.IN_PROGRESS:
            raise InvalidStateError("submit", self.state)
        self._emit(self.on_review, question.item, known)
        return self.submit(question.correct_answer if known else "")


class WritingSession(QuizSession):
    """Typed answers for every item of a set, either its pinyin or its meaning."""

    mode = StudyMode.WRITING
    shows_options = False
    PRACTICE_TYPES = (QuestionType.PINYIN, QuestionType.MEANING)

    def __init__(
        self,
        practice=QuestionType.PINYIN,
        evaluator: Optional[AnswerEvaluator] = None,
        on_complete: Optional[CompletionCallback] = None,
        set_id: Optional[str] = None,
    ):
        super().__init__(evaluator=evaluator, on_complete=on_complete, set_id=set_id)
        practice = QuestionType(practice)
        if practice not in self.PRACTICE_TYPES:
            raise ValueError(f"Writing practice must be pinyin or meaning: {practice}")
        self.practice = practice


class MatchingSession(QuizSession):
    """Pair every hanzi with its meaning.

    Words keep the set order and meaning cards are shuffled. A wrong pair is
    counted as a mistake and may be retried; it never lowers the score. The
    session completes once every word is matched.
    """

    mode = StudyMode.MATCHING

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        evaluator: Optional[AnswerEvaluator] = None,
        on_complete: Optional[CompletionCallback] = None,
        set_id: Optional[str] = None,
    ):
        super().__init__(evaluator=evaluator, on_complete=on_complete, set_id=set_id)
        self.rng = rng or random.Random()
        self.cards: List[QuizQuestion] = []
        self.matched_words: Set[str] = set()
        self.matched_cards: Set[int] = set()
        self.mistakes = 0

    @property
    def current_question(self) -> Optional[QuizQuestion]:
        return None

    @property
    def progress(self):
        return len(self.matched_words), len(self.questions)

    def start(self, questions: Sequence[QuizQuestion]):
        if self.state != SessionState.IDLE:
            raise InvalidStateError("start", self.state)
        self.cards = shuffled(questions, self.rng)
        super().start(questions)

    def match(self, item_id: str, card: int) -> bool:
        """Try pairing the word for ``item_id`` with meaning card ``card``."""
        if self.state != SessionState.IN_PROGRESS:
            raise InvalidStateError("match", self.state)
        word = next((q for q in self.questions if q.item.id == item_id), None)
        if word is None or not 0 <= card < len(self.cards):
            raise ValueError(f"Unknown pair: word {item_id}, card {card}")
        if item_id in self.matched_words or card in self.matched_cards:
            return False

        meaning = self.cards[card].correct_answer
        correct = self.evaluator.evaluate(word, meaning)
        if correct:
            word.user_answer = meaning
            self.matched_words.add(item_id)
            self.matched_cards.add(card)
            self.answered.append(word)
        else:
            self.mistakes += 1
        self._emit(self.on_answer, AnswerEvaluated(question=word, correct=correct))

        if len(self.matched_words) == len(self.questions):
            self._finish(SessionState.COMPLETE)
        return correct

    def submit(self, answer: Optional[str]) -> bool:
        raise InvalidStateError("submit", self.state)

    def advance(self):
        raise InvalidStateError("advance", self.state)
