import logging
import random
from typing import Callable, List, Optional, Set

from .evaluator import AnswerEvaluator
from .generator import generate, in_set_order
from .models import QuestionType, SessionResult, StudyMode, VocabItem, VocabSet
from .session import (
    CompletionCallback,
    FlashcardSession,
    LightningSession,
    MatchingSession,
    QuizSession,
    WritingSession,
)
from .timers import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

MODES_ORDER = (
    StudyMode.FLASHCARD,
    StudyMode.MATCHING,
    StudyMode.WRITING,
    StudyMode.LIGHTNING,
    StudyMode.QUIZ,
)

SessionFactory = Callable[[StudyMode], QuizSession]
ReviewCallback = Callable[[VocabItem, bool], None]


def default_session_factory(
    vocab_set: VocabSet,
    scheduler: Scheduler,
    rng: Optional[random.Random] = None,
    evaluator: Optional[AnswerEvaluator] = None,
    lightning_seconds: int = 90,
    quiz_size: int = 10,
    writing_practice=QuestionType.PINYIN,
    on_complete: Optional[CompletionCallback] = None,
    on_review: Optional[ReviewCallback] = None,
) -> SessionFactory:
    """Build a started session for each study mode of a mixed session."""
    rng = rng or random.Random()
    items = vocab_set.items

    def create(mode: StudyMode) -> QuizSession:
        if mode == StudyMode.FLASHCARD:
            session = FlashcardSession(
                evaluator=evaluator, on_complete=on_complete, set_id=vocab_set.id
            )
            if on_review is not None:
                session.on_review.append(on_review)
            questions = generate(items, [QuestionType.MEANING], len(items), rng=rng)
        elif mode == StudyMode.MATCHING:
            session = MatchingSession(
                rng, evaluator=evaluator, on_complete=on_complete, set_id=vocab_set.id
            )
            questions = in_set_order(items, QuestionType.MEANING, rng, [])
        elif mode == StudyMode.WRITING:
            session = WritingSession(
                writing_practice,
                evaluator=evaluator,
                on_complete=on_complete,
                set_id=vocab_set.id,
            )
            questions = in_set_order(items, session.practice, rng, [])
        elif mode == StudyMode.LIGHTNING:
            session = LightningSession(
                scheduler,
                lightning_seconds,
                evaluator=evaluator,
                on_complete=on_complete,
                set_id=vocab_set.id,
            )
            questions = generate(items, pool="repeatable", rng=rng)
        else:
            session = QuizSession(
                evaluator=evaluator, on_complete=on_complete, set_id=vocab_set.id
            )
            questions = generate(items, count=quiz_size, rng=rng)
        session.start(questions)
        return session

    return create


class MixedStudySession:
    """Runs every study mode back to back.

    When a mode reports completion the orchestrator waits ``cooldown`` seconds
    and moves on, or finishes after the last mode. ``advance_now`` skips the
    wait but only while a mode has just completed.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        scheduler: Scheduler,
        cooldown: float = 2.0,
        modes=MODES_ORDER,
    ):
        self.session_factory = session_factory
        self.scheduler = scheduler
        self.cooldown = cooldown
        self.modes = tuple(modes)
        self.current_mode_index = 0
        self.completed_modes: Set[StudyMode] = set()
        self.just_completed = False
        self.results: List[SessionResult] = []
        self.session: Optional[QuizSession] = None
        self._cooldown_handle: Optional[TimerHandle] = None

        self.on_mode_change: List[Callable[[Optional[StudyMode]], None]] = []
        self.on_all_complete: List[Callable[[], None]] = []

    @property
    def is_finished(self) -> bool:
        return self.current_mode_index >= len(self.modes)

    @property
    def current_mode(self) -> Optional[StudyMode]:
        if self.is_finished:
            return None
        return self.modes[self.current_mode_index]

    @property
    def progress_percentage(self) -> int:
        return round(len(self.completed_modes) / len(self.modes) * 100)

    @property
    def can_advance(self) -> bool:
        return self.just_completed and not self.is_finished

    def start(self):
        self._open_mode()

    def mode_completed(self, mode: Optional[StudyMode] = None):
        if self.just_completed or self.is_finished:
            return
        if mode is not None and mode != self.current_mode:
            return
        self.just_completed = True
        self.completed_modes.add(self.current_mode)
        logger.info(f"Mode completed: {self.current_mode.value}")
        self._cooldown_handle = self.scheduler.call_later(self.cooldown, self._advance)

    def advance_now(self) -> bool:
        if not self.can_advance:
            return False
        self._cancel_cooldown()
        self._advance()
        return True

    def restart(self):
        self.cancel()
        self.current_mode_index = 0
        self.completed_modes = set()
        self.results = []
        self.just_completed = False
        self._open_mode()

    def cancel(self):
        self._cancel_cooldown()
        if self.session is not None:
            self.session.cancel()
            self.session = None

    def _advance(self):
        self._cooldown_handle = None
        if not self.just_completed:
            return
        if self.current_mode_index < len(self.modes) - 1:
            self.current_mode_index += 1
            self.just_completed = False
            self._open_mode()
        else:
            self.current_mode_index = len(self.modes)
            self.session = None
            logger.info("All study modes complete")
            self._emit(self.on_mode_change, None)
            self._emit(self.on_all_complete)

    def _open_mode(self):
        mode = self.current_mode
        self._emit(self.on_mode_change, mode)
        session = self.session_factory(mode)
        self.session = session
        session.on_complete.append(lambda result: self._session_completed(session))
        if session.is_terminal and session.result is not None:
            self._session_completed(session)

    def _session_completed(self, session: QuizSession):
        if session is not self.session or self.just_completed:
            return
        if session.result is not None:
            self.results.append(session.result)
        self.mode_completed()

    def _cancel_cooldown(self):
        if self._cooldown_handle is not None:
            self._cooldown_handle.cancel()
            self._cooldown_handle = None

    @staticmethod
    def _emit(listeners, *args):
        for listener in list(listeners):
            listener(*args)
