from datetime import datetime
from typing import Dict, Optional

from .config import settings
from .evaluator import AnswerEvaluator
from .orchestrator import MixedStudySession
from .session import QuizSession
from .srs import SRSScheduler
from .vocabulary import VocabularyManager


class ActiveSession:
    """A running single-mode or mixed session bound to a browser cookie."""

    def __init__(
        self,
        set_id: str,
        session: Optional[QuizSession] = None,
        mixed: Optional[MixedStudySession] = None,
    ):
        self.set_id = set_id
        self._session = session
        self.mixed = mixed
        self.created_at = datetime.now()

    @property
    def session(self) -> Optional[QuizSession]:
        if self.mixed is not None:
            return self.mixed.session
        return self._session

    def cancel(self):
        if self.mixed is not None:
            self.mixed.cancel()
        elif self._session is not None:
            self._session.cancel()


vocab_manager = VocabularyManager(f"{settings.VOCAB_DIR}")
srs_scheduler = SRSScheduler()
evaluator = AnswerEvaluator()
sessions: Dict[str, ActiveSession] = {}
