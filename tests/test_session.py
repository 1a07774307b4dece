import pytest

from hanziflow.errors import InvalidStateError
from hanziflow.generator import generate, in_set_order
from hanziflow.models import QuestionType, StudyMode
from hanziflow.session import (
    FlashcardSession,
    LightningSession,
    MatchingSession,
    QuizSession,
    SessionState,
    WritingSession,
)


@pytest.fixture
def questions(items, rng):
    return generate(items, types=[QuestionType.HANZI], rng=rng)


@pytest.fixture
def results():
    return []


def answer_all(session, correct=True):
    while not session.is_terminal:
        question = session.current_question
        session.submit(question.correct_answer if correct else "wrong")
        session.advance()


def test_full_run_moves_through_states(questions, results):
    session = QuizSession(on_complete=results.append, set_id="greetings")
    states = []
    session.on_state_change.append(states.append)

    assert session.state == SessionState.IDLE
    session.start(questions[:2])
    session.submit(questions[0].correct_answer)
    session.advance()
    session.submit("nope")
    session.advance()

    assert states == [
        SessionState.IN_PROGRESS,
        SessionState.ADVANCING,
        SessionState.IN_PROGRESS,
        SessionState.ADVANCING,
        SessionState.COMPLETE,
    ]
    assert len(results) == 1
    result = results[0]
    assert (result.score, result.total) == (1, 2)
    assert result.set_id == "greetings"
    assert result.mode == StudyMode.QUIZ
    assert result.percentage == 50
    assert session.current_question is None


def test_submit_returns_correctness_and_notifies(questions):
    session = QuizSession()
    events = []
    session.on_answer.append(events.append)
    session.start(questions)

    assert session.submit(questions[0].correct_answer) is True
    assert events[0].correct is True
    assert events[0].question.user_answer == questions[0].correct_answer


@pytest.mark.parametrize("state_setup", ["idle", "advancing", "complete"])
def test_submit_rejected_outside_in_progress(questions, state_setup):
    session = QuizSession()
    if state_setup != "idle":
        session.start(questions[:1])
        session.submit("x")
    if state_setup == "complete":
        session.advance()

    with pytest.raises(InvalidStateError):
        session.submit("x")


def test_advance_rejected_before_answer(questions):
    session = QuizSession()
    with pytest.raises(InvalidStateError):
        session.advance()
    session.start(questions)
    with pytest.raises(InvalidStateError) as exc:
        session.advance()
    assert exc.value.state == SessionState.IN_PROGRESS
    assert "in_progress" in str(exc.value)


def test_start_twice_rejected(questions):
    session = QuizSession()
    session.start(questions)
    with pytest.raises(InvalidStateError):
        session.start(questions)


def test_empty_question_list_completes_immediately(results):
    session = QuizSession(on_complete=results.append)
    session.start([])
    assert session.state == SessionState.COMPLETE
    assert (results[0].score, results[0].total) == (0, 0)
    assert results[0].percentage == 0


def test_score_is_recomputed_from_answers(questions, results):
    session = QuizSession(on_complete=results.append)
    session.start(questions[:3])
    answer_all(session)
    assert results[0].score == 3
    assert [q.user_answer for q in results[0].questions] == [
        q.correct_answer for q in questions[:3]
    ]


def test_cancel_does_not_report(questions, results):
    session = QuizSession(on_complete=results.append)
    session.start(questions)
    session.submit("x")
    session.cancel()

    assert session.state == SessionState.CANCELLED
    assert results == []
    with pytest.raises(InvalidStateError):
        session.advance()


def test_cancel_after_complete_is_noop(questions, results):
    session = QuizSession(on_complete=results.append)
    session.start(questions[:1])
    answer_all(session)
    session.cancel()
    assert session.state == SessionState.COMPLETE
    assert len(results) == 1


class TestLightningSession:
    def test_countdown_ticks(self, scheduler, questions):
        session = LightningSession(scheduler, total_seconds=90)
        ticks = []
        session.on_tick.append(ticks.append)
        session.start(questions)

        scheduler.advance(3)

        assert ticks == [89, 88, 87]
        assert session.remaining_seconds == 87

    def test_expiry_drops_unanswered(self, scheduler, questions, results):
        session = LightningSession(
            scheduler, total_seconds=90, on_complete=results.append
        )
        session.start(questions)
        session.submit(questions[0].correct_answer)
        session.advance()
        session.submit("wrong")

        scheduler.advance(90)

        assert session.state == SessionState.EXPIRED
        assert len(results) == 1
        assert (results[0].score, results[0].total) == (1, 2)
        assert results[0].mode == StudyMode.LIGHTNING
        assert scheduler.pending == []

    def test_finishing_first_stops_countdown(self, scheduler, questions, results):
        session = LightningSession(
            scheduler, total_seconds=90, on_complete=results.append
        )
        session.start(questions[:2])
        answer_all(session)

        scheduler.advance(120)

        assert session.state == SessionState.COMPLETE
        assert len(results) == 1
        assert scheduler.pending == []

    def test_expiry_while_advancing_completes_once(
        self, scheduler, questions, results
    ):
        session = LightningSession(
            scheduler, total_seconds=5, on_complete=results.append
        )
        session.start(questions[:1])
        session.submit(questions[0].correct_answer)

        scheduler.advance(5)
        with pytest.raises(InvalidStateError):
            session.advance()
        session.expire()

        assert session.state == SessionState.EXPIRED
        assert len(results) == 1
        assert results[0].score == 1

    def test_expire_before_start_rejected(self, scheduler):
        session = LightningSession(scheduler)
        with pytest.raises(InvalidStateError):
            session.expire()

    def test_cancel_stops_countdown(self, scheduler, questions, results):
        session = LightningSession(scheduler, on_complete=results.append)
        session.start(questions)
        session.cancel()

        scheduler.advance(200)

        assert session.state == SessionState.CANCELLED
        assert results == []
        assert scheduler.pending == []

    def test_empty_start_never_arms_countdown(self, scheduler, results):
        session = LightningSession(scheduler, on_complete=results.append)
        session.start([])
        assert session.state == SessionState.COMPLETE
        assert scheduler.pending == []


class TestFlashcardSession:
    def test_recall_reports_each_card(self, items, rng, results):
        questions = generate(items[:2], types=["meaning"], rng=rng)
        session = FlashcardSession(on_complete=results.append)
        reviews = []
        session.on_review.append(lambda item, known: reviews.append((item.id, known)))
        session.start(questions)

        assert session.submit_recall(True) is True
        session.advance()
        assert session.submit_recall(False) is False
        session.advance()

        assert reviews == [(questions[0].item.id, True), (questions[1].item.id, False)]
        assert (results[0].score, results[0].total) == (1, 2)
        assert results[0].mode == StudyMode.FLASHCARD

    def test_recall_requires_active_card(self, items, rng):
        session = FlashcardSession()
        with pytest.raises(InvalidStateError):
            session.submit_recall(True)
        session.start(generate(items[:1], types=["meaning"], rng=rng))
        session.submit_recall(True)
        with pytest.raises(InvalidStateError):
            session.submit_recall(True)


class TestWritingSession:
    def test_meaning_practice_covers_set_in_order(self, items, rng, results):
        session = WritingSession("meaning", on_complete=results.append)
        session.start(in_set_order(items, session.practice, rng, []))

        assert [q.item.id for q in session.questions] == [i.id for i in items]
        for item in items:
            session.submit(f"  {item.meaning.upper()} ")
            session.advance()

        assert session.state == SessionState.COMPLETE
        assert (results[0].score, results[0].total) == (len(items), len(items))
        assert results[0].mode == StudyMode.WRITING

    def test_pinyin_practice_accepts_numbered_tones(self, items, rng):
        session = WritingSession()
        session.start(in_set_order(items[:1], session.practice, rng, []))
        assert session.current_question.type == QuestionType.PINYIN
        assert session.submit("ni3 hao3") is True

    def test_choice_practice_is_rejected(self):
        with pytest.raises(ValueError):
            WritingSession(QuestionType.HANZI)


class TestMatchingSession:
    @pytest.fixture
    def session(self, items, rng, results):
        session = MatchingSession(rng, on_complete=results.append, set_id="greetings")
        session.start(in_set_order(items[:4], QuestionType.MEANING, rng, []))
        return session

    @staticmethod
    def card_for(session, item_id):
        return next(i for i, c in enumerate(session.cards) if c.item.id == item_id)

    def test_board(self, session, items):
        assert [q.item.id for q in session.questions] == ["1", "2", "3", "4"]
        assert sorted(c.correct_answer for c in session.cards) == sorted(
            item.meaning for item in items[:4]
        )
        assert session.current_question is None
        assert session.progress == (0, 4)

    def test_wrong_pair_is_retried_not_scored(self, session, results):
        answers = []
        session.on_answer.append(answers.append)

        assert session.match("1", self.card_for(session, "2")) is False
        assert session.mistakes == 1
        assert session.matched_words == set()

        for item_id in ["1", "2", "3", "4"]:
            assert session.match(item_id, self.card_for(session, item_id)) is True

        assert session.state == SessionState.COMPLETE
        assert [a.correct for a in answers] == [False, True, True, True, True]
        assert len(results) == 1
        assert (results[0].score, results[0].total) == (4, 4)
        assert results[0].mode == StudyMode.MATCHING

    def test_matched_cards_are_ignored(self, session):
        card = self.card_for(session, "1")
        assert session.match("1", card) is True
        assert session.match("1", card) is False
        assert session.match("2", card) is False
        assert session.mistakes == 0
        assert session.progress == (1, 4)

    def test_unknown_pair_is_rejected(self, session):
        with pytest.raises(ValueError):
            session.match("99", 0)
        with pytest.raises(ValueError):
            session.match("1", 4)

    def test_submit_and_advance_are_not_used(self, session):
        with pytest.raises(InvalidStateError):
            session.submit("hello")
        with pytest.raises(InvalidStateError):
            session.advance()

    def test_match_after_cancel_is_rejected(self, session):
        session.cancel()
        with pytest.raises(InvalidStateError):
            session.match("1", 0)
