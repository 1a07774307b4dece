import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Cookie, Depends, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from . import database
from .config import settings
from .errors import InvalidStateError, ItemNotFoundError, SetNotFoundError
from .generator import QuizFactory, generate, in_set_order
from .globals import ActiveSession, evaluator, sessions, srs_scheduler, vocab_manager
from .models import (
    AnswerRecord,
    QuestionType,
    SessionResult,
    StudyMode,
    VocabItem,
    VocabSet,
)
from .orchestrator import MixedStudySession, default_session_factory
from .pinyin import normalize
from .session import (
    FlashcardSession,
    LightningSession,
    MatchingSession,
    QuizSession,
    WritingSession,
)
from .timers import LoopScheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


# --- Request bodies ---
class StartSessionRequest(BaseModel):
    set_id: str
    mode: StudyMode = StudyMode.QUIZ
    types: Optional[List[QuestionType]] = None
    count: Optional[int] = None
    practice: Literal["pinyin", "meaning"] = "pinyin"


class AnswerRequest(BaseModel):
    answer: Optional[str] = None
    known: Optional[bool] = None


class MatchRequest(BaseModel):
    item_id: str
    card: int


class NormalizeRequest(BaseModel):
    text: str


class MixedRequest(BaseModel):
    set_id: str
    practice: Literal["pinyin", "meaning"] = "pinyin"


# --- Dependencies ---
def get_session_id(
    session_id: Optional[str] = Cookie(None, alias=settings.SESSION_COOKIE_NAME)
) -> Optional[str]:
    return session_id


def get_active_session(session_id: Optional[str]) -> Optional[ActiveSession]:
    if not session_id or session_id not in sessions:
        return None
    active = sessions[session_id]
    if datetime.now() - active.created_at > timedelta(
        minutes=settings.SESSION_TIMEOUT_MINUTES
    ):
        active.cancel()
        del sessions[session_id]
        return None
    return active


def apply_mastery(set_id: str, results: List[SessionResult]):
    """Turn answers into one mastery update per item and store them.

    Flashcards are self-graded and only set the review flag, so they never
    move an item along the interval ladder.
    """
    questions = [
        question
        for result in results
        if result.mode != StudyMode.FLASHCARD
        for question in result.questions
    ]
    if not questions:
        return
    vocab_set = vocab_manager.load_set(set_id)
    for suggestion in srs_scheduler.suggest_for_questions(
        vocab_set, questions, evaluator.is_correct
    ):
        vocab_manager.apply_suggestion(suggestion)


def record_result(result: SessionResult):
    """Persist a finished session and push mastery changes to storage."""
    database.save_quiz_result(result)
    if result.set_id:
        apply_mastery(result.set_id, [result])


def record_review(set_id: str, item: VocabItem, known: bool):
    """Store the review flag for a flashcard as soon as it is graded."""
    try:
        current = vocab_manager.load_set(set_id).get_item(item.id)
    except SetNotFoundError:
        current = None
    if current is None:
        logger.warning(f"Reviewed item {item.id} is gone from {set_id}")
        return
    vocab_manager.save_item_mutation(
        set_id, srs_scheduler.mark_review_outcome(current, known)
    )


# --- Session building ---
def usable_items(vocab_set: VocabSet, mode: StudyMode):
    if mode in (StudyMode.REVIEW, StudyMode.DUE):
        return QuizFactory.create(mode).select_items(vocab_set)
    return vocab_set.items


def build_session(vocab_set: VocabSet, request: StartSessionRequest) -> QuizSession:
    mode = request.mode
    if mode == StudyMode.LIGHTNING:
        session = LightningSession(
            LoopScheduler(),
            settings.LIGHTNING_SECONDS,
            evaluator=evaluator,
            on_complete=record_result,
            set_id=vocab_set.id,
        )
        generator = QuizFactory.create(mode)
        generator.repeat = settings.LIGHTNING_REPEAT
        session.start(generator.generate(vocab_set, request.types, request.count))
        return session

    if mode == StudyMode.FLASHCARD:
        session = FlashcardSession(
            evaluator=evaluator, on_complete=record_result, set_id=vocab_set.id
        )
        session.on_review.append(
            lambda item, known: record_review(vocab_set.id, item, known)
        )
        count = request.count or len(vocab_set.items)
        session.start(generate(vocab_set.items, [QuestionType.MEANING], count))
        return session

    if mode == StudyMode.MATCHING:
        session = MatchingSession(
            evaluator=evaluator, on_complete=record_result, set_id=vocab_set.id
        )
        session.start(in_set_order(vocab_set.items, QuestionType.MEANING, None, []))
        return session

    if mode == StudyMode.WRITING:
        session = WritingSession(
            request.practice,
            evaluator=evaluator,
            on_complete=record_result,
            set_id=vocab_set.id,
        )
        session.start(in_set_order(vocab_set.items, session.practice, None, []))
        return session

    session = QuizSession(
        evaluator=evaluator, on_complete=record_result, set_id=vocab_set.id
    )
    questions = QuizFactory.create(mode).generate(
        vocab_set, request.types, request.count or settings.QUIZ_SIZE
    )
    session.start(questions)
    return session


def session_view(session: QuizSession) -> Dict[str, Any]:
    index, total = session.progress
    view: Dict[str, Any] = {
        "state": session.state.value,
        "mode": session.mode.value,
        "current_index": index,
        "total_questions": total,
        "question": None,
        "answer_record": None,
        "result": None,
    }
    question = session.current_question
    if question is not None:
        view["question"] = {
            "type": question.type.value,
            "prompt": question.prompt,
            "options": question.options if session.shows_options else [],
        }
        if question.user_answer is not None:
            view["answer_record"] = answer_record(question)
    if isinstance(session, LightningSession):
        view["remaining_seconds"] = session.remaining_seconds
    if isinstance(session, WritingSession):
        view["practice"] = session.practice.value
    if isinstance(session, MatchingSession):
        view["board"] = matching_board(session)
    if session.result is not None:
        view["result"] = {
            "score": session.result.score,
            "total": session.result.total,
            "score_percentage": session.result.percentage,
            "answers": [answer_record(q) for q in session.result.questions],
        }
    return view


def matching_board(session: MatchingSession) -> Dict[str, Any]:
    return {
        "words": [
            {
                "id": q.item.id,
                "hanzi": q.item.hanzi,
                "matched": q.item.id in session.matched_words,
            }
            for q in session.questions
        ],
        "meanings": [
            {
                "card": index,
                "meaning": card.correct_answer,
                "matched": index in session.matched_cards,
            }
            for index, card in enumerate(session.cards)
        ],
        "mistakes": session.mistakes,
    }


def answer_record(question) -> AnswerRecord:
    return AnswerRecord(
        prompt=question.prompt,
        user_answer=question.user_answer,
        correct_answer=question.correct_answer,
        is_correct=evaluator.is_correct(question, question.user_answer),
    )


def invalid_state(e: InvalidStateError) -> JSONResponse:
    logger.warning(f"Rejected transition: {e}")
    return JSONResponse({"error": str(e)}, status_code=409)


def not_enough_words(count: int) -> JSONResponse:
    return JSONResponse(
        {
            "error": f"A session needs at least {settings.MIN_QUIZ_ITEMS} words.",
            "available": count,
        },
        status_code=400,
    )


def open_session(response: Response, active: ActiveSession, old_id: Optional[str]):
    if old_id in sessions:
        sessions.pop(old_id).cancel()
    new_id = str(uuid.uuid4())
    sessions[new_id] = active
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=new_id,
        httponly=True,
        samesite="Lax",
    )
    return new_id


# --- Vocabulary ---
@router.get("/sets")
async def list_sets():
    return vocab_manager.get_topics()


@router.get("/sets/{set_id}")
async def get_set(set_id: str):
    try:
        return vocab_manager.load_set(set_id)
    except SetNotFoundError as e:
        return JSONResponse({"error": str(e)}, status_code=404)


@router.get("/sets/{set_id}/progress")
async def get_set_progress(set_id: str):
    try:
        vocab_set = vocab_manager.load_set(set_id)
    except SetNotFoundError as e:
        return JSONResponse({"error": str(e)}, status_code=404)
    return {
        "review": srs_scheduler.review_progress(vocab_set),
        "mastery": srs_scheduler.bucketize([vocab_set]),
    }


@router.get("/sets/{set_id}/history")
async def get_set_history(set_id: str):
    return database.get_history(set_id)


@router.post("/items/{set_id}/{item_id}/review-toggle")
async def toggle_review(set_id: str, item_id: str):
    try:
        return vocab_manager.toggle_needs_review(set_id, item_id)
    except (SetNotFoundError, ItemNotFoundError) as e:
        return JSONResponse({"error": str(e)}, status_code=404)


# --- Review and mastery ---
@router.get("/review/due")
async def get_due_items():
    return srs_scheduler.due_items(vocab_manager.get_sets(), datetime.now())


@router.get("/review/forecast")
async def get_review_forecast(days: int = 7):
    return srs_scheduler.review_forecast(vocab_manager.get_sets(), datetime.now(), days)


@router.get("/mastery")
async def get_mastery():
    return srs_scheduler.bucketize(vocab_manager.get_sets())


@router.post("/pinyin/normalize")
async def normalize_pinyin(body: NormalizeRequest):
    return {"text": normalize(body.text)}


# --- Single-mode sessions ---
@router.post("/sessions")
async def start_session(
    body: StartSessionRequest,
    response: Response,
    session_id: Optional[str] = Depends(get_session_id),
):
    try:
        vocab_set = vocab_manager.load_set(body.set_id)
    except SetNotFoundError as e:
        return JSONResponse({"error": str(e)}, status_code=404)

    available = len(usable_items(vocab_set, body.mode))
    if available < settings.MIN_QUIZ_ITEMS:
        return not_enough_words(available)

    session = build_session(vocab_set, body)
    active = ActiveSession(vocab_set.id, session=session)
    new_id = open_session(response, active, session_id)
    logger.info(f"New session: {new_id} [Set: {vocab_set.id}, Mode: {body.mode.value}]")
    return session_view(session)


@router.get("/sessions/current")
async def get_current_session(session_id: Optional[str] = Depends(get_session_id)):
    active = get_active_session(session_id)
    if not active or active.session is None:
        return JSONResponse({"error": "Session invalid"}, status_code=401)
    return session_view(active.session)


@router.post("/sessions/current/answer")
async def submit_answer(
    body: AnswerRequest, session_id: Optional[str] = Depends(get_session_id)
):
    active = get_active_session(session_id)
    if not active or active.session is None:
        return JSONResponse({"error": "Session invalid"}, status_code=401)
    session = active.session
    try:
        if isinstance(session, FlashcardSession) and body.known is not None:
            session.submit_recall(body.known)
        else:
            session.submit(body.answer)
    except InvalidStateError as e:
        return invalid_state(e)
    return answer_record(session.answered[-1])


@router.post("/sessions/current/match")
async def match_pair(
    body: MatchRequest, session_id: Optional[str] = Depends(get_session_id)
):
    active = get_active_session(session_id)
    if not active or active.session is None:
        return JSONResponse({"error": "Session invalid"}, status_code=401)
    session = active.session
    if not isinstance(session, MatchingSession):
        return JSONResponse({"error": "Not a matching session"}, status_code=409)
    try:
        correct = session.match(body.item_id, body.card)
    except InvalidStateError as e:
        return invalid_state(e)
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    return {"correct": correct, "session": session_view(session)}


@router.post("/sessions/current/advance")
async def advance_session(session_id: Optional[str] = Depends(get_session_id)):
    active = get_active_session(session_id)
    if not active or active.session is None:
        return JSONResponse({"error": "Session invalid"}, status_code=401)
    session = active.session
    try:
        session.advance()
    except InvalidStateError as e:
        return invalid_state(e)
    return session_view(session)


@router.post("/sessions/current/cancel")
async def cancel_session(
    response: Response, session_id: Optional[str] = Depends(get_session_id)
):
    if session_id in sessions:
        sessions.pop(session_id).cancel()
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return {"status": "success"}


# --- Mixed sessions ---
def mixed_view(mixed: MixedStudySession) -> Dict[str, Any]:
    return {
        "current_mode": mixed.current_mode.value if mixed.current_mode else None,
        "current_mode_index": mixed.current_mode_index,
        "completed_modes": [m.value for m in mixed.modes if m in mixed.completed_modes],
        "just_completed": mixed.just_completed,
        "can_advance": mixed.can_advance,
        "is_finished": mixed.is_finished,
        "progress_percentage": mixed.progress_percentage,
        "session": session_view(mixed.session) if mixed.session else None,
    }


def get_mixed(session_id: Optional[str]) -> Optional[MixedStudySession]:
    active = get_active_session(session_id)
    return active.mixed if active else None


@router.post("/mixed")
async def start_mixed(
    body: MixedRequest,
    response: Response,
    session_id: Optional[str] = Depends(get_session_id),
):
    try:
        vocab_set = vocab_manager.load_set(body.set_id)
    except SetNotFoundError as e:
        return JSONResponse({"error": str(e)}, status_code=404)
    if len(vocab_set.items) < settings.MIN_QUIZ_ITEMS:
        return not_enough_words(len(vocab_set.items))

    scheduler = LoopScheduler()
    factory = default_session_factory(
        vocab_set,
        scheduler,
        evaluator=evaluator,
        lightning_seconds=settings.LIGHTNING_SECONDS,
        quiz_size=settings.QUIZ_SIZE,
        writing_practice=body.practice,
        on_complete=database.save_quiz_result,
        on_review=lambda item, known: record_review(vocab_set.id, item, known),
    )
    mixed = MixedStudySession(
        factory, scheduler, cooldown=settings.MODE_COOLDOWN_SECONDS
    )
    # Mastery moves once per sitting, after the last mode.
    mixed.on_all_complete.append(lambda: apply_mastery(vocab_set.id, mixed.results))
    mixed.start()
    active = ActiveSession(vocab_set.id, mixed=mixed)
    new_id = open_session(response, active, session_id)
    logger.info(f"New mixed session: {new_id} [Set: {vocab_set.id}]")
    return mixed_view(mixed)


@router.get("/mixed")
async def get_mixed_state(session_id: Optional[str] = Depends(get_session_id)):
    mixed = get_mixed(session_id)
    if mixed is None:
        return JSONResponse({"error": "Session invalid"}, status_code=401)
    return mixed_view(mixed)


@router.post("/mixed/next")
async def next_mode(session_id: Optional[str] = Depends(get_session_id)):
    mixed = get_mixed(session_id)
    if mixed is None:
        return JSONResponse({"error": "Session invalid"}, status_code=401)
    if not mixed.advance_now():
        return JSONResponse({"error": "Current mode is not complete"}, status_code=409)
    return mixed_view(mixed)


@router.post("/mixed/restart")
async def restart_mixed(session_id: Optional[str] = Depends(get_session_id)):
    mixed = get_mixed(session_id)
    if mixed is None:
        return JSONResponse({"error": "Session invalid"}, status_code=401)
    mixed.restart()
    return mixed_view(mixed)
