"""Survey form session endpoints.

A session holds one respondent's progress through the form on the server.
Each action loads the session with a row lock, runs it through the survey
engine and returns the state the form should render next.
"""

from typing import Callable

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.models.database import get_db
from app.models.session import SurveySession
from app.schemas.api import FlowStateOut, SessionAnswerRequest, StartSessionRequest
from app.services.survey_engine import (
    AnswerRejectedError,
    FlowError,
    SessionNotFoundError,
    SurveyEngine,
)
from app.services.survey_store import SurveyNotFoundError
from app.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/survey")


def _run(db: Session, session_id: int, action: Callable[[SurveyEngine, SurveySession], object]) -> FlowStateOut:
    """Lock the session, apply an engine action and describe the result."""
    engine = SurveyEngine(db)
    try:
        session = engine.get_session(session_id, lock=True)
        action(engine, session)
        return engine.describe(session)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")
    except AnswerRejectedError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))
    except FlowError as e:
        db.rollback()
        logger.info(f"Rejected action on session {session_id}: {e}")
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/{survey_id}/sessions", response_model=FlowStateOut, status_code=201)
async def start_session(
    survey_id: int,
    body: StartSessionRequest,
    db: Session = Depends(get_db),
) -> FlowStateOut:
    """Start filling out a survey, optionally at a preselected convention."""
    engine = SurveyEngine(db)
    try:
        session = engine.start(survey_id, convention=body.convention)
    except SurveyNotFoundError:
        raise HTTPException(status_code=404, detail="Survey not found")
    except FlowError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return engine.describe(session)


@router.get("/sessions/{session_id}", response_model=FlowStateOut)
async def get_session_state(session_id: int, db: Session = Depends(get_db)) -> FlowStateOut:
    """Current state of a session."""
    engine = SurveyEngine(db)
    try:
        return engine.describe(engine.get_session(session_id))
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")


@router.post("/sessions/{session_id}/answers", response_model=FlowStateOut)
async def answer_question(
    session_id: int,
    body: SessionAnswerRequest,
    db: Session = Depends(get_db),
) -> FlowStateOut:
    """Answer a shown question."""
    return _run(db, session_id, lambda engine, s: engine.answer(s, body.question_id, body.value))


@router.post("/sessions/{session_id}/next", response_model=FlowStateOut)
async def next_question(session_id: int, db: Session = Depends(get_db)) -> FlowStateOut:
    """Move on; on the recommendation question this submits and shows the coupon."""
    return _run(db, session_id, lambda engine, s: engine.next(s))


@router.post("/sessions/{session_id}/previous", response_model=FlowStateOut)
async def previous_question(session_id: int, db: Session = Depends(get_db)) -> FlowStateOut:
    return _run(db, session_id, lambda engine, s: engine.previous(s))


@router.post("/sessions/{session_id}/resume", response_model=FlowStateOut)
async def resume_survey(session_id: int, db: Session = Depends(get_db)) -> FlowStateOut:
    """Continue with the questions after the coupon screen."""
    return _run(db, session_id, lambda engine, s: engine.resume(s))


@router.post("/sessions/{session_id}/volunteer", response_model=FlowStateOut)
async def volunteer_as_gm(session_id: int, db: Session = Depends(get_db)) -> FlowStateOut:
    """Switch to the volunteer-as-GM questions."""
    return _run(db, session_id, lambda engine, s: engine.volunteer(s))


@router.post("/sessions/{session_id}/submit", response_model=FlowStateOut)
async def submit_session(session_id: int, db: Session = Depends(get_db)) -> FlowStateOut:
    """Finish the survey."""
    return _run(db, session_id, lambda engine, s: engine.submit(s))
