"""Public survey endpoints.

Serve a survey with its dropdowns narrowed by earlier choices, accept
submissions from clients that keep their own form state, and answer the
GM/adventure lookups the form makes as the respondent picks options.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from app.models.database import get_db
from app.schemas.api import OptionOut, SubmitSurveyRequest, SurveyOut, UpdateResponseRequest
from app.services.associations import AssociationService
from app.services.survey_store import (
    InvalidAnswerError,
    ResponseNotFoundError,
    SurveyNotFoundError,
    SurveyStore,
)
from app.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/survey")


@router.get("/gms-by-convention")
async def gms_by_convention(
    convention: str = Query(..., min_length=1),
    survey_id: Optional[int] = None,
    db: Session = Depends(get_db),
) -> dict:
    """GMs assigned to a convention.

    Returns an empty list with a placeholder message when the convention is
    unknown or has no GMs; never the full GM list.
    """
    filtered = AssociationService(db, survey_id).filter_gms(convention)
    return {
        "gms": [OptionOut.model_validate(o).model_dump() for o in filtered.options],
        "message": filtered.empty_message,
    }


@router.get("/adventures-by-gm")
async def adventures_by_gm(
    gm_id: Optional[int] = None,
    gm: Optional[str] = None,
    convention: Optional[str] = None,
    survey_id: Optional[int] = None,
    db: Session = Depends(get_db),
) -> dict:
    """Adventures a GM runs, at one convention or across all of them."""
    if gm_id is None and not gm:
        raise HTTPException(status_code=400, detail="gm_id or gm is required")

    filtered = AssociationService(db, survey_id).filter_adventures(
        gm=gm, convention=convention, gm_option_id=gm_id
    )
    return {
        "adventures": [OptionOut.model_validate(o).model_dump() for o in filtered.options],
        "message": filtered.empty_message,
    }


@router.get("/{survey_id}", response_model=SurveyOut)
async def get_survey(
    survey_id: int,
    convention: Optional[str] = None,
    gm_id: Optional[int] = None,
    db: Session = Depends(get_db),
) -> SurveyOut:
    """Survey with ordered questions and options.

    ``convention`` narrows the GM options; ``gm_id`` narrows the adventure
    options.
    """
    try:
        return SurveyStore(db).get_survey_with_questions(
            survey_id, convention=convention, gm_id=gm_id
        )
    except SurveyNotFoundError:
        raise HTTPException(status_code=404, detail="Survey not found")


@router.post("/{survey_id}/submit")
async def submit_survey(
    survey_id: int,
    body: SubmitSurveyRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> dict:
    """Store a response with its answers."""
    respondent = body.respondent_info
    try:
        response = SurveyStore(db).create_response(
            survey_id,
            body.answers,
            respondent_email=respondent.email if respondent else None,
            respondent_name=respondent.name if respondent else None,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )
    except SurveyNotFoundError:
        raise HTTPException(status_code=404, detail="Survey not found")
    except InvalidAnswerError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"success": True, "response_id": response.id}


@router.post("/{survey_id}/update-response")
async def update_response(
    survey_id: int,
    body: UpdateResponseRequest,
    db: Session = Depends(get_db),
) -> dict:
    """Attach more answers to an existing response (second phase)."""
    try:
        added = SurveyStore(db).add_answers(survey_id, body.response_id, body.answers)
    except ResponseNotFoundError:
        raise HTTPException(status_code=404, detail="Response not found")
    except InvalidAnswerError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"success": True, "added": added}
