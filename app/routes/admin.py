"""Admin endpoints.

Option management, responses and exports, rating analytics, GM assignments,
GM interest maintenance and the coupon code pool. Survey-scoped endpoints
take an optional ``survey_id`` and default to the configured survey.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.database import get_db
from app.schemas.api import (
    CouponAssignRequest,
    CouponMarkUsedRequest,
    CouponOut,
    CouponUploadRequest,
    GMAdventureCreateRequest,
    GMConventionCreateRequest,
    OptionCreateRequest,
    OptionOut,
    OptionUpdateRequest,
    QuestionOut,
)
from app.services.analytics import AnalyticsService
from app.services.associations import (
    AssociationError,
    AssociationExistsError,
    AssociationNotFoundError,
    AssociationService,
    OptionNotFoundError,
)
from app.services.coupons import (
    CouponNotFoundError,
    CouponResponseNotFoundError,
    CouponService,
    NoCouponAvailableError,
)
from app.services.csv_export import CSVExporter, export_filename
from app.services.gm_interest import GMInterestService
from app.services.survey_store import QuestionNotFoundError, SurveyNotFoundError, SurveyStore
from app.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/admin")


def _survey_id(survey_id: Optional[int]) -> int:
    return survey_id or get_settings().default_survey_id


def _csv(content: str, prefix: str) -> Response:
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{export_filename(prefix)}"'},
    )


# Questions and options

@router.get("/questions", response_model=list[QuestionOut])
async def list_questions(survey_id: Optional[int] = None, db: Session = Depends(get_db)) -> list:
    """Questions with their options, in display order."""
    try:
        return SurveyStore(db).list_questions(_survey_id(survey_id))
    except SurveyNotFoundError:
        raise HTTPException(status_code=404, detail="Survey not found")


@router.post("/options", response_model=OptionOut)
async def add_option(body: OptionCreateRequest, db: Session = Depends(get_db)):
    """Append an option to a question."""
    try:
        return SurveyStore(db).add_option(body.question_id, body.option_text)
    except QuestionNotFoundError:
        raise HTTPException(status_code=404, detail="Question not found")


@router.put("/options", response_model=OptionOut)
async def update_option(body: OptionUpdateRequest, db: Session = Depends(get_db)):
    """Rename an option; its stored value is kept."""
    try:
        return SurveyStore(db).update_option_text(body.option_id, body.option_text)
    except OptionNotFoundError:
        raise HTTPException(status_code=404, detail="Option not found")


@router.delete("/options")
async def delete_option(option_id: int = Query(..., ge=1), db: Session = Depends(get_db)) -> dict:
    try:
        SurveyStore(db).delete_option(option_id)
    except OptionNotFoundError:
        raise HTTPException(status_code=404, detail="Option not found")
    return {"success": True}


# Responses and exports

@router.get("/responses")
async def list_responses(
    survey_id: Optional[int] = None,
    limit: int = Query(1000, ge=1, le=10000),
    db: Session = Depends(get_db),
) -> list[dict]:
    """Latest responses with answers."""
    return SurveyStore(db).list_responses(_survey_id(survey_id), limit=limit)


@router.delete("/clear-database")
async def clear_database(db: Session = Depends(get_db)) -> dict:
    """Delete every response. Options, assignments and coupon codes stay."""
    deleted = SurveyStore(db).clear_responses()
    return {"success": True, "message": "Database cleared successfully", "deleted": deleted}


@router.get("/export-csv")
async def export_csv(survey_id: Optional[int] = None, db: Session = Depends(get_db)) -> Response:
    return _csv(CSVExporter(db).responses_csv(_survey_id(survey_id)), "survey-responses")


@router.get("/export-gm-interest-csv")
async def export_gm_interest_csv(db: Session = Depends(get_db)) -> Response:
    return _csv(CSVExporter(db).gm_interest_csv(), "gm-interest")


# Analytics

@router.get("/rating-data")
async def rating_data(
    convention: Optional[str] = None,
    survey_id: Optional[int] = None,
    db: Session = Depends(get_db),
) -> dict:
    """Rating distributions, optionally for one convention."""
    return AnalyticsService(db, survey_id).rating_data(convention)


@router.get("/conventions")
async def conventions(survey_id: Optional[int] = None, db: Session = Depends(get_db)) -> list[dict]:
    return AnalyticsService(db, survey_id).conventions()


@router.get("/adventures")
async def adventures(survey_id: Optional[int] = None, db: Session = Depends(get_db)) -> list[str]:
    return AnalyticsService(db, survey_id).adventures()


# GM assignments

@router.get("/gms-by-convention")
async def admin_gms_by_convention(
    convention: str = Query(..., min_length=1),
    survey_id: Optional[int] = None,
    db: Session = Depends(get_db),
) -> dict:
    filtered = AssociationService(db, survey_id).filter_gms(convention)
    return {
        "gms": [OptionOut.model_validate(o).model_dump() for o in filtered.options],
        "message": filtered.empty_message,
    }


@router.get("/adventures-by-gm")
async def admin_adventures_by_gm(
    gm_id: int = Query(..., ge=1),
    convention: Optional[str] = None,
    survey_id: Optional[int] = None,
    db: Session = Depends(get_db),
) -> dict:
    filtered = AssociationService(db, survey_id).filter_adventures(
        convention=convention, gm_option_id=gm_id
    )
    return {
        "adventures": [OptionOut.model_validate(o).model_dump() for o in filtered.options],
        "message": filtered.empty_message,
    }


@router.get("/gm-conventions")
async def list_gm_conventions(survey_id: Optional[int] = None, db: Session = Depends(get_db)) -> list[dict]:
    return AssociationService(db, survey_id).list_gm_conventions()


@router.post("/gm-conventions", status_code=201)
async def create_gm_convention(
    body: GMConventionCreateRequest,
    survey_id: Optional[int] = None,
    db: Session = Depends(get_db),
) -> dict:
    """Assign a GM to a convention."""
    try:
        pair = AssociationService(db, survey_id).create_gm_convention(
            body.gm_option_id, body.convention_option_id
        )
    except OptionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except AssociationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AssociationExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return {
        "id": pair.id,
        "gm_option_id": pair.gm_option_id,
        "convention_option_id": pair.convention_option_id,
    }


@router.delete("/gm-conventions")
async def delete_gm_convention(id: int = Query(..., ge=1), db: Session = Depends(get_db)) -> dict:
    """Remove a GM-convention pair and its adventure assignments."""
    try:
        AssociationService(db).delete_gm_convention(id)
    except AssociationNotFoundError:
        raise HTTPException(status_code=404, detail="Association not found")
    return {"success": True}


@router.get("/gm-adventures")
async def list_gm_adventures(
    gm_option_id: Optional[int] = None,
    convention_option_id: Optional[int] = None,
    survey_id: Optional[int] = None,
    db: Session = Depends(get_db),
) -> list[dict]:
    return AssociationService(db, survey_id).list_gm_adventures(gm_option_id, convention_option_id)


@router.post("/gm-adventures", status_code=201)
async def create_gm_adventure(
    body: GMAdventureCreateRequest,
    survey_id: Optional[int] = None,
    db: Session = Depends(get_db),
) -> dict:
    """Assign an adventure to a GM at a convention."""
    try:
        triple = AssociationService(db, survey_id).create_gm_adventure(
            body.gm_option_id, body.convention_option_id, body.adventure_option_id
        )
    except OptionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except AssociationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AssociationExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return {
        "id": triple.id,
        "gm_option_id": triple.gm_option_id,
        "convention_option_id": triple.convention_option_id,
        "adventure_option_id": triple.adventure_option_id,
    }


@router.delete("/gm-adventures")
async def delete_gm_adventure(id: int = Query(..., ge=1), db: Session = Depends(get_db)) -> dict:
    try:
        AssociationService(db).delete_gm_adventure(id)
    except AssociationNotFoundError:
        raise HTTPException(status_code=404, detail="Association not found")
    return {"success": True}


# GM interest

@router.get("/gm-interest")
async def list_gm_interest(db: Session = Depends(get_db)) -> list[dict]:
    return GMInterestService(db).list()


@router.post("/reprocess-gm-interest")
async def reprocess_gm_interest(survey_id: Optional[int] = None, db: Session = Depends(get_db)) -> dict:
    """Rebuild GM interest rows from contact answers."""
    try:
        result = GMInterestService(db).reprocess(survey_id)
    except SurveyNotFoundError:
        raise HTTPException(status_code=404, detail="Survey not found")
    return {"success": True, **result}


@router.post("/remove-gm-answers")
async def remove_gm_answers(survey_id: Optional[int] = None, db: Session = Depends(get_db)) -> dict:
    """Delete contact answers once they live in gm_interest."""
    try:
        deleted = GMInterestService(db).remove_volunteer_answers(survey_id)
    except SurveyNotFoundError:
        raise HTTPException(status_code=404, detail="Survey not found")
    return {"success": True, "deleted": deleted}


# Coupon codes

@router.get("/coupon-codes", response_model=list[CouponOut])
async def list_coupon_codes(
    status: Optional[str] = Query(None, pattern="^(available|used|expired)$"),
    db: Session = Depends(get_db),
) -> list:
    return CouponService(db).list(status)


@router.post("/coupon-codes", status_code=201)
async def upload_coupon_codes(body: CouponUploadRequest, db: Session = Depends(get_db)) -> dict:
    """Add codes to the pool; duplicates are reported, not inserted."""
    result = CouponService(db).upload(body.codes, body.notes)
    return {
        "success": True,
        "inserted": len(result["inserted"]),
        "duplicates": result["duplicates"],
        "skipped": result["skipped"],
    }


@router.delete("/coupon-codes")
async def delete_coupon_code(id: int = Query(..., ge=1), db: Session = Depends(get_db)) -> dict:
    try:
        CouponService(db).delete(id)
    except CouponNotFoundError:
        raise HTTPException(status_code=404, detail="Coupon code not found")
    return {"success": True}


@router.post("/coupon-codes/assign")
async def assign_coupon_code(body: CouponAssignRequest, db: Session = Depends(get_db)) -> dict:
    """Assign the next available code to a response."""
    try:
        coupon = CouponService(db).assign(body.response_id)
    except CouponResponseNotFoundError:
        raise HTTPException(status_code=404, detail="Response not found")
    except NoCouponAvailableError:
        raise HTTPException(status_code=404, detail="No available coupon codes")

    return {"success": True, "coupon_code": CouponOut.model_validate(coupon).model_dump()}


@router.post("/coupon-codes/mark-used")
async def mark_coupon_used(body: CouponMarkUsedRequest, db: Session = Depends(get_db)) -> dict:
    """Record that a code was copied or emailed."""
    try:
        coupon = CouponService(db).mark_used(body.code, body.action)
    except CouponNotFoundError:
        raise HTTPException(status_code=404, detail="Coupon code not found")

    return {"success": True, "coupon_code": CouponOut.model_validate(coupon).model_dump()}
