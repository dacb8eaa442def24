"""Public endpoint for volunteer-as-GM contact details."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.models.database import get_db
from app.schemas.api import GMInterestRequest
from app.services.gm_interest import GMInterestService
from app.services.survey_store import ResponseNotFoundError

router = APIRouter(prefix="/api/gm-interest")


@router.post("/submit")
async def submit_gm_interest(body: GMInterestRequest, db: Session = Depends(get_db)) -> dict:
    """Store contact details for a response; resubmitting replaces them."""
    try:
        record = GMInterestService(db).submit(
            body.response_id, body.first_name, body.last_name, body.email
        )
    except ResponseNotFoundError:
        raise HTTPException(status_code=404, detail="Response not found")

    return {"success": True, "id": record.id}
