"""Health check endpoint for monitoring and deployment verification.

Verifies the application is running, the database answers, and reports
how many coupon codes are left to hand out.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.coupon import CouponCode, CouponStatus
from app.models.database import get_db
from app.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(db: Session = Depends(get_db)) -> dict:
    """Health check endpoint.

    Returns:
        dict: Health check status with database connection info

    Raises:
        HTTPException: If database connection fails (503 Service Unavailable)

    Example response:
        {
            "status": "healthy",
            "database": "connected",
            "coupons_available": 120
        }
    """
    try:
        db.execute(text("SELECT 1"))
        available = db.execute(
            select(func.count(CouponCode.id)).where(
                CouponCode.status == CouponStatus.AVAILABLE.value,
                CouponCode.response_id.is_(None),
                CouponCode.expires_at > datetime.now(timezone.utc),
            )
        ).scalar_one()
    except SQLAlchemyError as e:
        logger.error(f"Health check failed: {e}")
        raise HTTPException(
            status_code=503,
            detail="Service unavailable - database connection failed"
        )

    if available == 0:
        logger.warning("Health check: coupon pool is empty")

    return {
        "status": "healthy",
        "database": "connected",
        "coupons_available": available,
    }
