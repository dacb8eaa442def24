"""Public coupon endpoints: delivery tracking and coupon email."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.models.database import get_db
from app.schemas.api import CouponDeliverRequest, SendCouponEmailRequest
from app.services.coupon_mailer import CouponMailer, InvalidEmailError
from app.services.coupons import CouponResponseNotFoundError, CouponService
from app.services.template_renderer import TemplateRenderError
from app.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api")


@router.post("/coupon/deliver")
async def deliver_coupon(body: CouponDeliverRequest, db: Session = Depends(get_db)) -> dict:
    """Record how a respondent received their coupon."""
    try:
        delivery = CouponService(db).record_delivery(
            body.response_id, body.coupon_code, body.email_address
        )
    except CouponResponseNotFoundError:
        raise HTTPException(status_code=404, detail="Response not found")

    return {
        "success": True,
        "delivery": {
            "id": delivery.id,
            "response_id": delivery.response_id,
            "coupon_code": delivery.coupon_code,
            "email_sent": delivery.email_sent,
            "email_address": delivery.email_address,
            "delivered_at": delivery.delivered_at,
        },
    }


@router.post("/send-coupon-email")
async def send_coupon_email(body: SendCouponEmailRequest, db: Session = Depends(get_db)) -> dict:
    """Email a coupon code to the respondent."""
    try:
        CouponMailer(db).send(body.email, body.coupon_code, response_id=body.response_id)
    except InvalidEmailError:
        raise HTTPException(status_code=400, detail="Invalid email address")
    except CouponResponseNotFoundError:
        raise HTTPException(status_code=404, detail="Response not found")
    except TemplateRenderError as e:
        logger.error(f"Coupon email could not be rendered: {e}")
        raise HTTPException(status_code=500, detail="Email could not be prepared")

    return {"success": True, "message": "Email sent successfully"}
