"""Coupon email delivery.

Emails are rendered from ``coupon_email.txt`` and handed to the outgoing
mail log; no mail transport is wired up yet, so the message is logged and
the delivery is recorded as if sent.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.coupon import CouponCode
from app.services.coupons import CouponService, normalize_code
from app.services.template_renderer import get_template_renderer
from app.services.validation import EMAIL_PATTERN
from app.logging_config import get_logger

logger = get_logger(__name__)

SUBJECT_TEMPLATE = "Your {{ coupon_value }} Everyday Heroes coupon"


class InvalidEmailError(Exception):
    """Raised when the recipient address is unusable."""
    pass


@dataclass
class CouponEmail:
    """A rendered coupon email."""
    sender: str
    recipient: str
    subject: str
    body: str


class CouponMailer:
    """Service for emailing coupon codes to respondents."""

    def __init__(self, db: Session):
        """Initialize coupon mailer.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db
        self.settings = get_settings()
        self.renderer = get_template_renderer()

    def compose(self, email: str, coupon_code: str, convention: Optional[str] = None) -> CouponEmail:
        """Render the email for a coupon code.

        Raises:
            InvalidEmailError: If the address is not a plausible email
        """
        email = (email or "").strip()
        if not EMAIL_PATTERN.match(email):
            raise InvalidEmailError("Invalid email address")

        code = normalize_code(coupon_code)
        coupon = self.db.execute(
            select(CouponCode).where(CouponCode.code == code)
        ).scalar_one_or_none()

        context = {
            "coupon_code": code,
            "coupon_value": self.settings.coupon_value,
            "redeem_site": self.settings.coupon_redeem_site,
            "convention": convention,
            "expires_at": coupon.expires_at.date().isoformat() if coupon and coupon.expires_at else None,
        }
        return CouponEmail(
            sender=self.settings.email_from,
            recipient=email,
            subject=self.renderer.render_string(SUBJECT_TEMPLATE, context),
            body=self.renderer.render("coupon_email.txt", context),
        )

    def send(
        self,
        email: str,
        coupon_code: str,
        response_id: Optional[int] = None,
        convention: Optional[str] = None,
    ) -> CouponEmail:
        """Email a coupon code.

        The code is marked emailed when it belongs to the pool (placeholder
        codes do not), and the delivery is recorded when a response is given.

        Returns:
            The rendered email

        Raises:
            InvalidEmailError: If the address is unusable
            CouponResponseNotFoundError: If the response does not exist; the
                code is left untouched
        """
        message = self.compose(email, coupon_code, convention)

        coupons = CouponService(self.db)
        if response_id is not None:
            coupons.require_response(response_id)

        logger.info(
            f"Coupon email to {message.recipient} from {message.sender}: "
            f"{message.subject!r} ({len(message.body)} chars)"
        )

        code = normalize_code(coupon_code)
        in_pool = self.db.execute(
            select(CouponCode.id).where(CouponCode.code == code)
        ).scalar_one_or_none()
        if in_pool is not None:
            coupons.mark_used(code, "emailed")
        else:
            logger.info(f"Coupon {code} is not in the pool, not marking it emailed")

        if response_id is not None:
            coupons.record_delivery(response_id, code, message.recipient)

        return message
