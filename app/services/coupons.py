"""Coupon code inventory and allocation.

Codes are uploaded in bulk and handed out one per response. Allocation is a
single UPDATE whose target row is picked with ``FOR UPDATE SKIP LOCKED``, so
concurrent requests never receive the same code and never wait on each
other's locks.
"""

import random
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased

from app.config import get_settings
from app.models.coupon import CouponCode, CouponDelivery, CouponStatus
from app.models.response import Response
from app.schemas.api import IssuedCoupon
from app.logging_config import get_logger

logger = get_logger(__name__)

COUPON_ACTIONS = {"copied": "copied_at", "emailed": "emailed_at"}


class NoCouponAvailableError(Exception):
    """Raised when the pool has no assignable code."""
    pass


class CouponNotFoundError(Exception):
    """Raised when a coupon code does not exist."""
    pass


class CouponResponseNotFoundError(Exception):
    """Raised when a coupon operation names an unknown response."""
    pass


def normalize_code(code: str) -> str:
    """Codes are compared and stored trimmed and uppercase."""
    return code.strip().upper()


class CouponService:
    """Service for the coupon code pool."""

    def __init__(self, db: Session):
        """Initialize coupon service.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db
        self.settings = get_settings()

    def require_response(self, response_id: int) -> Response:
        """Load a response or raise CouponResponseNotFoundError."""
        response = self.db.get(Response, response_id)
        if response is None:
            raise CouponResponseNotFoundError(f"Response {response_id} not found")
        return response

    def upload(self, codes: list[str], notes: Optional[str] = None) -> dict:
        """Add codes to the pool.

        Blank entries are skipped; codes already in the pool (or repeated in
        the upload) are reported as duplicates and not inserted.

        Returns:
            Dict with inserted codes, duplicate codes and skipped blank count
        """
        expires_at = datetime.now(timezone.utc) + timedelta(days=self.settings.coupon_expiry_days)

        cleaned = [normalize_code(code) for code in codes]
        skipped = sum(1 for code in cleaned if not code)
        wanted = [code for code in cleaned if code]

        existing = set(self.db.execute(
            select(CouponCode.code).where(CouponCode.code.in_(sorted(set(wanted))))
        ).scalars().all()) if wanted else set()

        inserted: list[str] = []
        duplicates: list[str] = []
        for code in wanted:
            if code in existing or code in inserted:
                duplicates.append(code)
                continue
            self.db.add(CouponCode(
                code=code,
                status=CouponStatus.AVAILABLE.value,
                expires_at=expires_at,
                notes=notes,
            ))
            inserted.append(code)

        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Uploaded {len(inserted)} coupon codes "
            f"({len(duplicates)} duplicates, {skipped} blank)"
        )
        return {"inserted": inserted, "duplicates": duplicates, "skipped": skipped}

    def list(self, status: Optional[str] = None) -> list[CouponCode]:
        """All codes, newest first, with stored status brought up to date.

        Args:
            status: Only return codes with this status

        Returns:
            Coupon codes
        """
        now = datetime.now(timezone.utc)
        coupons = self.db.execute(
            select(CouponCode).order_by(CouponCode.created_at.desc(), CouponCode.id.desc())
        ).scalars().all()

        changed = 0
        for coupon in coupons:
            actual = coupon.computed_status(now).value
            if coupon.status != actual:
                coupon.status = actual
                changed += 1
        if changed:
            self.db.commit()
            logger.info(f"Updated status of {changed} coupon codes")

        if status:
            coupons = [c for c in coupons if c.status == status]
        return list(coupons)

    def delete(self, coupon_id: int) -> None:
        """Remove a code from the pool.

        Raises:
            CouponNotFoundError: If the code does not exist
        """
        coupon = self.db.get(CouponCode, coupon_id)
        if coupon is None:
            raise CouponNotFoundError(f"Coupon code {coupon_id} not found")
        self.db.delete(coupon)
        self.db.commit()
        logger.info(f"Deleted coupon code {coupon_id}")

    def assign(self, response_id: int) -> CouponCode:
        """Assign a code to a response.

        A response keeps the code it already has. Otherwise the oldest
        assignable code is claimed in one statement; the unique index on
        ``response_id`` stops two concurrent calls for the same response
        from both claiming a code:

            UPDATE coupon_codes SET response_id = :r, assigned_at = :now
            WHERE id = (SELECT id FROM coupon_codes WHERE <assignable>
                        ORDER BY created_at LIMIT 1 FOR UPDATE SKIP LOCKED)
            RETURNING id

        Args:
            response_id: Response receiving the code

        Returns:
            The assigned CouponCode

        Raises:
            CouponResponseNotFoundError: If the response does not exist
            NoCouponAvailableError: If no code can be assigned
        """
        self.require_response(response_id)

        existing = self.assigned_to(response_id)
        if existing is not None:
            logger.debug(f"Response {response_id} already has coupon {existing.id}")
            return existing

        now = datetime.now(timezone.utc)
        # aliased so the subquery is not correlated to the UPDATE target
        pool = aliased(CouponCode)
        candidate = (
            select(pool.id)
            .where(
                pool.status == CouponStatus.AVAILABLE.value,
                pool.expires_at > now,
                pool.copied_at.is_(None),
                pool.emailed_at.is_(None),
                pool.response_id.is_(None),
            )
            .order_by(pool.created_at, pool.id)
            .limit(1)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        stmt = (
            update(CouponCode)
            .where(CouponCode.id == candidate)
            .values(response_id=response_id, assigned_at=now)
            .returning(CouponCode.id)
            .execution_options(synchronize_session=False)
        )

        try:
            coupon_id = self.db.execute(stmt).scalar_one_or_none()
            self.db.commit()
        except IntegrityError:
            # a concurrent request assigned a code to this response first
            self.db.rollback()
            existing = self.assigned_to(response_id)
            if existing is None:
                raise
            logger.info(f"Response {response_id} was assigned coupon {existing.id} concurrently")
            return existing
        except Exception:
            self.db.rollback()
            raise

        if coupon_id is None:
            logger.warning(f"No coupon codes available for response {response_id}")
            raise NoCouponAvailableError("No available coupon codes")

        coupon = self.db.get(CouponCode, coupon_id, populate_existing=True)
        logger.info(f"Assigned coupon {coupon_id} to response {response_id}")
        return coupon

    def assigned_to(self, response_id: int) -> Optional[CouponCode]:
        """Code already assigned to a response, if any."""
        return self.db.execute(
            select(CouponCode).where(CouponCode.response_id == response_id)
        ).scalar_one_or_none()

    def allocate_or_placeholder(self, response_id: int) -> IssuedCoupon:
        """Assign a code, or make up a placeholder when the pool is empty.

        Placeholders look like real codes (GM12345) but are never stored and
        cannot be redeemed.
        """
        try:
            coupon = self.assign(response_id)
        except NoCouponAvailableError:
            code = f"{self.settings.coupon_placeholder_prefix}{random.randint(10000, 99999)}"
            logger.warning(f"Coupon pool exhausted, issued placeholder {code} to response {response_id}")
            return IssuedCoupon(code=code, placeholder=True)
        return IssuedCoupon(code=coupon.code, placeholder=False)

    def mark_used(self, code: str, action: str) -> CouponCode:
        """Record that a code was copied or emailed.

        Args:
            code: Coupon code (any case)
            action: "copied" or "emailed"

        Raises:
            ValueError: If the action is unknown
            CouponNotFoundError: If the code does not exist
        """
        column = COUPON_ACTIONS.get(action)
        if column is None:
            raise ValueError('action must be "copied" or "emailed"')

        coupon = self.db.execute(
            select(CouponCode).where(CouponCode.code == normalize_code(code))
        ).scalar_one_or_none()
        if coupon is None:
            raise CouponNotFoundError(f"Coupon code {code} not found")

        setattr(coupon, column, datetime.now(timezone.utc))
        coupon.status = CouponStatus.USED.value
        self.db.commit()

        logger.info(f"Coupon {coupon.id} marked {action}")
        return coupon

    def record_delivery(
        self,
        response_id: int,
        coupon_code: str,
        email_address: Optional[str] = None,
    ) -> CouponDelivery:
        """Record how the coupon of a response was delivered.

        One row per response; a later email delivery updates the row and
        keeps the earlier address when none is given.

        Raises:
            CouponResponseNotFoundError: If the response does not exist
        """
        self.require_response(response_id)

        delivery = self.db.execute(
            select(CouponDelivery).where(CouponDelivery.response_id == response_id)
        ).scalar_one_or_none()

        if delivery is None:
            delivery = CouponDelivery(
                response_id=response_id,
                coupon_code=coupon_code,
                email_sent=bool(email_address),
                email_address=email_address,
            )
            self.db.add(delivery)
        elif email_address:
            delivery.email_sent = True
            delivery.email_address = email_address

        self.db.commit()
        logger.info(f"Recorded coupon delivery for response {response_id} (email={bool(email_address)})")
        return delivery
