"""Coupon code inventory and delivery models.

Coupon codes are uploaded in bulk by staff and handed out one per survey
response. A code moves from available to used when the respondent copies or
emails it, or to expired once ``expires_at`` passes.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models.database import Base


class CouponStatus(str, Enum):
    """Lifecycle states of a coupon code."""
    AVAILABLE = "available"
    USED = "used"
    EXPIRED = "expired"


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes read back from the database as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class CouponCode(Base):
    """A single-use coupon code from the shared pool.

    Attributes:
        id: Primary key
        code: Uppercase coupon code (unique)
        status: Stored status, kept in sync by the coupon service
        response_id: Response the code was assigned to (at most one code per response)
        assigned_at: When the code was assigned
        copied_at: When the respondent copied the code
        emailed_at: When the code was emailed to the respondent
        expires_at: Expiry time
        notes: Free-form notes from the upload
        created_at: Upload time, also the allocation order
    """

    __tablename__ = "coupon_codes"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=CouponStatus.AVAILABLE.value,
        server_default=CouponStatus.AVAILABLE.value,
    )
    response_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("responses.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
        index=True,
    )
    assigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    copied_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    emailed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_coupon_codes_allocation", "status", "created_at"),
    )

    def computed_status(self, now: Optional[datetime] = None) -> CouponStatus:
        """Status derived from the timestamps.

        Expiry wins over use: an expired code is expired even if copied.
        """
        now = now or datetime.now(timezone.utc)
        expires_at = as_utc(self.expires_at)
        if expires_at is not None and expires_at < now:
            return CouponStatus.EXPIRED
        if self.copied_at is not None or self.emailed_at is not None:
            return CouponStatus.USED
        return CouponStatus.AVAILABLE

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<CouponCode(id={self.id}, code={self.code}, status={self.status})>"


class CouponDelivery(Base):
    """How a coupon reached the respondent of a response."""

    __tablename__ = "coupon_deliveries"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    response_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("responses.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    coupon_code: Mapped[str] = mapped_column(String(100), nullable=False)
    email_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    email_address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    delivered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<CouponDelivery(response_id={self.response_id}, "
            f"email_sent={self.email_sent})>"
        )
