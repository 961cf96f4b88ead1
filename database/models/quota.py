"""
Quota profile and usage event models for AI consumption tracking.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, utcnow

if TYPE_CHECKING:
    from .user import User


class UsageType(StrEnum):
    """Kind of billable AI action."""

    CHAT = "chat"
    ANALYSIS = "analysis"
    RECOMMENDATION = "recommendation"
    GENERAL = "general"


class QuotaProfile(Base, TimestampMixin):
    """
    Rolling daily/monthly AI request counters for one user.

    ``last_reset_daily`` is the calendar day the daily counter belongs to and
    ``last_reset_monthly`` the first day of the month the monthly counter
    belongs to. A counter whose marker is older than the current window is
    stale and reads as zero.
    """

    __tablename__ = "quota_profiles"

    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )

    # Limits
    daily_limit: Mapped[int] = mapped_column(Integer, default=100, nullable=False)
    monthly_limit: Mapped[int] = mapped_column(Integer, default=3000, nullable=False)

    # Counters
    current_daily: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    current_monthly: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Window markers
    last_reset_daily: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    last_reset_monthly: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    # Kill switch
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="quota_profile")

    def __repr__(self) -> str:
        return (
            f"<QuotaProfile(user={self.user_id}, daily={self.current_daily}/{self.daily_limit}, "
            f"monthly={self.current_monthly}/{self.monthly_limit})>"
        )


class UsageEvent(Base):
    """
    Append-only record of one billable AI action.

    Rows are never updated or deleted; they are the audit trail the quota
    counters can be reconciled against.
    """

    __tablename__ = "usage_events"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Workflow correlation only, no ownership
    session_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)

    usage_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    request_count: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    token_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cost: Mapped[Decimal | None] = mapped_column(Numeric(12, 6), nullable=True)
    usage_date: Mapped[date] = mapped_column(Date, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<UsageEvent(id={self.id}, type={self.usage_type}, "
            f"requests={self.request_count}, date={self.usage_date})>"
        )


# Indexes for daily aggregation
Index("idx_usage_events_user_date", UsageEvent.user_id, UsageEvent.usage_date)
