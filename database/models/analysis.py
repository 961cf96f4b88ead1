"""
AI analysis record model for the three-step funnel analysis workflow.
"""

from datetime import date, datetime
from enum import IntEnum, StrEnum
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, JSONType, utcnow

if TYPE_CHECKING:
    from .funnel import Funnel


class AnalysisStep(IntEnum):
    """Workflow step a record belongs to."""

    KEY_INSIGHTS = 1
    STRATEGY_OPTIONS = 2
    COMPLETE_REPORT = 3


class StrategyChoice(StrEnum):
    """Strategy the user picks before the complete report."""

    STABLE = "stable"
    AGGRESSIVE = "aggressive"


class AnalysisRecord(Base):
    """
    Output of one successful workflow step.

    Records are immutable: regenerating a step inserts a new row and the
    newest row per (user, funnel, period, step) is the current one.
    """

    __tablename__ = "analysis_records"

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
    funnel_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("funnels.id", ondelete="CASCADE"),
        nullable=False,
    )
    dataset_period_start: Mapped[date] = mapped_column(Date, nullable=False)
    step: Mapped[int] = mapped_column(Integer, nullable=False)

    # Previous step's record in the chain
    parent_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("analysis_records.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Context sent to the LLM and validated step output
    input: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    output: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)

    selected_strategy: Mapped[str | None] = mapped_column(String(20), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="completed", nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    funnel: Mapped["Funnel"] = relationship("Funnel", lazy="joined")

    def __repr__(self) -> str:
        return f"<AnalysisRecord(id={self.id}, step={self.step}, period={self.dataset_period_start})>"


# Indexes
Index(
    "idx_analysis_records_lookup",
    AnalysisRecord.user_id,
    AnalysisRecord.funnel_id,
    AnalysisRecord.dataset_period_start,
    AnalysisRecord.step,
)
Index("idx_analysis_records_user_step", AnalysisRecord.user_id, AnalysisRecord.step)
