"""
Funnel, stage node and metric dataset models.

Written by the funnel CRUD layer. Each FunnelMetrics row is one dataset
period snapshot; ``custom_metrics["stageData"]`` maps node id to stage count.
"""

from datetime import date, datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, JSONType, TimestampMixin, UUIDPrimaryKeyMixin, utcnow

if TYPE_CHECKING:
    from .user import User


class Funnel(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Marketing funnel owned by a user."""

    __tablename__ = "funnels"

    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    data_period: Mapped[str] = mapped_column(
        String(20),
        default="monthly",
        nullable=False,
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="funnels")
    nodes: Mapped[list["FunnelNode"]] = relationship(
        "FunnelNode",
        back_populates="funnel",
        cascade="all, delete-orphan",
        order_by="FunnelNode.position",
    )
    metrics: Mapped[list["FunnelMetrics"]] = relationship(
        "FunnelMetrics",
        back_populates="funnel",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Funnel(id={self.id}, name={self.name})>"


class FunnelNode(Base, UUIDPrimaryKeyMixin):
    """One stage of a funnel."""

    __tablename__ = "funnel_nodes"

    funnel_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("funnels.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    funnel: Mapped["Funnel"] = relationship("Funnel", back_populates="nodes")

    def __repr__(self) -> str:
        return f"<FunnelNode(id={self.id}, label={self.label})>"


class FunnelMetrics(Base, UUIDPrimaryKeyMixin):
    """Metric snapshot of a funnel for one dataset period."""

    __tablename__ = "funnel_metrics"

    funnel_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("funnels.id", ondelete="CASCADE"),
        nullable=False,
    )
    period_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    period_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    total_entries: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_conversions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    custom_metrics: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        default=dict,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    funnel: Mapped["Funnel"] = relationship("Funnel", back_populates="metrics")

    @property
    def stage_data(self) -> dict[str, int]:
        """Stage counts keyed by node id."""
        return (self.custom_metrics or {}).get("stageData") or {}

    def __repr__(self) -> str:
        return f"<FunnelMetrics(funnel={self.funnel_id}, period={self.period_start_date})>"


# Indexes
Index("idx_funnel_metrics_funnel_period", FunnelMetrics.funnel_id, FunnelMetrics.period_start_date)
Index("idx_funnel_metrics_funnel_updated", FunnelMetrics.funnel_id, FunnelMetrics.updated_at.desc())
