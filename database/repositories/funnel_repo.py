"""
Funnel repository: read-only access to funnels and their metric datasets.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from database.models import Funnel, FunnelMetrics, Organization, User


class FunnelRepository:
    """Repository for Funnel and FunnelMetrics reads."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_owned_funnel(self, funnel_id: UUID, user_id: UUID) -> Funnel | None:
        """Get a funnel with its nodes, only if the user owns it."""
        query = (
            select(Funnel)
            .where(Funnel.id == funnel_id, Funnel.user_id == user_id)
            .options(selectinload(Funnel.nodes))
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_metrics_for_period(
        self,
        funnel_id: UUID,
        period_start: date,
    ) -> FunnelMetrics | None:
        """Get the dataset of one period (latest update wins on duplicates)."""
        query = (
            select(FunnelMetrics)
            .where(
                FunnelMetrics.funnel_id == funnel_id,
                FunnelMetrics.period_start_date == period_start,
            )
            .order_by(desc(FunnelMetrics.updated_at))
            .limit(1)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_latest_metrics(self, funnel_id: UUID) -> FunnelMetrics | None:
        """Get the most recently updated dataset of a funnel."""
        query = (
            select(FunnelMetrics)
            .where(FunnelMetrics.funnel_id == funnel_id)
            .order_by(desc(FunnelMetrics.updated_at))
            .limit(1)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_previous_metrics(
        self,
        funnel_id: UUID,
        before: date,
    ) -> FunnelMetrics | None:
        """Get the dataset of the period right before ``before``."""
        query = (
            select(FunnelMetrics)
            .where(
                FunnelMetrics.funnel_id == funnel_id,
                FunnelMetrics.period_start_date < before,
            )
            .order_by(desc(FunnelMetrics.period_start_date), desc(FunnelMetrics.updated_at))
            .limit(1)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_organization_for_user(self, user_id: UUID) -> Organization | None:
        """Get the organization of a user, if any."""
        query = (
            select(Organization)
            .join(User, User.organization_id == Organization.id)
            .where(User.id == user_id)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()
