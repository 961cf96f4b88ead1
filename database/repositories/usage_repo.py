"""
Usage repository for the append-only AI usage ledger.
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import UsageEvent


class UsageRepository:
    """Repository for UsageEvent model operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def record_usage(
        self,
        user_id: UUID,
        usage_type: str,
        request_count: int,
        usage_date: date,
        token_count: int | None = None,
        cost: Decimal | None = None,
        session_id: UUID | None = None,
    ) -> UsageEvent:
        """Append a usage event."""
        event = UsageEvent(
            user_id=user_id,
            session_id=session_id,
            usage_type=usage_type,
            request_count=request_count,
            token_count=token_count,
            cost=cost,
            usage_date=usage_date,
        )
        self.session.add(event)
        await self.session.flush()
        return event

    async def record_many(self, events: list[UsageEvent]) -> list[UsageEvent]:
        """Append several usage events in one flush."""
        self.session.add_all(events)
        await self.session.flush()
        return events

    async def list_events(
        self,
        user_id: UUID,
        usage_date: date | None = None,
    ) -> list[UsageEvent]:
        """List a user's events, optionally for a single day."""
        query = select(UsageEvent).where(UsageEvent.user_id == user_id)
        if usage_date is not None:
            query = query.where(UsageEvent.usage_date == usage_date)
        query = query.order_by(UsageEvent.created_at)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_daily_stats(self, user_id: UUID, usage_date: date) -> dict:
        """
        Get usage statistics for one day.

        Returns:
            Dict with date, request_count, token_count, cost, event_count
            and usage_by_type
        """
        day_filter = and_(
            UsageEvent.user_id == user_id,
            UsageEvent.usage_date == usage_date,
        )

        total_query = select(
            func.coalesce(func.sum(UsageEvent.request_count), 0).label("request_count"),
            func.coalesce(func.sum(UsageEvent.token_count), 0).label("token_count"),
            func.coalesce(func.sum(UsageEvent.cost), 0).label("cost"),
            func.count().label("event_count"),
        ).where(day_filter)
        total_result = await self.session.execute(total_query)
        total_row = total_result.one()

        type_query = (
            select(
                UsageEvent.usage_type,
                func.sum(UsageEvent.request_count).label("requests"),
                func.count().label("count"),
            )
            .where(day_filter)
            .group_by(UsageEvent.usage_type)
        )
        type_result = await self.session.execute(type_query)
        usage_by_type = {
            row.usage_type: {"requests": int(row.requests), "count": int(row.count)}
            for row in type_result
        }

        return {
            "date": usage_date.isoformat(),
            "request_count": int(total_row.request_count),
            "token_count": int(total_row.token_count),
            "cost": float(total_row.cost),
            "event_count": int(total_row.event_count),
            "usage_by_type": usage_by_type,
        }

    async def get_usage_history(
        self,
        user_id: UUID,
        today: date,
        days: int = 7,
    ) -> list[dict]:
        """Get daily usage stats for the past N days, newest first."""
        history = []
        for i in range(days):
            stats = await self.get_daily_stats(user_id, today - timedelta(days=i))
            history.append(stats)
        return history
