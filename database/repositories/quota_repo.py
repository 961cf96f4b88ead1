"""
Quota repository for per-user rolling AI counters.

Every counter mutation is a single UPDATE statement so the stale-window
reset and the increment are applied atomically by the database.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import Date, case, literal, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import QuotaProfile


def _daily_base(today: date):
    """Daily counter as seen from ``today``: zero when its window is stale."""
    return case(
        (QuotaProfile.last_reset_daily < today, 0),
        else_=QuotaProfile.current_daily,
    )


def _monthly_base(month_start: date):
    """Monthly counter as seen from ``month_start``."""
    return case(
        (QuotaProfile.last_reset_monthly < month_start, 0),
        else_=QuotaProfile.current_monthly,
    )


def _advanced_markers(today: date, month_start: date) -> dict:
    """Marker values after a lazy reset (unchanged when already current)."""
    return {
        "last_reset_daily": case(
            (QuotaProfile.last_reset_daily < today, literal(today, Date)),
            else_=QuotaProfile.last_reset_daily,
        ),
        "last_reset_monthly": case(
            (QuotaProfile.last_reset_monthly < month_start, literal(month_start, Date)),
            else_=QuotaProfile.last_reset_monthly,
        ),
    }


class QuotaRepository:
    """Repository for QuotaProfile model operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_profile(self, user_id: UUID) -> QuotaProfile | None:
        """Get a user's quota profile, refreshed from the database."""
        query = (
            select(QuotaProfile)
            .where(QuotaProfile.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_or_create_profile(
        self,
        user_id: UUID,
        daily_limit: int,
        monthly_limit: int,
        today: date,
        month_start: date,
    ) -> QuotaProfile:
        """
        Get the profile, creating it with default limits on first use.

        A concurrent creator wins the primary key; the loser re-reads.
        """
        profile = await self.get_profile(user_id)
        if profile is not None:
            return profile

        try:
            async with self.session.begin_nested():
                profile = QuotaProfile(
                    user_id=user_id,
                    daily_limit=daily_limit,
                    monthly_limit=monthly_limit,
                    current_daily=0,
                    current_monthly=0,
                    last_reset_daily=today,
                    last_reset_monthly=month_start,
                    is_active=True,
                )
                self.session.add(profile)
                await self.session.flush()
        except IntegrityError:
            profile = await self.get_profile(user_id)
            if profile is None:
                raise
        return profile

    async def try_reserve(
        self,
        user_id: UUID,
        amount: int,
        today: date,
        month_start: date,
    ) -> bool:
        """
        Reset stale windows and add ``amount`` to both counters.

        Only applies when the profile is active and neither counter would
        exceed its limit. Returns whether a row was updated.
        """
        daily_after = _daily_base(today) + amount
        monthly_after = _monthly_base(month_start) + amount

        stmt = (
            update(QuotaProfile)
            .where(
                QuotaProfile.user_id == user_id,
                QuotaProfile.is_active.is_(True),
                daily_after <= QuotaProfile.daily_limit,
                monthly_after <= QuotaProfile.monthly_limit,
            )
            .values(
                current_daily=daily_after,
                current_monthly=monthly_after,
                **_advanced_markers(today, month_start),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def increment(
        self,
        user_id: UUID,
        amount: int,
        today: date,
        month_start: date,
    ) -> bool:
        """Reset stale windows and add ``amount`` without checking limits."""
        stmt = (
            update(QuotaProfile)
            .where(QuotaProfile.user_id == user_id)
            .values(
                current_daily=_daily_base(today) + amount,
                current_monthly=_monthly_base(month_start) + amount,
                **_advanced_markers(today, month_start),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def decrement_current(
        self,
        user_id: UUID,
        amount: int,
        charged_day: date,
        charged_month: date,
    ) -> bool:
        """
        Give back ``amount`` units, clamped at zero.

        Only counters whose marker still equals the charged window are
        decremented.
        """
        stmt = (
            update(QuotaProfile)
            .where(QuotaProfile.user_id == user_id)
            .values(
                current_daily=case(
                    (
                        QuotaProfile.last_reset_daily == charged_day,
                        case(
                            (QuotaProfile.current_daily > amount, QuotaProfile.current_daily - amount),
                            else_=0,
                        ),
                    ),
                    else_=QuotaProfile.current_daily,
                ),
                current_monthly=case(
                    (
                        QuotaProfile.last_reset_monthly == charged_month,
                        case(
                            (QuotaProfile.current_monthly > amount, QuotaProfile.current_monthly - amount),
                            else_=0,
                        ),
                    ),
                    else_=QuotaProfile.current_monthly,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def reset_stale_daily(self, today: date) -> int:
        """Zero every daily counter whose marker is before ``today``."""
        stmt = (
            update(QuotaProfile)
            .where(QuotaProfile.last_reset_daily < today)
            .values(current_daily=0, last_reset_daily=today)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def reset_stale_monthly(self, month_start: date) -> int:
        """Zero every monthly counter whose marker is before ``month_start``."""
        stmt = (
            update(QuotaProfile)
            .where(QuotaProfile.last_reset_monthly < month_start)
            .values(current_monthly=0, last_reset_monthly=month_start)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def update_limits(
        self,
        profile: QuotaProfile,
        daily_limit: int | None = None,
        monthly_limit: int | None = None,
        is_active: bool | None = None,
    ) -> QuotaProfile:
        """Change limits and/or the kill switch of a loaded profile."""
        if daily_limit is not None:
            profile.daily_limit = daily_limit
        if monthly_limit is not None:
            profile.monthly_limit = monthly_limit
        if is_active is not None:
            profile.is_active = is_active
        await self.session.flush()
        return profile
