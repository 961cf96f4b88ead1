"""
AI quota tracking service.

Keeps per-user rolling daily/monthly request counters in the database and
decides whether a billable AI action may run. Windows follow calendar days and
months in the configured quota timezone. A counter whose marker is older than
the current window is stale: reads treat it as zero and the next write (or the
scheduled sweep, whichever comes first) zeroes it and advances the marker.
"""

import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from enum import StrEnum
from typing import Any
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.config import Settings, get_settings
from core.exceptions import QuotaDisabledError, QuotaExceededError, ValidationError
from database import session_scope
from database.models import QuotaProfile
from database.repositories import QuotaRepository

logger = logging.getLogger(__name__)


class ResetScope(StrEnum):
    """Window swept by a periodic reset."""

    DAILY = "daily"
    MONTHLY = "monthly"


def today_in_zone(tz_name: str) -> date:
    """Current calendar day in the given IANA timezone."""
    return datetime.now(ZoneInfo(tz_name)).date()


def month_start_of(day: date) -> date:
    """First day of the month containing ``day``."""
    return day.replace(day=1)


def next_month_start(day: date) -> date:
    """First day of the month after the one containing ``day``."""
    return (month_start_of(day) + timedelta(days=32)).replace(day=1)


@dataclass
class QuotaStatus:
    """Reset-aware view of a quota profile."""

    daily_limit: int
    monthly_limit: int
    current_daily: int
    current_monthly: int
    remaining_daily: int
    remaining_monthly: int
    is_active: bool
    daily_resets_on: date
    monthly_resets_on: date
    # Day whose windows a reservation charged; release refunds against it
    charged_on: date | None = field(default=None, compare=False)

    @property
    def daily_exhausted(self) -> bool:
        return self.current_daily >= self.daily_limit

    @property
    def monthly_exhausted(self) -> bool:
        return self.current_monthly >= self.monthly_limit

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("charged_on")
        data["daily_resets_on"] = self.daily_resets_on.isoformat()
        data["monthly_resets_on"] = self.monthly_resets_on.isoformat()
        return data


class QuotaService:
    """
    Service for checking and consuming per-user AI quota.

    Each public method runs in its own short transaction unless a session is
    passed in, in which case it joins the caller's transaction.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
        clock: Callable[[], date] | None = None,
    ):
        """
        Initialize the quota service.

        Args:
            session_factory: Factory for database sessions
            settings: Application settings (defaults to cached settings)
            clock: Returns today's date; defaults to today in ``quota_timezone``
        """
        self._session_factory = session_factory
        self._settings = settings or get_settings()
        self._clock = clock or (lambda: today_in_zone(self._settings.quota_timezone))

    # ============ Helpers ============

    def today(self) -> date:
        """Current calendar day in the quota timezone."""
        return self._clock()

    def _windows(self) -> tuple[date, date]:
        today = self._clock()
        return today, month_start_of(today)

    def _status_from(self, profile: QuotaProfile, today: date, month_start: date) -> QuotaStatus:
        current_daily = profile.current_daily if profile.last_reset_daily >= today else 0
        current_monthly = (
            profile.current_monthly if profile.last_reset_monthly >= month_start else 0
        )
        return QuotaStatus(
            daily_limit=profile.daily_limit,
            monthly_limit=profile.monthly_limit,
            current_daily=current_daily,
            current_monthly=current_monthly,
            remaining_daily=max(0, profile.daily_limit - current_daily),
            remaining_monthly=max(0, profile.monthly_limit - current_monthly),
            is_active=profile.is_active,
            daily_resets_on=today + timedelta(days=1),
            monthly_resets_on=next_month_start(today),
        )

    async def _load(
        self,
        repo: QuotaRepository,
        user_id: UUID,
        today: date,
        month_start: date,
    ) -> QuotaProfile:
        return await repo.get_or_create_profile(
            user_id,
            daily_limit=self._settings.ai_daily_limit_default,
            monthly_limit=self._settings.ai_monthly_limit_default,
            today=today,
            month_start=month_start,
        )

    @staticmethod
    def _raise_if_blocked(status: QuotaStatus, amount: int = 1) -> None:
        if not status.is_active:
            raise QuotaDisabledError(details=status.to_dict())
        if status.current_daily + amount > status.daily_limit:
            raise QuotaExceededError(
                message=(
                    f"Daily AI usage limit reached "
                    f"({status.current_daily}/{status.daily_limit} used)"
                ),
                details=status.to_dict(),
            )
        if status.current_monthly + amount > status.monthly_limit:
            raise QuotaExceededError(
                message=(
                    f"Monthly AI usage limit reached "
                    f"({status.current_monthly}/{status.monthly_limit} used)"
                ),
                details=status.to_dict(),
            )

    @staticmethod
    def _validate_amount(amount: int) -> None:
        if amount < 1:
            raise ValidationError(
                message="Request count must be a positive integer",
                details={"request_count": amount},
            )

    # ============ Operations ============

    async def get_or_create_profile(
        self,
        user_id: UUID,
        session: AsyncSession | None = None,
    ) -> QuotaProfile:
        """Get the user's profile, creating it with default limits on first use."""
        today, month_start = self._windows()
        async with session_scope(self._session_factory, session) as db:
            return await self._load(QuotaRepository(db), user_id, today, month_start)

    async def check_limit(
        self,
        user_id: UUID,
        session: AsyncSession | None = None,
    ) -> QuotaStatus:
        """
        Check whether the user may start a billable action.

        Raises:
            QuotaDisabledError: If the profile's kill switch is off
            QuotaExceededError: If the daily or monthly counter is at its limit
        """
        today, month_start = self._windows()
        async with session_scope(self._session_factory, session) as db:
            profile = await self._load(QuotaRepository(db), user_id, today, month_start)
            status = self._status_from(profile, today, month_start)

        self._raise_if_blocked(status)
        return status

    async def reserve(self, user_id: UUID, amount: int = 1) -> QuotaStatus:
        """
        Check the limit and consume ``amount`` units as one atomic step.

        The check, the lazy window reset and the increment happen in a single
        conditional UPDATE, so concurrent requests for the same user cannot
        both pass against a stale counter.

        Raises:
            ValidationError: If amount is not positive
            QuotaDisabledError: If the profile is disabled
            QuotaExceededError: If the increment would cross a limit
        """
        self._validate_amount(amount)
        today, month_start = self._windows()

        async with session_scope(self._session_factory) as db:
            repo = QuotaRepository(db)
            await self._load(repo, user_id, today, month_start)
            reserved = await repo.try_reserve(user_id, amount, today, month_start)
            profile = await repo.get_profile(user_id)
            status = self._status_from(profile, today, month_start)

        if not reserved:
            logger.info(f"Quota reservation denied: user={user_id}, amount={amount}")
            self._raise_if_blocked(status, amount)
            # Lost a race between the read and the update; report as exceeded
            raise QuotaExceededError(details=status.to_dict())

        status.charged_on = today
        logger.debug(
            f"Reserved quota: user={user_id}, amount={amount}, "
            f"daily={status.current_daily}/{status.daily_limit}"
        )
        return status

    async def consume(
        self,
        user_id: UUID,
        amount: int = 1,
        session: AsyncSession | None = None,
    ) -> QuotaStatus:
        """
        Add ``amount`` units to both counters after a lazy window reset.

        Does not enforce limits; callers gate with check_limit or use reserve.
        """
        self._validate_amount(amount)
        today, month_start = self._windows()

        async with session_scope(self._session_factory, session) as db:
            repo = QuotaRepository(db)
            await self._load(repo, user_id, today, month_start)
            await repo.increment(user_id, amount, today, month_start)
            profile = await repo.get_profile(user_id)
            status = self._status_from(profile, today, month_start)

        logger.debug(f"Consumed quota: user={user_id}, amount={amount}")
        return status

    async def release(
        self,
        user_id: UUID,
        amount: int = 1,
        charged_on: date | None = None,
    ) -> None:
        """
        Give back units reserved for a call that never produced a result.

        Only counters still in the window of ``charged_on`` (the reservation's
        day, defaulting to today) are decremented. Once a window has rolled
        over, the units it held no longer count and the new window's counter
        holds none of them.
        """
        self._validate_amount(amount)
        day = charged_on or self.today()

        async with session_scope(self._session_factory) as db:
            await QuotaRepository(db).decrement_current(
                user_id, amount, day, month_start_of(day)
            )

        logger.info(f"Released quota: user={user_id}, amount={amount}, charged_on={day}")

    async def get_status(self, user_id: UUID) -> QuotaStatus:
        """
        Get limits, reset-aware counters and remaining balances.

        A stale counter reads as zero but the reset is not written.
        """
        today, month_start = self._windows()
        async with session_scope(self._session_factory) as db:
            profile = await self._load(QuotaRepository(db), user_id, today, month_start)
            return self._status_from(profile, today, month_start)

    async def periodic_reset(self, scope: ResetScope | str) -> int:
        """
        Zero every counter of ``scope`` whose window marker is stale.

        Idempotent, and a no-op for profiles the lazy path already reset.

        Returns:
            Number of profiles reset
        """
        scope = ResetScope(scope)
        today, month_start = self._windows()

        async with session_scope(self._session_factory) as db:
            repo = QuotaRepository(db)
            if scope is ResetScope.DAILY:
                count = await repo.reset_stale_daily(today)
            else:
                count = await repo.reset_stale_monthly(month_start)

        logger.info(f"Periodic {scope.value} quota reset complete: {count} profiles")
        return count

    async def update_limits(
        self,
        user_id: UUID,
        daily_limit: int | None = None,
        monthly_limit: int | None = None,
        is_active: bool | None = None,
    ) -> QuotaStatus:
        """Change a user's limits and/or kill switch (admin function)."""
        for name, value in (("daily_limit", daily_limit), ("monthly_limit", monthly_limit)):
            if value is not None and value < 1:
                raise ValidationError(
                    message=f"{name} must be a positive integer",
                    details={name: value},
                )

        today, month_start = self._windows()
        async with session_scope(self._session_factory) as db:
            repo = QuotaRepository(db)
            profile = await self._load(repo, user_id, today, month_start)
            profile = await repo.update_limits(
                profile,
                daily_limit=daily_limit,
                monthly_limit=monthly_limit,
                is_active=is_active,
            )
            status = self._status_from(profile, today, month_start)

        logger.info(
            f"Updated quota limits: user={user_id}, daily={status.daily_limit}, "
            f"monthly={status.monthly_limit}, active={status.is_active}"
        )
        return status
