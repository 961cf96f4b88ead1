"""
Usage ledger service.

Appends immutable usage events and optionally charges them to the quota
counters in the same transaction.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.exceptions import ValidationError
from database import session_scope
from database.models import UsageEvent, UsageType
from database.repositories import UsageRepository

from .quota_service import QuotaService

logger = logging.getLogger(__name__)


@dataclass
class UsageRecord:
    """One usage event to be recorded."""

    user_id: UUID
    usage_type: UsageType | str = UsageType.GENERAL
    request_count: int = 1
    token_count: int | None = None
    cost: Decimal | float | str | None = None
    session_id: UUID | None = None


# Column bounds: token_count is INTEGER, cost is NUMERIC(12, 6)
MAX_TOKEN_COUNT = 2**31 - 1
MAX_COST = Decimal(10) ** 6


def _clean_token_count(value: Any) -> int | None:
    try:
        tokens = int(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return tokens if 0 <= tokens <= MAX_TOKEN_COUNT else None


def _clean_cost(value: Any) -> Decimal | None:
    if value is None:
        return None
    try:
        cost = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not cost.is_finite() or cost < 0 or cost >= MAX_COST:
        return None
    return cost


def _validate(record: UsageRecord) -> UsageType:
    if not isinstance(record.request_count, int) or record.request_count < 1:
        raise ValidationError(
            message="Request count must be a positive integer",
            details={"request_count": record.request_count},
        )
    try:
        return UsageType(record.usage_type)
    except ValueError:
        raise ValidationError(
            message=f"Unknown usage type: {record.usage_type}",
            details={"usage_type": str(record.usage_type)},
        ) from None


class UsageLedger:
    """Service for recording and aggregating AI usage events."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        quota_service: QuotaService,
    ):
        self._session_factory = session_factory
        self._quota = quota_service

    def _to_event(self, record: UsageRecord, usage_type: UsageType, today: date) -> UsageEvent:
        return UsageEvent(
            user_id=record.user_id,
            session_id=record.session_id,
            usage_type=usage_type.value,
            request_count=record.request_count,
            token_count=_clean_token_count(record.token_count),
            cost=_clean_cost(record.cost),
            usage_date=today,
        )

    async def record(
        self,
        user_id: UUID,
        usage_type: UsageType | str = UsageType.GENERAL,
        request_count: int = 1,
        token_count: int | None = None,
        cost: Decimal | float | str | None = None,
        session_id: UUID | None = None,
        apply_to_quota: bool = True,
        session: AsyncSession | None = None,
    ) -> UsageEvent:
        """
        Append one usage event stamped with today's date.

        Malformed optional fields (negative or non-numeric token count or
        cost) are dropped. Quota limits are not enforced here; callers gate
        with QuotaService first.

        Args:
            user_id: User who consumed the requests
            usage_type: Kind of AI action
            request_count: Requests consumed, at least 1
            token_count: Optional token usage
            cost: Optional cost
            session_id: Optional workflow correlation id
            apply_to_quota: Also add request_count to the quota counters
            session: Join an existing transaction instead of opening one

        Raises:
            ValidationError: If request_count is not positive
        """
        record = UsageRecord(
            user_id=user_id,
            usage_type=usage_type,
            request_count=request_count,
            token_count=token_count,
            cost=cost,
            session_id=session_id,
        )
        kind = _validate(record)
        today = self._quota.today()

        async with session_scope(self._session_factory, session) as db:
            event = await UsageRepository(db).record_usage(
                user_id=user_id,
                usage_type=kind.value,
                request_count=request_count,
                usage_date=today,
                token_count=_clean_token_count(token_count),
                cost=_clean_cost(cost),
                session_id=session_id,
            )
            if apply_to_quota:
                await self._quota.consume(user_id, request_count, session=db)

        logger.debug(f"Recorded usage: user={user_id}, type={kind.value}, requests={request_count}")
        return event

    async def batch_record(
        self,
        records: list[UsageRecord],
        apply_to_quota: bool = True,
    ) -> list[UsageEvent]:
        """
        Append several usage events as one atomic set.

        Request counts are summed per user so each user's quota counters are
        updated once, not once per event. Any invalid record rejects the
        whole batch before anything is written.
        """
        if not records:
            return []

        kinds = [_validate(record) for record in records]
        today = self._quota.today()

        totals: dict[UUID, int] = defaultdict(int)
        for record in records:
            totals[record.user_id] += record.request_count

        async with session_scope(self._session_factory) as db:
            events = await UsageRepository(db).record_many(
                [self._to_event(record, kind, today) for record, kind in zip(records, kinds)]
            )
            if apply_to_quota:
                for user_id, total in totals.items():
                    await self._quota.consume(user_id, total, session=db)

        logger.info(f"Recorded usage batch: {len(events)} events for {len(totals)} users")
        return events

    async def get_daily_stats(self, user_id: UUID, day: date | None = None) -> dict:
        """Get one day's totals and per-type breakdown (defaults to today)."""
        async with session_scope(self._session_factory) as db:
            return await UsageRepository(db).get_daily_stats(user_id, day or self._quota.today())

    async def get_usage_history(self, user_id: UUID, days: int = 7) -> list[dict]:
        """Get daily stats for the past ``days`` days, newest first."""
        if days < 1:
            raise ValidationError(message="days must be a positive integer", details={"days": days})

        async with session_scope(self._session_factory) as db:
            return await UsageRepository(db).get_usage_history(user_id, self._quota.today(), days)

    async def list_events(self, user_id: UUID, day: date | None = None) -> list[UsageEvent]:
        """List a user's events, optionally for one day."""
        async with session_scope(self._session_factory) as db:
            return await UsageRepository(db).list_events(user_id, day)
