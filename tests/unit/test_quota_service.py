"""
Unit tests for the quota tracker.
"""

import asyncio
from datetime import date

import pytest
from sqlalchemy import select

from core.exceptions import QuotaDisabledError, QuotaExceededError, ValidationError
from database.models import QuotaProfile
from services.quota_service import ResetScope, month_start_of, next_month_start


async def _stored_profile(session_factory, user_id) -> QuotaProfile:
    async with session_factory() as session:
        result = await session.execute(select(QuotaProfile).where(QuotaProfile.user_id == user_id))
        return result.scalar_one()


class TestWindowHelpers:
    """Tests for calendar window helpers."""

    def test_month_start_of(self):
        assert month_start_of(date(2026, 10, 15)) == date(2026, 10, 1)

    def test_next_month_start_rolls_year(self):
        assert next_month_start(date(2026, 12, 31)) == date(2027, 1, 1)
        assert next_month_start(date(2026, 1, 31)) == date(2026, 2, 1)


class TestProfileCreation:
    """Tests for lazy profile creation."""

    @pytest.mark.asyncio
    async def test_profile_created_with_defaults(self, quota_service, seed, session_factory):
        """Test the first access creates a profile with default limits."""
        status = await quota_service.get_status(seed.user_id)

        assert status.daily_limit == 100
        assert status.monthly_limit == 3000
        assert status.current_daily == 0
        assert status.remaining_daily == 100
        assert status.is_active is True

        profile = await _stored_profile(session_factory, seed.user_id)
        assert profile.last_reset_daily == date(2026, 10, 15)
        assert profile.last_reset_monthly == date(2026, 10, 1)

    @pytest.mark.asyncio
    async def test_get_or_create_is_idempotent(self, quota_service, seed):
        """Test repeated creation returns the same profile."""
        first = await quota_service.get_or_create_profile(seed.user_id)
        second = await quota_service.get_or_create_profile(seed.user_id)

        assert first.user_id == second.user_id == seed.user_id

    @pytest.mark.asyncio
    async def test_status_reports_next_reset_dates(self, quota_service, seed):
        status = await quota_service.get_status(seed.user_id)

        assert status.daily_resets_on == date(2026, 10, 16)
        assert status.monthly_resets_on == date(2026, 11, 1)
        assert status.to_dict()["monthly_resets_on"] == "2026-11-01"


class TestReserve:
    """Tests for the atomic check-and-consume path."""

    @pytest.mark.asyncio
    async def test_reserve_increments_both_counters(self, quota_service, seed):
        status = await quota_service.reserve(seed.user_id, 3)

        assert status.current_daily == 3
        assert status.current_monthly == 3
        assert status.remaining_daily == 97

    @pytest.mark.asyncio
    async def test_reserve_rejects_non_positive_amount(self, quota_service, seed):
        with pytest.raises(ValidationError):
            await quota_service.reserve(seed.user_id, 0)

    @pytest.mark.asyncio
    async def test_reserve_stops_at_daily_limit(self, quota_service, seed):
        """Test the counter never passes the limit."""
        await quota_service.update_limits(seed.user_id, daily_limit=2)

        await quota_service.reserve(seed.user_id)
        await quota_service.reserve(seed.user_id)
        with pytest.raises(QuotaExceededError) as exc_info:
            await quota_service.reserve(seed.user_id)

        assert exc_info.value.details["remaining_daily"] == 0
        assert exc_info.value.details["current_daily"] == 2

        status = await quota_service.get_status(seed.user_id)
        assert status.current_daily == 2
        assert status.current_monthly == 2

    @pytest.mark.asyncio
    async def test_reserve_stops_at_monthly_limit(self, quota_service, seed):
        await quota_service.update_limits(seed.user_id, monthly_limit=1)
        await quota_service.reserve(seed.user_id)

        with pytest.raises(QuotaExceededError) as exc_info:
            await quota_service.reserve(seed.user_id)

        assert "Monthly" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_reserve_larger_than_remaining_is_refused_whole(self, quota_service, seed):
        """Test a multi-unit request is not partially applied."""
        await quota_service.update_limits(seed.user_id, daily_limit=5)
        await quota_service.reserve(seed.user_id, 4)

        with pytest.raises(QuotaExceededError):
            await quota_service.reserve(seed.user_id, 2)

        status = await quota_service.get_status(seed.user_id)
        assert status.current_daily == 4

    @pytest.mark.asyncio
    async def test_disabled_profile_is_refused(self, quota_service, seed):
        await quota_service.update_limits(seed.user_id, is_active=False)

        with pytest.raises(QuotaDisabledError):
            await quota_service.reserve(seed.user_id)
        with pytest.raises(QuotaDisabledError):
            await quota_service.check_limit(seed.user_id)

        status = await quota_service.get_status(seed.user_id)
        assert status.current_daily == 0


class TestCheckLimit:
    """Tests for the read-only gate."""

    @pytest.mark.asyncio
    async def test_check_limit_passes_under_limit(self, quota_service, seed):
        status = await quota_service.check_limit(seed.user_id)
        assert status.remaining_daily == 100

    @pytest.mark.asyncio
    async def test_check_limit_refuses_at_limit(self, quota_service, seed):
        await quota_service.update_limits(seed.user_id, daily_limit=1)
        await quota_service.consume(seed.user_id)

        with pytest.raises(QuotaExceededError):
            await quota_service.check_limit(seed.user_id)


class TestWindows:
    """Tests for lazy and periodic window resets."""

    @pytest.mark.asyncio
    async def test_new_day_resets_daily_only(self, quota_service, seed, clock):
        await quota_service.reserve(seed.user_id, 5)
        clock.advance(1)

        status = await quota_service.get_status(seed.user_id)
        assert status.current_daily == 0
        assert status.current_monthly == 5

        status = await quota_service.reserve(seed.user_id)
        assert status.current_daily == 1
        assert status.current_monthly == 6

    @pytest.mark.asyncio
    async def test_new_month_resets_both(self, quota_service, seed, clock):
        await quota_service.reserve(seed.user_id, 5)
        clock.advance(17)  # 2026-11-01

        status = await quota_service.reserve(seed.user_id)
        assert status.current_daily == 1
        assert status.current_monthly == 1

    @pytest.mark.asyncio
    async def test_get_status_does_not_write_reset(self, quota_service, seed, clock, session_factory):
        """Test a stale counter reads as zero but stays stored until a write."""
        await quota_service.reserve(seed.user_id, 5)
        clock.advance(1)

        status = await quota_service.get_status(seed.user_id)
        assert status.current_daily == 0

        profile = await _stored_profile(session_factory, seed.user_id)
        assert profile.current_daily == 5
        assert profile.last_reset_daily == date(2026, 10, 15)

    @pytest.mark.asyncio
    async def test_daily_limit_available_again_next_day(self, quota_service, seed, clock):
        await quota_service.update_limits(seed.user_id, daily_limit=1)
        await quota_service.reserve(seed.user_id)
        with pytest.raises(QuotaExceededError):
            await quota_service.reserve(seed.user_id)

        clock.advance(1)
        status = await quota_service.reserve(seed.user_id)
        assert status.current_daily == 1

    @pytest.mark.asyncio
    async def test_periodic_reset_is_idempotent(self, quota_service, seed, clock, session_factory):
        await quota_service.reserve(seed.user_id, 5)
        await quota_service.reserve(seed.other_user_id, 2)
        clock.advance(1)

        assert await quota_service.periodic_reset(ResetScope.DAILY) == 2
        assert await quota_service.periodic_reset(ResetScope.DAILY) == 0

        profile = await _stored_profile(session_factory, seed.user_id)
        assert profile.current_daily == 0
        assert profile.current_monthly == 5
        assert profile.last_reset_daily == date(2026, 10, 16)

    @pytest.mark.asyncio
    async def test_periodic_reset_skips_current_profiles(self, quota_service, seed):
        await quota_service.reserve(seed.user_id, 5)

        assert await quota_service.periodic_reset("daily") == 0
        assert await quota_service.periodic_reset("monthly") == 0

        status = await quota_service.get_status(seed.user_id)
        assert status.current_daily == 5

    @pytest.mark.asyncio
    async def test_lazy_and_periodic_paths_agree(self, quota_service, seed, clock, session_factory):
        """Test a periodic sweep after a lazy reset changes nothing."""
        await quota_service.reserve(seed.user_id, 5)
        clock.advance(17)

        await quota_service.reserve(seed.user_id)
        before = await _stored_profile(session_factory, seed.user_id)

        assert await quota_service.periodic_reset(ResetScope.DAILY) == 0
        assert await quota_service.periodic_reset(ResetScope.MONTHLY) == 0

        after = await _stored_profile(session_factory, seed.user_id)
        assert (after.current_daily, after.current_monthly) == (
            before.current_daily,
            before.current_monthly,
        ) == (1, 1)
        assert after.last_reset_monthly == date(2026, 11, 1)

    @pytest.mark.asyncio
    async def test_monthly_sweep_leaves_daily_alone(self, quota_service, seed, clock, session_factory):
        await quota_service.reserve(seed.user_id, 3)
        clock.advance(17)

        assert await quota_service.periodic_reset(ResetScope.MONTHLY) == 1

        profile = await _stored_profile(session_factory, seed.user_id)
        assert profile.current_monthly == 0
        assert profile.last_reset_monthly == date(2026, 11, 1)
        assert profile.current_daily == 3

    @pytest.mark.asyncio
    async def test_unknown_scope_rejected(self, quota_service):
        with pytest.raises(ValueError):
            await quota_service.periodic_reset("weekly")


class TestRelease:
    """Tests for giving back reserved units."""

    @pytest.mark.asyncio
    async def test_release_restores_balance(self, quota_service, seed):
        await quota_service.reserve(seed.user_id, 2)
        await quota_service.release(seed.user_id, 1)

        status = await quota_service.get_status(seed.user_id)
        assert status.current_daily == 1
        assert status.current_monthly == 1

    @pytest.mark.asyncio
    async def test_release_clamps_at_zero(self, quota_service, seed):
        await quota_service.reserve(seed.user_id)
        await quota_service.release(seed.user_id, 5)

        status = await quota_service.get_status(seed.user_id)
        assert status.current_daily == 0
        assert status.current_monthly == 0

    @pytest.mark.asyncio
    async def test_release_after_rollover_skips_stale_window(
        self, quota_service, seed, clock, session_factory
    ):
        """Test units charged to yesterday are not given back to a rolled-over counter."""
        await quota_service.reserve(seed.user_id, 2)
        clock.advance(1)

        await quota_service.release(seed.user_id, 2)

        profile = await _stored_profile(session_factory, seed.user_id)
        assert profile.current_daily == 2
        assert profile.last_reset_daily == date(2026, 10, 15)
        assert profile.current_monthly == 0

    @pytest.mark.asyncio
    async def test_reserve_reports_charged_day(self, quota_service, seed, clock):
        status = await quota_service.reserve(seed.user_id)

        assert status.charged_on == clock()
        assert "charged_on" not in status.to_dict()

    @pytest.mark.asyncio
    async def test_release_for_yesterday_keeps_todays_charges(self, quota_service, seed, clock):
        """Test a late refund does not take units off the new day's counter."""
        charged = await quota_service.reserve(seed.user_id)
        clock.advance(1)
        await quota_service.reserve(seed.user_id)

        await quota_service.release(seed.user_id, 1, charged_on=charged.charged_on)

        status = await quota_service.get_status(seed.user_id)
        assert status.current_daily == 1
        assert status.current_monthly == 1

    @pytest.mark.asyncio
    async def test_release_for_last_month_keeps_this_months_charges(
        self, quota_service, seed, clock
    ):
        charged = await quota_service.reserve(seed.user_id, 2)
        clock.advance(17)
        await quota_service.reserve(seed.user_id)

        await quota_service.release(seed.user_id, 2, charged_on=charged.charged_on)

        status = await quota_service.get_status(seed.user_id)
        assert status.current_daily == 1
        assert status.current_monthly == 1


class TestUpdateLimits:
    """Tests for admin limit changes."""

    @pytest.mark.asyncio
    async def test_update_limits(self, quota_service, seed):
        status = await quota_service.update_limits(seed.user_id, daily_limit=10, monthly_limit=50)

        assert status.daily_limit == 10
        assert status.monthly_limit == 50
        assert status.is_active is True

    @pytest.mark.asyncio
    async def test_update_limits_rejects_zero(self, quota_service, seed):
        with pytest.raises(ValidationError):
            await quota_service.update_limits(seed.user_id, daily_limit=0)

    @pytest.mark.asyncio
    async def test_lowering_limit_below_usage(self, quota_service, seed):
        """Test usage above a lowered limit reports zero remaining."""
        await quota_service.reserve(seed.user_id, 5)
        status = await quota_service.update_limits(seed.user_id, daily_limit=3)

        assert status.remaining_daily == 0
        assert status.daily_exhausted is True
        with pytest.raises(QuotaExceededError):
            await quota_service.reserve(seed.user_id)


class TestConcurrentReserve:
    """Tests for same-user reservations racing each other."""

    @pytest.mark.asyncio
    async def test_concurrent_reserves_never_pass_the_limit(
        self, quota_service, seed, session_factory
    ):
        await quota_service.update_limits(seed.user_id, daily_limit=2)

        results = await asyncio.gather(
            *(quota_service.reserve(seed.user_id) for _ in range(5)),
            return_exceptions=True,
        )

        granted = [result for result in results if not isinstance(result, Exception)]
        profile = await _stored_profile(session_factory, seed.user_id)
        assert len(granted) == 2
        assert profile.current_daily == 2
        assert profile.current_daily <= profile.daily_limit
