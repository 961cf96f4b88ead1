"""
Unit tests for the usage ledger.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from core.exceptions import ValidationError
from database.models import UsageType
from services.usage_ledger import UsageRecord


class TestRecord:
    """Tests for single usage events."""

    @pytest.mark.asyncio
    async def test_record_appends_event_and_charges_quota(self, usage_ledger, quota_service, seed):
        event = await usage_ledger.record(
            seed.user_id,
            usage_type=UsageType.CHAT,
            request_count=2,
            token_count=350,
            cost="0.0042",
        )

        assert event.usage_type == "chat"
        assert event.request_count == 2
        assert event.usage_date == date(2026, 10, 15)

        status = await quota_service.get_status(seed.user_id)
        assert status.current_daily == 2
        assert status.current_monthly == 2

    @pytest.mark.asyncio
    async def test_record_without_quota(self, usage_ledger, quota_service, seed):
        await usage_ledger.record(seed.user_id, apply_to_quota=False)

        status = await quota_service.get_status(seed.user_id)
        assert status.current_daily == 0
        assert len(await usage_ledger.list_events(seed.user_id)) == 1

    @pytest.mark.asyncio
    async def test_record_defaults_to_general(self, usage_ledger, seed):
        event = await usage_ledger.record(seed.user_id)
        assert event.usage_type == UsageType.GENERAL.value

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", [0, -1])
    async def test_record_rejects_non_positive_count(self, usage_ledger, quota_service, seed, count):
        with pytest.raises(ValidationError):
            await usage_ledger.record(seed.user_id, request_count=count)

        assert await usage_ledger.list_events(seed.user_id) == []
        status = await quota_service.get_status(seed.user_id)
        assert status.current_daily == 0

    @pytest.mark.asyncio
    async def test_record_rejects_unknown_type(self, usage_ledger, seed):
        with pytest.raises(ValidationError):
            await usage_ledger.record(seed.user_id, usage_type="image")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("token_count", "cost"),
        [
            (-5, "not-a-number"),
            (float("inf"), float("nan")),
            (float("-inf"), "Infinity"),
            (2**31, Decimal("1000000")),
            ("9" * 40, 10**9),
        ],
    )
    async def test_malformed_optional_fields_are_dropped(self, usage_ledger, seed, token_count, cost):
        """Test a bad or out-of-range token count or cost does not reject the event."""
        event = await usage_ledger.record(seed.user_id, token_count=token_count, cost=cost)

        assert event.request_count == 1
        assert event.token_count is None
        assert event.cost is None

    @pytest.mark.asyncio
    async def test_largest_storable_values_kept(self, usage_ledger, seed):
        event = await usage_ledger.record(
            seed.user_id, token_count=2**31 - 1, cost=Decimal("999999.999999")
        )

        assert event.token_count == 2**31 - 1
        assert event.cost == Decimal("999999.999999")

    @pytest.mark.asyncio
    async def test_negative_cost_dropped(self, usage_ledger, seed):
        event = await usage_ledger.record(seed.user_id, token_count="12", cost=-1)

        assert event.token_count == 12
        assert event.cost is None

    @pytest.mark.asyncio
    async def test_session_id_kept_for_correlation(self, usage_ledger, seed):
        correlation = uuid4()
        await usage_ledger.record(seed.user_id, usage_type="analysis", session_id=correlation)

        events = await usage_ledger.list_events(seed.user_id)
        assert events[0].session_id == correlation


class TestBatchRecord:
    """Tests for batched usage events."""

    @pytest.mark.asyncio
    async def test_batch_charges_quota_per_user_total(self, usage_ledger, quota_service, seed):
        events = await usage_ledger.batch_record(
            [
                UsageRecord(user_id=seed.user_id, usage_type="chat", request_count=2),
                UsageRecord(user_id=seed.user_id, usage_type="analysis", request_count=3),
                UsageRecord(user_id=seed.other_user_id, request_count=1),
            ]
        )

        assert len(events) == 3
        assert (await quota_service.get_status(seed.user_id)).current_daily == 5
        assert (await quota_service.get_status(seed.other_user_id)).current_daily == 1

    @pytest.mark.asyncio
    async def test_batch_rejected_whole_on_invalid_record(self, usage_ledger, quota_service, seed):
        with pytest.raises(ValidationError):
            await usage_ledger.batch_record(
                [
                    UsageRecord(user_id=seed.user_id, request_count=2),
                    UsageRecord(user_id=seed.user_id, request_count=0),
                ]
            )

        assert await usage_ledger.list_events(seed.user_id) == []
        assert (await quota_service.get_status(seed.user_id)).current_daily == 0

    @pytest.mark.asyncio
    async def test_empty_batch(self, usage_ledger):
        assert await usage_ledger.batch_record([]) == []


class TestStats:
    """Tests for daily aggregation."""

    @pytest.mark.asyncio
    async def test_daily_stats_groups_by_type(self, usage_ledger, seed):
        await usage_ledger.record(seed.user_id, usage_type="chat", request_count=2, token_count=100)
        await usage_ledger.record(seed.user_id, usage_type="chat", request_count=1, token_count=50)
        await usage_ledger.record(seed.user_id, usage_type="analysis", request_count=1, cost=Decimal("0.5"))

        stats = await usage_ledger.get_daily_stats(seed.user_id)

        assert stats["date"] == "2026-10-15"
        assert stats["request_count"] == 4
        assert stats["token_count"] == 150
        assert stats["event_count"] == 3
        assert stats["cost"] == pytest.approx(0.5)
        assert stats["usage_by_type"]["chat"] == {"requests": 3, "count": 2}
        assert stats["usage_by_type"]["analysis"] == {"requests": 1, "count": 1}

    @pytest.mark.asyncio
    async def test_daily_stats_empty_day(self, usage_ledger, seed):
        stats = await usage_ledger.get_daily_stats(seed.user_id, date(2026, 1, 1))

        assert stats["request_count"] == 0
        assert stats["usage_by_type"] == {}

    @pytest.mark.asyncio
    async def test_history_newest_first(self, usage_ledger, seed, clock):
        await usage_ledger.record(seed.user_id, request_count=1)
        clock.advance(1)
        await usage_ledger.record(seed.user_id, request_count=3)

        history = await usage_ledger.get_usage_history(seed.user_id, days=3)

        assert [day["date"] for day in history] == ["2026-10-16", "2026-10-15", "2026-10-14"]
        assert [day["request_count"] for day in history] == [3, 1, 0]

    @pytest.mark.asyncio
    async def test_history_rejects_zero_days(self, usage_ledger, seed):
        with pytest.raises(ValidationError):
            await usage_ledger.get_usage_history(seed.user_id, days=0)

    @pytest.mark.asyncio
    async def test_stats_are_per_user(self, usage_ledger, seed):
        await usage_ledger.record(seed.other_user_id, request_count=4)

        stats = await usage_ledger.get_daily_stats(seed.user_id)
        assert stats["request_count"] == 0
