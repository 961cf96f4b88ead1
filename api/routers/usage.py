"""
Usage statistics router.

Endpoints:
- GET /api/usage/daily - One day of usage
- GET /api/usage/history - Usage over the past N days
"""

from datetime import date

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_usage_ledger
from api.schemas.common import APIResponse
from api.schemas.usage import DailyUsageResponse, UsageHistoryResponse
from core.auth import AppUser, require_current_user
from services import UsageLedger

router = APIRouter(prefix="/usage", tags=["usage"])


@router.get("/daily", response_model=APIResponse[DailyUsageResponse])
async def get_daily_usage(
    day: date | None = Query(None, description="Day to report; today when omitted"),
    user: AppUser = Depends(require_current_user),
    ledger: UsageLedger = Depends(get_usage_ledger),
):
    """Get the user's usage totals for one day."""
    stats = await ledger.get_daily_stats(user.id, day)
    return APIResponse.ok(DailyUsageResponse(**stats))


@router.get("/history", response_model=APIResponse[UsageHistoryResponse])
async def get_usage_history(
    days: int = Query(default=7, ge=1, le=90),
    user: AppUser = Depends(require_current_user),
    ledger: UsageLedger = Depends(get_usage_ledger),
):
    """Get the user's daily usage for the past N days, newest first."""
    history = await ledger.get_usage_history(user.id, days)
    return APIResponse.ok(
        UsageHistoryResponse(
            days=[DailyUsageResponse(**day_stats) for day_stats in history],
            total_requests=sum(day_stats["request_count"] for day_stats in history),
            total_tokens=sum(day_stats["token_count"] for day_stats in history),
        )
    )
