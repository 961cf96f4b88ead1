"""
Usage ledger Pydantic schemas.
"""

from pydantic import BaseModel, Field


class UsageTypeStats(BaseModel):
    """Totals for one usage type."""

    requests: int = 0
    count: int = 0


class DailyUsageResponse(BaseModel):
    """One day of AI usage."""

    date: str = Field(..., description="Day (ISO date)")
    request_count: int = Field(default=0, description="Requests consumed")
    token_count: int = Field(default=0, description="Tokens consumed")
    cost: float = Field(default=0.0, description="Recorded cost")
    event_count: int = Field(default=0, description="Number of usage events")
    usage_by_type: dict[str, UsageTypeStats] = Field(default_factory=dict)


class UsageHistoryResponse(BaseModel):
    """Daily usage for a range of days, newest first."""

    days: list[DailyUsageResponse]
    total_requests: int = 0
    total_tokens: int = 0
