"""
Quota-related Pydantic schemas.
"""

from datetime import date
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class QuotaStatusResponse(BaseModel):
    """Reset-aware quota status for the current user."""

    daily_limit: int = Field(..., description="Requests allowed per day")
    monthly_limit: int = Field(..., description="Requests allowed per month")
    current_daily: int = Field(..., description="Requests used today")
    current_monthly: int = Field(..., description="Requests used this month")
    remaining_daily: int = Field(..., ge=0, description="Requests left today")
    remaining_monthly: int = Field(..., ge=0, description="Requests left this month")
    is_active: bool = Field(..., description="Whether AI usage is enabled for the user")
    daily_resets_on: date = Field(..., description="Day the daily counter resets")
    monthly_resets_on: date = Field(..., description="Day the monthly counter resets")


class ResetScopeParam(str, Enum):
    """Scope accepted by the admin reset endpoint."""

    DAILY = "daily"
    MONTHLY = "monthly"


class QuotaResetResponse(BaseModel):
    """Result of a periodic reset sweep."""

    scope: ResetScopeParam
    reset_count: int = Field(..., description="Profiles whose stale counter was zeroed")


class UpdateQuotaLimitsRequest(BaseModel):
    """Admin request to change a user's limits or kill switch."""

    daily_limit: int | None = Field(None, ge=1, description="New daily limit")
    monthly_limit: int | None = Field(None, ge=1, description="New monthly limit")
    is_active: bool | None = Field(None, description="Enable or disable AI usage")


class UserQuotaResponse(QuotaStatusResponse):
    """Quota status of a specific user (admin view)."""

    user_id: UUID
