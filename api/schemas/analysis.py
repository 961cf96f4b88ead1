"""
AI analysis workflow Pydantic schemas.
"""

from datetime import date
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from .quota import QuotaStatusResponse


class KeyInsightsRequest(BaseModel):
    """Step 1 request."""

    dataset_period_start: date | None = Field(
        None, description="Dataset period to analyze; latest when omitted"
    )


class StrategyOptionsRequest(BaseModel):
    """Step 2 request."""

    funnel_id: UUID = Field(..., description="Funnel the step-1 analysis belongs to")


class CompleteReportRequest(BaseModel):
    """Step 3 request."""

    funnel_id: UUID = Field(..., description="Funnel the step-2 analysis belongs to")
    # Validated by the workflow so a bad value fails before quota is touched
    selected_strategy: str = Field(..., description="stable or aggressive")


class AnalysisStepResponse(BaseModel):
    """A persisted workflow step."""

    analysis_id: str
    step: int = Field(..., ge=1, le=3)
    funnel_id: str
    dataset_period_start: str
    parent_id: str | None = None
    selected_strategy: str | None = None
    output: dict[str, Any]
    created_at: str | None = None
    quota: QuotaStatusResponse | None = Field(
        None, description="Quota after this step was charged (paid steps only)"
    )


class ExistingReportSummary(BaseModel):
    report_id: str
    selected_strategy: str | None = None
    created_at: str | None = None


class AnalysisStatusResponse(BaseModel):
    """Which steps exist for a funnel's dataset period."""

    funnel_id: str
    dataset_period_start: str | None = None
    has_dataset: bool
    has_step1: bool
    has_step2: bool
    has_step3: bool
    step1_id: str | None = None
    step2_id: str | None = None
    step3_id: str | None = None
    needs_reanalysis: bool = Field(
        False, description="Dataset changed after the latest key insights were generated"
    )
    existing_report: ExistingReportSummary | None = None


class ReportSummary(BaseModel):
    """Complete report list item."""

    report_id: str
    funnel_id: str
    funnel_name: str | None = None
    dataset_period_start: str
    selected_strategy: str | None = None
    title: str | None = None
    created_at: str | None = None


class ReportDetail(BaseModel):
    """Complete report with its content."""

    report_id: str
    funnel_id: str
    funnel_name: str | None = None
    dataset_period_start: str
    selected_strategy: str | None = None
    parent_id: str | None = None
    created_at: str | None = None
    content: dict[str, Any]
