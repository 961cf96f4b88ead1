"""
AI analysis workflow router.

Endpoints:
- POST /api/ai-analysis/step1/{funnel_id} - Free key insights
- POST /api/ai-analysis/step2/{analysis_id} - Paid strategy options
- POST /api/ai-analysis/step3/{analysis_id} - Paid complete report
- GET /api/ai-analysis/status/{funnel_id} - Which steps exist for a period
- GET /api/ai-analysis/reports - List complete reports
- GET /api/ai-analysis/reports/{report_id} - Get one report
- DELETE /api/ai-analysis/clear-all - Delete all of the user's analyses
- DELETE /api/ai-analysis/funnels/{funnel_id} - Delete one funnel's analyses
"""

import logging
from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_workflow_service
from api.schemas.analysis import (
    AnalysisStatusResponse,
    AnalysisStepResponse,
    CompleteReportRequest,
    KeyInsightsRequest,
    ReportDetail,
    ReportSummary,
    StrategyOptionsRequest,
)
from api.schemas.common import APIResponse, DeletedResponse, PaginatedResponse
from core.auth import AppUser, require_current_user
from services import AnalysisWorkflowService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai-analysis", tags=["ai-analysis"])


# ============ Workflow steps ============


@router.post("/step1/{funnel_id}", response_model=APIResponse[AnalysisStepResponse])
async def generate_key_insights(
    funnel_id: UUID,
    request: KeyInsightsRequest | None = None,
    user: AppUser = Depends(require_current_user),
    workflow: AnalysisWorkflowService = Depends(get_workflow_service),
):
    """
    Generate free key insights for a funnel.

    Re-running for the same dataset period creates a fresh analysis.
    """
    period = request.dataset_period_start if request else None
    result = await workflow.generate_key_insights(user.id, funnel_id, period)
    return APIResponse.ok(AnalysisStepResponse(**result))


@router.post("/step2/{analysis_id}", response_model=APIResponse[AnalysisStepResponse])
async def generate_strategy_options(
    analysis_id: UUID,
    request: StrategyOptionsRequest,
    user: AppUser = Depends(require_current_user),
    workflow: AnalysisWorkflowService = Depends(get_workflow_service),
):
    """Generate the stable and aggressive strategy options (consumes quota)."""
    result = await workflow.generate_strategy_options(user.id, analysis_id, request.funnel_id)
    return APIResponse.ok(AnalysisStepResponse(**result))


@router.post("/step3/{analysis_id}", response_model=APIResponse[AnalysisStepResponse])
async def generate_complete_report(
    analysis_id: UUID,
    request: CompleteReportRequest,
    user: AppUser = Depends(require_current_user),
    workflow: AnalysisWorkflowService = Depends(get_workflow_service),
):
    """Generate the complete report for the chosen strategy (consumes quota)."""
    result = await workflow.generate_complete_report(
        user.id,
        analysis_id,
        request.funnel_id,
        request.selected_strategy,
    )
    return APIResponse.ok(AnalysisStepResponse(**result))


@router.get("/status/{funnel_id}", response_model=APIResponse[AnalysisStatusResponse])
async def get_analysis_status(
    funnel_id: UUID,
    period_start: date | None = Query(None, description="Dataset period; latest when omitted"),
    user: AppUser = Depends(require_current_user),
    workflow: AnalysisWorkflowService = Depends(get_workflow_service),
):
    """Report which steps exist so the client can resume the workflow."""
    status = await workflow.get_analysis_status(user.id, funnel_id, period_start)
    return APIResponse.ok(AnalysisStatusResponse(**status))


# ============ Reports ============


@router.get("/reports", response_model=APIResponse[PaginatedResponse[ReportSummary]])
async def list_reports(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    user: AppUser = Depends(require_current_user),
    workflow: AnalysisWorkflowService = Depends(get_workflow_service),
):
    """List the user's complete reports, newest first."""
    reports = await workflow.list_reports(user.id, limit=limit + 1, offset=offset)
    return APIResponse.ok(
        PaginatedResponse[ReportSummary](
            items=[ReportSummary(**report) for report in reports[:limit]],
            limit=limit,
            offset=offset,
            has_more=len(reports) > limit,
        )
    )


@router.get("/reports/{report_id}", response_model=APIResponse[ReportDetail])
async def get_report(
    report_id: UUID,
    user: AppUser = Depends(require_current_user),
    workflow: AnalysisWorkflowService = Depends(get_workflow_service),
):
    """Get one of the user's complete reports."""
    report = await workflow.get_report(user.id, report_id)
    return APIResponse.ok(ReportDetail(**report))


# ============ Clearing ============


@router.delete("/clear-all", response_model=APIResponse[DeletedResponse])
async def clear_all(
    user: AppUser = Depends(require_current_user),
    workflow: AnalysisWorkflowService = Depends(get_workflow_service),
):
    """Delete all of the user's analyses. Quota and usage history are kept."""
    deleted = await workflow.clear_all(user.id)
    return APIResponse.ok(DeletedResponse(deleted=deleted))


@router.delete("/funnels/{funnel_id}", response_model=APIResponse[DeletedResponse])
async def clear_funnel(
    funnel_id: UUID,
    period_start: date | None = Query(None, description="Only this dataset period"),
    user: AppUser = Depends(require_current_user),
    workflow: AnalysisWorkflowService = Depends(get_workflow_service),
):
    """Delete the user's analyses of one funnel."""
    deleted = await workflow.clear_funnel(user.id, funnel_id, period_start)
    return APIResponse.ok(DeletedResponse(deleted=deleted))
