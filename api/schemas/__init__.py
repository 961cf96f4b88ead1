"""
Pydantic schemas for API request/response models.
"""

from .common import (
    APIResponse,
    ErrorDetail,
    PaginatedResponse,
    HealthStatus,
    HealthCheckResponse,
    DetailedHealthCheckResponse,
    ComponentHealth,
    DeletedResponse,
)

from .quota import (
    QuotaStatusResponse,
    QuotaResetResponse,
    ResetScopeParam,
    UpdateQuotaLimitsRequest,
    UserQuotaResponse,
)

from .usage import (
    DailyUsageResponse,
    UsageHistoryResponse,
    UsageTypeStats,
)

from .analysis import (
    KeyInsightsRequest,
    StrategyOptionsRequest,
    CompleteReportRequest,
    AnalysisStepResponse,
    AnalysisStatusResponse,
    ExistingReportSummary,
    ReportSummary,
    ReportDetail,
)

__all__ = [
    # Common
    "APIResponse",
    "ErrorDetail",
    "PaginatedResponse",
    "HealthStatus",
    "HealthCheckResponse",
    "DetailedHealthCheckResponse",
    "ComponentHealth",
    "DeletedResponse",
    # Quota
    "QuotaStatusResponse",
    "QuotaResetResponse",
    "ResetScopeParam",
    "UpdateQuotaLimitsRequest",
    "UserQuotaResponse",
    # Usage
    "DailyUsageResponse",
    "UsageHistoryResponse",
    "UsageTypeStats",
    # Analysis
    "KeyInsightsRequest",
    "StrategyOptionsRequest",
    "CompleteReportRequest",
    "AnalysisStepResponse",
    "AnalysisStatusResponse",
    "ExistingReportSummary",
    "ReportSummary",
    "ReportDetail",
]
