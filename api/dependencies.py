"""
FastAPI dependency injection for services.

Services are process-wide singletons built on first use from the database
session factory and the (optional) Redis client.
"""

import logging

from fastapi import Depends

from core.config import get_settings
from core.exceptions import ExternalServiceError
from core.redis import get_redis_or_none
from database import get_session_factory, is_database_available
from services import (
    AnalysisWorkflowService,
    QuotaService,
    ReportCache,
    UsageLedger,
)

logger = logging.getLogger(__name__)

_quota_service: QuotaService | None = None
_usage_ledger: UsageLedger | None = None
_workflow_service: AnalysisWorkflowService | None = None


def _require_database() -> None:
    if not is_database_available():
        raise ExternalServiceError(
            message="Database is not available",
            error_code="database_unavailable",
        )


def get_quota_service() -> QuotaService:
    """Get QuotaService dependency."""
    global _quota_service
    _require_database()
    if _quota_service is None:
        _quota_service = QuotaService(get_session_factory())
    return _quota_service


def get_usage_ledger(
    quota_service: QuotaService = Depends(get_quota_service),
) -> UsageLedger:
    """Get UsageLedger dependency."""
    global _usage_ledger
    if _usage_ledger is None:
        _usage_ledger = UsageLedger(get_session_factory(), quota_service)
    return _usage_ledger


def get_workflow_service(
    quota_service: QuotaService = Depends(get_quota_service),
    usage_ledger: UsageLedger = Depends(get_usage_ledger),
) -> AnalysisWorkflowService:
    """Get AnalysisWorkflowService dependency."""
    global _workflow_service
    if _workflow_service is None:
        settings = get_settings()
        _workflow_service = AnalysisWorkflowService(
            get_session_factory(),
            quota_service,
            usage_ledger,
            report_cache=ReportCache(get_redis_or_none(), settings.report_cache_ttl_seconds),
            settings=settings,
        )
    return _workflow_service


async def reset_services() -> None:
    """Drop service singletons, letting in-flight analyses finish first."""
    global _quota_service, _usage_ledger, _workflow_service
    if _workflow_service is not None:
        await _workflow_service.wait_inflight()
    _quota_service = None
    _usage_ledger = None
    _workflow_service = None

