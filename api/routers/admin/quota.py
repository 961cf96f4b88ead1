"""
Admin quota management router.

Endpoints:
- POST /api/admin/quota/reset - Run a daily or monthly reset sweep
- GET /api/admin/quota/{user_id} - Get a user's quota
- PATCH /api/admin/quota/{user_id} - Change a user's limits or kill switch
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_quota_service
from api.schemas.common import APIResponse
from api.schemas.quota import (
    QuotaResetResponse,
    ResetScopeParam,
    UpdateQuotaLimitsRequest,
    UserQuotaResponse,
)
from core.auth import AppUser, require_admin
from services import QuotaService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/quota", tags=["admin-quota"])


@router.post("/reset", response_model=APIResponse[QuotaResetResponse])
async def run_quota_reset(
    scope: ResetScopeParam = Query(..., description="daily or monthly"),
    admin: AppUser = Depends(require_admin),
    quota_service: QuotaService = Depends(get_quota_service),
):
    """Zero every stale counter of the given scope. Safe to repeat."""
    count = await quota_service.periodic_reset(scope.value)
    logger.info(f"Admin {admin.id} ran {scope.value} quota reset: {count} profiles")
    return APIResponse.ok(QuotaResetResponse(scope=scope, reset_count=count))


@router.get("/{user_id}", response_model=APIResponse[UserQuotaResponse])
async def get_user_quota(
    user_id: UUID,
    admin: AppUser = Depends(require_admin),
    quota_service: QuotaService = Depends(get_quota_service),
):
    """Get a user's quota status."""
    status = await quota_service.get_status(user_id)
    return APIResponse.ok(UserQuotaResponse(user_id=user_id, **status.to_dict()))


@router.patch("/{user_id}", response_model=APIResponse[UserQuotaResponse])
async def update_user_quota(
    user_id: UUID,
    request: UpdateQuotaLimitsRequest,
    admin: AppUser = Depends(require_admin),
    quota_service: QuotaService = Depends(get_quota_service),
):
    """Change a user's limits and/or enable or disable AI usage."""
    status = await quota_service.update_limits(
        user_id,
        daily_limit=request.daily_limit,
        monthly_limit=request.monthly_limit,
        is_active=request.is_active,
    )
    logger.info(f"Admin {admin.id} updated quota of user {user_id}")
    return APIResponse.ok(UserQuotaResponse(user_id=user_id, **status.to_dict()))
