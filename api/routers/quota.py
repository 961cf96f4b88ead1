"""
Quota router.

Endpoints:
- GET /api/quota - Get current quota status
"""

import logging

from fastapi import APIRouter, Depends

from api.dependencies import get_quota_service
from api.schemas.common import APIResponse
from api.schemas.quota import QuotaStatusResponse
from core.auth import AppUser, require_current_user
from services import QuotaService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/quota", tags=["quota"])


@router.get("", response_model=APIResponse[QuotaStatusResponse])
async def get_quota_status(
    user: AppUser = Depends(require_current_user),
    quota_service: QuotaService = Depends(get_quota_service),
):
    """
    Get current quota status for the user.

    Counters whose window has rolled over read as zero.
    """
    status = await quota_service.get_status(user.id)
    return APIResponse.ok(QuotaStatusResponse(**status.to_dict()))
