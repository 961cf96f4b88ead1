"""
Admin API routers.

All admin endpoints require admin privileges.
"""

from fastapi import APIRouter

from .quota import router as quota_router

# Main admin router
router = APIRouter(prefix="/admin", tags=["admin"])

# Include sub-routers
router.include_router(quota_router)

__all__ = ["router"]
