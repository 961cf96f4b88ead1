"""
API routers for different endpoints.
"""

from .health import router as health_router
from .analysis import router as analysis_router
from .quota import router as quota_router
from .usage import router as usage_router
from .admin import router as admin_router

__all__ = [
    "health_router",
    "analysis_router",
    "quota_router",
    "usage_router",
    "admin_router",
]
