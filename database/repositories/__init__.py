"""
Repository layer for database access.

Provides async data access for the quota, usage and analysis models.
"""

from .analysis_repo import AnalysisRepository
from .funnel_repo import FunnelRepository
from .quota_repo import QuotaRepository
from .usage_repo import UsageRepository

__all__ = [
    "AnalysisRepository",
    "FunnelRepository",
    "QuotaRepository",
    "UsageRepository",
]
