"""
SQLAlchemy models for Funnel Insight.
"""

from .analysis import AnalysisRecord, AnalysisStep, StrategyChoice
from .base import Base, JSONType, TimestampMixin, UUIDPrimaryKeyMixin
from .funnel import Funnel, FunnelMetrics, FunnelNode
from .quota import QuotaProfile, UsageEvent, UsageType
from .user import Organization, User

__all__ = [
    # Base
    "Base",
    "JSONType",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    # Models
    "Organization",
    "User",
    "Funnel",
    "FunnelNode",
    "FunnelMetrics",
    "QuotaProfile",
    "UsageEvent",
    "UsageType",
    "AnalysisRecord",
    "AnalysisStep",
    "StrategyChoice",
]
