"""
Services module for Funnel Insight.
"""
from .analysis_workflow import AnalysisWorkflowService
from .llm_client import LLMClient, LLMResult, get_llm_client
from .quota_service import QuotaService, QuotaStatus, ResetScope
from .report_cache import ReportCache
from .usage_ledger import UsageLedger, UsageRecord

__all__ = [
    "AnalysisWorkflowService",
    "LLMClient",
    "LLMResult",
    "get_llm_client",
    "QuotaService",
    "QuotaStatus",
    "ResetScope",
    "ReportCache",
    "UsageLedger",
    "UsageRecord",
]
