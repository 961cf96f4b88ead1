"""
Core modules for the Funnel Insight API.

This package contains fundamental utilities used across the application:
- config: Application settings and configuration
- security: JWT token handling
- auth: Current-user dependencies
- redis: Redis connection management
- exceptions: Custom exception classes
"""

from .config import Settings, get_settings
from .exceptions import (
    AnalysisNotFoundError,
    AppException,
    AuthenticationError,
    AuthorizationError,
    CollaboratorError,
    CollaboratorTimeoutError,
    DatasetNotFoundError,
    ExternalServiceError,
    FunnelNotFoundError,
    InvalidStrategyError,
    NotFoundError,
    QuotaDisabledError,
    QuotaExceededError,
    ReportNotFoundError,
    ValidationError,
)

__all__ = [
    # Config
    "get_settings",
    "Settings",
    # Exceptions
    "AppException",
    "AuthenticationError",
    "AuthorizationError",
    "NotFoundError",
    "FunnelNotFoundError",
    "DatasetNotFoundError",
    "AnalysisNotFoundError",
    "ReportNotFoundError",
    "ValidationError",
    "InvalidStrategyError",
    "QuotaExceededError",
    "QuotaDisabledError",
    "ExternalServiceError",
    "CollaboratorError",
    "CollaboratorTimeoutError",
]
