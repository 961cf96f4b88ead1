"""
Custom exception classes for the application.

All exceptions inherit from AppException and include:
- error_code: Machine-readable error code for i18n
- message: Human-readable error message
- status_code: HTTP status code to return
- retryable: Whether the caller may retry the same request as-is
"""

from typing import Any


class AppException(Exception):
    """Base exception for all application errors."""

    error_code: str = "internal_error"
    message: str = "An unexpected error occurred"
    status_code: int = 500
    retryable: bool = False

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message or self.message
        self.error_code = error_code or self.error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response."""
        result = {
            "code": self.error_code,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.details:
            result["details"] = self.details
        return result


class AuthenticationError(AppException):
    """Raised when authentication fails."""

    error_code = "authentication_failed"
    message = "Authentication failed"
    status_code = 401


class AuthorizationError(AppException):
    """Raised when user lacks permission."""

    error_code = "authorization_failed"
    message = "You do not have permission to perform this action"
    status_code = 403


class NotFoundError(AppException):
    """Raised when a resource is not found."""

    error_code = "not_found"
    message = "Resource not found"
    status_code = 404


class ValidationError(AppException):
    """Raised when input validation fails."""

    error_code = "validation_error"
    message = "Invalid input"
    status_code = 422


class QuotaExceededError(AppException):
    """Raised when a daily or monthly AI quota is used up."""

    error_code = "quota_exceeded"
    message = "Quota limit exceeded"
    status_code = 429


class QuotaDisabledError(AppException):
    """Raised when AI usage is switched off for the user."""

    error_code = "quota_disabled"
    message = "AI features are disabled for this account"
    status_code = 403


class ExternalServiceError(AppException):
    """Raised when an external service fails."""

    error_code = "external_service_error"
    message = "External service unavailable"
    status_code = 503
    retryable = True


class CollaboratorError(ExternalServiceError):
    """
    Raised when the analysis LLM fails.

    ``completed`` tells whether the call actually returned (an error status or
    unusable output) as opposed to never finishing.
    """

    error_code = "analysis_generation_failed"
    message = "AI analysis generation failed"
    completed: bool = True

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
        completed: bool | None = None,
    ):
        super().__init__(message, error_code, details)
        if completed is not None:
            self.completed = completed


class CollaboratorTimeoutError(CollaboratorError):
    """Raised when the analysis LLM times out or cannot be reached."""

    error_code = "analysis_generation_timeout"
    message = "AI analysis timed out"
    status_code = 504
    completed = False


class FunnelNotFoundError(NotFoundError):
    """Raised when a funnel is missing or owned by someone else."""

    error_code = "funnel_not_found"
    message = "Funnel not found"


class DatasetNotFoundError(NotFoundError):
    """Raised when no metric dataset exists for the requested period."""

    error_code = "dataset_not_found"
    message = "No funnel data found for the requested period"


class AnalysisNotFoundError(NotFoundError):
    """Raised when a prerequisite analysis step is missing."""

    error_code = "analysis_not_found"
    message = "Analysis not found"


class ReportNotFoundError(NotFoundError):
    """Raised when a complete report is missing or not owned by the caller."""

    error_code = "report_not_found"
    message = "Report not found"


class InvalidStrategyError(ValidationError):
    """Raised when the selected strategy is not one of the offered options."""

    error_code = "invalid_strategy"
    message = "Selected strategy must be 'stable' or 'aggressive'"
