"""
Global exception handlers for the API.

Every failure is returned in the APIResponse envelope:
{"success": false, "error": {"code", "message", "retryable", "details"}}
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from core.config import get_settings
from core.exceptions import AppException, QuotaExceededError

logger = logging.getLogger(__name__)


def _error_response(
    status_code: int,
    error: dict,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "data": None, "error": error},
        headers=headers,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """
    Register all exception handlers with the FastAPI app.

    Args:
        app: FastAPI application instance
    """

    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        """Handle custom application exceptions."""
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            f"AppException: {exc.error_code} - {exc.message}",
            extra={"path": request.url.path, "details": exc.details},
        )

        headers = None
        if isinstance(exc, QuotaExceededError) and exc.details.get("daily_resets_on"):
            headers = {"X-Quota-Resets-On": str(exc.details["daily_resets_on"])}

        return _error_response(exc.status_code, exc.to_dict(), headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        """Handle request validation errors."""
        errors = []
        for error in exc.errors():
            loc = " -> ".join(str(x) for x in error["loc"])
            errors.append({
                "field": loc,
                "message": error["msg"],
                "type": error["type"],
            })

        logger.warning(
            f"Validation error on {request.url.path}",
            extra={"errors": errors},
        )

        return _error_response(
            422,
            {
                "code": "validation_error",
                "message": "Request validation failed",
                "retryable": False,
                "details": {"errors": errors},
            },
        )

    @app.exception_handler(PydanticValidationError)
    async def pydantic_exception_handler(
        request: Request,
        exc: PydanticValidationError,
    ) -> JSONResponse:
        """Handle Pydantic validation errors raised outside request parsing."""
        return _error_response(
            422,
            {
                "code": "validation_error",
                "message": "Data validation failed",
                "retryable": False,
                "details": {"errors": exc.errors(include_url=False, include_context=False)},
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle all unhandled exceptions."""
        logger.exception(f"Unhandled exception on {request.url.path}: {exc}")

        # In production, hide internal error details
        if get_settings().is_production:
            message = "An unexpected error occurred"
            details = None
        else:
            message = str(exc)
            details = {"type": type(exc).__name__}

        return _error_response(
            500,
            {
                "code": "internal_error",
                "message": message,
                "retryable": False,
                "details": details,
            },
        )
