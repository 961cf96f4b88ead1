"""
Unit tests for core module.
"""

import os
from datetime import timedelta
from unittest.mock import patch
from uuid import uuid4

import pytest


class TestSettings:
    """Tests for core.config settings."""

    def test_settings_defaults(self):
        """Test default settings values."""
        with patch.dict(os.environ, {"SECRET_KEY": "test-key-32-characters-long!!!!!"}, clear=False):
            from core.config import Settings
            settings = Settings()

            assert settings.app_name == "Funnel Insight"
            assert settings.ai_daily_limit_default == 100
            assert settings.ai_monthly_limit_default == 3000
            assert settings.quota_timezone == "UTC"

    def test_settings_from_env(self, monkeypatch):
        """Test settings loaded from environment."""
        monkeypatch.setenv("APP_NAME", "Test App")
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.setenv("AI_DAILY_LIMIT_DEFAULT", "5")
        monkeypatch.setenv("ANALYSIS_TIMEOUT_SECONDS", "12.5")

        from core.config import Settings
        settings = Settings()

        assert settings.app_name == "Test App"
        assert settings.environment == "production"
        assert settings.ai_daily_limit_default == 5
        assert settings.analysis_timeout_seconds == 12.5

    def test_is_production(self, monkeypatch):
        """Test is_production property."""
        monkeypatch.setenv("ENVIRONMENT", "production")

        from core.config import Settings
        settings = Settings()

        assert settings.is_production is True

    def test_database_configured_needs_url(self, monkeypatch):
        monkeypatch.setenv("DATABASE_ENABLED", "true")
        monkeypatch.delenv("DATABASE_URL", raising=False)

        from core.config import Settings
        assert Settings(database_url=None).is_database_configured is False
        assert Settings(database_url="postgresql+asyncpg://x/y").is_database_configured is True

    def test_llm_configured(self):
        from core.config import Settings

        assert Settings(llm_api_key=None).is_llm_configured is False
        assert Settings(llm_api_key="sk-test").is_llm_configured is True


class TestSecurity:
    """Tests for core.security module."""

    def test_create_access_token(self):
        """Test JWT token creation."""
        from core.security import create_access_token

        token = create_access_token(data={"sub": "user123"})

        assert isinstance(token, str)
        assert len(token) > 0

    def test_verify_token_valid(self):
        """Test JWT token verification with valid token."""
        from core.security import create_user_token, verify_token

        user_id = uuid4()
        token = create_user_token(str(user_id), email="a@b.test", scopes=["admin"])
        payload = verify_token(token)

        assert payload["sub"] == str(user_id)
        assert payload["email"] == "a@b.test"
        assert payload["scopes"] == ["admin"]

    def test_verify_token_expired(self):
        """Test JWT token verification with expired token."""
        from core.exceptions import AuthenticationError
        from core.security import create_access_token, verify_token

        token = create_access_token(
            data={"sub": "user123"},
            expires_delta=timedelta(seconds=-100),
        )

        with pytest.raises(AuthenticationError):
            verify_token(token)

    def test_verify_token_invalid(self):
        """Test JWT token verification with invalid token."""
        from core.exceptions import AuthenticationError
        from core.security import verify_token

        with pytest.raises(AuthenticationError):
            verify_token("invalid.token.here")

    def test_extract_token_from_header(self):
        from core.security import extract_token_from_header

        assert extract_token_from_header("Bearer abc") == "abc"
        assert extract_token_from_header("Basic abc") is None
        assert extract_token_from_header(None) is None


class TestAuth:
    """Tests for core.auth dependencies."""

    @pytest.mark.asyncio
    async def test_require_current_user(self):
        from core.auth import require_current_user
        from core.security import create_user_token

        user_id = uuid4()
        user = await require_current_user(f"Bearer {create_user_token(str(user_id))}")

        assert user.id == user_id
        assert user.is_admin is False

    @pytest.mark.asyncio
    async def test_missing_token_rejected(self):
        from core.auth import require_current_user
        from core.exceptions import AuthenticationError

        with pytest.raises(AuthenticationError):
            await require_current_user(None)

    @pytest.mark.asyncio
    async def test_non_uuid_subject_rejected(self):
        from core.auth import get_current_user
        from core.security import create_access_token

        token = create_access_token(data={"sub": "github-12345"})
        assert await get_current_user(f"Bearer {token}") is None

    @pytest.mark.asyncio
    async def test_require_admin(self):
        from core.auth import require_admin
        from core.exceptions import AuthorizationError
        from core.security import create_user_token

        admin = await require_admin(f"Bearer {create_user_token(str(uuid4()), scopes=['admin'])}")
        assert admin.is_admin is True

        with pytest.raises(AuthorizationError):
            await require_admin(f"Bearer {create_user_token(str(uuid4()))}")


class TestExceptions:
    """Tests for core.exceptions module."""

    def test_app_exception(self):
        """Test AppException creation."""
        from core.exceptions import AppException

        exc = AppException(
            message="Test error",
            error_code="test_error",
            details={"field": "value"},
        )

        assert exc.message == "Test error"
        assert exc.error_code == "test_error"
        assert exc.status_code == 500
        assert exc.to_dict() == {
            "code": "test_error",
            "message": "Test error",
            "retryable": False,
            "details": {"field": "value"},
        }

    def test_quota_exceeded_error(self):
        """Test QuotaExceededError creation."""
        from core.exceptions import QuotaExceededError

        exc = QuotaExceededError(
            message="Daily quota exceeded",
            details={"current_daily": 2, "daily_limit": 2},
        )

        assert exc.status_code == 429
        assert exc.retryable is False
        assert exc.details["current_daily"] == 2

    def test_collaborator_error_completed_flag(self):
        from core.exceptions import CollaboratorError, CollaboratorTimeoutError

        assert CollaboratorError().completed is True
        assert CollaboratorError(completed=False).completed is False
        assert CollaboratorTimeoutError().completed is False
        assert CollaboratorTimeoutError().retryable is True

    def test_invalid_strategy_is_validation_error(self):
        from core.exceptions import InvalidStrategyError, ValidationError

        exc = InvalidStrategyError()
        assert isinstance(exc, ValidationError)
        assert exc.status_code == 422

    def test_not_found_error(self):
        """Test NotFoundError creation."""
        from core.exceptions import NotFoundError

        exc = NotFoundError(message="Resource not found")

        assert exc.message == "Resource not found"
        assert exc.status_code == 404
