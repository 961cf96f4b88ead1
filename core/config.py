"""
Application configuration using Pydantic Settings.

Supports loading from environment variables and .env files.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ============ Application ============
    app_name: str = "Funnel Insight"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: str = "development"  # development, staging, production, testing

    # ============ Server ============
    host: str = "0.0.0.0"
    port: int = 8000

    # ============ Security ============
    secret_key: str = "change-me-in-production-use-a-long-random-string"
    jwt_algorithm: str = "HS256"
    jwt_expire_days: int = 7

    # ============ CORS ============
    cors_origins: List[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: List[str] = ["*"]
    cors_allow_headers: List[str] = ["*"]

    # ============ Redis ============
    redis_url: str = "redis://localhost:6379/0"
    redis_max_connections: int = 10

    # ============ Database ============
    database_enabled: bool = True
    database_url: Optional[str] = None
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_echo: bool = False

    # ============ AI Quota ============
    ai_daily_limit_default: int = 100
    ai_monthly_limit_default: int = 3000
    quota_timezone: str = "UTC"  # IANA zone used for every day/month boundary
    analysis_step_cost: int = 1

    # ============ LLM Collaborator ============
    llm_api_key: Optional[str] = None
    llm_base_url: str = "https://api.moonshot.cn/v1"
    llm_model: str = "kimi-k2-250905"
    llm_request_timeout_seconds: float = 30.0
    llm_max_tokens: int = 2000
    analysis_timeout_seconds: float = 90.0

    # ============ Report Cache ============
    report_cache_ttl_seconds: int = 300

    # ============ Logging ============
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_database_configured(self) -> bool:
        """Check if PostgreSQL is enabled and has a URL."""
        return bool(self.database_enabled and self.database_url)

    @property
    def is_llm_configured(self) -> bool:
        """Check if the analysis LLM has credentials."""
        return bool(self.llm_api_key)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
