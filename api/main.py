"""
FastAPI application entry point for the Funnel Insight API.

Wires the analysis workflow, quota and usage routers behind one
exception envelope. PostgreSQL is required for every service endpoint;
Redis only backs the report cache and may be absent.
"""

import logging
from contextlib import asynccontextmanager
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.dependencies import reset_services
from api.middleware import setup_exception_handlers
from api.routers import (
    admin_router,
    analysis_router,
    health_router,
    quota_router,
    usage_router,
)
from core.config import Settings, get_settings
from core.redis import close_redis, init_redis
from database import close_database, init_database
from services.llm_client import close_llm_client

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format=settings.log_format,
)
logger = logging.getLogger(__name__)

API_PREFIX = "/api"
ROUTERS = (health_router, analysis_router, quota_router, usage_router, admin_router)


def _check_quota_timezone(settings: Settings) -> None:
    """Fail startup on an unknown zone rather than on the first quota call."""
    try:
        ZoneInfo(settings.quota_timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise RuntimeError(f"Invalid QUOTA_TIMEZONE {settings.quota_timezone!r}") from e


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info(f"Starting {settings.app_name} v{settings.app_version} ({settings.environment})")

    _check_quota_timezone(settings)
    logger.info(
        f"Quota windows in {settings.quota_timezone}, defaults "
        f"{settings.ai_daily_limit_default}/day {settings.ai_monthly_limit_default}/month"
    )

    try:
        await init_redis()
    except Exception as e:
        logger.warning(f"Redis unavailable, report cache disabled: {e}")

    if settings.is_database_configured:
        await init_database()
    else:
        logger.warning("Database not configured, analysis and quota endpoints will return 503")

    if not settings.is_llm_configured:
        logger.warning("LLM API key not configured, analysis steps will fail")

    yield

    logger.info("Shutting down, waiting for in-flight analyses")
    await reset_services()
    await close_llm_client()
    await close_redis()
    await close_database()
    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    settings = get_settings()
    docs_enabled = not settings.is_production

    app = FastAPI(
        title=settings.app_name,
        description="Marketing funnel analytics with a quota-gated three-step AI analysis",
        version=settings.app_version,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    setup_exception_handlers(app)

    for router in ROUTERS:
        app.include_router(router, prefix=API_PREFIX)

    @app.get("/", tags=["root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "docs": "/docs" if docs_enabled else None,
            "health": f"{API_PREFIX}/health",
        }

    return app


app = create_app()


def run():
    """Run the application with uvicorn (for development)."""
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
