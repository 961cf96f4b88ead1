"""
Health check endpoints.

Provides basic and detailed health check functionality.
"""

import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import text

from api.schemas.common import (
    HealthStatus,
    HealthCheckResponse,
    DetailedHealthCheckResponse,
    ComponentHealth,
)
from core.config import get_settings, Settings
from core.redis import RedisHealthCheck
from database import get_session_factory, is_database_available

router = APIRouter(prefix="/health", tags=["health"])

# Track application start time for uptime calculation
_start_time = time.time()


async def _check_database() -> ComponentHealth:
    if not is_database_available():
        return ComponentHealth(status=HealthStatus.UNHEALTHY, error="Database not initialized")

    start = time.perf_counter()
    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        return ComponentHealth(status=HealthStatus.UNHEALTHY, error=str(e))

    return ComponentHealth(
        status=HealthStatus.HEALTHY,
        latency_ms=round((time.perf_counter() - start) * 1000, 2),
    )


@router.get(
    "",
    response_model=HealthCheckResponse,
    summary="Basic health check",
    description="Quick health check endpoint for load balancers and container orchestration.",
)
async def health_check() -> HealthCheckResponse:
    """
    Basic health check.

    Returns a simple healthy status if the API is running.
    """
    return HealthCheckResponse(
        status=HealthStatus.HEALTHY,
        timestamp=datetime.now(timezone.utc),
    )


@router.get(
    "/detailed",
    response_model=DetailedHealthCheckResponse,
    summary="Detailed health check",
    description="Comprehensive health check with status of all components.",
)
async def detailed_health_check(
    settings: Settings = Depends(get_settings),
) -> DetailedHealthCheckResponse:
    """
    Detailed health check with component status.

    Checks the health of:
    - Database connection (required)
    - Redis connection (report cache, degraded without it)
    - Analysis LLM configuration
    """
    components = {}
    overall_status = HealthStatus.HEALTHY

    # Check database
    components["database"] = await _check_database()
    if components["database"].status != HealthStatus.HEALTHY:
        overall_status = HealthStatus.UNHEALTHY

    # Check Redis
    redis_health = await RedisHealthCheck.check()
    redis_ok = redis_health["status"] == "healthy"
    components["redis"] = ComponentHealth(
        status=HealthStatus.HEALTHY if redis_ok else HealthStatus.DEGRADED,
        latency_ms=redis_health.get("latency_ms"),
        error=redis_health.get("error"),
        details={"version": redis_health.get("version")} if redis_health.get("version") else None,
    )
    if not redis_ok and overall_status == HealthStatus.HEALTHY:
        overall_status = HealthStatus.DEGRADED

    # Check analysis LLM configuration
    if settings.is_llm_configured:
        components["analysis_llm"] = ComponentHealth(
            status=HealthStatus.HEALTHY,
            details={"model": settings.llm_model},
        )
    else:
        components["analysis_llm"] = ComponentHealth(
            status=HealthStatus.DEGRADED,
            error="LLM API key not configured; analysis steps will fail",
        )
        if overall_status == HealthStatus.HEALTHY:
            overall_status = HealthStatus.DEGRADED

    # Calculate uptime
    uptime_seconds = time.time() - _start_time

    return DetailedHealthCheckResponse(
        status=overall_status,
        timestamp=datetime.now(timezone.utc),
        version=settings.app_version,
        environment=settings.environment,
        uptime_seconds=round(uptime_seconds, 2),
        components=components,
    )


@router.get(
    "/ready",
    response_model=HealthCheckResponse,
    summary="Readiness check",
    description="Check if the application is ready to accept traffic.",
)
async def readiness_check() -> HealthCheckResponse:
    """
    Readiness check for Kubernetes.

    The API is ready once the database answers.
    """
    database = await _check_database()
    return HealthCheckResponse(
        status=database.status,
        timestamp=datetime.now(timezone.utc),
    )
