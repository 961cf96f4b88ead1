"""
ARQ background worker for Funnel Insight.

Run with:
    arq api.workers.WorkerSettings

Tasks:
    - reset_daily_quotas: Zero stale daily counters. Cron at 00:00.
    - reset_monthly_quotas: Zero stale monthly counters. Cron at 00:00 on day 1.

Both sweeps are idempotent and agree with the lazy reset done on the request
path, so a missed or repeated run changes nothing.
"""

import logging
from urllib.parse import urlparse
from zoneinfo import ZoneInfo

from arq import cron
from arq.connections import RedisSettings

from core.config import get_settings
from database import close_database, get_session_factory, init_database
from services.quota_service import QuotaService, ResetScope

logger = logging.getLogger(__name__)

# Configure logging for the worker process
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


# ── Lifecycle hooks ──────────────────────────────────────────────────────────


async def startup(ctx: dict) -> None:
    """Initialise the database and quota service for the worker."""
    logger.info("ARQ worker starting up...")

    await init_database()
    logger.info("Database initialized")

    ctx["quota_service"] = QuotaService(get_session_factory())
    logger.info("QuotaService ready")


async def shutdown(ctx: dict) -> None:
    """Clean up resources on worker shutdown."""
    logger.info("ARQ worker shutting down...")
    await close_database()
    logger.info("Database connection closed")


# ── Tasks ────────────────────────────────────────────────────────────────────


async def reset_daily_quotas(ctx: dict) -> dict:
    """Zero every daily counter whose marker is before today."""
    quota_service: QuotaService = ctx["quota_service"]
    count = await quota_service.periodic_reset(ResetScope.DAILY)
    return {"scope": ResetScope.DAILY.value, "reset_count": count}


async def reset_monthly_quotas(ctx: dict) -> dict:
    """Zero every monthly counter whose marker is before this month."""
    quota_service: QuotaService = ctx["quota_service"]
    count = await quota_service.periodic_reset(ResetScope.MONTHLY)
    return {"scope": ResetScope.MONTHLY.value, "reset_count": count}


# ── ARQ configuration ───────────────────────────────────────────────────────


def _parse_redis_settings() -> RedisSettings:
    """Parse REDIS_URL into arq RedisSettings."""
    url = get_settings().redis_url
    parsed = urlparse(url)
    return RedisSettings(
        host=parsed.hostname or "localhost",
        port=parsed.port or 6379,
        database=int(parsed.path.lstrip("/") or 0),
        password=parsed.password,
    )


class WorkerSettings:
    """ARQ worker configuration."""

    functions = [reset_daily_quotas, reset_monthly_quotas]

    cron_jobs = [
        cron(
            reset_daily_quotas,
            hour=0,
            minute=0,
            run_at_startup=True,
        ),
        cron(
            reset_monthly_quotas,
            day=1,
            hour=0,
            minute=0,
            run_at_startup=True,
        ),
    ]

    on_startup = startup
    on_shutdown = shutdown

    redis_settings = _parse_redis_settings()

    # Cron boundaries follow the quota timezone
    timezone = ZoneInfo(get_settings().quota_timezone)

    max_jobs = 2
    job_timeout = 300
