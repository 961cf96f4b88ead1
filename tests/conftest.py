"""
Pytest configuration and fixtures.
"""

import asyncio
import json
import os
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any
from uuid import UUID, uuid4

import httpx
import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

# Set test environment before importing app
os.environ["ENVIRONMENT"] = "testing"
os.environ["DEBUG"] = "true"
os.environ["SECRET_KEY"] = "test-secret-key-for-testing-only-32chars!"
os.environ["REDIS_URL"] = "redis://localhost:6379/15"
os.environ["DATABASE_ENABLED"] = "false"

from core.config import Settings  # noqa: E402
from core.exceptions import CollaboratorError  # noqa: E402
from database import create_session_factory  # noqa: E402
from database.models import (  # noqa: E402
    Base,
    Funnel,
    FunnelMetrics,
    FunnelNode,
    Organization,
    User,
)
from services import (  # noqa: E402
    AnalysisWorkflowService,
    LLMResult,
    QuotaService,
    ReportCache,
    UsageLedger,
)
from tests.analysis_payloads import (  # noqa: E402
    COMPLETE_REPORT_JSON,
    KEY_INSIGHTS_JSON,
    STRATEGY_OPTIONS_JSON,
)


# ============ Mock Redis ============


class MockRedis:
    """Mock Redis client for testing."""

    def __init__(self):
        self._data: dict[str, Any] = {}
        self._sets: dict[str, set] = {}
        self._expiry: dict[str, int] = {}

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str, ex: int = None) -> bool:
        self._data[key] = value
        if ex:
            self._expiry[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        count = 0
        for key in keys:
            if key in self._data:
                del self._data[key]
                count += 1
            if key in self._sets:
                del self._sets[key]
                count += 1
        return count

    async def exists(self, key: str) -> int:
        return 1 if key in self._data else 0

    async def sadd(self, key: str, *values: str) -> int:
        if key not in self._sets:
            self._sets[key] = set()
        count = 0
        for v in values:
            if v not in self._sets[key]:
                self._sets[key].add(v)
                count += 1
        return count

    async def smembers(self, key: str) -> set:
        return set(self._sets.get(key, set()))

    async def ping(self) -> bool:
        return True

    async def aclose(self):
        pass


@pytest.fixture
def mock_redis():
    """Create a mock Redis instance."""
    return MockRedis()


# ============ Clock ============


class FakeClock:
    """Settable 'today' for quota windows."""

    def __init__(self, today: date):
        self.today = today

    def __call__(self) -> date:
        return self.today

    def advance(self, days: int = 1) -> None:
        self.today += timedelta(days=days)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(date(2026, 10, 15))


# ============ Fake analysis model ============


@dataclass
class FakeLLM:
    """Scripted analysis model; answers according to the prompt's step."""

    error: Exception | None = None
    delay: float = 0.0
    content: str | None = None
    calls: list[dict[str, Any]] = field(default_factory=list)

    async def generate(
        self,
        prompt: str,
        system_message: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> LLMResult:
        self.calls.append({"prompt": prompt, "system": system_message, "temperature": temperature})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.content is not None:
            return LLMResult(content=self.content, total_tokens=10)

        if prompt.startswith("# Sales funnel key insights"):
            payload = KEY_INSIGHTS_JSON
        elif prompt.startswith("# Strategy options"):
            payload = STRATEGY_OPTIONS_JSON
        else:
            payload = COMPLETE_REPORT_JSON
        return LLMResult(
            content=f"Here is the analysis:\n{json.dumps(payload)}",
            prompt_tokens=120,
            completion_tokens=80,
            total_tokens=200,
        )


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


# ============ Database ============


@pytest.fixture
async def engine():
    """In-memory SQLite engine with the full schema."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Let SQLAlchemy drive transactions so SAVEPOINT works on SQLite
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


# ============ Services ============


@pytest.fixture
def settings() -> Settings:
    return Settings(
        ai_daily_limit_default=100,
        ai_monthly_limit_default=3000,
        analysis_timeout_seconds=0.5,
        analysis_step_cost=1,
    )


@pytest.fixture
def quota_service(session_factory, settings, clock) -> QuotaService:
    return QuotaService(session_factory, settings=settings, clock=clock)


@pytest.fixture
def usage_ledger(session_factory, quota_service) -> UsageLedger:
    return UsageLedger(session_factory, quota_service)


@pytest.fixture
def report_cache(mock_redis) -> ReportCache:
    return ReportCache(mock_redis, ttl_seconds=300)


@pytest.fixture
async def workflow(
    session_factory, quota_service, usage_ledger, fake_llm, report_cache, settings
) -> AsyncGenerator[AnalysisWorkflowService, None]:
    service = AnalysisWorkflowService(
        session_factory,
        quota_service,
        usage_ledger,
        generator=fake_llm,
        report_cache=report_cache,
        settings=settings,
    )
    yield service
    await service.wait_inflight()


# ============ Test Data Fixtures ============


@dataclass
class SeedData:
    user_id: UUID
    other_user_id: UUID
    funnel_id: UUID
    empty_funnel_id: UUID
    node_ids: list[UUID]
    period: date
    previous_period: date


@pytest.fixture
async def seed(session_factory) -> SeedData:
    """One organization, two users and a three-stage funnel with two monthly datasets."""
    period = date(2026, 10, 1)
    previous_period = date(2026, 9, 1)

    async with session_factory() as session, session.begin():
        org = Organization(
            name="Acme Analytics",
            industry="SaaS",
            location="Berlin",
            company_size="11-50",
            description="B2B reporting tools",
        )
        session.add(org)
        await session.flush()

        user = User(email="owner@acme.test", name="Owner", organization_id=org.id)
        other = User(email="other@acme.test", name="Other")
        session.add_all([user, other])
        await session.flush()

        funnel = Funnel(user_id=user.id, name="Inbound sales", data_period="monthly")
        empty = Funnel(user_id=user.id, name="No data yet", data_period="weekly")
        session.add_all([funnel, empty])
        await session.flush()

        nodes = [
            FunnelNode(funnel_id=funnel.id, label=label, position=index)
            for index, label in enumerate(["Lead", "Demo", "Closed"])
        ]
        session.add_all(nodes)
        await session.flush()

        earlier = datetime(2024, 1, 2, 9, 0, tzinfo=timezone.utc)
        session.add_all(
            [
                FunnelMetrics(
                    funnel_id=funnel.id,
                    period_start_date=previous_period,
                    period_end_date=date(2026, 9, 30),
                    total_entries=900,
                    total_conversions=30,
                    custom_metrics={
                        "stageData": {
                            str(nodes[0].id): 900,
                            str(nodes[1].id): 150,
                            str(nodes[2].id): 30,
                        }
                    },
                    updated_at=earlier - timedelta(days=20),
                ),
                FunnelMetrics(
                    funnel_id=funnel.id,
                    period_start_date=period,
                    period_end_date=date(2026, 10, 31),
                    total_entries=1000,
                    total_conversions=40,
                    custom_metrics={
                        "stageData": {
                            str(nodes[0].id): 1000,
                            str(nodes[1].id): 200,
                            str(nodes[2].id): 40,
                        }
                    },
                    updated_at=earlier,
                ),
            ]
        )

    return SeedData(
        user_id=user.id,
        other_user_id=other.id,
        funnel_id=funnel.id,
        empty_funnel_id=empty.id,
        node_ids=[node.id for node in nodes],
        period=period,
        previous_period=previous_period,
    )


@pytest.fixture
def collaborator_failure() -> CollaboratorError:
    """A completed upstream error (the model answered with a failure)."""
    return CollaboratorError(message="upstream returned 500")


# ============ API Fixtures ============


@pytest.fixture
def auth_headers(seed) -> dict[str, str]:
    """Bearer token of the seeded funnel owner."""
    from core.security import create_user_token

    return {"Authorization": f"Bearer {create_user_token(str(seed.user_id))}"}


@pytest.fixture
def other_auth_headers(seed) -> dict[str, str]:
    from core.security import create_user_token

    return {"Authorization": f"Bearer {create_user_token(str(seed.other_user_id))}"}


@pytest.fixture
def admin_headers() -> dict[str, str]:
    from core.security import create_user_token

    token = create_user_token(str(uuid4()), email="admin@acme.test", scopes=["admin"])
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def app():
    """Fresh application instance (lifespan is not run)."""
    from api.main import create_app

    return create_app()


@pytest.fixture
async def async_client(app, quota_service, usage_ledger, workflow) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Async HTTP client with the service dependencies bound to the test database."""
    from api.dependencies import get_quota_service, get_usage_ledger, get_workflow_service

    app.dependency_overrides[get_quota_service] = lambda: quota_service
    app.dependency_overrides[get_usage_ledger] = lambda: usage_ledger
    app.dependency_overrides[get_workflow_service] = lambda: workflow

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
async def bare_client(app) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Async HTTP client without a database behind it."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
