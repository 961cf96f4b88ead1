"""
Three-step AI funnel analysis workflow.

Per (user, funnel, dataset period) the workflow moves through
Empty -> key insights (free) -> strategy options (paid) -> complete report
(paid). A step record is written only after its generation succeeded, so the
presence of a record is the signal a caller resumes from.

Paid steps reserve quota before the model call. The call itself runs outside
any transaction and is bounded by ``analysis_timeout_seconds``. Generation and
persistence run in a task shielded from caller cancellation: once the model
has answered the record is always written.
"""

import asyncio
import logging
import math
from collections.abc import Callable
from datetime import UTC, date, datetime
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.config import Settings, get_settings
from core.exceptions import (
    AnalysisNotFoundError,
    CollaboratorError,
    CollaboratorTimeoutError,
    DatasetNotFoundError,
    FunnelNotFoundError,
    InvalidStrategyError,
    ReportNotFoundError,
    ValidationError,
)
from database import session_scope
from database.models import AnalysisRecord, AnalysisStep, Funnel, StrategyChoice, UsageType
from database.repositories import AnalysisRepository, FunnelRepository

from .analysis_outputs import (
    AnalysisOutput,
    build_complete_report,
    parse_key_insights,
    parse_strategy_options,
)
from .analysis_prompts import (
    COMPLETE_REPORT_SYSTEM,
    COMPLETE_REPORT_TEMPERATURE,
    KEY_INSIGHTS_SYSTEM,
    KEY_INSIGHTS_TEMPERATURE,
    STRATEGY_OPTIONS_SYSTEM,
    STRATEGY_OPTIONS_TEMPERATURE,
    build_complete_report_prompt,
    build_key_insights_prompt,
    build_strategy_options_prompt,
)
from .llm_client import LLMResult, get_llm_client
from .quota_service import QuotaService
from .report_cache import ReportCache
from .usage_ledger import UsageLedger

logger = logging.getLogger(__name__)

DEFAULT_SALES_MODEL = "B2B"


class AnalysisGenerator(Protocol):
    """Anything that turns a prompt into text, like LLMClient."""

    async def generate(
        self,
        prompt: str,
        system_message: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> LLMResult: ...


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _without_tag(output: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in output.items() if key != "step"}


def _record_summary(record: AnalysisRecord) -> dict[str, Any]:
    return {
        "analysis_id": str(record.id),
        "step": record.step,
        "funnel_id": str(record.funnel_id),
        "dataset_period_start": _iso(record.dataset_period_start),
        "parent_id": str(record.parent_id) if record.parent_id else None,
        "selected_strategy": record.selected_strategy,
        "output": record.output,
        "created_at": _iso(_as_utc(record.created_at)),
    }


def stage_value(value: Any) -> int | float:
    """
    Read one stage count from free-form dataset JSON.

    Numbers and numeric strings are kept (whole values as int); anything else,
    including non-finite numbers, counts as 0.
    """
    if isinstance(value, bool):
        return 0
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return 0
    if isinstance(value, int):
        return value
    if not isinstance(value, float) or not math.isfinite(value):
        return 0
    return int(value) if value.is_integer() else value


def _report_title(record: AnalysisRecord) -> str | None:
    header = (record.output.get("detailed_analysis") or {}).get("header")
    if isinstance(header, dict):
        return header.get("title")
    return None


class AnalysisWorkflowService:
    """Orchestrates the three analysis steps, quota and persistence."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        quota_service: QuotaService,
        usage_ledger: UsageLedger,
        generator: AnalysisGenerator | None = None,
        report_cache: ReportCache | None = None,
        settings: Settings | None = None,
    ):
        """
        Initialize the workflow service.

        Args:
            session_factory: Factory for database sessions
            quota_service: Quota tracker used to gate paid steps
            usage_ledger: Ledger that receives one event per charged step
            generator: Analysis model client (defaults to the shared LLM client)
            report_cache: Optional Redis-backed report cache
            settings: Application settings (defaults to cached settings)
        """
        self._session_factory = session_factory
        self._quota = quota_service
        self._ledger = usage_ledger
        self._generator = generator
        self._cache = report_cache or ReportCache(None)
        self._settings = settings or get_settings()
        self._inflight: set[asyncio.Task] = set()

    # ============ Collaborator ============

    def _get_generator(self) -> AnalysisGenerator:
        if self._generator is None:
            self._generator = get_llm_client()
        return self._generator

    async def _call_model(self, prompt: str, system: str, temperature: float) -> LLMResult:
        """Call the model with a hard deadline, normalizing failures to CollaboratorError."""
        try:
            return await asyncio.wait_for(
                self._get_generator().generate(
                    prompt,
                    system_message=system,
                    temperature=temperature,
                    max_tokens=self._settings.llm_max_tokens,
                ),
                timeout=self._settings.analysis_timeout_seconds,
            )
        except CollaboratorError:
            raise
        except TimeoutError as e:
            raise CollaboratorTimeoutError(
                message=f"AI analysis did not finish within {self._settings.analysis_timeout_seconds}s",
            ) from e
        except Exception as e:
            logger.exception("Analysis model call failed unexpectedly")
            raise CollaboratorError(
                message=f"AI analysis failed: {e}",
                completed=False,
            ) from e

    async def _shielded(self, coro) -> Any:
        """Run ``coro`` in a task that survives cancellation of the caller."""
        task = asyncio.ensure_future(coro)
        self._inflight.add(task)
        task.add_done_callback(self._task_done)
        return await asyncio.shield(task)

    def _task_done(self, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Analysis task finished with error: {task.exception()!r}")

    async def wait_inflight(self) -> None:
        """Wait for generations still running after their callers went away."""
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

    # ============ Step execution ============

    async def _execute_step(
        self,
        *,
        user_id: UUID,
        funnel_id: UUID,
        period_start: date,
        step: AnalysisStep,
        context: dict[str, Any],
        prompt: str,
        system: str,
        temperature: float,
        parse: Callable[[str], AnalysisOutput],
        parent_id: UUID | None = None,
        selected_strategy: StrategyChoice | None = None,
        charge: int = 0,
        charged_on: date | None = None,
        correlation_id: UUID | None = None,
    ) -> AnalysisRecord:
        try:
            result = await self._call_model(prompt, system, temperature)
            output = parse(result.content)
        except CollaboratorError as e:
            logger.warning(
                f"Step {step.value} generation failed: user={user_id}, funnel={funnel_id}, "
                f"completed={e.completed}, error={e.message}"
            )
            if charge:
                await self._settle_failed_charge(user_id, charge, charged_on, e, correlation_id)
            raise

        async with session_scope(self._session_factory) as db:
            record = await AnalysisRepository(db).create_record(
                user_id=user_id,
                funnel_id=funnel_id,
                dataset_period_start=period_start,
                step=step.value,
                input_data=context,
                output_data=output.model_dump(mode="json"),
                parent_id=parent_id,
                selected_strategy=selected_strategy.value if selected_strategy else None,
            )
            if charge:
                await self._ledger.record(
                    user_id=user_id,
                    usage_type=UsageType.ANALYSIS,
                    request_count=charge,
                    token_count=result.total_tokens or None,
                    session_id=correlation_id or record.id,
                    apply_to_quota=False,
                    session=db,
                )

        logger.info(
            f"Step {step.value} completed: user={user_id}, funnel={funnel_id}, "
            f"period={period_start}, analysis={record.id}, tokens={result.total_tokens}"
        )
        return record

    async def _settle_failed_charge(
        self,
        user_id: UUID,
        charge: int,
        charged_on: date | None,
        error: CollaboratorError,
        correlation_id: UUID | None,
    ) -> None:
        """
        Refund a call that never returned; keep the charge for one that did.

        A failure here is logged and the original collaborator error is what
        the caller sees.
        """
        try:
            if error.completed:
                await self._ledger.record(
                    user_id=user_id,
                    usage_type=UsageType.ANALYSIS,
                    request_count=charge,
                    session_id=correlation_id,
                    apply_to_quota=False,
                )
            else:
                await self._quota.release(user_id, charge, charged_on=charged_on)
        except Exception:
            logger.exception(f"Failed to settle quota after collaborator error: user={user_id}")

    # ============ Context ============

    async def _resolve_funnel(self, db: AsyncSession, user_id: UUID, funnel_id: UUID) -> Funnel:
        funnel = await FunnelRepository(db).get_owned_funnel(funnel_id, user_id)
        if funnel is None:
            raise FunnelNotFoundError(details={"funnel_id": str(funnel_id)})
        return funnel

    async def _build_key_insights_context(
        self,
        db: AsyncSession,
        user_id: UUID,
        funnel_id: UUID,
        period_start: date | None,
    ) -> tuple[dict[str, Any], date]:
        funnels = FunnelRepository(db)
        funnel = await self._resolve_funnel(db, user_id, funnel_id)

        if period_start is not None:
            metrics = await funnels.get_metrics_for_period(funnel.id, period_start)
        else:
            metrics = await funnels.get_latest_metrics(funnel.id)
        if metrics is None:
            raise DatasetNotFoundError(
                details={
                    "funnel_id": str(funnel_id),
                    "dataset_period_start": _iso(period_start),
                }
            )

        previous = await funnels.get_previous_metrics(funnel.id, metrics.period_start_date)
        previous_data = previous.stage_data if previous else {}
        current_data = metrics.stage_data

        organization = await funnels.get_organization_for_user(user_id)
        company_profile = {
            "company_name": organization.name if organization else "",
            "industry": (organization.industry if organization else None) or "",
            "city": (organization.location if organization else None) or "",
            "team_size": (organization.company_size if organization else None) or "",
            "sales_model": DEFAULT_SALES_MODEL,
            "company_description": (organization.description if organization else None) or "",
        }

        stages = [
            {
                "stage_name": node.label,
                "current_value": stage_value(current_data.get(str(node.id))),
                "previous_value": (
                    stage_value(previous_data[str(node.id)])
                    if previous_data.get(str(node.id)) is not None
                    else None
                ),
            }
            for node in funnel.nodes
        ]

        context = {
            "company_profile": company_profile,
            "funnel_data": {
                "funnel_name": funnel.name,
                "time_period": funnel.data_period,
                "stages": stages,
            },
        }
        return context, metrics.period_start_date

    async def _load_step(
        self,
        user_id: UUID,
        analysis_id: UUID,
        funnel_id: UUID,
        step: AnalysisStep,
    ) -> AnalysisRecord:
        async with session_scope(self._session_factory) as db:
            record = await AnalysisRepository(db).get_owned_step(
                analysis_id, user_id, funnel_id, step.value
            )
        if record is None:
            raise AnalysisNotFoundError(
                message=f"No step {step.value} analysis found for this funnel",
                details={"analysis_id": str(analysis_id), "step": step.value},
            )
        return record

    @staticmethod
    def _require_ids(**ids: UUID | None) -> None:
        missing = [name for name, value in ids.items() if value is None]
        if missing:
            raise ValidationError(
                message=f"Missing required id: {', '.join(missing)}",
                details={"missing": missing},
            )

    # ============ Steps ============

    async def generate_key_insights(
        self,
        user_id: UUID,
        funnel_id: UUID,
        period_start: date | None = None,
    ) -> dict[str, Any]:
        """
        Step 1: free key insights for a funnel's dataset period.

        Without ``period_start`` the most recently updated dataset is used.
        Running it again for the same period creates a new record.

        Raises:
            FunnelNotFoundError: Funnel missing or not owned by the user
            DatasetNotFoundError: No dataset for the resolved period
            CollaboratorError: Generation failed (nothing is persisted)
        """
        self._require_ids(funnel_id=funnel_id)

        async with session_scope(self._session_factory) as db:
            context, period = await self._build_key_insights_context(
                db, user_id, funnel_id, period_start
            )

        record = await self._shielded(
            self._execute_step(
                user_id=user_id,
                funnel_id=funnel_id,
                period_start=period,
                step=AnalysisStep.KEY_INSIGHTS,
                context=context,
                prompt=build_key_insights_prompt(context),
                system=KEY_INSIGHTS_SYSTEM,
                temperature=KEY_INSIGHTS_TEMPERATURE,
                parse=parse_key_insights,
            )
        )
        return _record_summary(record)

    async def generate_strategy_options(
        self,
        user_id: UUID,
        analysis_id: UUID,
        funnel_id: UUID,
    ) -> dict[str, Any]:
        """
        Step 2: paid stable/aggressive strategy options.

        Raises:
            AnalysisNotFoundError: No step-1 record with this id for the user and funnel
            QuotaExceededError / QuotaDisabledError: Quota gate refused
            CollaboratorError: Generation failed (nothing is persisted)
        """
        self._require_ids(analysis_id=analysis_id, funnel_id=funnel_id)
        step1 = await self._load_step(user_id, analysis_id, funnel_id, AnalysisStep.KEY_INSIGHTS)

        context = {**step1.input, "step1_output": _without_tag(step1.output)}
        charge = self._settings.analysis_step_cost
        quota = await self._quota.reserve(user_id, charge)

        record = await self._shielded(
            self._execute_step(
                user_id=user_id,
                funnel_id=funnel_id,
                period_start=step1.dataset_period_start,
                step=AnalysisStep.STRATEGY_OPTIONS,
                context=context,
                prompt=build_strategy_options_prompt(context),
                system=STRATEGY_OPTIONS_SYSTEM,
                temperature=STRATEGY_OPTIONS_TEMPERATURE,
                parse=parse_strategy_options,
                parent_id=step1.id,
                charge=charge,
                charged_on=quota.charged_on,
                correlation_id=step1.id,
            )
        )
        return {**_record_summary(record), "quota": quota.to_dict()}

    async def generate_complete_report(
        self,
        user_id: UUID,
        analysis_id: UUID,
        funnel_id: UUID,
        selected_strategy: StrategyChoice | str,
    ) -> dict[str, Any]:
        """
        Step 3: paid complete report for the chosen strategy.

        The strategy is validated before anything else, so a bad value never
        touches quota.

        Raises:
            InvalidStrategyError: Strategy is not stable or aggressive
            AnalysisNotFoundError: No step-2 record with this id for the user and funnel
            QuotaExceededError / QuotaDisabledError: Quota gate refused
            CollaboratorError: Generation failed (nothing is persisted)
        """
        try:
            choice = StrategyChoice(selected_strategy)
        except ValueError:
            raise InvalidStrategyError(
                message=f"Strategy must be one of: {', '.join(c.value for c in StrategyChoice)}",
                details={"selected_strategy": str(selected_strategy)},
            ) from None

        self._require_ids(analysis_id=analysis_id, funnel_id=funnel_id)
        step2 = await self._load_step(
            user_id, analysis_id, funnel_id, AnalysisStep.STRATEGY_OPTIONS
        )

        context = {
            **step2.input,
            "step2_output": _without_tag(step2.output),
            "user_choice": choice.value,
        }
        charge = self._settings.analysis_step_cost
        quota = await self._quota.reserve(user_id, charge)

        record = await self._shielded(
            self._execute_step(
                user_id=user_id,
                funnel_id=funnel_id,
                period_start=step2.dataset_period_start,
                step=AnalysisStep.COMPLETE_REPORT,
                context=context,
                prompt=build_complete_report_prompt(context, choice),
                system=COMPLETE_REPORT_SYSTEM,
                temperature=COMPLETE_REPORT_TEMPERATURE,
                parse=lambda text: build_complete_report(text, choice, context),
                parent_id=step2.id,
                selected_strategy=choice,
                charge=charge,
                charged_on=quota.charged_on,
                correlation_id=step2.parent_id or step2.id,
            )
        )
        return {**_record_summary(record), "quota": quota.to_dict()}

    # ============ Status & reports ============

    async def get_analysis_status(
        self,
        user_id: UUID,
        funnel_id: UUID,
        period_start: date | None = None,
    ) -> dict[str, Any]:
        """
        Report which steps exist for a dataset period so the caller can resume.

        Without ``period_start`` the most recently updated dataset is used.
        """
        async with session_scope(self._session_factory) as db:
            await self._resolve_funnel(db, user_id, funnel_id)
            funnels = FunnelRepository(db)
            if period_start is not None:
                metrics = await funnels.get_metrics_for_period(funnel_id, period_start)
            else:
                metrics = await funnels.get_latest_metrics(funnel_id)
                period_start = metrics.period_start_date if metrics else None

            latest: dict[AnalysisStep, AnalysisRecord | None] = {}
            analyses = AnalysisRepository(db)
            for step in AnalysisStep:
                latest[step] = (
                    await analyses.get_latest_step(user_id, funnel_id, period_start, step.value)
                    if period_start is not None
                    else None
                )

        step1 = latest[AnalysisStep.KEY_INSIGHTS]
        report = latest[AnalysisStep.COMPLETE_REPORT]
        needs_reanalysis = bool(
            step1 is not None
            and metrics is not None
            and _as_utc(metrics.updated_at) > _as_utc(step1.created_at)
        )

        return {
            "funnel_id": str(funnel_id),
            "dataset_period_start": _iso(period_start),
            "has_dataset": metrics is not None,
            "has_step1": step1 is not None,
            "has_step2": latest[AnalysisStep.STRATEGY_OPTIONS] is not None,
            "has_step3": report is not None,
            "step1_id": str(step1.id) if step1 else None,
            "step2_id": (
                str(latest[AnalysisStep.STRATEGY_OPTIONS].id)
                if latest[AnalysisStep.STRATEGY_OPTIONS]
                else None
            ),
            "step3_id": str(report.id) if report else None,
            "needs_reanalysis": needs_reanalysis,
            "existing_report": (
                {
                    "report_id": str(report.id),
                    "selected_strategy": report.selected_strategy,
                    "created_at": _iso(_as_utc(report.created_at)),
                }
                if report
                else None
            ),
        }

    async def list_reports(
        self,
        user_id: UUID,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """List the user's complete reports, newest first."""
        async with session_scope(self._session_factory) as db:
            records = await AnalysisRepository(db).list_reports(user_id, limit=limit, offset=offset)
            return [
                {
                    "report_id": str(record.id),
                    "funnel_id": str(record.funnel_id),
                    "funnel_name": record.funnel.name if record.funnel else None,
                    "dataset_period_start": _iso(record.dataset_period_start),
                    "selected_strategy": record.selected_strategy,
                    "title": _report_title(record),
                    "created_at": _iso(_as_utc(record.created_at)),
                }
                for record in records
            ]

    async def get_report(self, user_id: UUID, report_id: UUID) -> dict[str, Any]:
        """
        Get one complete report owned by the user.

        Raises:
            ReportNotFoundError: Report missing or owned by someone else
        """
        cached = await self._cache.get(user_id, report_id)
        if cached is not None:
            return cached

        async with session_scope(self._session_factory) as db:
            record = await AnalysisRepository(db).get_report(user_id, report_id)
            if record is None:
                raise ReportNotFoundError(details={"report_id": str(report_id)})
            report = {
                "report_id": str(record.id),
                "funnel_id": str(record.funnel_id),
                "funnel_name": record.funnel.name if record.funnel else None,
                "dataset_period_start": _iso(record.dataset_period_start),
                "selected_strategy": record.selected_strategy,
                "parent_id": str(record.parent_id) if record.parent_id else None,
                "created_at": _iso(_as_utc(record.created_at)),
                "content": record.output,
            }

        if not self._cache.enabled:
            return report

        await self._cache.set(user_id, report_id, report)

        # Records are deleted before the cache is invalidated, so a report
        # cleared while this read was in flight is gone from the database here
        async with session_scope(self._session_factory) as db:
            still_exists = await AnalysisRepository(db).report_exists(user_id, report_id)
        if not still_exists:
            await self._cache.delete(user_id, report_id)
        return report

    # ============ Clearing ============

    async def clear_all(self, user_id: UUID) -> int:
        """
        Delete every analysis record of the user.

        Quota counters and the usage ledger are left untouched.
        """
        async with session_scope(self._session_factory) as db:
            deleted = await AnalysisRepository(db).delete_for_user(user_id)
        await self._cache.invalidate_user(user_id)

        logger.info(f"Cleared all analyses: user={user_id}, deleted={deleted}")
        return deleted

    async def clear_funnel(
        self,
        user_id: UUID,
        funnel_id: UUID,
        period_start: date | None = None,
    ) -> int:
        """Delete the user's analyses of one funnel, optionally one period only."""
        async with session_scope(self._session_factory) as db:
            await self._resolve_funnel(db, user_id, funnel_id)
            deleted = await AnalysisRepository(db).delete_for_funnel(
                user_id, funnel_id, period_start
            )
        await self._cache.invalidate_user(user_id)

        logger.info(
            f"Cleared funnel analyses: user={user_id}, funnel={funnel_id}, "
            f"period={period_start}, deleted={deleted}"
        )
        return deleted
