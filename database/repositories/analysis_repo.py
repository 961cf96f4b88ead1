"""
Analysis repository for workflow step records.
"""

from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import delete, desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import AnalysisRecord, AnalysisStep


class AnalysisRepository:
    """Repository for AnalysisRecord model operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_record(
        self,
        user_id: UUID,
        funnel_id: UUID,
        dataset_period_start: date,
        step: int,
        input_data: dict[str, Any],
        output_data: dict[str, Any],
        parent_id: UUID | None = None,
        selected_strategy: str | None = None,
    ) -> AnalysisRecord:
        """Insert the record of a completed step."""
        record = AnalysisRecord(
            user_id=user_id,
            funnel_id=funnel_id,
            dataset_period_start=dataset_period_start,
            step=step,
            parent_id=parent_id,
            input=input_data,
            output=output_data,
            selected_strategy=selected_strategy,
            status="completed",
        )
        self.session.add(record)
        await self.session.flush()
        return record

    async def get_owned_step(
        self,
        record_id: UUID,
        user_id: UUID,
        funnel_id: UUID,
        step: int,
    ) -> AnalysisRecord | None:
        """Get a record of a given step, only if it belongs to the caller and funnel."""
        query = select(AnalysisRecord).where(
            AnalysisRecord.id == record_id,
            AnalysisRecord.user_id == user_id,
            AnalysisRecord.funnel_id == funnel_id,
            AnalysisRecord.step == step,
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_latest_step(
        self,
        user_id: UUID,
        funnel_id: UUID,
        dataset_period_start: date,
        step: int,
    ) -> AnalysisRecord | None:
        """Get the newest record of a step for one dataset period."""
        query = (
            select(AnalysisRecord)
            .where(
                AnalysisRecord.user_id == user_id,
                AnalysisRecord.funnel_id == funnel_id,
                AnalysisRecord.dataset_period_start == dataset_period_start,
                AnalysisRecord.step == step,
            )
            .order_by(desc(AnalysisRecord.created_at))
            .limit(1)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_reports(
        self,
        user_id: UUID,
        limit: int = 50,
        offset: int = 0,
    ) -> list[AnalysisRecord]:
        """List a user's complete reports, newest first."""
        query = (
            select(AnalysisRecord)
            .where(
                AnalysisRecord.user_id == user_id,
                AnalysisRecord.step == AnalysisStep.COMPLETE_REPORT,
            )
            .order_by(desc(AnalysisRecord.created_at))
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_report(self, user_id: UUID, report_id: UUID) -> AnalysisRecord | None:
        """Get one complete report owned by the user."""
        query = select(AnalysisRecord).where(
            AnalysisRecord.id == report_id,
            AnalysisRecord.user_id == user_id,
            AnalysisRecord.step == AnalysisStep.COMPLETE_REPORT,
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def report_exists(self, user_id: UUID, report_id: UUID) -> bool:
        query = select(AnalysisRecord.id).where(
            AnalysisRecord.id == report_id,
            AnalysisRecord.user_id == user_id,
            AnalysisRecord.step == AnalysisStep.COMPLETE_REPORT,
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none() is not None

    async def delete_for_user(self, user_id: UUID) -> int:
        """Delete every record of a user. Returns the number removed."""
        stmt = delete(AnalysisRecord).where(AnalysisRecord.user_id == user_id)
        result = await self.session.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount

    async def delete_for_funnel(
        self,
        user_id: UUID,
        funnel_id: UUID,
        dataset_period_start: date | None = None,
    ) -> int:
        """Delete a user's records for one funnel, optionally one period."""
        stmt = delete(AnalysisRecord).where(
            AnalysisRecord.user_id == user_id,
            AnalysisRecord.funnel_id == funnel_id,
        )
        if dataset_period_start is not None:
            stmt = stmt.where(AnalysisRecord.dataset_period_start == dataset_period_start)
        result = await self.session.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount
