"""Initial schema: tenants, funnels, quota, usage ledger and analysis records.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    ]


def upgrade() -> None:
    # ========================================
    # Tenants
    # ========================================

    op.create_table(
        "organizations",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("industry", sa.String(100), nullable=True),
        sa.Column("location", sa.String(100), nullable=True),
        sa.Column("company_size", sa.String(50), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_users_organization_id", "users", ["organization_id"])

    # ========================================
    # Funnels and metric datasets
    # ========================================

    op.create_table(
        "funnels",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("data_period", sa.String(20), server_default="monthly", nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_funnels_user_id", "funnels", ["user_id"])

    op.create_table(
        "funnel_nodes",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("funnel_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("label", sa.String(255), nullable=False),
        sa.Column("position", sa.Integer(), server_default="0", nullable=False),
        sa.ForeignKeyConstraint(["funnel_id"], ["funnels.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_funnel_nodes_funnel_id", "funnel_nodes", ["funnel_id"])

    op.create_table(
        "funnel_metrics",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("funnel_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("period_start_date", sa.Date(), nullable=False),
        sa.Column("period_end_date", sa.Date(), nullable=True),
        sa.Column("total_entries", sa.Integer(), server_default="0", nullable=False),
        sa.Column("total_conversions", sa.Integer(), server_default="0", nullable=False),
        sa.Column(
            "custom_metrics",
            postgresql.JSONB(),
            server_default=sa.text("'{}'::jsonb"),
            nullable=False,
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.ForeignKeyConstraint(["funnel_id"], ["funnels.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_funnel_metrics_funnel_period", "funnel_metrics", ["funnel_id", "period_start_date"]
    )
    op.create_index(
        "idx_funnel_metrics_funnel_updated",
        "funnel_metrics",
        ["funnel_id", sa.text("updated_at DESC")],
    )

    # ========================================
    # Quota and usage ledger
    # ========================================

    op.create_table(
        "quota_profiles",
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("daily_limit", sa.Integer(), server_default="100", nullable=False),
        sa.Column("monthly_limit", sa.Integer(), server_default="3000", nullable=False),
        sa.Column("current_daily", sa.Integer(), server_default="0", nullable=False),
        sa.Column("current_monthly", sa.Integer(), server_default="0", nullable=False),
        sa.Column("last_reset_daily", sa.Date(), nullable=False),
        sa.Column("last_reset_monthly", sa.Date(), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("user_id"),
        sa.CheckConstraint("daily_limit > 0", name="ck_quota_profiles_daily_limit_positive"),
        sa.CheckConstraint("monthly_limit > 0", name="ck_quota_profiles_monthly_limit_positive"),
        sa.CheckConstraint("current_daily >= 0", name="ck_quota_profiles_current_daily_nonneg"),
        sa.CheckConstraint(
            "current_monthly >= 0", name="ck_quota_profiles_current_monthly_nonneg"
        ),
    )
    # Used by the periodic reset sweeps
    op.create_index("ix_quota_profiles_last_reset_daily", "quota_profiles", ["last_reset_daily"])
    op.create_index(
        "ix_quota_profiles_last_reset_monthly", "quota_profiles", ["last_reset_monthly"]
    )

    op.create_table(
        "usage_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("session_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("usage_type", sa.String(20), nullable=False),
        sa.Column("request_count", sa.Integer(), server_default="1", nullable=False),
        sa.Column("token_count", sa.Integer(), nullable=True),
        sa.Column("cost", sa.Numeric(12, 6), nullable=True),
        sa.Column("usage_date", sa.Date(), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("request_count >= 1", name="ck_usage_events_request_count_positive"),
    )
    op.create_index("idx_usage_events_user_date", "usage_events", ["user_id", "usage_date"])
    op.create_index("ix_usage_events_usage_type", "usage_events", ["usage_type"])

    # ========================================
    # Analysis workflow
    # ========================================

    op.create_table(
        "analysis_records",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("funnel_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("dataset_period_start", sa.Date(), nullable=False),
        sa.Column("step", sa.Integer(), nullable=False),
        sa.Column("parent_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("input", postgresql.JSONB(), nullable=False),
        sa.Column("output", postgresql.JSONB(), nullable=False),
        sa.Column("selected_strategy", sa.String(20), nullable=True),
        sa.Column("status", sa.String(20), server_default="completed", nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["funnel_id"], ["funnels.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["parent_id"], ["analysis_records.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("step IN (1, 2, 3)", name="ck_analysis_records_step"),
        sa.CheckConstraint(
            "selected_strategy IS NULL OR selected_strategy IN ('stable', 'aggressive')",
            name="ck_analysis_records_strategy",
        ),
    )
    op.create_index(
        "idx_analysis_records_lookup",
        "analysis_records",
        ["user_id", "funnel_id", "dataset_period_start", "step"],
    )
    op.create_index("idx_analysis_records_user_step", "analysis_records", ["user_id", "step"])


def downgrade() -> None:
    # Drop tables in reverse order of creation (respecting FKs)
    op.drop_table("analysis_records")
    op.drop_table("usage_events")
    op.drop_table("quota_profiles")
    op.drop_table("funnel_metrics")
    op.drop_table("funnel_nodes")
    op.drop_table("funnels")
    op.drop_table("users")
    op.drop_table("organizations")
