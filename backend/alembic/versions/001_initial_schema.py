"""Initial tip pool schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Departments table
    op.create_table(
        "departments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.Integer(), nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("department_type", sa.String(20), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), server_default="0", nullable=False, index=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Categories table
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.Integer(), nullable=False, index=True),
        sa.Column("department_id", sa.Integer(), sa.ForeignKey("departments.id"), nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("is_dual_role", sa.Boolean(), server_default="0", nullable=False),
        sa.Column("is_deleted", sa.Boolean(), server_default="0", nullable=False, index=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Distribution shares table
    op.create_table(
        "distribution_shares",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "department_id", sa.Integer(),
            sa.ForeignKey("departments.id", ondelete="CASCADE"), nullable=False, index=True,
        ),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=False, index=True),
        sa.Column("percent", sa.Numeric(5, 2), nullable=False),
        sa.UniqueConstraint("department_id", "category_id", name="uq_distribution_share"),
    )

    # Collection ledger table
    op.create_table(
        "daily_reports",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=False, index=True),
        sa.Column("service_date", sa.Date(), nullable=False),
        sa.Column("gross_tips", sa.Numeric(12, 2), nullable=False),
        sa.Column("net_tips", sa.Numeric(12, 2), nullable=False),
        sa.Column("payment_method", sa.String(20), server_default="cash", nullable=False),
        sa.Column("source", sa.String(50), server_default="manual", nullable=False),
        sa.Column("was_collector", sa.Boolean(), server_default="1", nullable=False),
        sa.Column("recorded_by", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_daily_reports_company_date", "daily_reports", ["company_id", "service_date"])
    op.create_index("ix_daily_reports_user_date", "daily_reports", ["user_id", "service_date"])

    # Tip pools table
    op.create_table(
        "tip_pools",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column("sequence", sa.Integer(), server_default="1", nullable=False),
        sa.Column("adjusts_pool_id", sa.Integer(), sa.ForeignKey("tip_pools.id"), nullable=True),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("entry_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("status", sa.String(20), server_default="finalized", nullable=False),
        sa.Column("finalized_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("company_id", "period_start", "period_end", "sequence", name="uq_tip_pool_period"),
    )
    op.create_index("ix_tip_pools_company_period", "tip_pools", ["company_id", "period_start"])

    # Pool membership table
    op.create_table(
        "pool_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("pool_id", sa.Integer(), sa.ForeignKey("tip_pools.id"), nullable=False, index=True),
        sa.Column("entry_id", sa.Integer(), sa.ForeignKey("daily_reports.id"), nullable=False, unique=True),
    )

    # Allocations table
    op.create_table(
        "pool_allocations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("pool_id", sa.Integer(), sa.ForeignKey("tip_pools.id"), nullable=False, index=True),
        sa.Column("company_id", sa.Integer(), nullable=False, index=True),
        sa.Column("department_id", sa.Integer(), sa.ForeignKey("departments.id"), nullable=False, index=True),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=False),
        sa.Column("percent", sa.Numeric(5, 2), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("pool_id", "department_id", "category_id", name="uq_pool_allocation_target"),
    )

    # Audit log table
    op.create_table(
        "audit_log_entries",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("company_id", sa.Integer(), nullable=False, index=True),
        sa.Column("user_id", sa.Integer(), nullable=True, index=True),
        sa.Column("action", sa.String(50), nullable=False, index=True),
        sa.Column("entity_type", sa.String(50), nullable=True, index=True),
        sa.Column("entity_id", sa.String(50), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True, index=True),
    )


def downgrade() -> None:
    op.drop_table("audit_log_entries")
    op.drop_table("pool_allocations")
    op.drop_table("pool_entries")
    op.drop_index("ix_tip_pools_company_period", table_name="tip_pools")
    op.drop_table("tip_pools")
    op.drop_index("ix_daily_reports_user_date", table_name="daily_reports")
    op.drop_index("ix_daily_reports_company_date", table_name="daily_reports")
    op.drop_table("daily_reports")
    op.drop_table("distribution_shares")
    op.drop_table("categories")
    op.drop_table("departments")
