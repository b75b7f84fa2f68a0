"""usage ledger tables

Revision ID: 0001_usage_ledger
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_usage_ledger"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "account_quotas",
        sa.Column("account_id", sa.String(length=64), primary_key=True),
        sa.Column("tier", sa.String(length=16), nullable=False),
        sa.Column("pages_used_this_month", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("credits_balance", sa.Float(), nullable=False, server_default="0"),
        sa.Column("last_reset_at", sa.DateTime(timezone=False), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=False), nullable=False),
    )

    op.create_table(
        "usage_records",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("account_id", sa.String(length=64), sa.ForeignKey("account_quotas.account_id"), nullable=False),
        sa.Column("document_id", sa.String(length=64), nullable=True),
        sa.Column("page_numbers", sa.JSON(), nullable=False),
        sa.Column("pages_consumed", sa.Integer(), nullable=False),
        sa.Column("credits_consumed", sa.Float(), nullable=False),
        sa.Column("tokens_used", sa.Integer(), nullable=True),
        sa.Column("estimated_cost", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
    )
    op.create_index("ix_usage_records_account_created", "usage_records", ["account_id", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_usage_records_account_created", table_name="usage_records")
    op.drop_table("usage_records")
    op.drop_table("account_quotas")
