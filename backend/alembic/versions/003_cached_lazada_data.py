"""Cached orders, campaigns and daily campaign metrics.

Revision ID: 003
Revises: 002
Create Date: 2026-10-02

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _owner_columns() -> list:
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("account_id", postgresql.UUID(as_uuid=True), nullable=False),
    ]


def _owner_constraints() -> list:
    return [
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["account_id"], ["seller_accounts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    ]


def upgrade() -> None:
    conn = op.get_bind()
    insp = sa.inspect(conn)
    existing = set(insp.get_table_names())

    if "cached_orders" not in existing:
        op.create_table(
            "cached_orders",
            *_owner_columns(),
            sa.Column("order_id", sa.String(64), nullable=False),
            sa.Column("order_number", sa.String(64), nullable=True),
            sa.Column("status", sa.String(64), nullable=True),
            sa.Column("price", sa.Float(), nullable=True, server_default="0"),
            sa.Column("currency", sa.String(10), nullable=True),
            sa.Column("items_count", sa.Integer(), nullable=True, server_default="0"),
            sa.Column("order_created_at", sa.DateTime(), nullable=True),
            sa.Column("order_updated_at", sa.DateTime(), nullable=True),
            sa.Column("raw_data", postgresql.JSON(astext_type=sa.Text()), nullable=True),
            sa.Column("synced_at", sa.DateTime(), nullable=True, server_default=sa.text("now()")),
            *_owner_constraints(),
            sa.UniqueConstraint("account_id", "order_id", name="uq_cached_order_per_account"),
        )
        op.create_index("ix_cached_orders_user_created", "cached_orders", ["user_id", "order_created_at"], unique=False)
        op.create_index("ix_cached_orders_status", "cached_orders", ["status"], unique=False)

    if "cached_campaigns" not in existing:
        op.create_table(
            "cached_campaigns",
            *_owner_columns(),
            sa.Column("campaign_id", sa.String(64), nullable=False),
            sa.Column("campaign_name", sa.String(512), nullable=True),
            sa.Column("campaign_type", sa.String(100), nullable=True),
            sa.Column("campaign_objective", sa.String(100), nullable=True),
            sa.Column("status", sa.String(50), nullable=True),
            sa.Column("day_budget", sa.Float(), nullable=True, server_default="0"),
            sa.Column("raw_data", postgresql.JSON(astext_type=sa.Text()), nullable=True),
            sa.Column("synced_at", sa.DateTime(), nullable=True, server_default=sa.text("now()")),
            *_owner_constraints(),
            sa.UniqueConstraint("account_id", "campaign_id", name="uq_cached_campaign_per_account"),
        )
        op.create_index("ix_cached_campaigns_user_id", "cached_campaigns", ["user_id"], unique=False)

    if "cached_campaign_metrics" not in existing:
        op.create_table(
            "cached_campaign_metrics",
            *_owner_columns(),
            sa.Column("campaign_id", sa.String(64), nullable=False),
            sa.Column("campaign_name", sa.String(512), nullable=True),
            sa.Column("metric_date", sa.Date(), nullable=False),
            sa.Column("spend", sa.Float(), nullable=True, server_default="0"),
            sa.Column("day_budget", sa.Float(), nullable=True, server_default="0"),
            sa.Column("store_revenue", sa.Float(), nullable=True, server_default="0"),
            sa.Column("product_revenue", sa.Float(), nullable=True, server_default="0"),
            sa.Column("store_orders", sa.Integer(), nullable=True, server_default="0"),
            sa.Column("product_orders", sa.Integer(), nullable=True, server_default="0"),
            sa.Column("store_unit_sold", sa.Integer(), nullable=True, server_default="0"),
            sa.Column("product_unit_sold", sa.Integer(), nullable=True, server_default="0"),
            sa.Column("impressions", sa.BigInteger(), nullable=True, server_default="0"),
            sa.Column("clicks", sa.Integer(), nullable=True, server_default="0"),
            sa.Column("store_a2c", sa.Integer(), nullable=True, server_default="0"),
            sa.Column("product_a2c", sa.Integer(), nullable=True, server_default="0"),
            sa.Column("ctr", sa.Float(), nullable=True, server_default="0"),
            sa.Column("cpc", sa.Float(), nullable=True, server_default="0"),
            sa.Column("store_roi", sa.Float(), nullable=True, server_default="0"),
            sa.Column("store_cvr", sa.Float(), nullable=True, server_default="0"),
            sa.Column("product_cvr", sa.Float(), nullable=True, server_default="0"),
            sa.Column("raw_data", postgresql.JSON(astext_type=sa.Text()), nullable=True),
            sa.Column("synced_at", sa.DateTime(), nullable=True, server_default=sa.text("now()")),
            *_owner_constraints(),
            sa.UniqueConstraint(
                "account_id", "campaign_id", "metric_date", name="uq_cached_campaign_metric_day"
            ),
        )
        op.create_index("ix_ccm_user_date", "cached_campaign_metrics", ["user_id", "metric_date"], unique=False)
        op.create_index("ix_ccm_campaign_id", "cached_campaign_metrics", ["campaign_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_ccm_campaign_id", table_name="cached_campaign_metrics")
    op.drop_index("ix_ccm_user_date", table_name="cached_campaign_metrics")
    op.drop_table("cached_campaign_metrics")
    op.drop_index("ix_cached_campaigns_user_id", table_name="cached_campaigns")
    op.drop_table("cached_campaigns")
    op.drop_index("ix_cached_orders_status", table_name="cached_orders")
    op.drop_index("ix_cached_orders_user_created", table_name="cached_orders")
    op.drop_table("cached_orders")
