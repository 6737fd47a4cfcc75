"""Sync run ledger and per-user sync settings.

Revision ID: 002
Revises: 001
Create Date: 2026-09-30

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()
    insp = sa.inspect(conn)
    existing = set(insp.get_table_names())

    if "sync_runs" not in existing:
        op.create_table(
            "sync_runs",
            sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
            sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
            sa.Column("account_id", postgresql.UUID(as_uuid=True), nullable=True),
            sa.Column("sync_type", sa.String(32), nullable=False),
            sa.Column("status", sa.String(20), nullable=True, server_default="started"),
            sa.Column("started_at", sa.DateTime(), nullable=True, server_default=sa.text("now()")),
            sa.Column("completed_at", sa.DateTime(), nullable=True),
            sa.Column("records_synced", sa.Integer(), nullable=True, server_default="0"),
            sa.Column("error_message", sa.Text(), nullable=True),
            sa.Column("params", postgresql.JSON(astext_type=sa.Text()), nullable=True),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["account_id"], ["seller_accounts.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_sync_runs_user_started", "sync_runs", ["user_id", "started_at"], unique=False)
        op.create_index(
            "ix_sync_runs_account_type_status", "sync_runs", ["account_id", "sync_type", "status"], unique=False
        )
        op.create_index("ix_sync_runs_status", "sync_runs", ["status"], unique=False)

    if "sync_settings" not in existing:
        op.create_table(
            "sync_settings",
            sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
            sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
            sa.Column("auto_sync_enabled", sa.Boolean(), nullable=True, server_default=sa.true()),
            sa.Column("last_sync_at", sa.DateTime(), nullable=True),
            sa.Column("last_sync_status", sa.String(20), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.text("now()")),
            sa.Column("updated_at", sa.DateTime(), nullable=True, server_default=sa.text("now()")),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id", name="uq_sync_settings_user"),
        )


def downgrade() -> None:
    op.drop_table("sync_settings")
    op.drop_index("ix_sync_runs_status", table_name="sync_runs")
    op.drop_index("ix_sync_runs_account_type_status", table_name="sync_runs")
    op.drop_index("ix_sync_runs_user_started", table_name="sync_runs")
    op.drop_table("sync_runs")
