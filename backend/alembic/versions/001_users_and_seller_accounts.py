"""Users and linked Lazada seller accounts.

Revision ID: 001
Revises:
Create Date: 2026-09-28

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()
    insp = sa.inspect(conn)
    existing = set(insp.get_table_names())

    if "users" not in existing:
        op.create_table(
            "users",
            sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
            sa.Column("email", sa.String(255), nullable=False),
            sa.Column("password_hash", sa.String(255), nullable=False),
            sa.Column("name", sa.String(255), nullable=True),
            sa.Column("role", sa.String(50), nullable=True, server_default="user"),
            sa.Column("is_active", sa.Boolean(), nullable=True, server_default=sa.true()),
            sa.Column("last_login_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.text("now()")),
            sa.Column("updated_at", sa.DateTime(), nullable=True, server_default=sa.text("now()")),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
        )
        op.create_index("ix_users_role", "users", ["role"], unique=False)

    if "seller_accounts" not in existing:
        op.create_table(
            "seller_accounts",
            sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
            sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
            sa.Column("seller_id", sa.String(64), nullable=False),
            sa.Column("account_name", sa.String(255), nullable=True),
            sa.Column("country", sa.String(10), nullable=True),
            sa.Column("account_platform", sa.String(64), nullable=True),
            sa.Column("country_user_info", postgresql.JSON(astext_type=sa.Text()), nullable=True),
            sa.Column("access_token", sa.Text(), nullable=False),
            sa.Column("refresh_token", sa.Text(), nullable=True),
            sa.Column("expires_in", sa.Integer(), nullable=True),
            sa.Column("token_expires_at", sa.DateTime(), nullable=True),
            sa.Column("refresh_expires_at", sa.DateTime(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=True, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.text("now()")),
            sa.Column("updated_at", sa.DateTime(), nullable=True, server_default=sa.text("now()")),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id", "seller_id", name="uq_seller_account_per_user"),
        )
        op.create_index("ix_seller_accounts_user_id", "seller_accounts", ["user_id"], unique=False)
        op.create_index("ix_seller_accounts_is_active", "seller_accounts", ["is_active"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_seller_accounts_is_active", table_name="seller_accounts")
    op.drop_index("ix_seller_accounts_user_id", table_name="seller_accounts")
    op.drop_table("seller_accounts")
    op.drop_index("ix_users_role", table_name="users")
    op.drop_table("users")
