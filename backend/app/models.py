"""
Lazada Seller Ops — Database Models
Linked seller accounts, the sync run ledger, and the local cache of
orders, campaigns and daily campaign metrics. Every cached row is scoped
to its owning user and seller account.
"""

import uuid
import enum
from datetime import date, datetime
from sqlalchemy import (
    String, Text, Float, Integer, BigInteger, Boolean, Date, DateTime,
    JSON, ForeignKey, Index, UniqueConstraint, Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.database import Base
from app.utils import utcnow


# ══════════════════════════════════════════════════════════════════════
#  ENUMS
# ══════════════════════════════════════════════════════════════════════

class SyncKind(str, enum.Enum):
    ORDERS = "orders"
    CAMPAIGNS = "campaigns"
    CAMPAIGN_METRICS = "campaign_metrics"


class SyncRunStatus(str, enum.Enum):
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


# ══════════════════════════════════════════════════════════════════════
#  USERS
# ══════════════════════════════════════════════════════════════════════

class User(Base):
    """App user for login and access control."""
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(50), default="user")  # admin, manager, analyst, user
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_login_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    seller_accounts: Mapped[list["SellerAccount"]] = relationship("SellerAccount", back_populates="user")

    __table_args__ = (
        Index("ix_users_role", "role"),
    )


# ══════════════════════════════════════════════════════════════════════
#  SELLER ACCOUNTS — Linked Lazada sellers (the token store)
# ══════════════════════════════════════════════════════════════════════

class SellerAccount(Base):
    """
    One linked Lazada seller credential. Tokens are Fernet-encrypted at rest.
    Never hard-deleted: removal clears is_active so cached rows keep their provenance.
    """
    __tablename__ = "seller_accounts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    seller_id: Mapped[str] = mapped_column(String(64), nullable=False)
    account_name: Mapped[str] = mapped_column(String(255), nullable=True)
    country: Mapped[str] = mapped_column(String(10), nullable=True)
    account_platform: Mapped[str] = mapped_column(String(64), nullable=True)
    country_user_info: Mapped[list] = mapped_column(JSON, nullable=True)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str] = mapped_column(Text, nullable=True)
    expires_in: Mapped[int] = mapped_column(Integer, nullable=True)
    token_expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    refresh_expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    user: Mapped["User"] = relationship("User", back_populates="seller_accounts")

    __table_args__ = (
        UniqueConstraint("user_id", "seller_id", name="uq_seller_account_per_user"),
        Index("ix_seller_accounts_user_id", "user_id"),
        Index("ix_seller_accounts_is_active", "is_active"),
    )

    @property
    def label(self) -> str:
        return self.account_name or self.seller_id


# ══════════════════════════════════════════════════════════════════════
#  SYNC RUNS — Append-only ledger, one row per account per sync kind
# ══════════════════════════════════════════════════════════════════════

class SyncRun(Base):
    """One audited attempt to pull one data kind for one seller account."""
    __tablename__ = "sync_runs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    account_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("seller_accounts.id", ondelete="SET NULL"), nullable=True)
    sync_type: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=SyncRunStatus.STARTED.value)
    started_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    completed_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    records_synced: Mapped[int] = mapped_column(Integer, default=0)
    error_message: Mapped[str] = mapped_column(Text, nullable=True)
    params: Mapped[dict] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        Index("ix_sync_runs_user_started", "user_id", "started_at"),
        Index("ix_sync_runs_account_type_status", "account_id", "sync_type", "status"),
        Index("ix_sync_runs_status", "status"),
    )


class SyncSettings(Base):
    """Per-user auto-sync switch and the outcome of the last full sync."""
    __tablename__ = "sync_settings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    auto_sync_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    last_sync_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    last_sync_status: Mapped[str] = mapped_column(String(20), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", name="uq_sync_settings_user"),
    )


# ══════════════════════════════════════════════════════════════════════
#  CACHED ORDERS
# ══════════════════════════════════════════════════════════════════════

class CachedOrder(Base):
    """Denormalized copy of one Lazada order."""
    __tablename__ = "cached_orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    account_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("seller_accounts.id", ondelete="CASCADE"), nullable=False)
    order_id: Mapped[str] = mapped_column(String(64), nullable=False)
    order_number: Mapped[str] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(64), nullable=True)
    price: Mapped[float] = mapped_column(Float, default=0.0)
    currency: Mapped[str] = mapped_column(String(10), nullable=True)
    items_count: Mapped[int] = mapped_column(Integer, default=0)
    order_created_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    order_updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    raw_data: Mapped[dict] = mapped_column(JSON, nullable=True)
    synced_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("account_id", "order_id", name="uq_cached_order_per_account"),
        Index("ix_cached_orders_user_created", "user_id", "order_created_at"),
        Index("ix_cached_orders_status", "status"),
    )


# ══════════════════════════════════════════════════════════════════════
#  CACHED CAMPAIGNS
# ══════════════════════════════════════════════════════════════════════

class CachedCampaign(Base):
    """Denormalized copy of one Lazada sponsored-solutions campaign."""
    __tablename__ = "cached_campaigns"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    account_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("seller_accounts.id", ondelete="CASCADE"), nullable=False)
    campaign_id: Mapped[str] = mapped_column(String(64), nullable=False)
    campaign_name: Mapped[str] = mapped_column(String(512), nullable=True)
    campaign_type: Mapped[str] = mapped_column(String(100), nullable=True)
    campaign_objective: Mapped[str] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=True)
    day_budget: Mapped[float] = mapped_column(Float, default=0.0)
    raw_data: Mapped[dict] = mapped_column(JSON, nullable=True)
    synced_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("account_id", "campaign_id", name="uq_cached_campaign_per_account"),
        Index("ix_cached_campaigns_user_id", "user_id"),
    )


# ══════════════════════════════════════════════════════════════════════
#  CACHED CAMPAIGN METRICS — One row per campaign per calendar day
# ══════════════════════════════════════════════════════════════════════

class CachedCampaignMetric(Base):
    """
    Daily discovery-report metrics for one campaign. Re-syncing a day
    overwrites that day's row; days outside the synced window are left alone.
    """
    __tablename__ = "cached_campaign_metrics"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    account_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("seller_accounts.id", ondelete="CASCADE"), nullable=False)
    campaign_id: Mapped[str] = mapped_column(String(64), nullable=False)
    campaign_name: Mapped[str] = mapped_column(String(512), nullable=True)
    metric_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Spend and revenue
    spend: Mapped[float] = mapped_column(Float, default=0.0)
    day_budget: Mapped[float] = mapped_column(Float, default=0.0)
    store_revenue: Mapped[float] = mapped_column(Float, default=0.0)
    product_revenue: Mapped[float] = mapped_column(Float, default=0.0)

    # Volume
    store_orders: Mapped[int] = mapped_column(Integer, default=0)
    product_orders: Mapped[int] = mapped_column(Integer, default=0)
    store_unit_sold: Mapped[int] = mapped_column(Integer, default=0)
    product_unit_sold: Mapped[int] = mapped_column(Integer, default=0)
    impressions: Mapped[int] = mapped_column(BigInteger, default=0)
    clicks: Mapped[int] = mapped_column(Integer, default=0)
    store_a2c: Mapped[int] = mapped_column(Integer, default=0)
    product_a2c: Mapped[int] = mapped_column(Integer, default=0)

    # Rates as reported upstream
    ctr: Mapped[float] = mapped_column(Float, default=0.0)
    cpc: Mapped[float] = mapped_column(Float, default=0.0)
    store_roi: Mapped[float] = mapped_column(Float, default=0.0)
    store_cvr: Mapped[float] = mapped_column(Float, default=0.0)
    product_cvr: Mapped[float] = mapped_column(Float, default=0.0)

    raw_data: Mapped[dict] = mapped_column(JSON, nullable=True)
    synced_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("account_id", "campaign_id", "metric_date", name="uq_cached_campaign_metric_day"),
        Index("ix_ccm_user_date", "user_id", "metric_date"),
        Index("ix_ccm_campaign_id", "campaign_id"),
    )
