"""
Cache Store — write and read side of the local Lazada cache.

Writes are INSERT ... ON CONFLICT DO UPDATE on each table's natural key, so a
repeated sync overwrites rows in place instead of duplicating them. Only the
sync orchestrator writes; the dashboard reads through the query helpers below.
"""

import logging
import uuid
from datetime import date, datetime, time
from typing import Any, Optional, Sequence
from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from app.database import Base
from app.models import CachedCampaign, CachedCampaignMetric, CachedOrder, SellerAccount

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 100

ORDER_KEYS = ("account_id", "order_id")
CAMPAIGN_KEYS = ("account_id", "campaign_id")
CAMPAIGN_METRIC_KEYS = ("account_id", "campaign_id", "metric_date")


def _insert_for(db: AsyncSession, model: type[Base]):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise RuntimeError(f"Upsert not supported on dialect '{dialect}'")


def _dedupe(rows: Sequence[dict], conflict_keys: Sequence[str]) -> list[dict]:
    """Collapse rows sharing a key; the last one wins. Postgres rejects a batch that hits one row twice."""
    by_key: dict[tuple, dict] = {}
    for row in rows:
        by_key[tuple(row[k] for k in conflict_keys)] = row
    return list(by_key.values())


async def upsert_batch(
    db: AsyncSession,
    model: type[Base],
    rows: Sequence[dict[str, Any]],
    conflict_keys: Sequence[str],
) -> int:
    """
    Insert-or-update up to MAX_BATCH_SIZE rows keyed by `conflict_keys`.
    Every non-key column in the rows is overwritten on conflict.
    Returns the number of distinct keys written. The caller commits.
    """
    if not rows:
        return 0
    if len(rows) > MAX_BATCH_SIZE:
        raise ValueError(f"Batch of {len(rows)} rows exceeds the {MAX_BATCH_SIZE}-row limit")

    values = []
    for row in _dedupe(rows, conflict_keys):
        missing = [k for k in conflict_keys if row.get(k) is None]
        if missing:
            raise ValueError(f"{model.__tablename__} row is missing key column(s): {', '.join(missing)}")
        values.append({**row, "id": row.get("id") or uuid.uuid4()})

    stmt = _insert_for(db, model).values(values)
    update_cols = {
        col: stmt.excluded[col]
        for col in values[0]
        if col != "id" and col not in conflict_keys
    }
    stmt = stmt.on_conflict_do_update(index_elements=list(conflict_keys), set_=update_cols)
    await db.execute(stmt)
    return len(values)


# ══════════════════════════════════════════════════════════════════════
#  READ SIDE — dashboard queries, user-scoped
# ══════════════════════════════════════════════════════════════════════

def _account_columns():
    return (
        SellerAccount.account_name.label("account_name"),
        SellerAccount.seller_id.label("seller_id"),
        SellerAccount.country.label("country"),
    )


def _row_dict(obj: Base, account_name: Optional[str], seller_id: Optional[str], country: Optional[str]) -> dict:
    data = {}
    for col in obj.__table__.columns:
        val = getattr(obj, col.key)
        if isinstance(val, uuid.UUID):
            val = str(val)
        elif isinstance(val, (datetime, date)):
            val = val.isoformat()
        data[col.key] = val
    data["account"] = {"account_name": account_name, "seller_id": seller_id, "country": country}
    return data


async def query_orders(
    db: AsyncSession,
    user_id: uuid.UUID,
    account_id: Optional[uuid.UUID] = None,
    status: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[dict], int]:
    """Cached orders, newest first, with the total count before pagination."""
    filters = [CachedOrder.user_id == user_id]
    if account_id:
        filters.append(CachedOrder.account_id == account_id)
    if status:
        filters.append(CachedOrder.status == status)
    if date_from:
        filters.append(CachedOrder.order_created_at >= datetime.combine(date_from, time.min))
    if date_to:
        # inclusive through the end of the day
        filters.append(CachedOrder.order_created_at <= datetime.combine(date_to, time.max))

    total = (await db.execute(select(func.count()).select_from(CachedOrder).where(*filters))).scalar() or 0

    result = await db.execute(
        select(CachedOrder, *_account_columns())
        .join(SellerAccount, SellerAccount.id == CachedOrder.account_id)
        .where(*filters)
        .order_by(CachedOrder.order_created_at.desc())
        .offset((max(page, 1) - 1) * limit)
        .limit(limit)
    )
    return [_row_dict(*row) for row in result.all()], total


async def query_campaigns(
    db: AsyncSession,
    user_id: uuid.UUID,
    account_id: Optional[uuid.UUID] = None,
) -> list[dict]:
    query = (
        select(CachedCampaign, *_account_columns())
        .join(SellerAccount, SellerAccount.id == CachedCampaign.account_id)
        .where(CachedCampaign.user_id == user_id)
    )
    if account_id:
        query = query.where(CachedCampaign.account_id == account_id)
    result = await db.execute(query.order_by(CachedCampaign.campaign_name))
    return [_row_dict(*row) for row in result.all()]


async def query_campaign_metrics(
    db: AsyncSession,
    user_id: uuid.UUID,
    account_id: Optional[uuid.UUID] = None,
    campaign_id: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> list[dict]:
    query = (
        select(CachedCampaignMetric, *_account_columns())
        .join(SellerAccount, SellerAccount.id == CachedCampaignMetric.account_id)
        .where(CachedCampaignMetric.user_id == user_id)
    )
    if account_id:
        query = query.where(CachedCampaignMetric.account_id == account_id)
    if campaign_id:
        query = query.where(CachedCampaignMetric.campaign_id == campaign_id)
    if date_from:
        query = query.where(CachedCampaignMetric.metric_date >= date_from)
    if date_to:
        query = query.where(CachedCampaignMetric.metric_date <= date_to)
    result = await db.execute(
        query.order_by(CachedCampaignMetric.metric_date.desc(), CachedCampaignMetric.campaign_id)
    )
    return [_row_dict(*row) for row in result.all()]


async def cache_counts(db: AsyncSession, user_id: uuid.UUID) -> dict[str, int]:
    counts = {}
    for name, model in (
        ("orders", CachedOrder),
        ("campaigns", CachedCampaign),
        ("campaign_metrics", CachedCampaignMetric),
    ):
        result = await db.execute(select(func.count()).select_from(model).where(model.user_id == user_id))
        counts[name] = result.scalar() or 0
    return counts
