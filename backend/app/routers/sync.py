"""
Sync Router — trigger Lazada syncs and read the cached data.

POST /sync/*      run a sync for the calling user (manual trigger)
GET  /sync/status last full sync, recent runs, cached row counts
GET  /sync/data/* cached orders, campaigns and daily campaign metrics
"""

import logging
from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import get_current_user
from app.database import get_db
from app.lazada_client import LazadaClient, get_lazada_client
from app.models import SyncSettings, User
from app.services import cache_store
from app.services.sync_ledger import recent_runs, run_to_dict
from app.services.sync_service import SyncPreconditionError, SyncService
from app.utils import parse_uuid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync", tags=["Sync"])


# ── Schemas ──────────────────────────────────────────────────────────
class _CamelBody(BaseModel):
    """Request bodies arrive camelCase. Omitted windows use the configured defaults."""
    model_config = ConfigDict(populate_by_name=True)


class SyncAllRequest(_CamelBody):
    orders_days_back: Optional[int] = Field(None, ge=1, le=365, alias="ordersDaysBack")
    metrics_days_back: Optional[int] = Field(None, ge=1, le=90, alias="metricsDaysBack")


class SyncOrdersRequest(_CamelBody):
    account_id: Optional[str] = Field(None, alias="accountId")
    days_back: Optional[int] = Field(None, ge=1, le=365, alias="daysBack")


class SyncCampaignsRequest(_CamelBody):
    account_id: Optional[str] = Field(None, alias="accountId")


class SyncMetricsRequest(_CamelBody):
    account_id: Optional[str] = Field(None, alias="accountId")
    days_back: Optional[int] = Field(None, ge=1, le=90, alias="daysBack")


# ── Helpers ───────────────────────────────────────────────────────────
def _account_filter(account_id: Optional[str]):
    """'all' and empty mean every account."""
    if not account_id or account_id == "all":
        return None
    return parse_uuid(account_id, "accountId")


async def _run_sync(label: str, operation):
    """Await a sync operation and map failures onto HTTP errors."""
    try:
        return await operation
    except SyncPreconditionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception(f"{label} sync failed")
        raise HTTPException(status_code=500, detail=str(e))


# ── Sync triggers ────────────────────────────────────────────────────
@router.post("/all")
async def sync_all(
    payload: SyncAllRequest = SyncAllRequest(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    client: LazadaClient = Depends(get_lazada_client),
):
    logger.info(f"Sync all request from user {user.id}")
    service = SyncService(db, user.id, client)
    result = await _run_sync("Full", service.sync_all(
        orders_days_back=payload.orders_days_back,
        metrics_days_back=payload.metrics_days_back,
    ))
    return {"success": True, "message": "Sync completed", "data": result}


@router.post("/orders")
async def sync_orders(
    payload: SyncOrdersRequest = SyncOrdersRequest(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    client: LazadaClient = Depends(get_lazada_client),
):
    logger.info(f"Sync orders request from user {user.id}")
    service = SyncService(db, user.id, client)
    result = await _run_sync("Orders", service.sync_orders(
        account_id=_account_filter(payload.account_id),
        days_back=payload.days_back,
    ))
    return {"success": True, "message": "Orders sync completed", "data": result}


@router.post("/campaigns")
async def sync_campaigns(
    payload: SyncCampaignsRequest = SyncCampaignsRequest(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    client: LazadaClient = Depends(get_lazada_client),
):
    logger.info(f"Sync campaigns request from user {user.id}")
    service = SyncService(db, user.id, client)
    result = await _run_sync("Campaigns", service.sync_campaigns(
        account_id=_account_filter(payload.account_id),
    ))
    return {"success": True, "message": "Campaigns sync completed", "data": result}


@router.post("/campaign-metrics")
async def sync_campaign_metrics(
    payload: SyncMetricsRequest = SyncMetricsRequest(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    client: LazadaClient = Depends(get_lazada_client),
):
    logger.info(f"Sync campaign metrics request from user {user.id}")
    service = SyncService(db, user.id, client)
    result = await _run_sync("Campaign metrics", service.sync_campaign_metrics(
        account_id=_account_filter(payload.account_id),
        days_back=payload.days_back,
    ))
    return {"success": True, "message": "Campaign metrics sync completed", "data": result}


# ── Status ───────────────────────────────────────────────────────────
@router.get("/status")
async def sync_status(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(SyncSettings).where(SyncSettings.user_id == user.id))
    settings_row = result.scalar_one_or_none()
    settings_data = {
        "auto_sync_enabled": settings_row.auto_sync_enabled if settings_row else True,
        "last_sync_at": settings_row.last_sync_at.isoformat() if settings_row and settings_row.last_sync_at else None,
        "last_sync_status": settings_row.last_sync_status if settings_row else None,
    }
    runs = await recent_runs(db, user.id, limit=10)
    counts = await cache_store.cache_counts(db, user.id)
    return {
        "success": True,
        "data": {
            "settings": settings_data,
            "recent_logs": [run_to_dict(r) for r in runs],
            "data_counts": counts,
        },
    }


# ── Cached data (read-only) ──────────────────────────────────────────
@router.get("/data/orders")
async def cached_orders(
    account_id: Optional[str] = Query(None, alias="accountId"),
    status: Optional[str] = None,
    date_from: Optional[date] = Query(None, alias="dateFrom"),
    date_to: Optional[date] = Query(None, alias="dateTo"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    rows, total = await cache_store.query_orders(
        db, user.id,
        account_id=_account_filter(account_id),
        status=None if status in (None, "", "all") else status,
        date_from=date_from,
        date_to=date_to,
        page=page,
        limit=limit,
    )
    return {
        "success": True,
        "data": rows,
        "pagination": {"page": page, "limit": limit, "total": total},
    }


@router.get("/data/campaigns")
async def cached_campaigns(
    account_id: Optional[str] = Query(None, alias="accountId"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    rows = await cache_store.query_campaigns(db, user.id, account_id=_account_filter(account_id))
    return {"success": True, "data": rows}


@router.get("/data/campaign-metrics")
async def cached_campaign_metrics(
    account_id: Optional[str] = Query(None, alias="accountId"),
    campaign_id: Optional[str] = Query(None, alias="campaignId"),
    date_from: Optional[date] = Query(None, alias="dateFrom"),
    date_to: Optional[date] = Query(None, alias="dateTo"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    rows = await cache_store.query_campaign_metrics(
        db, user.id,
        account_id=_account_filter(account_id),
        campaign_id=campaign_id or None,
        date_from=date_from,
        date_to=date_to,
    )
    return {"success": True, "data": rows}
