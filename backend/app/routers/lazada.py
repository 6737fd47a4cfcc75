"""
Lazada Router — live reads straight from the Seller API for one linked account.
Nothing here touches the cache; the dashboard uses these for drill-downs.

GET  /lazada/seller               seller profile
GET  /lazada/products             product listing
GET  /lazada/orders               live order listing
GET  /lazada/order/{id}           one order
GET  /lazada/order/{id}/items     items of one order
POST /lazada/orders/items         items of several orders
"""

import json
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import get_current_user
from app.database import get_db
from app.lazada_client import LazadaAPIError, LazadaClient, LazadaTransportError, get_lazada_client
from app.models import User
from app.services.sync_service import ORDERS_PATH
from app.services.token_service import TokenRefreshFailed, ensure_fresh_token, get_user_account
from app.utils import parse_uuid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/lazada", tags=["Lazada"])

SELLER_PATH = "/seller/get"
PRODUCTS_PATH = "/products/get"
ORDER_PATH = "/order/get"
ORDER_ITEMS_PATH = "/order/items/get"
MULTI_ORDER_ITEMS_PATH = "/orders/items/get"


class OrderItemsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    account_id: str = Field(..., alias="accountId")
    order_ids: list[int] = Field(..., min_length=1, alias="orderIds")


# ── Helpers ───────────────────────────────────────────────────────────
async def _live_read(
    db: AsyncSession,
    client: LazadaClient,
    user: User,
    account_id: str,
    api_path: str,
    params: Optional[dict] = None,
) -> dict:
    """Refresh the account's token if due, call Lazada, and wrap the data."""
    account = await get_user_account(db, user.id, parse_uuid(account_id, "accountId"))
    if account is None or not account.is_active:
        raise HTTPException(status_code=404, detail="Account not found")
    try:
        access_token = await ensure_fresh_token(db, account, client)
        body = await client.request(api_path, access_token, {k: v for k, v in (params or {}).items() if v is not None})
    except TokenRefreshFailed as e:
        raise HTTPException(status_code=400, detail=e.message)
    except LazadaAPIError as e:
        logger.warning(f"Lazada rejected {api_path} for '{account.label}': {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except LazadaTransportError as e:
        logger.error(f"Lazada unreachable for {api_path}: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    return {"success": True, "data": body.get("data")}


# ── Live reads ───────────────────────────────────────────────────────
@router.get("/seller")
async def seller_info(
    account_id: str = Query(..., alias="accountId"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    client: LazadaClient = Depends(get_lazada_client),
):
    return await _live_read(db, client, user, account_id, SELLER_PATH)


@router.get("/products")
async def products(
    account_id: str = Query(..., alias="accountId"),
    product_filter: str = Query("all", alias="filter"),
    limit: int = Query(20, ge=1, le=50),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    client: LazadaClient = Depends(get_lazada_client),
):
    params = {"filter": product_filter, "limit": limit, "offset": offset}
    return await _live_read(db, client, user, account_id, PRODUCTS_PATH, params)


@router.get("/orders")
async def live_orders(
    account_id: str = Query(..., alias="accountId"),
    created_after: Optional[str] = None,
    created_before: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    sort_by: str = "created_at",
    sort_direction: str = "DESC",
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    client: LazadaClient = Depends(get_lazada_client),
):
    """Unlike /sync/data/orders this asks Lazada directly and caches nothing."""
    params = {
        "created_after": created_after,
        "created_before": created_before,
        "status": status,
        "limit": limit,
        "offset": offset,
        "sort_by": sort_by,
        "sort_direction": sort_direction,
    }
    return await _live_read(db, client, user, account_id, ORDERS_PATH, params)


@router.get("/order/{order_id}")
async def order_detail(
    order_id: str,
    account_id: str = Query(..., alias="accountId"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    client: LazadaClient = Depends(get_lazada_client),
):
    return await _live_read(db, client, user, account_id, ORDER_PATH, {"order_id": order_id})


@router.get("/order/{order_id}/items")
async def order_items(
    order_id: str,
    account_id: str = Query(..., alias="accountId"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    client: LazadaClient = Depends(get_lazada_client),
):
    return await _live_read(db, client, user, account_id, ORDER_ITEMS_PATH, {"order_id": order_id})


@router.post("/orders/items")
async def multiple_order_items(
    payload: OrderItemsRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    client: LazadaClient = Depends(get_lazada_client),
):
    # Lazada takes the id list as a JSON array string
    params = {"order_ids": json.dumps(payload.order_ids, separators=(",", ":"))}
    return await _live_read(db, client, user, payload.account_id, MULTI_ORDER_ITEMS_PATH, params)
