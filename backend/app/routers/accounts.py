"""
Accounts Router — Link Lazada seller accounts via OAuth and manage them.
Tokens never leave the server: responses only say whether a token is present
and when it expires.
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import get_current_user
from app.config import get_settings
from app.database import get_db
from app.lazada_client import LazadaClient, LazadaError, get_lazada_client
from app.models import SellerAccount, User
from app.services.token_service import (
    TokenRefreshFailed,
    deactivate_seller_account,
    ensure_fresh_token,
    get_user_account,
    link_seller_account,
)
from app.utils import parse_uuid

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Schemas ──────────────────────────────────────────────────────────
class TokenExchangeRequest(BaseModel):
    code: str


# ── Helpers ───────────────────────────────────────────────────────────
def _account_to_response(account: SellerAccount) -> dict:
    return {
        "id": str(account.id),
        "seller_id": account.seller_id,
        "account_name": account.account_name,
        "country": account.country,
        "account_platform": account.account_platform,
        "is_active": account.is_active,
        "has_refresh_token": bool(account.refresh_token),
        "token_expires_at": account.token_expires_at.isoformat() if account.token_expires_at else None,
        "refresh_expires_at": account.refresh_expires_at.isoformat() if account.refresh_expires_at else None,
        "created_at": account.created_at.isoformat() if account.created_at else None,
        "updated_at": account.updated_at.isoformat() if account.updated_at else None,
    }


# ── OAuth linking ────────────────────────────────────────────────────
@router.get("/lazada/auth-url")
async def lazada_auth_url(
    redirect_uri: Optional[str] = None,
    user: User = Depends(get_current_user),
    client: LazadaClient = Depends(get_lazada_client),
):
    """Seller consent URL. The frontend redirects there and posts the returned code to /lazada/token."""
    url = client.authorization_url(redirect_uri or get_settings().lazada_redirect_uri)
    return {"success": True, "data": {"url": url}}


@router.post("/lazada/token")
async def lazada_exchange_token(
    payload: TokenExchangeRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    client: LazadaClient = Depends(get_lazada_client),
):
    """Exchange an authorization code and link (or re-link) the seller account."""
    if not payload.code.strip():
        raise HTTPException(status_code=400, detail="Authorization code is required")
    try:
        token_data = await client.exchange_code(payload.code.strip())
    except LazadaError as e:
        logger.warning(f"Code exchange failed for user {user.id}: {e}")
        raise HTTPException(status_code=400, detail=f"Lazada token exchange failed: {e}")

    try:
        account = await link_seller_account(db, user.id, token_data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"success": True, "message": "Lazada account linked", "data": _account_to_response(account)}


# ── Account management ───────────────────────────────────────────────
@router.get("/accounts")
async def list_accounts(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(SellerAccount)
        .where(SellerAccount.user_id == user.id, SellerAccount.is_active.is_(True))
        .order_by(SellerAccount.created_at.desc())
    )
    return {"success": True, "data": [_account_to_response(a) for a in result.scalars().all()]}


@router.delete("/accounts/{account_id}")
async def delete_account(
    account_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Unlink a seller account. Cached rows and run history are kept."""
    if not await deactivate_seller_account(db, user.id, parse_uuid(account_id, "account_id")):
        raise HTTPException(status_code=404, detail="Account not found")
    return {"success": True, "message": "Account removed"}


@router.post("/accounts/{account_id}/refresh-token")
async def refresh_account_token(
    account_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    client: LazadaClient = Depends(get_lazada_client),
):
    account = await get_user_account(db, user.id, parse_uuid(account_id, "account_id"))
    if account is None or not account.is_active:
        raise HTTPException(status_code=404, detail="Account not found")
    try:
        await ensure_fresh_token(db, account, client, force=True)
    except TokenRefreshFailed as e:
        raise HTTPException(status_code=400, detail=e.message)
    return {"success": True, "message": "Token refreshed", "data": _account_to_response(account)}
