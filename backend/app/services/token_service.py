"""
Token Service — Lazada seller OAuth tokens.
Links seller accounts from a token payload, keeps their access tokens fresh
before every sync, and soft-deletes accounts on unlink.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from app.config import get_settings
from app.crypto import decrypt_value, encrypt_value
from app.lazada_client import LazadaAPIError, LazadaClient, LazadaError
from app.models import SellerAccount
from app.utils import utcnow

logger = logging.getLogger(__name__)


class TokenRefreshFailed(Exception):
    """The stored credential can't produce a usable access token."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code


def _make_aware(dt: datetime) -> datetime:
    """Ensure a datetime is timezone-aware (UTC). DB may return naive datetimes."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def token_needs_refresh(account: SellerAccount, threshold: timedelta, now: Optional[datetime] = None) -> bool:
    """True when the access token expires within `threshold` (or expiry is unknown)."""
    if not account.token_expires_at:
        return True
    now = now or datetime.now(timezone.utc)
    return _make_aware(account.token_expires_at) <= now + threshold


def save_tokens(account: SellerAccount, token_data: dict[str, Any]) -> None:
    """
    Write a token payload onto the account (encrypted). A missing refresh token
    keeps the stored one. Does not flush or commit.
    """
    now = utcnow()
    account.access_token = encrypt_value(token_data["access_token"])
    if token_data.get("refresh_token"):
        account.refresh_token = encrypt_value(token_data["refresh_token"])

    expires_in = token_data.get("expires_in")
    if expires_in is not None:
        account.expires_in = int(expires_in)
        account.token_expires_at = now + timedelta(seconds=int(expires_in))
    refresh_expires_in = token_data.get("refresh_expires_in")
    if refresh_expires_in is not None:
        account.refresh_expires_at = now + timedelta(seconds=int(refresh_expires_in))
    account.updated_at = now


async def ensure_fresh_token(
    db: AsyncSession,
    account: SellerAccount,
    client: LazadaClient,
    force: bool = False,
) -> str:
    """
    Return a usable access token for `account`, refreshing it first when it
    expires within the configured threshold. A refreshed token is committed
    before it is returned.
    """
    if not account.refresh_token:
        raise TokenRefreshFailed(f"Account '{account.label}' has no refresh token; relink it")

    threshold = timedelta(minutes=get_settings().token_refresh_threshold_minutes)
    if not force and not token_needs_refresh(account, threshold):
        return decrypt_value(account.access_token)

    logger.info(f"Refreshing access token for account '{account.label}'")
    try:
        token_data = await client.refresh_access_token(decrypt_value(account.refresh_token))
    except LazadaAPIError as e:
        logger.error(f"Token refresh rejected for '{account.label}': code={e.code} {e.message}")
        raise TokenRefreshFailed(f"Token refresh failed: {e.message}", code=e.code) from e
    except LazadaError as e:
        logger.error(f"Token refresh failed for '{account.label}': {e}")
        raise TokenRefreshFailed(f"Token refresh failed: {e}") from e

    if not token_data.get("access_token"):
        raise TokenRefreshFailed("Token refresh response carried no access_token", code=str(token_data.get("code")))

    save_tokens(account, token_data)
    await db.commit()
    logger.info(f"Token refreshed for '{account.label}', expires in {account.expires_in}s")
    return token_data["access_token"]


def _seller_identity(token_data: dict[str, Any]) -> tuple[str, Optional[str]]:
    """Pick (seller_id, country) out of a token payload."""
    infos = token_data.get("country_user_info") or []
    first = infos[0] if infos else {}
    seller_id = first.get("seller_id") or first.get("user_id") or token_data.get("account")
    if not seller_id:
        raise ValueError("Token payload has no seller identity")
    return str(seller_id), token_data.get("country") or first.get("country")


async def link_seller_account(db: AsyncSession, user_id: uuid.UUID, token_data: dict[str, Any]) -> SellerAccount:
    """
    Create or update the user's account for the seller in `token_data`.
    Re-linking a seller overwrites its tokens and reactivates it.
    """
    seller_id, country = _seller_identity(token_data)

    result = await db.execute(
        select(SellerAccount).where(
            SellerAccount.user_id == user_id,
            SellerAccount.seller_id == seller_id,
        )
    )
    account = result.scalar_one_or_none()
    if account is None:
        account = SellerAccount(user_id=user_id, seller_id=seller_id)
        db.add(account)
        logger.info(f"Linking new seller {seller_id} for user {user_id}")
    else:
        logger.info(f"Re-linking seller {seller_id} for user {user_id} (was active={account.is_active})")

    account.account_name = token_data.get("account") or account.account_name or seller_id
    account.country = country
    account.account_platform = token_data.get("account_platform")
    account.country_user_info = token_data.get("country_user_info")
    account.is_active = True
    save_tokens(account, token_data)

    await db.flush()
    return account


async def get_user_account(db: AsyncSession, user_id: uuid.UUID, account_id: uuid.UUID) -> Optional[SellerAccount]:
    result = await db.execute(
        select(SellerAccount).where(
            SellerAccount.id == account_id,
            SellerAccount.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def deactivate_seller_account(db: AsyncSession, user_id: uuid.UUID, account_id: uuid.UUID) -> bool:
    """Soft delete. Returns False when the user owns no such account."""
    account = await get_user_account(db, user_id, account_id)
    if account is None:
        return False
    account.is_active = False
    account.updated_at = utcnow()
    await db.flush()
    logger.info(f"Deactivated seller account '{account.label}' for user {user_id}")
    return True
