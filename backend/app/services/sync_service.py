"""
Sync Service — pulls Lazada orders, campaigns and daily campaign metrics
into the local cache.

Accounts are synced one after another, and pages within an account one after
another. Each account gets its own sync_runs row. A failure closes that row as
failed and the loop moves on to the next account. Every page is committed
before the next one is fetched, so work already stored survives a later error.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional, Sequence
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from app.config import Settings, get_settings
from app.database import Base
from app.lazada_client import LazadaClient
from app.models import (
    CachedCampaign, CachedCampaignMetric, CachedOrder, SellerAccount,
    SyncKind, SyncRunStatus, SyncSettings,
)
from app.services.cache_store import (
    CAMPAIGN_KEYS, CAMPAIGN_METRIC_KEYS, MAX_BATCH_SIZE, ORDER_KEYS, upsert_batch,
)
from app.services.sync_ledger import SyncRunAlreadyClosed, close_run, find_open_run, open_run
from app.services.token_service import ensure_fresh_token
from app.utils import (
    TTLCache, chunked, first_present, int_or_zero, numeric_or_zero,
    parse_upstream_datetime, primary_status, utcnow,
)

logger = logging.getLogger(__name__)

ORDERS_PATH = "/orders/get"
CAMPAIGN_LIST_PATH = "/sponsor/solutions/campaign/getCampaignList"
CAMPAIGN_REPORT_PATH = "/sponsor/solutions/report/getDiscoveryReportCampaign"


class SyncPreconditionError(Exception):
    """Nothing to sync, or bad input: raised before any upstream call."""
    pass


class SyncAlreadyRunning(Exception):
    """Another run of the same kind is still open for the account."""
    pass


@dataclass(frozen=True)
class AccountRef:
    """Plain snapshot of an account so the loop never touches expired ORM state."""
    id: uuid.UUID
    label: str


# ══════════════════════════════════════════════════════════════════════
#  MAPPING — upstream payloads to cache rows
# ══════════════════════════════════════════════════════════════════════

def _id_str(value: Any) -> Optional[str]:
    if value in (None, ""):
        return None
    return str(value)


def map_order(order: dict, user_id: uuid.UUID, account_id: uuid.UUID, default_currency: str = "PHP") -> dict:
    return {
        "user_id": user_id,
        "account_id": account_id,
        "order_id": _id_str(order.get("order_id")),
        "order_number": _id_str(order.get("order_number")),
        "status": primary_status(order.get("statuses")),
        "price": numeric_or_zero(order.get("price")),
        "currency": order.get("currency") or default_currency,
        "items_count": int_or_zero(order.get("items_count")),
        "order_created_at": parse_upstream_datetime(order.get("created_at")),
        "order_updated_at": parse_upstream_datetime(order.get("updated_at")),
        "raw_data": order,
        "synced_at": utcnow(),
    }


def map_campaign(campaign: dict, user_id: uuid.UUID, account_id: uuid.UUID) -> dict:
    return {
        "user_id": user_id,
        "account_id": account_id,
        "campaign_id": _id_str(campaign.get("campaignId")),
        "campaign_name": campaign.get("campaignName"),
        "campaign_type": _id_str(campaign.get("campaignType")),
        "campaign_objective": _id_str(campaign.get("campaignObjective")),
        "status": _id_str(campaign.get("status")),
        "day_budget": numeric_or_zero(campaign.get("dayBudget")),
        "raw_data": campaign,
        "synced_at": utcnow(),
    }


def map_campaign_metric(row: dict, user_id: uuid.UUID, account_id: uuid.UUID, metric_date: date) -> dict:
    return {
        "user_id": user_id,
        "account_id": account_id,
        "campaign_id": _id_str(row.get("campaignId")),
        "campaign_name": row.get("campaignName"),
        "metric_date": metric_date,
        "spend": numeric_or_zero(row.get("spend")),
        "day_budget": numeric_or_zero(row.get("dayBudget")),
        "store_revenue": numeric_or_zero(row.get("storeRevenue")),
        "product_revenue": numeric_or_zero(row.get("productRevenue")),
        "store_orders": int_or_zero(row.get("storeOrders")),
        "product_orders": int_or_zero(row.get("productOrders")),
        "store_unit_sold": int_or_zero(row.get("storeUnitSold")),
        "product_unit_sold": int_or_zero(row.get("productUnitSold")),
        "impressions": int_or_zero(first_present(row, ("impressions", "impression"))),
        "clicks": int_or_zero(row.get("clicks")),
        "ctr": numeric_or_zero(row.get("ctr")),
        "cpc": numeric_or_zero(row.get("cpc")),
        "store_roi": numeric_or_zero(row.get("storeRoi")),
        "store_cvr": numeric_or_zero(row.get("storeCvr")),
        "product_cvr": numeric_or_zero(row.get("productCvr")),
        "store_a2c": int_or_zero(row.get("storeA2c")),
        "product_a2c": int_or_zero(row.get("productA2c")),
        "raw_data": row,
        "synced_at": utcnow(),
    }


def trailing_days(days_back: int, today: Optional[date] = None) -> list[date]:
    """The last `days_back` calendar days (UTC), today first."""
    today = today or datetime.now(timezone.utc).date()
    return [today - timedelta(days=i) for i in range(days_back)]


# ══════════════════════════════════════════════════════════════════════
#  ORCHESTRATOR
# ══════════════════════════════════════════════════════════════════════

class SyncService:
    """Sync operations for one user. Build one per request or scheduled run."""

    def __init__(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        client: LazadaClient,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.db = db
        self.user_id = user_id
        self.client = client
        self.settings = settings or get_settings()
        self._sleep = sleep
        self._accounts: TTLCache[list[AccountRef]] = TTLCache(
            self._load_accounts, ttl_seconds=self.settings.account_cache_ttl_seconds
        )

    # ── Accounts ─────────────────────────────────────────────────────

    async def _load_accounts(self) -> list[AccountRef]:
        result = await self.db.execute(
            select(SellerAccount.id, SellerAccount.account_name, SellerAccount.seller_id)
            .where(SellerAccount.user_id == self.user_id, SellerAccount.is_active.is_(True))
            .order_by(SellerAccount.created_at)
        )
        return [AccountRef(id=row.id, label=row.account_name or row.seller_id) for row in result.all()]

    async def resolve_accounts(self, account_id: Optional[uuid.UUID | str] = None) -> list[AccountRef]:
        accounts = await self._accounts.get()
        if account_id is not None:
            try:
                wanted = uuid.UUID(str(account_id))
            except ValueError:
                raise SyncPreconditionError(f"Invalid account id: {account_id!r}")
            accounts = [a for a in accounts if a.id == wanted]
        if not accounts:
            raise SyncPreconditionError("No accounts found to sync")
        return accounts

    async def _load_account(self, account_id: uuid.UUID) -> SellerAccount:
        result = await self.db.execute(
            select(SellerAccount).where(
                SellerAccount.id == account_id,
                SellerAccount.user_id == self.user_id,
            )
        )
        account = result.scalar_one_or_none()
        if account is None or not account.is_active:
            raise SyncPreconditionError("Account is no longer active")
        return account

    # ── Per-account run wrapper ──────────────────────────────────────

    async def _run_for_account(
        self,
        ref: AccountRef,
        sync_type: SyncKind,
        params: dict,
        pull: Callable[[uuid.UUID, str], Awaitable[int]],
    ) -> tuple[Optional[int], Optional[str]]:
        """
        Open a ledger row, pull, and close it. Returns (records, None) on success
        or (None, error message) on failure; never raises for account-level errors.
        """
        run_id = await open_run(self.db, self.user_id, ref.id, sync_type.value, params)
        try:
            cutoff = utcnow() - timedelta(minutes=self.settings.stale_run_timeout_minutes)
            other = await find_open_run(
                self.db, ref.id, sync_type.value, newer_than=cutoff, opened_before_run_id=run_id,
            )
            if other is not None:
                raise SyncAlreadyRunning(f"A {sync_type.value} sync is already running for this account")

            account = await self._load_account(ref.id)
            access_token = await ensure_fresh_token(self.db, account, self.client)
            records = await pull(ref.id, access_token)

            await close_run(self.db, run_id, SyncRunStatus.COMPLETED.value, records_synced=records)
            await self.db.commit()
            return records, None
        except Exception as e:
            message = str(e) or e.__class__.__name__
            logger.error(f"{sync_type.value} sync failed for '{ref.label}': {message}")
            await self.db.rollback()
            try:
                await close_run(self.db, run_id, SyncRunStatus.FAILED.value, error_message=message)
                await self.db.commit()
            except SyncRunAlreadyClosed:
                logger.warning(f"Run {run_id} was closed elsewhere before recording: {message}")
                await self.db.rollback()
            return None, message

    async def _store(self, model: type[Base], rows: Sequence[dict], conflict_keys: Sequence[str]) -> set[tuple]:
        """
        Upsert in capped batches and commit. Rows without a key are skipped.
        Returns the conflict keys written, so callers count distinct rows even
        when an order drifts across offset pages mid-sync.
        """
        keyed = [r for r in rows if all(r.get(k) is not None for k in conflict_keys)]
        if len(keyed) < len(rows):
            logger.warning(f"Skipped {len(rows) - len(keyed)} {model.__tablename__} row(s) without an id")
        batch_size = min(self.settings.sync_batch_size, MAX_BATCH_SIZE)
        for batch in chunked(keyed, batch_size):
            await upsert_batch(self.db, model, batch, conflict_keys)
        await self.db.commit()
        return {tuple(r[k] for k in conflict_keys) for r in keyed}

    @staticmethod
    def _validate_days(days_back: int) -> int:
        if not isinstance(days_back, int) or days_back < 1:
            raise SyncPreconditionError(f"daysBack must be a positive integer, got {days_back!r}")
        return days_back

    # ── Orders ───────────────────────────────────────────────────────

    async def _pull_orders(self, account_id: uuid.UUID, access_token: str, days_back: int) -> int:
        limit = self.settings.sync_page_size
        created_after = (datetime.now(timezone.utc) - timedelta(days=days_back)).replace(microsecond=0)
        offset = 0
        seen: set[tuple] = set()
        while True:
            body = await self.client.request(ORDERS_PATH, access_token, {
                "created_after": created_after.isoformat(),
                "limit": limit,
                "offset": offset,
                "sort_by": "created_at",
                "sort_direction": "DESC",
            })
            orders = (body.get("data") or {}).get("orders") or []
            rows = [map_order(o, self.user_id, account_id, self.settings.default_currency) for o in orders]
            seen |= await self._store(CachedOrder, rows, ORDER_KEYS)
            logger.info(f"Orders page offset={offset}: {len(orders)} fetched")
            if len(orders) < limit:
                return len(seen)
            offset += limit

    async def sync_orders(self, account_id: Optional[uuid.UUID | str] = None, days_back: Optional[int] = None) -> dict:
        if days_back is None:
            days_back = self.settings.orders_days_back_default
        days_back = self._validate_days(days_back)
        accounts = await self.resolve_accounts(account_id)
        logger.info(f"Starting orders sync for user {self.user_id} ({len(accounts)} account(s), {days_back} days)")

        total = 0
        results = []
        for ref in accounts:
            records, error = await self._run_for_account(
                ref, SyncKind.ORDERS, {"days_back": days_back},
                lambda acc_id, token: self._pull_orders(acc_id, token, days_back),
            )
            if error is None:
                total += records
                results.append({"account_id": str(ref.id), "account_name": ref.label,
                                "orders_synced": records, "status": "success"})
            else:
                results.append({"account_id": str(ref.id), "account_name": ref.label,
                                "status": "failed", "error": error})

        logger.info(f"Orders sync completed. Total synced: {total}")
        return {"total_synced": total, "accounts": results}

    # ── Campaigns ────────────────────────────────────────────────────

    async def _pull_campaigns(self, account_id: uuid.UUID, access_token: str) -> int:
        page_size = self.settings.sync_page_size
        page_no = 1
        seen: set[tuple] = set()
        while True:
            body = await self.client.request(CAMPAIGN_LIST_PATH, access_token, {
                "pageNo": page_no,
                "pageSize": page_size,
            })
            campaigns = (body.get("result") or {}).get("campaigns") or []
            rows = [map_campaign(c, self.user_id, account_id) for c in campaigns]
            seen |= await self._store(CachedCampaign, rows, CAMPAIGN_KEYS)
            logger.info(f"Campaigns page {page_no}: {len(campaigns)} fetched")
            if len(campaigns) < page_size:
                return len(seen)
            page_no += 1

    async def sync_campaigns(self, account_id: Optional[uuid.UUID | str] = None) -> dict:
        accounts = await self.resolve_accounts(account_id)
        logger.info(f"Starting campaigns sync for user {self.user_id} ({len(accounts)} account(s))")

        total = 0
        results = []
        for ref in accounts:
            records, error = await self._run_for_account(ref, SyncKind.CAMPAIGNS, {}, self._pull_campaigns)
            if error is None:
                total += records
                results.append({"account_id": str(ref.id), "account_name": ref.label,
                                "campaigns_synced": records, "status": "success"})
            else:
                results.append({"account_id": str(ref.id), "account_name": ref.label,
                                "status": "failed", "error": error})

        logger.info(f"Campaigns sync completed. Total synced: {total}")
        return {"total_synced": total, "accounts": results}

    # ── Campaign metrics ─────────────────────────────────────────────

    async def _pull_metric_day(self, account_id: uuid.UUID, access_token: str, day: date) -> int:
        page_size = self.settings.sync_page_size
        page_no = 1
        seen: set[tuple] = set()
        while True:
            body = await self.client.request(CAMPAIGN_REPORT_PATH, access_token, {
                "startDate": day.isoformat(),
                "endDate": day.isoformat(),
                "pageNo": page_no,
                "pageSize": page_size,
            })
            report = (body.get("result") or {}).get("result") or []
            rows = [map_campaign_metric(r, self.user_id, account_id, day) for r in report]
            seen |= await self._store(CachedCampaignMetric, rows, CAMPAIGN_METRIC_KEYS)
            if len(report) < page_size:
                return len(seen)
            page_no += 1

    async def _pull_campaign_metrics(self, account_id: uuid.UUID, access_token: str, days: list[date]) -> int:
        # any failing day fails the whole account's run
        synced = 0
        for index, day in enumerate(days):
            day_count = await self._pull_metric_day(account_id, access_token, day)
            logger.info(f"Campaign metrics for {day.isoformat()}: {day_count} rows")
            synced += day_count
            if index < len(days) - 1 and self.settings.metrics_request_delay_seconds > 0:
                await self._sleep(self.settings.metrics_request_delay_seconds)
        return synced

    async def sync_campaign_metrics(
        self, account_id: Optional[uuid.UUID | str] = None, days_back: Optional[int] = None,
    ) -> dict:
        if days_back is None:
            days_back = self.settings.metrics_days_back_default
        days_back = self._validate_days(days_back)
        accounts = await self.resolve_accounts(account_id)
        days = trailing_days(days_back)
        logger.info(f"Starting campaign metrics sync for user {self.user_id} "
                    f"({len(accounts)} account(s), {days[-1]} → {days[0]})")

        total = 0
        results = []
        for ref in accounts:
            records, error = await self._run_for_account(
                ref, SyncKind.CAMPAIGN_METRICS, {"days_back": days_back},
                lambda acc_id, token: self._pull_campaign_metrics(acc_id, token, days),
            )
            if error is None:
                total += records
                results.append({"account_id": str(ref.id), "account_name": ref.label,
                                "metrics_synced": records, "dates_processed": len(days), "status": "success"})
            else:
                results.append({"account_id": str(ref.id), "account_name": ref.label,
                                "status": "failed", "error": error})

        logger.info(f"Campaign metrics sync completed. Total synced: {total}")
        return {"total_synced": total, "dates_processed": len(days), "accounts": results}

    # ── Everything ───────────────────────────────────────────────────

    async def _record_last_sync(self, status: str) -> None:
        result = await self.db.execute(select(SyncSettings).where(SyncSettings.user_id == self.user_id))
        settings_row = result.scalar_one_or_none()
        now = utcnow()
        if settings_row is None:
            settings_row = SyncSettings(user_id=self.user_id)
            self.db.add(settings_row)
        settings_row.last_sync_at = now
        settings_row.last_sync_status = status
        settings_row.updated_at = now
        await self.db.commit()

    async def sync_all(self, orders_days_back: Optional[int] = None, metrics_days_back: Optional[int] = None) -> dict:
        """
        Orders, then campaigns, then campaign metrics. A stage that raises stops
        the remaining stages; per-account failures inside a stage do not.
        The outcome is written to sync_settings either way. Omitted windows
        fall back to the configured defaults.
        """
        started = time.monotonic()
        logger.info(f"Starting full sync for user {self.user_id}")
        result: dict[str, Any] = {
            "orders": None,
            "campaigns": None,
            "campaign_metrics": None,
            "duration_ms": 0,
            "status": SyncRunStatus.COMPLETED.value,
        }
        try:
            result["orders"] = await self.sync_orders(days_back=orders_days_back)
            result["campaigns"] = await self.sync_campaigns()
            result["campaign_metrics"] = await self.sync_campaign_metrics(days_back=metrics_days_back)
        except Exception as e:
            logger.error(f"Full sync failed for user {self.user_id}: {e}")
            await self.db.rollback()
            result["status"] = SyncRunStatus.FAILED.value
            result["error"] = str(e)

        await self._record_last_sync(result["status"])
        result["duration_ms"] = int((time.monotonic() - started) * 1000)
        logger.info(f"Full sync {result['status']} for user {self.user_id} in {result['duration_ms']}ms")
        return result


async def scheduled_user_ids(db: AsyncSession) -> list[uuid.UUID]:
    """Users with an active account, unless they switched auto sync off."""
    opted_out = select(SyncSettings.user_id).where(SyncSettings.auto_sync_enabled.is_(False))
    result = await db.execute(
        select(SellerAccount.user_id)
        .where(SellerAccount.is_active.is_(True), SellerAccount.user_id.not_in(opted_out))
        .distinct()
    )
    return list(result.scalars().all())


async def run_scheduled_sync(
    session_factory: async_sessionmaker,
    client: LazadaClient,
    settings: Optional[Settings] = None,
) -> dict:
    """Full sync for every eligible user, each in its own session."""
    async with session_factory() as db:
        user_ids = await scheduled_user_ids(db)
    logger.info(f"Scheduled sync: {len(user_ids)} user(s) to sync")

    summary = {"users": len(user_ids), "completed": 0, "failed": 0}
    for user_id in user_ids:
        try:
            async with session_factory() as db:
                outcome = await SyncService(db, user_id, client, settings).sync_all()
            if outcome["status"] == SyncRunStatus.COMPLETED.value:
                summary["completed"] += 1
            else:
                summary["failed"] += 1
        except Exception as e:
            logger.exception(f"Scheduled sync failed for user {user_id}: {e}")
            summary["failed"] += 1

    logger.info(f"Scheduled sync finished: {summary}")
    return summary
