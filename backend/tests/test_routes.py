"""
Tests for the HTTP surface: sync triggers, cached data, account linking,
cron and login. Runs the real app against the in-memory database.
"""

import os
from datetime import timedelta
import pytest
from unittest.mock import patch
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select, update

from app.auth import get_current_user
from app.config import get_settings
from app.database import get_db
from app.lazada_client import LazadaAPIError, LazadaTransportError, get_lazada_client
from app.main import app
from app.models import SellerAccount, SyncRun, User
from app.routers.cron import get_session_factory
from app.services.auth_service import hash_password
from app.services.sync_ledger import open_run
from app.services.sync_service import CAMPAIGN_LIST_PATH, CAMPAIGN_REPORT_PATH, ORDERS_PATH
from app.utils import utcnow


@pytest.fixture
async def api(session_factory, user, fake_client):
    async def _db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_current_user] = lambda: user
    app.dependency_overrides[get_lazada_client] = lambda: fake_client
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def serve_orders(fake_client, orders_factory):
    def _serve(total=3):
        def handler(token, params):
            offset, limit = int(params["offset"]), int(params["limit"])
            seller = token.removeprefix("access-")
            return fake_client.orders_body(orders_factory(offset, max(0, min(limit, total - offset)), seller))
        fake_client.on(ORDERS_PATH, handler)
    return _serve


# ── Sync triggers ────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_sync_orders_returns_envelope(api, make_account, serve_orders):
    await make_account()
    serve_orders(3)

    response = await api.post("/api/sync/orders", json={"daysBack": 7})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Orders sync completed"
    assert body["data"]["total_synced"] == 3
    assert body["data"]["accounts"][0]["status"] == "success"


@pytest.mark.anyio
async def test_sync_orders_for_one_account_and_all(api, make_account, serve_orders, fake_client):
    await make_account(seller_id="1001")
    target_id = str((await make_account(seller_id="1002")).id)
    serve_orders(2)

    response = await api.post("/api/sync/orders", json={"accountId": target_id})
    assert [a["account_id"] for a in response.json()["data"]["accounts"]] == [target_id]

    response = await api.post("/api/sync/orders", json={"accountId": "all"})
    assert len(response.json()["data"]["accounts"]) == 2


@pytest.mark.anyio
async def test_sync_without_accounts_is_400(api):
    response = await api.post("/api/sync/orders", json={})

    assert response.status_code == 400
    assert response.json()["detail"] == "No accounts found to sync"


@pytest.mark.anyio
async def test_sync_rejects_bad_input(api, make_account):
    await make_account()

    assert (await api.post("/api/sync/orders", json={"daysBack": 0})).status_code == 422
    assert (await api.post("/api/sync/campaign-metrics", json={"daysBack": 91})).status_code == 422
    assert (await api.post("/api/sync/orders", json={"accountId": "not-a-uuid"})).status_code == 400


@pytest.mark.anyio
async def test_sync_all_and_status(api, make_account, serve_orders, fake_client):
    await make_account()
    serve_orders(4)
    fake_client.on(CAMPAIGN_LIST_PATH, lambda t, p: fake_client.campaigns_body([
        {"campaignId": 1, "campaignName": "Always On", "status": 1, "dayBudget": "100"},
    ]))
    fake_client.on(CAMPAIGN_REPORT_PATH, lambda t, p: fake_client.report_body([
        {"campaignId": 1, "campaignName": "Always On", "spend": "3.5", "impressions": "40"},
    ]))

    response = await api.post("/api/sync/all", json={"ordersDaysBack": 5, "metricsDaysBack": 1})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "completed"
    assert data["orders"]["total_synced"] == 4
    assert data["campaigns"]["total_synced"] == 1
    assert data["campaign_metrics"]["total_synced"] == 1

    status = (await api.get("/api/sync/status")).json()["data"]
    assert status["settings"]["last_sync_status"] == "completed"
    assert status["settings"]["last_sync_at"] is not None
    assert len(status["recent_logs"]) == 3
    assert {log["status"] for log in status["recent_logs"]} == {"completed"}
    assert status["data_counts"] == {"orders": 4, "campaigns": 1, "campaign_metrics": 1}


@pytest.mark.anyio
async def test_status_for_a_user_who_never_synced(api):
    data = (await api.get("/api/sync/status")).json()["data"]

    assert data["settings"] == {"auto_sync_enabled": True, "last_sync_at": None, "last_sync_status": None}
    assert data["recent_logs"] == []
    assert data["data_counts"] == {"orders": 0, "campaigns": 0, "campaign_metrics": 0}


@pytest.mark.anyio
async def test_omitted_window_uses_configured_default(api, make_account, fake_client, serve_orders, session_factory):
    await make_account()
    serve_orders(1)
    fake_client.on(CAMPAIGN_REPORT_PATH, lambda t, p: fake_client.report_body([]))
    env = {"ORDERS_DAYS_BACK_DEFAULT": "9", "METRICS_DAYS_BACK_DEFAULT": "3", "METRICS_REQUEST_DELAY_SECONDS": "0"}

    with patch.dict(os.environ, env):
        get_settings.cache_clear()
        try:
            metrics = await api.post("/api/sync/campaign-metrics", json={})
            orders = await api.post("/api/sync/orders", json={})
        finally:
            get_settings.cache_clear()

    assert metrics.json()["data"]["dates_processed"] == 3
    assert orders.status_code == 200
    async with session_factory() as session:
        runs = (await session.execute(select(SyncRun).where(SyncRun.sync_type == "orders"))).scalars().all()
    assert [r.params for r in runs] == [{"days_back": 9}]


# ── Cached data ──────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_cached_orders_are_paginated(api, make_account, serve_orders):
    await make_account()
    serve_orders(5)
    await api.post("/api/sync/orders", json={})

    body = (await api.get("/api/sync/data/orders", params={"page": 2, "limit": 2})).json()

    assert body["pagination"] == {"page": 2, "limit": 2, "total": 5}
    assert len(body["data"]) == 2
    assert body["data"][0]["price"] == 1299.0
    assert body["data"][0]["account"]["seller_id"] == "1001"

    assert (await api.get("/api/sync/data/orders", params={"status": "delivered"})).json()["pagination"]["total"] == 0
    assert (await api.get("/api/sync/data/orders", params={"status": "all"})).json()["pagination"]["total"] == 5


@pytest.mark.anyio
async def test_cached_campaign_metrics_filter_by_campaign(api, make_account, fake_client):
    await make_account()
    fake_client.on(CAMPAIGN_REPORT_PATH, lambda t, p: fake_client.report_body([
        {"campaignId": 1, "spend": "1"}, {"campaignId": 2, "spend": "2"},
    ]))
    await api.post("/api/sync/campaign-metrics", json={"daysBack": 2})

    rows = (await api.get("/api/sync/data/campaign-metrics", params={"campaignId": "2"})).json()["data"]

    assert len(rows) == 2
    assert {r["campaign_id"] for r in rows} == {"2"}


# ── Accounts ─────────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_list_accounts_never_returns_tokens(api, make_account):
    await make_account()

    accounts = (await api.get("/api/accounts")).json()["data"]

    assert len(accounts) == 1
    assert accounts[0]["seller_id"] == "1001"
    assert accounts[0]["has_refresh_token"] is True
    assert "access_token" not in accounts[0]
    assert "refresh_token" not in accounts[0]


@pytest.mark.anyio
async def test_auth_url(api):
    data = (await api.get("/api/lazada/auth-url")).json()["data"]
    assert data["url"].startswith("https://auth.example/oauth")


@pytest.mark.anyio
async def test_token_exchange_links_the_account(api, fake_client, session_factory, user):
    user_id = user.id
    fake_client.exchange_response = {
        "code": "0", "access_token": "new-access", "refresh_token": "new-refresh", "expires_in": 604800,
        "refresh_expires_in": 2592000, "account": "shop@example.com", "country": "ph",
        "country_user_info": [{"country": "ph", "seller_id": "3003", "user_id": "1"}],
    }

    response = await api.post("/api/lazada/token", json={"code": "auth-code"})

    assert response.status_code == 200
    assert response.json()["data"]["seller_id"] == "3003"
    async with session_factory() as session:
        account = (await session.execute(select(SellerAccount))).scalar_one()
        assert account.user_id == user_id
        assert account.access_token == "new-access"


@pytest.mark.anyio
async def test_token_exchange_rejected_by_lazada_is_400(api):
    response = await api.post("/api/lazada/token", json={"code": "bad"})

    assert response.status_code == 400
    assert "Invalid authorization code" in response.json()["detail"]


@pytest.mark.anyio
async def test_delete_account(api, make_account):
    account_id = str((await make_account()).id)

    assert (await api.delete("/api/accounts/00000000-0000-0000-0000-000000000000")).status_code == 404
    assert (await api.delete(f"/api/accounts/{account_id}")).status_code == 200
    assert (await api.get("/api/accounts")).json()["data"] == []


@pytest.mark.anyio
async def test_manual_token_refresh(api, make_account, fake_client):
    account_id = str((await make_account(expires_in=timedelta(days=5))).id)

    response = await api.post(f"/api/accounts/{account_id}/refresh-token")
    assert response.status_code == 200
    assert fake_client.refresh_calls == ["refresh-1001"]

    fake_client.refresh_error = LazadaAPIError("refresh token expired", code="InvalidRefreshToken")
    response = await api.post(f"/api/accounts/{account_id}/refresh-token")
    assert response.status_code == 400
    assert "refresh token expired" in response.json()["detail"]


# ── Live Lazada reads ────────────────────────────────────────────────

@pytest.mark.anyio
async def test_live_reads_call_lazada_with_the_account_token(api, make_account, fake_client):
    account_id = str((await make_account()).id)
    fake_client.on("/seller/get", lambda t, p: {"code": "0", "data": {"name": "Demo Store", "seller_id": 1001}})
    fake_client.on("/products/get", lambda t, p: {"code": "0", "data": {"total_products": 0, "products": []}})
    fake_client.on("/order/get", lambda t, p: {"code": "0", "data": {"order_id": int(p["order_id"])}})
    fake_client.on("/order/items/get", lambda t, p: {"code": "0", "data": [{"order_item_id": 1}]})

    seller = await api.get("/api/lazada/seller", params={"accountId": account_id})
    assert seller.status_code == 200
    assert seller.json() == {"success": True, "data": {"name": "Demo Store", "seller_id": 1001}}

    await api.get("/api/lazada/products", params={"accountId": account_id, "filter": "live", "limit": 5})
    order = await api.get("/api/lazada/order/42", params={"accountId": account_id})
    assert order.json()["data"] == {"order_id": 42}
    items = await api.get("/api/lazada/order/42/items", params={"accountId": account_id})
    assert items.json()["data"] == [{"order_item_id": 1}]

    assert [(c[0], c[1]) for c in fake_client.calls] == [
        ("/seller/get", "access-1001"), ("/products/get", "access-1001"),
        ("/order/get", "access-1001"), ("/order/items/get", "access-1001"),
    ]
    assert fake_client.calls[1][2] == {"filter": "live", "limit": 5, "offset": 0}
    assert fake_client.calls[3][2] == {"order_id": "42"}


@pytest.mark.anyio
async def test_live_orders_pass_filters_through(api, make_account, fake_client):
    account_id = str((await make_account()).id)
    fake_client.on(ORDERS_PATH, lambda t, p: fake_client.orders_body([]))

    response = await api.get("/api/lazada/orders", params={
        "accountId": account_id, "created_after": "2026-10-01T00:00:00+08:00", "status": "pending",
    })

    assert response.status_code == 200
    assert response.json()["data"]["orders"] == []
    assert fake_client.calls[0][2] == {
        "created_after": "2026-10-01T00:00:00+08:00", "status": "pending", "limit": 20, "offset": 0,
        "sort_by": "created_at", "sort_direction": "DESC",
    }


@pytest.mark.anyio
async def test_items_for_several_orders(api, make_account, fake_client):
    account_id = str((await make_account()).id)
    fake_client.on("/orders/items/get", lambda t, p: {"code": "0", "data": [{"order_id": 1}, {"order_id": 2}]})

    response = await api.post("/api/lazada/orders/items", json={"accountId": account_id, "orderIds": [1, "2"]})

    assert response.status_code == 200
    assert len(response.json()["data"]) == 2
    assert fake_client.calls[0][2] == {"order_ids": "[1,2]"}

    empty = await api.post("/api/lazada/orders/items", json={"accountId": account_id, "orderIds": []})
    assert empty.status_code == 422


@pytest.mark.anyio
async def test_live_read_error_mapping(api, make_account, fake_client):
    account_id = str((await make_account()).id)

    def rejected(token, params):
        raise LazadaAPIError("Invalid order id", code="E082")

    def unreachable(token, params):
        raise LazadaTransportError("Lazada returned HTTP 503", status_code=503)

    fake_client.on("/order/get", rejected)
    fake_client.on("/seller/get", unreachable)

    rejected_response = await api.get("/api/lazada/order/1", params={"accountId": account_id})
    assert rejected_response.status_code == 400
    assert rejected_response.json()["detail"] == "Invalid order id"
    assert (await api.get("/api/lazada/seller", params={"accountId": account_id})).status_code == 502
    assert (await api.get("/api/lazada/seller")).status_code == 422
    missing = await api.get("/api/lazada/seller", params={"accountId": "00000000-0000-0000-0000-000000000000"})
    assert missing.status_code == 404
    assert (await api.get("/api/lazada/seller", params={"accountId": "not-a-uuid"})).status_code == 400


@pytest.mark.anyio
async def test_live_read_with_an_unrefreshable_token_is_400(api, make_account, fake_client):
    account_id = str((await make_account(expires_in=timedelta(minutes=5))).id)
    fake_client.refresh_error = LazadaAPIError("refresh token expired", code="InvalidRefreshToken")

    response = await api.get("/api/lazada/seller", params={"accountId": account_id})

    assert response.status_code == 400
    assert "refresh token expired" in response.json()["detail"]
    assert fake_client.calls == []


# ── Auth ─────────────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_routes_require_a_bearer_token(api):
    app.dependency_overrides.pop(get_current_user)

    assert (await api.get("/api/accounts")).status_code == 401
    assert (await api.post("/api/sync/all", json={})).status_code == 401
    assert (await api.get("/api/sync/data/orders")).status_code == 401


@pytest.mark.anyio
async def test_login_then_whoami(api, db):
    app.dependency_overrides.pop(get_current_user)
    db.add(User(email="ops@example.com", password_hash=hash_password("s3cret-pass"), role="admin"))
    await db.commit()

    assert (await api.post("/api/auth/login", json={"email": "ops@example.com", "password": "wrong"})).status_code == 401
    login = await api.post("/api/auth/login", json={"email": "ops@example.com", "password": "s3cret-pass"})
    assert login.status_code == 200
    token = login.json()["access_token"]

    me = await api.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["email"] == "ops@example.com"
    assert me.json()["role"] == "admin"


# ── Cron ─────────────────────────────────────────────────────────────

@pytest.fixture
def cron_secret():
    with patch.dict(os.environ, {"CRON_SECRET": "cron-test-secret"}):
        get_settings.cache_clear()
        yield "cron-test-secret"
    get_settings.cache_clear()


@pytest.mark.anyio
async def test_cron_disabled_without_secret(api):
    with patch.dict(os.environ, {"CRON_SECRET": ""}):
        get_settings.cache_clear()
        try:
            response = await api.post("/api/cron/sync", headers={"X-Cron-Secret": "anything"})
        finally:
            get_settings.cache_clear()
    assert response.status_code == 503


@pytest.mark.anyio
async def test_cron_rejects_wrong_secret(api, cron_secret):
    assert (await api.post("/api/cron/sync", headers={"X-Cron-Secret": "nope"})).status_code == 401
    assert (await api.post("/api/cron/sync")).status_code == 401


@pytest.mark.anyio
async def test_cron_sync_runs_every_eligible_user(api, cron_secret, make_account, serve_orders, fake_client):
    await make_account()
    serve_orders(2)
    fake_client.on(CAMPAIGN_LIST_PATH, lambda t, p: fake_client.campaigns_body([]))
    fake_client.on(CAMPAIGN_REPORT_PATH, lambda t, p: fake_client.report_body([]))

    with patch.dict(os.environ, {"METRICS_REQUEST_DELAY_SECONDS": "0"}):
        get_settings.cache_clear()
        response = await api.post("/api/cron/sync", headers={"Authorization": f"Bearer {cron_secret}"})

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "result": {"users": 1, "completed": 1, "failed": 0}}


@pytest.mark.anyio
async def test_cron_sweep_fails_stale_runs(api, cron_secret, db, user, make_account):
    account = await make_account()
    run_id = await open_run(db, user.id, account.id, "orders")
    await db.execute(update(SyncRun).where(SyncRun.id == run_id).values(started_at=utcnow() - timedelta(hours=2)))
    await db.commit()

    response = await api.post("/api/cron/sweep-runs", headers={"X-Cron-Secret": cron_secret})

    assert response.json() == {"status": "ok", "swept": 1}
