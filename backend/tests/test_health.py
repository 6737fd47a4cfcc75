"""
Tests for the application wiring and the health endpoint.
"""

import pytest
from unittest.mock import patch, AsyncMock
from httpx import AsyncClient, ASGITransport

from app.main import app


async def _health(db_ok):
    with patch("app.main.check_db_connection", new_callable=AsyncMock, return_value=db_ok):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            return await client.get("/api/health")


@pytest.mark.anyio
async def test_health_reports_service_and_database():
    response = await _health(True)

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "Lazada Seller Ops", "database": "connected"}


@pytest.mark.anyio
async def test_health_degraded_without_database():
    data = (await _health(False)).json()

    assert data["status"] == "degraded"
    assert data["database"] == "disconnected"


def test_every_router_is_mounted_under_api():
    paths = {route.path for route in app.routes}

    assert {
        "/api/auth/login",
        "/api/lazada/auth-url",
        "/api/accounts",
        "/api/sync/all",
        "/api/sync/status",
        "/api/sync/data/orders",
        "/api/lazada/seller",
        "/api/lazada/orders/items",
        "/api/cron/sync",
        "/api/cron/sweep-runs",
    } <= paths
    assert not any(p.startswith("/api/campaigns") or p.startswith("/api/harvest") for p in paths)
