"""
Shared fixtures: an in-memory SQLite database per test and a scripted
stand-in for the Lazada client.
"""

from datetime import timedelta
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.config import Settings
from app.database import Base
from app.lazada_client import LazadaAPIError
from app.models import SellerAccount, User
from app.utils import utcnow
import app.models  # noqa: F401


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def engine():
    """Fresh schema for every test function."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def settings():
    """Sync settings without the inter-day throttle."""
    return Settings(_env_file=None, metrics_request_delay_seconds=0)


@pytest.fixture
async def user(db):
    user = User(email="seller@example.com", password_hash="not-a-real-hash", name="Seller")
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
def make_account(db, user):
    """Create an active seller account whose token is good for `expires_in`."""
    async def _make(seller_id="1001", name=None, expires_in=timedelta(hours=2), owner=None, **fields):
        values = {
            "user_id": (owner or user).id,
            "seller_id": seller_id,
            "account_name": name or f"Shop {seller_id}",
            "country": "PH",
            "access_token": f"access-{seller_id}",
            "refresh_token": f"refresh-{seller_id}",
            "expires_in": int(expires_in.total_seconds()),
            "token_expires_at": utcnow() + expires_in,
        }
        values.update(fields)
        account = SellerAccount(**values)
        db.add(account)
        await db.commit()
        return account
    return _make


class FakeLazadaClient:
    """
    Scripted Lazada client. Register a handler per API path; a handler gets
    (access_token, params) and returns a response body or raises.
    """

    def __init__(self):
        self.handlers = {}
        self.calls = []
        self.refresh_calls = []
        self.refresh_error = None
        self.refresh_response = {
            "code": "0",
            "access_token": "refreshed-access",
            "refresh_token": "refreshed-refresh",
            "expires_in": 604800,
            "refresh_expires_in": 2592000,
        }
        self.exchange_response = None

    def on(self, api_path, handler):
        self.handlers[api_path] = handler

    def calls_for(self, api_path):
        return [c for c in self.calls if c[0] == api_path]

    async def request(self, api_path, access_token=None, params=None, method="GET"):
        params = dict(params or {})
        self.calls.append((api_path, access_token, params))
        return self.handlers[api_path](access_token, params)

    async def refresh_access_token(self, refresh_token):
        self.refresh_calls.append(refresh_token)
        if self.refresh_error is not None:
            raise self.refresh_error
        return dict(self.refresh_response)

    async def exchange_code(self, code):
        if self.exchange_response is None:
            raise LazadaAPIError("Invalid authorization code", code="InvalidCode")
        return dict(self.exchange_response)

    def authorization_url(self, redirect_uri, state=None):
        return f"https://auth.example/oauth?redirect_uri={redirect_uri}"

    # ── Response bodies ──────────────────────────────────────────────

    @staticmethod
    def orders_body(orders):
        return {"code": "0", "data": {"count": len(orders), "orders": orders}, "request_id": "req-orders"}

    @staticmethod
    def campaigns_body(campaigns):
        return {"code": "0", "result": {"campaigns": campaigns}, "request_id": "req-campaigns"}

    @staticmethod
    def report_body(rows):
        return {"code": "0", "result": {"result": rows, "totalCount": len(rows)}, "request_id": "req-report"}


@pytest.fixture
def fake_client():
    return FakeLazadaClient()


def make_orders(start, count, seller="1001"):
    return [
        {
            "order_id": int(f"{seller}{n:06d}"),
            "order_number": f"{seller}{n:06d}",
            "statuses": ["pending"],
            "price": "1,299.00",
            "items_count": 2,
            "created_at": "2026-10-10 09:30:00 +0800",
            "updated_at": "2026-10-11 12:00:00 +0800",
        }
        for n in range(start, start + count)
    ]


@pytest.fixture
def orders_factory():
    return make_orders
