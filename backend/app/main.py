"""
Lazada Seller Ops — FastAPI Backend
Links Lazada seller accounts, syncs orders, campaigns and campaign metrics
into PostgreSQL, and serves the cached data to the dashboard.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.config import get_settings
from app.database import async_session, check_db_connection, dispose_db, init_db
from app.routers import accounts, auth, cron, lazada, sync
from app.services.auth_service import bootstrap_first_admin
from app.services.sync_ledger import sweep_stale_runs

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

settings = get_settings()


async def _startup_housekeeping():
    """Bootstrap the first admin and fail runs orphaned by the last shutdown."""
    async with async_session() as db:
        await bootstrap_first_admin(db)
        swept = await sweep_stale_runs(db, settings.stale_run_timeout_minutes)
        await db.commit()
        if swept:
            logger.info(f"Startup: closed {swept} abandoned sync run(s)")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Lazada Seller Ops...")
    try:
        await init_db()
        await _startup_housekeeping()
        logger.info("Database initialized, all tables ready.")
    except Exception as e:
        logger.error(f"Startup failed (DB/init): {e}", exc_info=True)
        # Still yield so app can serve /api/health (degraded)
    yield
    logger.info("Shutting down...")
    await dispose_db()


app = FastAPI(
    title="Lazada Seller Ops",
    description="Lazada order and sponsored-solutions sync for the seller dashboard",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers (auth enforced per endpoint via get_current_user) ────────
app.include_router(auth.router, prefix="/api")
app.include_router(accounts.router, prefix="/api", tags=["Accounts"])
app.include_router(sync.router, prefix="/api")
app.include_router(lazada.router, prefix="/api")
app.include_router(cron.router, prefix="/api")  # No JWT; uses CRON_SECRET


@app.get("/api/health")
async def health_check():
    db_ok = await check_db_connection()
    return {
        "status": "healthy" if db_ok else "degraded",
        "service": "Lazada Seller Ops",
        "database": "connected" if db_ok else "disconnected",
    }
