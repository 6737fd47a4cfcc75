"""
Cron / Scheduled Jobs — endpoints for an external scheduler.

The scheduler authenticates with CRON_SECRET, sent either as
  X-Cron-Secret: <CRON_SECRET>
or
  Authorization: Bearer <CRON_SECRET>
An empty CRON_SECRET disables these endpoints.
"""

import logging
from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.database import async_session, get_db
from app.lazada_client import LazadaClient, get_lazada_client
from app.services.sync_ledger import sweep_stale_runs
from app.services.sync_service import run_scheduled_sync

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["Cron"])


def get_session_factory():
    """Sessions for the scheduled sync; overridden in tests."""
    return async_session


async def _require_cron_secret(
    x_cron_secret: str | None = Header(None, alias="X-Cron-Secret"),
    authorization: str | None = Header(None),
) -> None:
    secret = get_settings().cron_secret
    if not secret:
        raise HTTPException(503, "CRON_SECRET not configured")
    token = x_cron_secret
    if not token and authorization and authorization.startswith("Bearer "):
        token = authorization[7:]
    if token != secret:
        raise HTTPException(401, "Invalid cron secret")


@router.post("/sync")
async def cron_sync(
    _: None = Depends(_require_cron_secret),
    session_factory=Depends(get_session_factory),
    client: LazadaClient = Depends(get_lazada_client),
):
    """
    Full sync for every user with an active seller account.
    POST /api/cron/sync  (X-Cron-Secret: <CRON_SECRET>)
    """
    try:
        result = await run_scheduled_sync(session_factory, client)
        logger.info(f"Cron sync completed: {result}")
        return {"status": "ok", "result": result}
    except Exception as e:
        logger.exception("Cron sync failed")
        raise HTTPException(500, str(e))


@router.post("/sweep-runs")
async def cron_sweep_runs(
    _: None = Depends(_require_cron_secret),
    db: AsyncSession = Depends(get_db),
):
    """Fail sync runs stuck in 'started' past the stale timeout."""
    try:
        swept = await sweep_stale_runs(db, get_settings().stale_run_timeout_minutes)
        return {"status": "ok", "swept": swept}
    except Exception as e:
        logger.exception("Stale run sweep failed")
        raise HTTPException(500, str(e))
