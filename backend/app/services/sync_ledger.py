"""
Sync run ledger.
Every per-account sync attempt opens a row in sync_runs and closes it exactly
once, as completed (with a record count) or failed (with the error message).
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from app.models import SyncRun, SyncRunStatus
from app.utils import utcnow

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = {SyncRunStatus.COMPLETED.value, SyncRunStatus.FAILED.value}


class SyncRunAlreadyClosed(Exception):
    pass


async def open_run(
    db: AsyncSession,
    user_id: uuid.UUID,
    account_id: Optional[uuid.UUID],
    sync_type: str,
    params: Optional[dict] = None,
) -> uuid.UUID:
    """Record a started run and commit it so it's visible while the sync works."""
    run = SyncRun(
        id=uuid.uuid4(),
        user_id=user_id,
        account_id=account_id,
        sync_type=sync_type,
        status=SyncRunStatus.STARTED.value,
        started_at=utcnow(),
        records_synced=0,
        params=params or {},
    )
    db.add(run)
    await db.commit()
    logger.info(f"Opened {sync_type} run {run.id} for account {account_id}")
    return run.id


async def close_run(
    db: AsyncSession,
    run_id: uuid.UUID,
    status: str,
    records_synced: int = 0,
    error_message: Optional[str] = None,
) -> None:
    """
    Move a started run to a terminal status. The update only matches a row
    still in 'started', so a second close raises SyncRunAlreadyClosed.
    The caller commits.
    """
    status = SyncRunStatus(status).value
    if status not in TERMINAL_STATUSES:
        raise ValueError(f"Cannot close a run as '{status}'")

    result = await db.execute(
        update(SyncRun)
        .where(SyncRun.id == run_id, SyncRun.status == SyncRunStatus.STARTED.value)
        .values(
            status=status,
            completed_at=utcnow(),
            records_synced=records_synced,
            error_message=error_message,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise SyncRunAlreadyClosed(f"Sync run {run_id} is not open")

    if status == SyncRunStatus.FAILED.value:
        logger.info(f"Closed run {run_id} as failed: {error_message}")
    else:
        logger.info(f"Closed run {run_id} as {status} ({records_synced} records)")


async def find_open_run(
    db: AsyncSession,
    account_id: uuid.UUID,
    sync_type: str,
    exclude_run_id: Optional[uuid.UUID] = None,
    newer_than: Optional[datetime] = None,
    opened_before_run_id: Optional[uuid.UUID] = None,
) -> Optional[SyncRun]:
    """
    Another started run of the same kind for the account, if any.

    With `opened_before_run_id`, only runs opened ahead of that run count,
    ordered by (started_at, id). Of two overlapping runs exactly one then sees
    the other, so the older proceeds and the newer backs off.
    """
    query = select(SyncRun).where(
        SyncRun.account_id == account_id,
        SyncRun.sync_type == sync_type,
        SyncRun.status == SyncRunStatus.STARTED.value,
    )
    if exclude_run_id is not None:
        query = query.where(SyncRun.id != exclude_run_id)
    if newer_than is not None:
        query = query.where(SyncRun.started_at > newer_than)
    if opened_before_run_id is not None:
        mine = await db.execute(select(SyncRun.started_at).where(SyncRun.id == opened_before_run_id))
        my_start = mine.scalar_one()
        query = query.where(
            SyncRun.id != opened_before_run_id,
            or_(
                SyncRun.started_at < my_start,
                and_(SyncRun.started_at == my_start, SyncRun.id < opened_before_run_id),
            ),
        )
    result = await db.execute(query.order_by(SyncRun.started_at.desc()).limit(1))
    return result.scalar_one_or_none()


async def sweep_stale_runs(db: AsyncSession, older_than_minutes: int) -> int:
    """
    Fail runs left in 'started' by a process that died mid-sync.
    Returns how many were closed. The caller commits.
    """
    cutoff = utcnow() - timedelta(minutes=older_than_minutes)
    result = await db.execute(
        update(SyncRun)
        .where(SyncRun.status == SyncRunStatus.STARTED.value, SyncRun.started_at < cutoff)
        .values(
            status=SyncRunStatus.FAILED.value,
            completed_at=utcnow(),
            error_message=f"Run abandoned: still started after {older_than_minutes} minutes",
        )
        .execution_options(synchronize_session=False)
    )
    swept = result.rowcount or 0
    if swept:
        logger.warning(f"Marked {swept} abandoned sync run(s) as failed")
    return swept


async def recent_runs(db: AsyncSession, user_id: uuid.UUID, limit: int = 10) -> list[SyncRun]:
    result = await db.execute(
        select(SyncRun)
        .where(SyncRun.user_id == user_id)
        .order_by(SyncRun.started_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


def run_to_dict(run: SyncRun) -> dict:
    return {
        "id": str(run.id),
        "account_id": str(run.account_id) if run.account_id else None,
        "sync_type": run.sync_type,
        "status": run.status,
        "started_at": run.started_at.isoformat() if run.started_at else None,
        "completed_at": run.completed_at.isoformat() if run.completed_at else None,
        "records_synced": run.records_synced,
        "error_message": run.error_message,
        "params": run.params,
    }
