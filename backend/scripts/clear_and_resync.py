#!/usr/bin/env python3
"""
Drop one user's cached Lazada data and pull it again.

Run from backend directory:
  python scripts/clear_and_resync.py user@example.com

Keep the cache and only resync:
  python scripts/clear_and_resync.py user@example.com --keep
"""

import asyncio
import argparse
import sys
from pathlib import Path

# Ensure backend root is on path
backend_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(backend_root))

from sqlalchemy import delete, func, select
from app.database import async_session
from app.lazada_client import create_lazada_client
from app.models import CachedCampaign, CachedCampaignMetric, CachedOrder, User
from app.services.sync_service import SyncService


async def clear_cache(db, user_id):
    for model in (CachedCampaignMetric, CachedCampaign, CachedOrder):
        result = await db.execute(delete(model).where(model.user_id == user_id))
        print(f"  Cleared {model.__tablename__}: {result.rowcount} rows")
    await db.commit()


async def main():
    parser = argparse.ArgumentParser(description="Clear a user's cached Lazada data and resync it")
    parser.add_argument("email", help="Email of the user to resync")
    parser.add_argument("--keep", action="store_true", help="Skip clearing; resync on top of the cache")
    parser.add_argument("--orders-days", type=int, default=30)
    parser.add_argument("--metrics-days", type=int, default=7)
    args = parser.parse_args()

    async with async_session() as db:
        result = await db.execute(select(User).where(func.lower(User.email) == args.email.lower()))
        user = result.scalar_one_or_none()
        if user is None:
            print(f"No user with email {args.email}")
            sys.exit(1)

        if not args.keep:
            print(f"Clearing cached data for {user.email}...")
            await clear_cache(db, user.id)

        print("Running full sync...")
        outcome = await SyncService(db, user.id, create_lazada_client()).sync_all(
            orders_days_back=args.orders_days,
            metrics_days_back=args.metrics_days,
        )

    print(f"Status: {outcome['status']} in {outcome['duration_ms']}ms")
    for stage in ("orders", "campaigns", "campaign_metrics"):
        if outcome[stage] is not None:
            print(f"  {stage}: {outcome[stage]['total_synced']} rows")
    if outcome.get("error"):
        print(f"  error: {outcome['error']}")


if __name__ == "__main__":
    asyncio.run(main())
