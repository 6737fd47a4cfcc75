#!/usr/bin/env python3
"""
Create the first admin user from FIRST_ADMIN_EMAIL and FIRST_ADMIN_PASSWORD in .env.
Run from backend/: python -m scripts.create_admin
"""
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))


async def main():
    from app.config import get_settings
    from app.database import async_session, init_db
    from app.services.auth_service import bootstrap_first_admin

    settings = get_settings()
    if not settings.first_admin_email or not settings.first_admin_password:
        print("Error: Set FIRST_ADMIN_EMAIL and FIRST_ADMIN_PASSWORD in .env")
        sys.exit(1)

    await init_db()
    async with async_session() as db:
        admin = await bootstrap_first_admin(db)
    if admin is None:
        print("Users already exist. Bootstrap only creates the first admin when no users exist.")
    else:
        print(f"Created admin user: {admin.email}")


if __name__ == "__main__":
    asyncio.run(main())
