"""
Database engine and sessions for the sync cache.
PostgreSQL over asyncpg with the SQLAlchemy 2 async engine; Alembic reuses
the same connect arguments.
"""

import logging
import ssl
from typing import Optional
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import text
from app.config import Settings, get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


def database_connect_args(config: Optional[Settings] = None) -> dict:
    """asyncpg connect arguments. DATABASE_SSL accepts the hosted proxy's self-signed cert."""
    config = config or settings
    args = {"timeout": config.database_connect_timeout_seconds}
    if config.database_ssl:
        ctx = ssl.create_default_context()
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
        args["ssl"] = ctx
    return args


engine = create_async_engine(
    settings.database_url,
    echo=False,
    pool_size=settings.database_pool_size,
    max_overflow=settings.database_max_overflow,
    pool_pre_ping=True,
    connect_args=database_connect_args(),
)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncSession:
    """Request-scoped session: commits on success, rolls back on any error."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db():
    """
    Create any missing tables for the accounts, run ledger and cache.
    Alembic migrations remain the source of truth in production.
    """
    import app.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info(f"Database initialized with {len(Base.metadata.tables)} tables: "
                f"{', '.join(sorted(Base.metadata.tables.keys()))}")


async def dispose_db():
    """Close pooled connections on shutdown."""
    await engine.dispose()


async def check_db_connection() -> bool:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False
