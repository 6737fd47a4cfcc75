"""
Auth Service — Password hashing, JWT creation/verification, login.
"""

import logging
from datetime import datetime, timezone, timedelta
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import func, select

from app.models import User
from app.config import get_settings
from app.utils import utcnow

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=12)

# JWT config
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24  # 24 hours


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def create_access_token(user_id: str, email: str, role: str) -> str:
    settings = get_settings()
    expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {
        "sub": str(user_id),
        "email": email,
        "role": role,
        "exp": expire,
        "iat": datetime.now(timezone.utc),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    settings = get_settings()
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return None


async def authenticate_user(db: AsyncSession, email: str, password: str) -> Optional[User]:
    """Return the active user matching the credentials, stamping last_login_at."""
    result = await db.execute(select(User).where(func.lower(User.email) == email.strip().lower()))
    user = result.scalar_one_or_none()
    if not user or not user.is_active or not verify_password(password, user.password_hash):
        return None
    user.last_login_at = utcnow()
    await db.flush()
    return user


async def bootstrap_first_admin(db: AsyncSession) -> Optional[User]:
    """Create the FIRST_ADMIN_EMAIL user when the users table is empty."""
    settings = get_settings()
    if not settings.first_admin_email or not settings.first_admin_password:
        return None
    count = (await db.execute(select(func.count()).select_from(User))).scalar() or 0
    if count:
        return None
    admin = User(
        email=settings.first_admin_email.strip().lower(),
        password_hash=hash_password(settings.first_admin_password),
        name="Admin",
        role="admin",
    )
    db.add(admin)
    await db.commit()
    logger.info(f"Bootstrapped first admin: {admin.email}")
    return admin
