import logging
from pydantic_settings import BaseSettings
from pydantic import model_validator, ConfigDict
from functools import lru_cache

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Environment: "development" or "production"
    environment: str = "development"

    database_url: str = "postgresql+asyncpg://localhost/lazada_ops"

    @model_validator(mode="before")
    @classmethod
    def _fix_database_url_for_asyncpg(cls, values: dict) -> dict:
        """Hosted Postgres gives postgresql://; we need postgresql+asyncpg:// for asyncpg."""
        if not isinstance(values, dict):
            return values
        url = values.get("database_url") or ""
        if url.startswith("postgresql://") and "+asyncpg" not in url:
            values["database_url"] = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return values
    database_ssl: bool = False
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_connect_timeout_seconds: int = 30
    secret_key: str = "change-me-in-production"
    encryption_key: str = ""
    cron_secret: str = ""  # X-Cron-Secret for scheduled sync; empty = cron endpoints disabled
    first_admin_email: str = ""  # Bootstrap: create first admin if no users exist
    first_admin_password: str = ""
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    # Lazada Open Platform
    lazada_app_key: str = ""
    lazada_app_secret: str = ""
    lazada_api_url: str = "https://api.lazada.com.ph/rest"
    lazada_auth_url: str = "https://auth.lazada.com/rest"
    lazada_oauth_url: str = "https://auth.lazada.com/oauth/authorize"
    lazada_redirect_uri: str = "http://localhost:5173/#/callback"
    lazada_timeout_seconds: float = 30.0

    # Sync tuning
    sync_page_size: int = 100
    sync_batch_size: int = 100
    token_refresh_threshold_minutes: int = 60
    metrics_request_delay_seconds: float = 0.1
    default_currency: str = "PHP"
    orders_days_back_default: int = 30
    metrics_days_back_default: int = 7
    stale_run_timeout_minutes: int = 60
    account_cache_ttl_seconds: int = 300

    @model_validator(mode="after")
    def _validate_production_settings(self) -> "Settings":
        """Enforce that critical secrets are set when running in production."""
        if self.is_production:
            if self.secret_key == "change-me-in-production":
                raise ValueError(
                    "SECRET_KEY must be set to a secure value in production. "
                    "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
                )
            if not self.encryption_key:
                raise ValueError(
                    "ENCRYPTION_KEY must be set in production. "
                    "Generate one with: python -c \"from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\""
                )
            if not self.lazada_app_key or not self.lazada_app_secret:
                raise ValueError("LAZADA_APP_KEY and LAZADA_APP_SECRET must be set in production.")
            if not self.database_url or "localhost" in self.database_url:
                logger.warning("DATABASE_URL appears to point at localhost in production.")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def cors_origin_list(self) -> list[str]:
        origins = [o.strip() for o in self.cors_origins.split(",") if o.strip()]
        return origins or ["http://localhost:5173", "http://localhost:3000"]


@lru_cache
def get_settings() -> Settings:
    return Settings()
