"""
Tests for application configuration and settings validation.
"""

import os
import pytest
from unittest.mock import patch


PRODUCTION = {
    "environment": "production",
    "secret_key": "a-real-secret-key-that-is-not-the-default",
    "encryption_key": "x" * 44,
    "lazada_app_key": "100001",
    "lazada_app_secret": "app-secret",
    "database_url": "postgresql+asyncpg://prod-host/db",
}


def test_settings_loads_defaults():
    """Settings should load with sensible defaults in development."""
    from app.config import get_settings
    get_settings.cache_clear()

    with patch.dict(os.environ, {
        "ENVIRONMENT": "development",
        "DATABASE_URL": "postgresql+asyncpg://localhost/test",
        "SECRET_KEY": "change-me-in-production",
    }, clear=False):
        get_settings.cache_clear()
        settings = get_settings()
        assert settings.environment == "development"
        assert settings.is_production is False
        assert settings.lazada_api_url == "https://api.lazada.com.ph/rest"
        assert settings.sync_page_size == 100
        assert settings.token_refresh_threshold_minutes == 60
        assert settings.default_currency == "PHP"
        get_settings.cache_clear()


def test_plain_postgres_url_is_rewritten_for_asyncpg():
    from app.config import Settings
    settings = Settings(_env_file=None, database_url="postgresql://user:pw@db.example.com/ops")
    assert settings.database_url == "postgresql+asyncpg://user:pw@db.example.com/ops"


def test_settings_cors_origin_list():
    """CORS origins string should be split into a list."""
    from app.config import get_settings
    get_settings.cache_clear()

    with patch.dict(os.environ, {
        "ENVIRONMENT": "development",
        "DATABASE_URL": "postgresql+asyncpg://localhost/test",
        "CORS_ORIGINS": "http://localhost:3000, http://example.com",
    }, clear=False):
        get_settings.cache_clear()
        settings = get_settings()
        origins = settings.cors_origin_list
        assert len(origins) == 2
        assert "http://localhost:3000" in origins
        assert "http://example.com" in origins
        get_settings.cache_clear()


def test_production_rejects_default_secret():
    """Production mode should reject the default secret key."""
    from app.config import Settings

    with pytest.raises(ValueError, match="SECRET_KEY must be set"):
        Settings(_env_file=None, **{**PRODUCTION, "secret_key": "change-me-in-production"})


def test_production_requires_encryption_key():
    from app.config import Settings

    with pytest.raises(ValueError, match="ENCRYPTION_KEY must be set"):
        Settings(_env_file=None, **{**PRODUCTION, "encryption_key": ""})


def test_production_requires_lazada_app_credentials():
    from app.config import Settings

    with pytest.raises(ValueError, match="LAZADA_APP_KEY"):
        Settings(_env_file=None, **{**PRODUCTION, "lazada_app_secret": ""})


def test_production_accepts_complete_settings():
    """Production mode should accept a real secret key and credentials."""
    from app.config import Settings
    settings = Settings(_env_file=None, **PRODUCTION)
    assert settings.is_production is True
    assert settings.secret_key == "a-real-secret-key-that-is-not-the-default"


def test_database_connect_args_follow_settings():
    import ssl
    from app.config import Settings
    from app.database import database_connect_args

    plain = database_connect_args(Settings(_env_file=None, database_connect_timeout_seconds=5))
    assert plain == {"timeout": 5}

    hosted = database_connect_args(Settings(_env_file=None, database_ssl=True))
    assert hosted["timeout"] == 30
    assert hosted["ssl"].verify_mode == ssl.CERT_NONE
    assert hosted["ssl"].check_hostname is False
