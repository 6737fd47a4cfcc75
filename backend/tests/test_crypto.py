"""
Tests for token encryption at rest.
"""

import os
import pytest
from unittest.mock import patch
from cryptography.fernet import Fernet

from app.config import get_settings
from app.crypto import decrypt_value, encrypt_value, reset_cipher


@pytest.fixture
def encryption_key():
    key = Fernet.generate_key().decode()
    with patch.dict(os.environ, {"ENCRYPTION_KEY": key, "ENVIRONMENT": "development"}):
        get_settings.cache_clear()
        reset_cipher()
        yield key
    get_settings.cache_clear()
    reset_cipher()


def test_tokens_round_trip_through_fernet(encryption_key):
    stored = encrypt_value("seller-access-token")

    assert stored != "seller-access-token"
    assert Fernet(encryption_key.encode()).decrypt(stored.encode()).decode() == "seller-access-token"
    assert decrypt_value(stored) == "seller-access-token"


def test_plaintext_left_over_from_before_the_key_is_returned_as_is(encryption_key):
    assert decrypt_value("legacy-plaintext-token") == "legacy-plaintext-token"


def test_none_passes_through(encryption_key):
    assert encrypt_value(None) is None
    assert decrypt_value(None) is None


def test_without_a_key_development_stores_plaintext():
    with patch.dict(os.environ, {"ENCRYPTION_KEY": "", "ENVIRONMENT": "development"}):
        get_settings.cache_clear()
        reset_cipher()
        try:
            assert encrypt_value("token") == "token"
            assert decrypt_value("token") == "token"
        finally:
            get_settings.cache_clear()
            reset_cipher()
