"""
Encryption at rest for seller OAuth tokens.

Access and refresh tokens are Fernet-encrypted before they reach the
seller_accounts table. The key comes from ENCRYPTION_KEY.

Without a key (development only) both directions pass values through
unchanged so a local database can be inspected by hand.
"""

import logging
from typing import Optional
from cryptography.fernet import Fernet, InvalidToken
from app.config import get_settings

logger = logging.getLogger(__name__)

_fernet: Optional[Fernet] = None
_plaintext_warned = False


def _get_fernet() -> Optional[Fernet]:
    global _fernet, _plaintext_warned
    if _fernet is not None:
        return _fernet

    settings = get_settings()
    key = settings.encryption_key

    if not key:
        if settings.is_production:
            raise RuntimeError("ENCRYPTION_KEY must be set in production.")
        if not _plaintext_warned:
            logger.warning("ENCRYPTION_KEY not set, seller tokens will be stored in plaintext (development only).")
            _plaintext_warned = True
        return None

    try:
        _fernet = Fernet(key.encode())
    except (ValueError, TypeError) as exc:
        raise RuntimeError(f"Invalid ENCRYPTION_KEY: {exc}") from exc
    return _fernet


def reset_cipher() -> None:
    """Forget the cached Fernet instance (after the key setting changes)."""
    global _fernet, _plaintext_warned
    _fernet = None
    _plaintext_warned = False


def encrypt_value(plaintext: Optional[str]) -> Optional[str]:
    if plaintext is None:
        return None
    f = _get_fernet()
    if f is None:
        return plaintext
    return f.encrypt(plaintext.encode()).decode()


def decrypt_value(ciphertext: Optional[str]) -> Optional[str]:
    """
    Decrypt a stored token. A value that isn't valid Fernet ciphertext is
    returned unchanged: rows linked before a key was configured hold plaintext.
    """
    if ciphertext is None:
        return None
    f = _get_fernet()
    if f is None:
        return ciphertext
    try:
        return f.decrypt(ciphertext.encode()).decode()
    except InvalidToken:
        logger.warning("Stored token is not Fernet ciphertext, using it as plaintext.")
        return ciphertext
