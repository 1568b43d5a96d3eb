"""Encryption utilities for vendor credentials.

Provides transparent encryption/decryption for credential columns
using Fernet symmetric encryption.
"""

import base64
import logging
from typing import Any

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy import Text, TypeDecorator

from catalog_sync import metrics
from catalog_sync.config import settings

logger = logging.getLogger(__name__)

_generated_key: bytes | None = None


def get_encryption_key() -> bytes:
    """
    Get the Fernet key from settings.

    Returns:
        Encryption key as bytes

    Falls back to a process-local generated key when ENCRYPTION_KEY is unset,
    which only suits development: values written with it cannot be read after
    a restart.
    """
    global _generated_key

    key_str = settings.encryption_key
    if not key_str:
        if _generated_key is None:
            logger.warning("ENCRYPTION_KEY not set, generating temporary key (not secure for production)")
            _generated_key = Fernet.generate_key()
        return _generated_key

    try:
        key_bytes = base64.urlsafe_b64decode(key_str)
        if len(key_bytes) == 32:
            return base64.urlsafe_b64encode(key_bytes)
    except (ValueError, TypeError):
        pass
    # Not a Fernet key; derive one from the raw string
    return base64.urlsafe_b64encode(key_str.encode().ljust(32)[:32])


class EncryptedString(TypeDecorator):
    """
    SQLAlchemy TypeDecorator for transparently encrypting/decrypting string columns.

    Usage:
        secret: Mapped[Optional[str]] = mapped_column(EncryptedString(), nullable=True)
    """

    impl = Text
    cache_ok = True

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._fernet: Fernet | None = None

    def _get_fernet(self) -> Fernet:
        if self._fernet is None:
            self._fernet = Fernet(get_encryption_key())
        return self._fernet

    def process_bind_param(self, value: str | None, dialect: Any) -> str | None:
        """Encrypt value before storing in database."""
        if value is None:
            return None
        return self._get_fernet().encrypt(value.encode()).decode()

    def process_result_value(self, value: str | None, dialect: Any) -> str | None:
        """Decrypt value after reading from database."""
        if value is None:
            return None

        try:
            return self._get_fernet().decrypt(value.encode()).decode()
        except InvalidToken as e:
            exception_type = type(e).__name__
            metrics.record_decryption_failure(exception_type)
            logger.error(
                f"Decryption failed: {exception_type} (value_length={len(value)}). "
                f"This may indicate key rotation or data corruption."
            )
            # Unreadable credentials behave like missing ones upstream
            return None


def encrypt_value(value: str) -> str:
    """Encrypt a value for storage."""
    if not value:
        return value
    return Fernet(get_encryption_key()).encrypt(value.encode()).decode()


def decrypt_value(value: str) -> str | None:
    """Decrypt a stored value, or None if it cannot be decrypted."""
    if not value:
        return value
    try:
        return Fernet(get_encryption_key()).decrypt(value.encode()).decode()
    except InvalidToken:
        logger.error("Decryption failed for stored value")
        return None
