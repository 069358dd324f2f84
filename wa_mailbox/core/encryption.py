"""Field-level encryption for stored provider credentials.

Access tokens for the WhatsApp Cloud API are encrypted with Fernet before they
reach the database. Values carry an ``enc:`` prefix so rows written before a
key was configured still read back as plain text.
"""

import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

ENCRYPTED_PREFIX = "enc:"


class EncryptionError(Exception):
    """Raised when encryption/decryption fails."""


class EncryptionService:
    """Encrypts and decrypts credential fields with a Fernet key."""

    def __init__(self, key: str | None = None) -> None:
        self._fernet: Fernet | None = None
        if key is None:
            # Import here to avoid circular import
            from wa_mailbox.settings import settings

            key = settings.field_encryption_key

        if key:
            try:
                self._fernet = Fernet(key.encode())
            except ValueError as e:
                logger.error(f"Invalid FIELD_ENCRYPTION_KEY format: {e}")
        else:
            logger.warning("No encryption key configured - encryption disabled")

    @property
    def is_enabled(self) -> bool:
        return self._fernet is not None

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a plaintext string.

        Args:
            plaintext: The string to encrypt

        Returns:
            Fernet token prefixed with ``enc:``, or the plaintext when no key
            is configured

        Raises:
            EncryptionError: If encryption fails
        """
        if not plaintext or self._fernet is None:
            return plaintext
        try:
            token = self._fernet.encrypt(plaintext.encode())
        except Exception as e:
            raise EncryptionError(f"Failed to encrypt value: {e}") from e
        return f"{ENCRYPTED_PREFIX}{token.decode()}"

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a value written by :meth:`encrypt`.

        Raises:
            EncryptionError: If the value is encrypted and cannot be decrypted
        """
        if not ciphertext or not ciphertext.startswith(ENCRYPTED_PREFIX):
            return ciphertext
        if self._fernet is None:
            raise EncryptionError("Cannot decrypt: encryption key not configured")
        try:
            return self._fernet.decrypt(ciphertext[len(ENCRYPTED_PREFIX):].encode()).decode()
        except InvalidToken:
            raise EncryptionError("Failed to decrypt: invalid token or wrong key")


_encryption_service: Optional[EncryptionService] = None


def get_encryption_service() -> EncryptionService:
    """Get the process-wide encryption service."""
    global _encryption_service
    if _encryption_service is None:
        _encryption_service = EncryptionService()
    return _encryption_service


def reset_encryption_service() -> None:
    """Forget the cached service so the key is re-read from settings."""
    global _encryption_service
    _encryption_service = None


def encrypt_field(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return get_encryption_service().encrypt(value)


def decrypt_field(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return get_encryption_service().decrypt(value)


def generate_encryption_key() -> str:
    """Generate a new key suitable for FIELD_ENCRYPTION_KEY."""
    return Fernet.generate_key().decode()
