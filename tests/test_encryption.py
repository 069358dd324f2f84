"""Tests for credential field encryption."""

import pytest

from wa_mailbox.core.encryption import (
    ENCRYPTED_PREFIX,
    EncryptionError,
    EncryptionService,
    generate_encryption_key,
)


class TestEncryptionService:
    def setup_method(self):
        self.service = EncryptionService(key=generate_encryption_key())

    def test_encrypt_adds_prefix_and_hides_plaintext(self):
        token = self.service.encrypt("EAAG-secret")

        assert token.startswith(ENCRYPTED_PREFIX)
        assert "EAAG-secret" not in token
        assert self.service.decrypt(token) == "EAAG-secret"

    def test_plaintext_values_read_back_unchanged(self):
        assert self.service.decrypt("legacy-plain-token") == "legacy-plain-token"

    def test_wrong_key_raises(self):
        token = self.service.encrypt("EAAG-secret")
        other = EncryptionService(key=generate_encryption_key())

        with pytest.raises(EncryptionError):
            other.decrypt(token)

    def test_disabled_service_passes_through(self):
        service = EncryptionService(key="")

        assert service.is_enabled is False
        assert service.encrypt("EAAG-secret") == "EAAG-secret"
        with pytest.raises(EncryptionError):
            service.decrypt(f"{ENCRYPTED_PREFIX}abc")
