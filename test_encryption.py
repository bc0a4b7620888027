"""Tests for credential encryption."""

import pytest

from core.config import Settings
from core.security.encryption import (
    CredentialCipher,
    EncryptedSecret,
    cipher_from_settings,
    generate_encryption_key,
)


@pytest.fixture
def cipher():
    return CredentialCipher(generate_encryption_key())


class TestCredentialCipher:

    def test_encrypt_decrypt(self, cipher):
        encrypted = cipher.encrypt("ws-secret", owner_id="user-1")

        assert encrypted.ciphertext != "ws-secret"
        assert cipher.decrypt(encrypted) == "ws-secret"

    def test_nonce_is_unique(self, cipher):
        a = cipher.encrypt("same", owner_id="user-1")
        b = cipher.encrypt("same", owner_id="user-1")
        assert a.nonce != b.nonce
        assert a.ciphertext != b.ciphertext

    def test_bound_to_owner(self, cipher):
        stored = cipher.encrypt_text("ws-secret", "user-1")

        with pytest.raises(ValueError):
            cipher.decrypt_text(stored, "user-2")

    def test_wrong_key_fails(self, cipher):
        encrypted = cipher.encrypt("ws-secret", owner_id="user-1")

        with pytest.raises(ValueError):
            CredentialCipher(generate_encryption_key()).decrypt(encrypted)

    def test_text_form_passes_none_through(self, cipher):
        assert cipher.encrypt_text(None, "user-1") is None
        assert cipher.decrypt_text(None, "user-1") is None
        assert cipher.decrypt_text("", "user-1") is None

    def test_json_round_trip(self, cipher):
        stored = cipher.encrypt_text("pa55", "user-1")
        secret = EncryptedSecret.from_json(stored)

        assert secret.owner_id == "user-1"
        assert cipher.decrypt_text(stored, "user-1") == "pa55"

    @pytest.mark.parametrize("key", ["not-base64!", "c2hvcnQ="])
    def test_invalid_key(self, key):
        with pytest.raises(ValueError):
            CredentialCipher(key)


def test_cipher_from_settings_requires_key():
    with pytest.raises(ValueError):
        cipher_from_settings(Settings(credential_encryption_key=None))


def test_cipher_from_settings():
    key = generate_encryption_key()
    cipher = cipher_from_settings(Settings(credential_encryption_key=key))
    assert cipher.decrypt_text(cipher.encrypt_text("x", "u"), "u") == "x"
