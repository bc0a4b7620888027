"""Security module - encryption of credentials at rest."""

from core.security.encryption import (
    CredentialCipher,
    EncryptedSecret,
    cipher_from_settings,
    generate_encryption_key,
)

__all__ = [
    "CredentialCipher",
    "EncryptedSecret",
    "cipher_from_settings",
    "generate_encryption_key",
]
