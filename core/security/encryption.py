"""Credential encryption using AES-GCM.

Provides encryption at rest for the secrets the DIA integration has to
replay on every session refresh (web-service password, API key) and for
SMTP passwords. Uses AES-256-GCM for authenticated encryption.
"""

import base64
import json
import os
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from cryptography.hazmat.primitives.ciphers.aead import AESGCM


def generate_encryption_key() -> str:
    """Generate a new 256-bit encryption key.

    Returns:
        Base64-encoded 32-byte key suitable for AES-256
    """
    key = secrets.token_bytes(32)
    return base64.b64encode(key).decode('utf-8')


@dataclass
class EncryptedSecret:
    """Encrypted secret with metadata."""
    ciphertext: str  # Base64-encoded encrypted data (GCM tag appended)
    nonce: str       # Base64-encoded nonce/IV
    created_at: str  # ISO timestamp
    owner_id: str    # Bound as associated data
    key_version: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ciphertext": self.ciphertext,
            "nonce": self.nonce,
            "created_at": self.created_at,
            "owner_id": self.owner_id,
            "key_version": self.key_version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EncryptedSecret":
        return cls(
            ciphertext=data["ciphertext"],
            nonce=data["nonce"],
            created_at=data["created_at"],
            owner_id=data["owner_id"],
            key_version=data.get("key_version", 1),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, raw: str) -> "EncryptedSecret":
        return cls.from_dict(json.loads(raw))


class CredentialCipher:
    """AES-256-GCM encryption for stored credentials.

    Security properties:
    - Confidentiality: AES-256 encryption
    - Integrity: GCM authentication tag
    - Uniqueness: Random 96-bit nonce per encryption
    - Binding: owner id is associated data, so a ciphertext copied onto
      another user's row fails to decrypt

    Usage:
        cipher = CredentialCipher(generate_encryption_key())
        stored = cipher.encrypt_text("s3cret", owner_id="user-1")
        cipher.decrypt_text(stored, owner_id="user-1")
    """

    def __init__(self, encryption_key: str):
        """Initialize with base64-encoded encryption key.

        Args:
            encryption_key: Base64-encoded 32-byte key (from generate_encryption_key())
        """
        try:
            self._key = base64.b64decode(encryption_key)
            if len(self._key) != 32:
                raise ValueError("Key must be 32 bytes (256 bits)")
        except Exception as e:
            raise ValueError(f"Invalid encryption key: {e}")

        self._aesgcm = AESGCM(self._key)

    def encrypt(self, plaintext: str, owner_id: str, key_version: int = 1) -> EncryptedSecret:
        """Encrypt a secret for a given owner.

        Args:
            plaintext: Secret value
            owner_id: Owning user id (bound as associated data)
            key_version: Key version recorded alongside the ciphertext

        Returns:
            EncryptedSecret with encrypted data and metadata
        """
        nonce = os.urandom(12)
        aad = owner_id.encode('utf-8')
        ciphertext = self._aesgcm.encrypt(nonce, plaintext.encode('utf-8'), aad)

        return EncryptedSecret(
            ciphertext=base64.b64encode(ciphertext).decode('utf-8'),
            nonce=base64.b64encode(nonce).decode('utf-8'),
            created_at=datetime.utcnow().isoformat(),
            owner_id=owner_id,
            key_version=key_version,
        )

    def decrypt(self, encrypted: EncryptedSecret, owner_id: Optional[str] = None) -> str:
        """Decrypt a secret.

        Args:
            encrypted: EncryptedSecret from encrypt()
            owner_id: Expected owner; defaults to the one recorded on the secret

        Raises:
            ValueError: If decryption fails (wrong key, tampered data, wrong owner)
        """
        try:
            ciphertext = base64.b64decode(encrypted.ciphertext)
            nonce = base64.b64decode(encrypted.nonce)
            aad = (owner_id or encrypted.owner_id).encode('utf-8')

            plaintext = self._aesgcm.decrypt(nonce, ciphertext, aad)
            return plaintext.decode('utf-8')

        except Exception as e:
            raise ValueError(f"Credential decryption failed: {e}")

    def encrypt_text(self, plaintext: Optional[str], owner_id: str) -> Optional[str]:
        """Encrypt to the JSON form stored in a TEXT column (None passes through)."""
        if plaintext is None:
            return None
        return self.encrypt(plaintext, owner_id).to_json()

    def decrypt_text(self, stored: Optional[str], owner_id: str) -> Optional[str]:
        """Decrypt the JSON form stored in a TEXT column (None passes through)."""
        if not stored:
            return None
        return self.decrypt(EncryptedSecret.from_json(stored), owner_id)


def cipher_from_settings(settings=None) -> CredentialCipher:
    """Build the cipher for the configured CREDENTIAL_ENCRYPTION_KEY.

    Raises:
        ValueError: If no key is configured
    """
    from core.config import get_settings

    settings = settings or get_settings()
    if not settings.credential_encryption_key:
        raise ValueError(
            "CREDENTIAL_ENCRYPTION_KEY is not set. "
            "Generate one with: python -c 'from core.security import generate_encryption_key; "
            "print(generate_encryption_key())'"
        )
    return CredentialCipher(settings.credential_encryption_key)
