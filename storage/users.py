"""User repository.

Local users and the DIA connection fields stored on them. The DIA API key
and web-service password are encrypted at rest with the user id bound as
associated data; everything else is stored as-is.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from connectors.dia.dia_models import DiaCredentials, DiaSession
from core.models.transactions import OperationTypeKeys
from core.security.encryption import CredentialCipher
from storage.db import Database


class User(BaseModel):
    """A local user. Secrets are never part of this model."""
    id: str
    email: str
    full_name: Optional[str] = None
    role: str = "approver"
    dia_sunucu_adi: Optional[str] = None
    dia_ws_kullanici: Optional[str] = None
    dia_firma_kodu: Optional[int] = None
    dia_donem_kodu: Optional[int] = None
    has_dia_session: bool = False
    operation_type_keys: OperationTypeKeys = OperationTypeKeys()
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class StoredDiaConnection:
    """Decrypted DIA connection fields plus the last known session."""
    credentials: DiaCredentials
    session_id: Optional[str] = None
    session_expires: Optional[datetime] = None

    def to_session(self) -> Optional[DiaSession]:
        if not self.session_id or not self.session_expires:
            return None
        return DiaSession(
            session_id=self.session_id,
            server_name=self.credentials.server_name,
            firma_kodu=self.credentials.firma_kodu,
            donem_kodu=self.credentials.donem_kodu,
            expires_at=self.session_expires,
        )


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class UserRepository:
    """CRUD for users and their DIA connection fields."""

    def __init__(self, db: Database, cipher: CredentialCipher):
        self.db = db
        self.cipher = cipher

    def create_user(
        self,
        email: str,
        full_name: Optional[str] = None,
        role: str = "approver",
        user_id: Optional[str] = None,
    ) -> User:
        user_id = user_id or str(uuid.uuid4())
        now = datetime.utcnow().isoformat()
        with self.db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO users (id, email, full_name, role, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (user_id, email, full_name, role, now, now),
            )
        return self.get_user(user_id)

    def get_user(self, user_id: str) -> Optional[User]:
        with self.db.connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return User(
            id=row["id"],
            email=row["email"],
            full_name=row["full_name"],
            role=row["role"],
            dia_sunucu_adi=row["dia_sunucu_adi"],
            dia_ws_kullanici=row["dia_ws_kullanici"],
            dia_firma_kodu=row["dia_firma_kodu"],
            dia_donem_kodu=row["dia_donem_kodu"],
            has_dia_session=bool(row["dia_session_id"]),
            operation_type_keys=OperationTypeKeys(
                approve_key=row["dia_ust_islem_approve_key"],
                reject_key=row["dia_ust_islem_reject_key"],
                analyze_key=row["dia_ust_islem_analyze_key"],
            ),
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    # =========================================================================
    # DIA connection
    # =========================================================================

    def get_dia_connection(self, user_id: str) -> Optional[StoredDiaConnection]:
        """Load and decrypt a user's DIA connection.

        Returns None when the user is unknown or any of server name,
        username, password or API key is missing.
        """
        with self.db.connection() as conn:
            row = conn.execute(
                """
                SELECT dia_sunucu_adi, dia_api_key, dia_ws_kullanici, dia_ws_sifre,
                       dia_session_id, dia_session_expires, dia_firma_kodu, dia_donem_kodu
                FROM users WHERE id = ?
                """,
                (user_id,),
            ).fetchone()

        if row is None:
            return None
        if not (row["dia_sunucu_adi"] and row["dia_api_key"]
                and row["dia_ws_kullanici"] and row["dia_ws_sifre"]):
            return None

        credentials = DiaCredentials(
            server_name=row["dia_sunucu_adi"],
            api_key=self.cipher.decrypt_text(row["dia_api_key"], user_id),
            username=row["dia_ws_kullanici"],
            password=self.cipher.decrypt_text(row["dia_ws_sifre"], user_id),
            firma_kodu=row["dia_firma_kodu"] if row["dia_firma_kodu"] is not None else 1,
            donem_kodu=row["dia_donem_kodu"] if row["dia_donem_kodu"] is not None else 1,
        )
        return StoredDiaConnection(
            credentials=credentials,
            session_id=row["dia_session_id"],
            session_expires=_parse_ts(row["dia_session_expires"]),
        )

    def save_dia_connection(
        self,
        user_id: str,
        credentials: DiaCredentials,
        session_id: str,
        session_expires: datetime,
    ) -> None:
        """Persist connection fields and a fresh session after a login."""
        now = datetime.utcnow().isoformat()
        with self.db.transaction() as conn:
            conn.execute(
                """
                UPDATE users SET
                    dia_sunucu_adi = ?,
                    dia_api_key = ?,
                    dia_ws_kullanici = ?,
                    dia_ws_sifre = ?,
                    dia_session_id = ?,
                    dia_session_expires = ?,
                    dia_firma_kodu = ?,
                    dia_donem_kodu = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (
                    credentials.server_name,
                    self.cipher.encrypt_text(credentials.api_key, user_id),
                    credentials.username,
                    self.cipher.encrypt_text(credentials.password, user_id),
                    session_id,
                    session_expires.isoformat(),
                    credentials.firma_kodu,
                    credentials.donem_kodu,
                    now,
                    user_id,
                ),
            )

    def clear_session(self, user_id: str) -> None:
        with self.db.transaction() as conn:
            conn.execute(
                """
                UPDATE users SET dia_session_id = NULL, dia_session_expires = NULL, updated_at = ?
                WHERE id = ?
                """,
                (datetime.utcnow().isoformat(), user_id),
            )

    # =========================================================================
    # Operation-type keys
    # =========================================================================

    def get_operation_type_keys(self, user_id: str) -> OperationTypeKeys:
        with self.db.connection() as conn:
            row = conn.execute(
                """
                SELECT dia_ust_islem_approve_key, dia_ust_islem_reject_key, dia_ust_islem_analyze_key
                FROM users WHERE id = ?
                """,
                (user_id,),
            ).fetchone()
        if row is None:
            return OperationTypeKeys()
        return OperationTypeKeys(
            approve_key=row["dia_ust_islem_approve_key"],
            reject_key=row["dia_ust_islem_reject_key"],
            analyze_key=row["dia_ust_islem_analyze_key"],
        )

    def update_operation_type_keys(self, user_id: str, keys: OperationTypeKeys) -> None:
        with self.db.transaction() as conn:
            conn.execute(
                """
                UPDATE users SET
                    dia_ust_islem_approve_key = ?,
                    dia_ust_islem_reject_key = ?,
                    dia_ust_islem_analyze_key = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (keys.approve_key, keys.reject_key, keys.analyze_key,
                 datetime.utcnow().isoformat(), user_id),
            )
