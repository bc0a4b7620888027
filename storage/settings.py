"""Per-user mail and notification settings.

SMTP passwords are encrypted at rest with the user id bound as associated
data. Recipient lists and notification hours are stored as JSON arrays.
"""

import json
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from core.models.transactions import TransactionType
from core.observability.logging import get_logger
from core.security.encryption import CredentialCipher
from storage.db import Database

logger = get_logger(__name__)


class MailSettings(BaseModel):
    """SMTP configuration used to send a user's notification emails."""
    smtp_host: str
    smtp_port: int = 587
    smtp_secure: bool = False
    smtp_user: str
    smtp_password: str
    sender_email: str
    sender_name: Optional[str] = None
    is_verified: bool = False

    @property
    def use_ssl(self) -> bool:
        """Implicit TLS (SMTPS) instead of STARTTLS."""
        return self.smtp_secure or self.smtp_port == 465

    @property
    def from_header(self) -> str:
        if self.sender_name:
            return f"{self.sender_name} <{self.sender_email}>"
        return self.sender_email


class NotificationSettings(BaseModel):
    """When and to whom pending-transaction summaries are emailed."""
    user_id: str
    is_enabled: bool = False
    notification_hours: List[int] = Field(default_factory=list)
    last_notification_sent: Optional[datetime] = None
    invoice_emails: List[str] = Field(default_factory=list)
    current_account_emails: List[str] = Field(default_factory=list)
    bank_emails: List[str] = Field(default_factory=list)
    cash_emails: List[str] = Field(default_factory=list)
    check_note_emails: List[str] = Field(default_factory=list)
    order_emails: List[str] = Field(default_factory=list)

    @field_validator("notification_hours")
    @classmethod
    def _check_hours(cls, hours: List[int]) -> List[int]:
        for hour in hours:
            if not 0 <= hour <= 23:
                raise ValueError(f"notification hour out of range: {hour}")
        return hours

    def recipients_for(self, transaction_type: TransactionType) -> List[str]:
        return getattr(self, f"{transaction_type.value}_emails")


RECIPIENT_COLUMNS = [f"{t.value}_emails" for t in TransactionType]


def _load_json_list(raw: Optional[str]) -> list:
    if not raw:
        return []
    value = json.loads(raw)
    return value if isinstance(value, list) else []


class SettingsRepository:
    """Read and write per-user mail and notification settings."""

    def __init__(self, db: Database, cipher: CredentialCipher):
        self.db = db
        self.cipher = cipher

    # =========================================================================
    # Mail
    # =========================================================================

    def get_mail_settings(self, user_id: str) -> Optional[MailSettings]:
        with self.db.connection() as conn:
            row = conn.execute("SELECT * FROM mail_settings WHERE user_id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return MailSettings(
            smtp_host=row["smtp_host"],
            smtp_port=row["smtp_port"],
            smtp_secure=bool(row["smtp_secure"]),
            smtp_user=row["smtp_user"],
            smtp_password=self.cipher.decrypt_text(row["smtp_password"], user_id),
            sender_email=row["sender_email"],
            sender_name=row["sender_name"],
            is_verified=bool(row["is_verified"]),
        )

    def save_mail_settings(self, user_id: str, settings: MailSettings) -> MailSettings:
        """Insert or replace mail settings. Saving always clears verification."""
        now = datetime.utcnow().isoformat()
        with self.db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO mail_settings (
                    user_id, smtp_host, smtp_port, smtp_secure, smtp_user, smtp_password,
                    sender_email, sender_name, is_verified, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    smtp_host = excluded.smtp_host,
                    smtp_port = excluded.smtp_port,
                    smtp_secure = excluded.smtp_secure,
                    smtp_user = excluded.smtp_user,
                    smtp_password = excluded.smtp_password,
                    sender_email = excluded.sender_email,
                    sender_name = excluded.sender_name,
                    is_verified = 0,
                    updated_at = excluded.updated_at
                """,
                (
                    user_id,
                    settings.smtp_host,
                    settings.smtp_port,
                    int(settings.smtp_secure),
                    settings.smtp_user,
                    self.cipher.encrypt_text(settings.smtp_password, user_id),
                    settings.sender_email,
                    settings.sender_name,
                    now,
                    now,
                ),
            )
        return self.get_mail_settings(user_id)

    def mark_mail_verified(self, user_id: str) -> None:
        with self.db.transaction() as conn:
            conn.execute(
                "UPDATE mail_settings SET is_verified = 1, updated_at = ? WHERE user_id = ?",
                (datetime.utcnow().isoformat(), user_id),
            )

    # =========================================================================
    # Notifications
    # =========================================================================

    def _notification_from_row(self, row) -> NotificationSettings:
        data: Dict[str, object] = {
            "user_id": row["user_id"],
            "is_enabled": bool(row["is_enabled"]),
            "notification_hours": _load_json_list(row["notification_hours"]),
            "last_notification_sent": row["last_notification_sent"],
        }
        for column in RECIPIENT_COLUMNS:
            data[column] = _load_json_list(row[column])
        return NotificationSettings(**data)

    def get_notification_settings(self, user_id: str) -> Optional[NotificationSettings]:
        with self.db.connection() as conn:
            row = conn.execute(
                "SELECT * FROM notification_settings WHERE user_id = ?", (user_id,)
            ).fetchone()
        return self._notification_from_row(row) if row else None

    def list_enabled_notification_settings(self) -> List[NotificationSettings]:
        """Enabled users' settings. Rows that fail to load are logged and skipped."""
        with self.db.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM notification_settings WHERE is_enabled = 1"
            ).fetchall()

        settings = []
        for row in rows:
            try:
                settings.append(self._notification_from_row(row))
            except (ValueError, ValidationError) as e:
                logger.error(
                    f"Skipping unreadable notification settings: {e}",
                    extra_fields={"user_id": row["user_id"]},
                )
        return settings

    def save_notification_settings(self, settings: NotificationSettings) -> NotificationSettings:
        """Insert or replace notification settings; last_notification_sent is kept."""
        now = datetime.utcnow().isoformat()
        columns = ["is_enabled", "notification_hours", *RECIPIENT_COLUMNS]
        values = [
            int(settings.is_enabled),
            json.dumps(sorted(set(settings.notification_hours))),
            *[json.dumps(getattr(settings, c)) for c in RECIPIENT_COLUMNS],
        ]
        assignments = ", ".join(f"{c} = excluded.{c}" for c in columns)

        with self.db.transaction() as conn:
            conn.execute(
                f"""
                INSERT INTO notification_settings (user_id, {", ".join(columns)}, created_at, updated_at)
                VALUES (?, {", ".join("?" for _ in columns)}, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET {assignments}, updated_at = excluded.updated_at
                """,
                [settings.user_id, *values, now, now],
            )
        return self.get_notification_settings(settings.user_id)

    def mark_notification_sent(self, user_id: str, sent_at: datetime) -> None:
        with self.db.transaction() as conn:
            conn.execute(
                """
                UPDATE notification_settings SET last_notification_sent = ?, updated_at = ?
                WHERE user_id = ?
                """,
                (sent_at.isoformat(), datetime.utcnow().isoformat(), user_id),
            )
