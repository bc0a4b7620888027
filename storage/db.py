"""Local SQLite store.

This module owns the schema and connection handling for the approval
backend:
- Schema initialization
- A bounded pool of borrowed connections
- Transaction scoping (commit on success, rollback on error)

Tables:
- users: local users and their DIA connection fields
- pending_transactions: one row per approvable DIA record, unique per
  (user_id, dia_record_id)
- approval_history: append-only audit trail of decisions sent to DIA
- mail_settings / notification_settings: per-user notification config
"""

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

from core.config import get_settings
from core.observability.logging import get_logger

logger = get_logger(__name__)


SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        email TEXT NOT NULL UNIQUE,
        full_name TEXT,
        role TEXT NOT NULL DEFAULT 'approver'
            CHECK (role IN ('admin', 'approver', 'viewer')),
        dia_sunucu_adi TEXT,
        dia_api_key TEXT,
        dia_ws_kullanici TEXT,
        dia_ws_sifre TEXT,
        dia_session_id TEXT,
        dia_session_expires TEXT,
        dia_firma_kodu INTEGER,
        dia_donem_kodu INTEGER,
        dia_ust_islem_approve_key INTEGER,
        dia_ust_islem_reject_key INTEGER,
        dia_ust_islem_analyze_key INTEGER,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS pending_transactions (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        dia_record_id TEXT NOT NULL,
        dia_firma_kodu INTEGER,
        dia_raw_data TEXT,
        transaction_type TEXT NOT NULL
            CHECK (transaction_type IN
                ('invoice', 'current_account', 'bank', 'cash', 'check_note', 'order')),
        document_no TEXT NOT NULL DEFAULT '',
        description TEXT,
        counterparty TEXT,
        amount TEXT NOT NULL DEFAULT '0',
        currency TEXT NOT NULL DEFAULT 'TRY',
        transaction_date TEXT,
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK (status IN ('pending', 'approved', 'rejected', 'analyzing')),
        attachment_url TEXT,
        approved_at TEXT,
        approved_by TEXT,
        rejected_at TEXT,
        rejected_by TEXT,
        rejection_reason TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (user_id, dia_record_id)
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_pending_user_status
    ON pending_transactions(user_id, status)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_pending_user_type
    ON pending_transactions(user_id, transaction_type)
    """,
    """
    CREATE TABLE IF NOT EXISTS approval_history (
        id TEXT PRIMARY KEY,
        transaction_id TEXT,
        user_id TEXT NOT NULL,
        action TEXT NOT NULL CHECK (action IN ('approve', 'reject', 'analyze')),
        notes TEXT,
        dia_response TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_history_transaction
    ON approval_history(transaction_id)
    """,
    """
    CREATE TABLE IF NOT EXISTS mail_settings (
        user_id TEXT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
        smtp_host TEXT NOT NULL,
        smtp_port INTEGER NOT NULL DEFAULT 587,
        smtp_secure INTEGER NOT NULL DEFAULT 0,
        smtp_user TEXT NOT NULL,
        smtp_password TEXT NOT NULL,
        sender_email TEXT NOT NULL,
        sender_name TEXT,
        is_verified INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS notification_settings (
        user_id TEXT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
        is_enabled INTEGER NOT NULL DEFAULT 0,
        notification_hours TEXT NOT NULL DEFAULT '[]',
        last_notification_sent TEXT,
        invoice_emails TEXT NOT NULL DEFAULT '[]',
        current_account_emails TEXT NOT NULL DEFAULT '[]',
        bank_emails TEXT NOT NULL DEFAULT '[]',
        cash_emails TEXT NOT NULL DEFAULT '[]',
        check_note_emails TEXT NOT NULL DEFAULT '[]',
        order_emails TEXT NOT NULL DEFAULT '[]',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
]


class Database:
    """SQLite database with a bounded number of borrowed connections.

    Usage:
        db = Database(Path("approvals.db"), max_connections=10)
        db.init_schema()

        with db.transaction() as conn:
            conn.execute("UPDATE ...")
    """

    def __init__(self, db_path: Union[str, Path], max_connections: int = 10):
        """Initialize database handle.

        Args:
            db_path: Path to SQLite database file
            max_connections: Upper bound on concurrently borrowed connections
        """
        self.db_path = Path(db_path)
        self.max_connections = max_connections
        self._slots = threading.BoundedSemaphore(max_connections)

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=30, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Borrow a connection for reads or self-managed writes."""
        self._slots.acquire()
        try:
            conn = self._open()
            try:
                yield conn
            finally:
                conn.close()
        finally:
            self._slots.release()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Borrow a connection inside one transaction.

        Commits when the block exits normally, rolls back on any exception.
        """
        with self.connection() as conn:
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def init_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        if self.db_path.parent and not self.db_path.parent.exists():
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self.transaction() as conn:
            for statement in SCHEMA:
                conn.execute(statement)

        logger.info(f"Database initialized at {self.db_path}")


_default_db: Optional[Database] = None


def get_database() -> Database:
    """Get the process-wide database built from settings."""
    global _default_db
    settings = get_settings()
    if _default_db is None or _default_db.db_path != Path(settings.db_path):
        _default_db = Database(settings.db_path, settings.db_max_connections)
    return _default_db


def init_db(db: Optional[Database] = None) -> Database:
    """Initialize the schema on the given or default database."""
    db = db or get_database()
    db.init_schema()
    return db
