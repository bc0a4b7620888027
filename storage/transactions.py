"""Transaction repository.

All reads and writes of pending_transactions and approval_history. Every
query is scoped to a user id. Amounts are stored as decimal strings so
values round-trip exactly.
"""

import json
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from core.models.transactions import (
    ApprovalAction,
    ApprovalHistoryEntry,
    PendingTransaction,
    StagedTransaction,
    TransactionStatus,
    TransactionType,
)
from core.observability.logging import get_logger
from storage.db import Database

logger = get_logger(__name__)


@dataclass
class SyncWriteResult:
    """Counts from one synchronized write."""
    upserted: int = 0
    deleted: int = 0


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


class TransactionRepository:
    """CRUD and reconciliation writes for pending transactions."""

    def __init__(self, db: Database):
        self.db = db

    # =========================================================================
    # Synchronization writes
    # =========================================================================

    def _upsert(self, conn: sqlite3.Connection, row: StagedTransaction, now: str) -> None:
        conn.execute(
            """
            INSERT INTO pending_transactions (
                id, user_id, dia_record_id, dia_firma_kodu, dia_raw_data,
                transaction_type, document_no, description, counterparty,
                amount, currency, transaction_date, status, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(user_id, dia_record_id) DO UPDATE SET
                dia_raw_data = excluded.dia_raw_data,
                document_no = excluded.document_no,
                description = excluded.description,
                counterparty = excluded.counterparty,
                amount = excluded.amount,
                currency = excluded.currency,
                transaction_date = excluded.transaction_date,
                status = excluded.status,
                dia_firma_kodu = excluded.dia_firma_kodu,
                updated_at = excluded.updated_at
            """,
            (
                str(uuid.uuid4()),
                row.user_id,
                row.dia_record_id,
                row.dia_firma_kodu,
                _dumps(row.dia_raw_data),
                row.transaction_type.value,
                row.document_no,
                row.description,
                row.counterparty,
                str(row.amount),
                row.currency,
                row.transaction_date,
                row.status.value,
                now,
                now,
            ),
        )

    def _delete_stale(
        self,
        conn: sqlite3.Connection,
        user_id: str,
        transaction_type: TransactionType,
        keep_record_ids: Iterable[str],
    ) -> int:
        keep = set(keep_record_ids)
        rows = conn.execute(
            """
            SELECT id, dia_record_id FROM pending_transactions
            WHERE user_id = ? AND transaction_type = ? AND status = ?
            """,
            (user_id, transaction_type.value, TransactionStatus.PENDING.value),
        ).fetchall()
        stale = [(r["id"],) for r in rows if r["dia_record_id"] not in keep]
        if stale:
            conn.executemany("DELETE FROM pending_transactions WHERE id = ?", stale)
        return len(stale)

    def write_sync_result(
        self,
        user_id: str,
        staged: Sequence[StagedTransaction],
        cleanup_types: Iterable[TransactionType],
    ) -> SyncWriteResult:
        """Upsert staged rows and delete vanished pending rows in one transaction.

        Args:
            user_id: Owner of every staged row
            staged: Normalized rows, already deduplicated by dia_record_id
            cleanup_types: Types whose fetch succeeded; only these are cleaned

        Returns:
            Upsert and delete counts
        """
        now = datetime.utcnow().isoformat()
        result = SyncWriteResult()

        with self.db.transaction() as conn:
            for row in staged:
                self._upsert(conn, row, now)
                result.upserted += 1

            for tx_type in cleanup_types:
                keep = [r.dia_record_id for r in staged if r.transaction_type == tx_type]
                result.deleted += self._delete_stale(conn, user_id, tx_type, keep)

        return result

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, user_id: str, transaction_id: str) -> Optional[PendingTransaction]:
        with self.db.connection() as conn:
            row = conn.execute(
                "SELECT * FROM pending_transactions WHERE id = ? AND user_id = ?",
                (transaction_id, user_id),
            ).fetchone()
        return PendingTransaction.from_row(row) if row else None

    def get_by_record_id(self, user_id: str, dia_record_id: str) -> Optional[PendingTransaction]:
        with self.db.connection() as conn:
            row = conn.execute(
                "SELECT * FROM pending_transactions WHERE user_id = ? AND dia_record_id = ?",
                (user_id, dia_record_id),
            ).fetchone()
        return PendingTransaction.from_row(row) if row else None

    def get_many(self, user_id: str, transaction_ids: Sequence[str]) -> Dict[str, PendingTransaction]:
        """Load rows by id, silently omitting ids the user does not own."""
        if not transaction_ids:
            return {}
        unique_ids = list(dict.fromkeys(transaction_ids))
        placeholders = ",".join("?" for _ in unique_ids)
        with self.db.connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM pending_transactions WHERE user_id = ? AND id IN ({placeholders})",
                [user_id, *unique_ids],
            ).fetchall()
        return {r["id"]: PendingTransaction.from_row(r) for r in rows}

    def list_transactions(
        self,
        user_id: str,
        status: Optional[TransactionStatus] = None,
        transaction_type: Optional[TransactionType] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> Tuple[List[PendingTransaction], int]:
        """List a user's transactions, newest first.

        Returns:
            (page of rows, total matching rows)
        """
        where = "WHERE user_id = ?"
        params: List[Any] = [user_id]
        if status is not None:
            where += " AND status = ?"
            params.append(status.value)
        if transaction_type is not None:
            where += " AND transaction_type = ?"
            params.append(transaction_type.value)

        with self.db.connection() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM pending_transactions {where}
                ORDER BY transaction_date DESC, created_at DESC
                LIMIT ? OFFSET ?
                """,
                [*params, limit, offset],
            ).fetchall()
            total = conn.execute(
                f"SELECT COUNT(*) AS total FROM pending_transactions {where}",
                params,
            ).fetchone()["total"]

        return [PendingTransaction.from_row(r) for r in rows], total

    def summary(self, user_id: str) -> Dict[str, Dict[str, Any]]:
        """Per-type status counts and total amount."""
        with self.db.connection() as conn:
            rows = conn.execute(
                "SELECT transaction_type, status, amount FROM pending_transactions WHERE user_id = ?",
                (user_id,),
            ).fetchall()

        grouped: Dict[str, Dict[str, Any]] = {}
        for row in rows:
            bucket = grouped.setdefault(row["transaction_type"], {
                "pending": 0,
                "approved": 0,
                "rejected": 0,
                "analyzing": 0,
                "total_amount": Decimal("0"),
            })
            bucket[row["status"]] += 1
            bucket["total_amount"] += Decimal(row["amount"] or "0")
        return grouped

    def pending_counts_by_type(
        self,
        user_id: str,
        firma_kodu: Optional[int] = None,
    ) -> Dict[TransactionType, int]:
        """Count pending rows per type, optionally for one company code."""
        sql = """
            SELECT transaction_type, COUNT(*) AS count FROM pending_transactions
            WHERE user_id = ? AND status = ?
        """
        params: List[Any] = [user_id, TransactionStatus.PENDING.value]
        if firma_kodu is not None:
            sql += " AND dia_firma_kodu = ?"
            params.append(firma_kodu)
        sql += " GROUP BY transaction_type"

        with self.db.connection() as conn:
            rows = conn.execute(sql, params).fetchall()
        return {TransactionType(r["transaction_type"]): r["count"] for r in rows}

    def get_history(self, user_id: str, transaction_id: str) -> List[ApprovalHistoryEntry]:
        with self.db.connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM approval_history
                WHERE user_id = ? AND transaction_id = ?
                ORDER BY created_at ASC
                """,
                (user_id, transaction_id),
            ).fetchall()
        return [ApprovalHistoryEntry.from_row(r) for r in rows]

    # =========================================================================
    # Decision writes
    # =========================================================================

    def apply_decision(
        self,
        user_id: str,
        transaction_id: str,
        action: ApprovalAction,
        reason: Optional[str] = None,
        dia_response: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Record a decision DIA accepted: status change plus audit entry, atomically."""
        now = datetime.utcnow().isoformat()
        status = action.resulting_status.value

        if action == ApprovalAction.APPROVE:
            update_sql = """
                UPDATE pending_transactions
                SET status = ?, approved_at = ?, approved_by = ?, updated_at = ?
                WHERE id = ? AND user_id = ?
            """
            update_params = (status, now, user_id, now, transaction_id, user_id)
        elif action == ApprovalAction.REJECT:
            update_sql = """
                UPDATE pending_transactions
                SET status = ?, rejected_at = ?, rejected_by = ?, rejection_reason = ?, updated_at = ?
                WHERE id = ? AND user_id = ?
            """
            update_params = (status, now, user_id, reason, now, transaction_id, user_id)
        else:
            update_sql = """
                UPDATE pending_transactions
                SET status = ?, updated_at = ?
                WHERE id = ? AND user_id = ?
            """
            update_params = (status, now, transaction_id, user_id)

        with self.db.transaction() as conn:
            conn.execute(update_sql, update_params)
            conn.execute(
                """
                INSERT INTO approval_history
                (id, transaction_id, user_id, action, notes, dia_response, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(uuid.uuid4()),
                    transaction_id,
                    user_id,
                    action.value,
                    reason,
                    _dumps(dia_response) if dia_response is not None else None,
                    now,
                ),
            )

    def update_rejection_reason(
        self,
        user_id: str,
        transaction_id: str,
        rejection_reason: Optional[str],
    ) -> bool:
        """Edit the locally kept rejection reason. Returns False if no such row."""
        with self.db.transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE pending_transactions SET rejection_reason = ?, updated_at = ?
                WHERE id = ? AND user_id = ?
                """,
                (rejection_reason, datetime.utcnow().isoformat(), transaction_id, user_id),
            )
        return cursor.rowcount > 0
