"""Core data models - canonical transaction types.

This package contains the local, DIA-independent representation of
approvable transactions and their audit trail.
"""

from core.models.transactions import (
    TransactionType,
    TransactionStatus,
    ApprovalAction,
    OperationTypeKeys,
    StagedTransaction,
    PendingTransaction,
    ApprovalHistoryEntry,
    display_currency,
    make_dia_record_id,
)

__all__ = [
    "TransactionType",
    "TransactionStatus",
    "ApprovalAction",
    "OperationTypeKeys",
    "StagedTransaction",
    "PendingTransaction",
    "ApprovalHistoryEntry",
    "display_currency",
    "make_dia_record_id",
]
