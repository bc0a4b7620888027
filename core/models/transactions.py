"""Canonical transaction and audit models.

These are the local representations of approvable DIA records. They are
independent of DIA field names; the per-type field mappings live in
connectors/dia/dia_models.py.
"""

from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class TransactionType(str, Enum):
    """DIA transaction categories handled by the dashboard."""
    INVOICE = "invoice"
    CURRENT_ACCOUNT = "current_account"
    BANK = "bank"
    CASH = "cash"
    CHECK_NOTE = "check_note"
    ORDER = "order"


class TransactionStatus(str, Enum):
    """Local approval status."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    ANALYZING = "analyzing"


class ApprovalAction(str, Enum):
    """User-issued decision on a transaction."""
    APPROVE = "approve"
    REJECT = "reject"
    ANALYZE = "analyze"

    @property
    def resulting_status(self) -> TransactionStatus:
        return {
            ApprovalAction.APPROVE: TransactionStatus.APPROVED,
            ApprovalAction.REJECT: TransactionStatus.REJECTED,
            ApprovalAction.ANALYZE: TransactionStatus.ANALYZING,
        }[self]


# Presentation-only currency aliases. Storage keeps what DIA sent.
CURRENCY_ALIASES = {"TL": "TRY"}


def display_currency(code: Optional[str]) -> str:
    """Normalize a stored currency code for presentation."""
    if not code:
        return "TRY"
    return CURRENCY_ALIASES.get(code.upper(), code.upper())


def make_dia_record_id(transaction_type: TransactionType, erp_key: Any) -> str:
    """Build the canonical identity `{type}_{erp_key}`."""
    return f"{transaction_type.value}_{erp_key}"


class OperationTypeKeys(BaseModel):
    """A user's DIA upper-operation-type (ust_islem_turu) keys.

    Attributes:
        approve_key: Marker meaning "approved" for this user
        reject_key: Marker meaning "rejected" for this user
        analyze_key: Marker meaning "under analysis" for this user
    """
    approve_key: Optional[int] = None
    reject_key: Optional[int] = None
    analyze_key: Optional[int] = None

    def for_action(self, action: ApprovalAction) -> Optional[int]:
        return {
            ApprovalAction.APPROVE: self.approve_key,
            ApprovalAction.REJECT: self.reject_key,
            ApprovalAction.ANALYZE: self.analyze_key,
        }[action]


class StagedTransaction(BaseModel):
    """A normalized row produced by a sync pass, ready for upsert."""
    user_id: str
    dia_record_id: str
    transaction_type: TransactionType
    dia_firma_kodu: Optional[int] = None
    dia_raw_data: Dict[str, Any] = Field(default_factory=dict)
    document_no: str = ""
    description: str = ""
    counterparty: str = ""
    amount: Decimal = Decimal("0")
    currency: str = "TRY"
    transaction_date: str
    status: TransactionStatus = TransactionStatus.PENDING


class PendingTransaction(BaseModel):
    """Canonical local record of one approvable DIA entity."""
    model_config = ConfigDict(use_enum_values=False)

    id: str
    user_id: str
    dia_record_id: str
    dia_firma_kodu: Optional[int] = None
    dia_raw_data: Dict[str, Any] = Field(default_factory=dict)
    transaction_type: TransactionType
    document_no: str = ""
    description: Optional[str] = None
    counterparty: Optional[str] = None
    amount: Decimal = Decimal("0")
    currency: str = "TRY"
    transaction_date: Optional[str] = None
    status: TransactionStatus = TransactionStatus.PENDING
    attachment_url: Optional[str] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row) -> "PendingTransaction":
        """Build from a sqlite3.Row of pending_transactions."""
        data = dict(row)
        raw = data.get("dia_raw_data")
        data["dia_raw_data"] = json.loads(raw) if raw else {}
        data["amount"] = Decimal(data["amount"]) if data.get("amount") is not None else Decimal("0")
        return cls(**data)


class ApprovalHistoryEntry(BaseModel):
    """Immutable audit record of one decision sent to DIA."""
    id: str
    transaction_id: Optional[str] = None
    user_id: str
    action: ApprovalAction
    notes: Optional[str] = None
    dia_response: Optional[Dict[str, Any]] = None
    created_at: datetime

    @classmethod
    def from_row(cls, row) -> "ApprovalHistoryEntry":
        data = dict(row)
        raw = data.get("dia_response")
        data["dia_response"] = json.loads(raw) if raw else None
        return cls(**data)
