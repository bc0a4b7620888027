"""Transaction endpoints.

Read access to the locally staged transactions and their approval history.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from api.dependencies import get_current_user_id, get_services
from core.models.transactions import (
    ApprovalHistoryEntry,
    PendingTransaction,
    TransactionStatus,
    TransactionType,
    display_currency,
)
from core.services import AppServices


router = APIRouter()


class TransactionResponse(BaseModel):
    """Transaction as shown on the dashboard."""
    id: str
    dia_record_id: str
    dia_firma_kodu: Optional[int] = None
    transaction_type: TransactionType
    document_no: str
    description: Optional[str] = None
    counterparty: Optional[str] = None
    amount: str
    currency: str
    transaction_date: Optional[str] = None
    status: TransactionStatus
    attachment_url: Optional[str] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_transaction(cls, tx: PendingTransaction) -> "TransactionResponse":
        return cls(
            id=tx.id,
            dia_record_id=tx.dia_record_id,
            dia_firma_kodu=tx.dia_firma_kodu,
            transaction_type=tx.transaction_type,
            document_no=tx.document_no,
            description=tx.description,
            counterparty=tx.counterparty,
            amount=str(tx.amount),
            currency=display_currency(tx.currency),
            transaction_date=tx.transaction_date,
            status=tx.status,
            attachment_url=tx.attachment_url,
            approved_at=tx.approved_at,
            approved_by=tx.approved_by,
            rejected_at=tx.rejected_at,
            rejected_by=tx.rejected_by,
            rejection_reason=tx.rejection_reason,
            created_at=tx.created_at,
            updated_at=tx.updated_at,
        )


class TransactionDetailResponse(TransactionResponse):
    """Transaction plus the raw DIA record it was built from."""
    dia_raw_data: Dict[str, Any] = {}


class TransactionListResponse(BaseModel):
    """Paginated list of transactions."""
    items: List[TransactionResponse]
    total: int
    limit: int
    offset: int


class TransactionUpdateRequest(BaseModel):
    """Only the local rejection reason is editable."""
    rejection_reason: Optional[str] = None


class HistoryEntryResponse(BaseModel):
    id: str
    action: str
    notes: Optional[str] = None
    dia_response: Optional[Dict[str, Any]] = None
    created_at: datetime

    @classmethod
    def from_entry(cls, entry: ApprovalHistoryEntry) -> "HistoryEntryResponse":
        return cls(
            id=entry.id,
            action=entry.action.value,
            notes=entry.notes,
            dia_response=entry.dia_response,
            created_at=entry.created_at,
        )


def _get_or_404(services: AppServices, user_id: str, transaction_id: str) -> PendingTransaction:
    tx = services.transactions.get(user_id, transaction_id)
    if tx is None:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return tx


@router.get("", response_model=TransactionListResponse)
async def list_transactions(
    status: Optional[TransactionStatus] = None,
    transaction_type: Optional[TransactionType] = Query(None, alias="type"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(get_current_user_id),
    services: AppServices = Depends(get_services),
) -> TransactionListResponse:
    """List transactions with optional status and type filters."""
    rows, total = services.transactions.list_transactions(
        user_id,
        status=status,
        transaction_type=transaction_type,
        limit=limit,
        offset=offset,
    )
    return TransactionListResponse(
        items=[TransactionResponse.from_transaction(tx) for tx in rows],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/summary")
async def transaction_summary(
    user_id: str = Depends(get_current_user_id),
    services: AppServices = Depends(get_services),
) -> Dict[str, Dict[str, Any]]:
    """Status counts and total amount per transaction type."""
    summary = services.transactions.summary(user_id)
    return {
        tx_type: {**bucket, "total_amount": str(bucket["total_amount"])}
        for tx_type, bucket in summary.items()
    }


@router.get("/{transaction_id}", response_model=TransactionDetailResponse)
async def get_transaction(
    transaction_id: str,
    user_id: str = Depends(get_current_user_id),
    services: AppServices = Depends(get_services),
) -> TransactionDetailResponse:
    """Get one transaction with its raw DIA data."""
    tx = _get_or_404(services, user_id, transaction_id)
    base = TransactionResponse.from_transaction(tx)
    return TransactionDetailResponse(**base.model_dump(), dia_raw_data=tx.dia_raw_data)


@router.get("/{transaction_id}/history", response_model=List[HistoryEntryResponse])
async def get_transaction_history(
    transaction_id: str,
    user_id: str = Depends(get_current_user_id),
    services: AppServices = Depends(get_services),
) -> List[HistoryEntryResponse]:
    """Approval decisions recorded for a transaction, oldest first."""
    _get_or_404(services, user_id, transaction_id)
    return [
        HistoryEntryResponse.from_entry(entry)
        for entry in services.transactions.get_history(user_id, transaction_id)
    ]


@router.put("/{transaction_id}", response_model=TransactionResponse)
async def update_transaction(
    transaction_id: str,
    request: TransactionUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    services: AppServices = Depends(get_services),
) -> TransactionResponse:
    """Edit the rejection reason kept locally."""
    if not services.transactions.update_rejection_reason(user_id, transaction_id, request.rejection_reason):
        raise HTTPException(status_code=404, detail="Transaction not found")
    return TransactionResponse.from_transaction(_get_or_404(services, user_id, transaction_id))
