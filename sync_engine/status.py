"""Status resolution for synchronized DIA records.

DIA has no approval status of its own. A record's approval state is
encoded as an "upper operation type" marker (`_key_sis_ust_islem_turu`)
whose meaning is per-user configuration: each user picks which marker
key means approved and which means rejected.

Line-level types (current_account, bank) usually carry the marker on
their parent receipt rather than on the line, so those are resolved
through a ParentReceiptIndex built once per sync pass.
"""

from typing import Any, Dict, Mapping, Optional

from connectors.dia.dia_client import DiaApiClient
from connectors.dia.dia_models import (
    PARENT_LIST_METHODS,
    TRANSACTION_MAPPINGS,
    DiaSession,
    ParentReceipt,
)
from core.models.transactions import OperationTypeKeys, TransactionStatus, TransactionType

MARKER_FIELD = "_key_sis_ust_islem_turu"
OWNER_FIELD = "_user"

ParentReceiptIndex = Dict[int, ParentReceipt]


def as_key(value: Any) -> Optional[int]:
    """Coerce a DIA key value to int. Empty, zero and non-numeric values are None."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        key = int(str(value).strip())
    except ValueError:
        return None
    return key or None


def resolve_status(
    record: Mapping[str, Any],
    keys: OperationTypeKeys,
    transaction_type: Optional[TransactionType] = None,
    parent_index: Optional[ParentReceiptIndex] = None,
) -> TransactionStatus:
    """Derive the local status of a DIA record from its marker.

    The record's own marker wins. Without one, a line-level record falls
    back to the marker of its parent receipt.

    Args:
        record: Raw DIA row
        keys: The user's operation-type keys
        transaction_type: Type of the row; selects the parent key field
        parent_index: Parent receipts for this type, if any

    Returns:
        APPROVED or REJECTED when the marker equals the user's key,
        otherwise PENDING
    """
    marker = as_key(record.get(MARKER_FIELD))

    if marker is None and parent_index:
        mapping = TRANSACTION_MAPPINGS.get(transaction_type) if transaction_type else None
        if mapping is not None and mapping.parent_key_field:
            parent_key = as_key(record.get(mapping.parent_key_field))
            parent = parent_index.get(parent_key) if parent_key is not None else None
            if parent is not None:
                marker = parent.approval_marker_key

    if marker is None:
        return TransactionStatus.PENDING
    if keys.approve_key and marker == keys.approve_key:
        return TransactionStatus.APPROVED
    if keys.reject_key and marker == keys.reject_key:
        return TransactionStatus.REJECTED
    return TransactionStatus.PENDING


async def build_parent_index(
    client: DiaApiClient,
    session: DiaSession,
    transaction_type: TransactionType,
) -> ParentReceiptIndex:
    """Fetch the parent receipts of a line-level type, keyed by receipt `_key`.

    Returns an empty index for types without parent receipts.

    Raises:
        ErpCommunicationError: The list call failed
    """
    parent_list = PARENT_LIST_METHODS.get(transaction_type)
    if parent_list is None:
        return {}

    rows = await client.fetch_list(session, parent_list.method, parent_list.endpoint)

    index: ParentReceiptIndex = {}
    for row in rows:
        key = as_key(row.get("_key"))
        if key is None:
            continue
        index[key] = ParentReceipt(
            approval_marker_key=as_key(row.get(MARKER_FIELD)),
            owner_user_key=as_key(row.get(OWNER_FIELD)),
        )
    return index
