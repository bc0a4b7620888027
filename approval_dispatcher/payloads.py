"""DIA update payloads for approval decisions.

Each syncable type is written back with its `*_guncelle` method. The
decision is recorded twice on the DIA card: as a human-readable
annotation field and, when the user configured one, as the
upper-operation-type marker the sync engine reads back.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from core.errors import UnsupportedTransactionType
from core.models.transactions import ApprovalAction, OperationTypeKeys, TransactionType

APPROVED_ANNOTATION = "Onaylandı"
REJECTED_PREFIX = "RED : "
DEFAULT_REJECTION_REASON = "Belirtilmedi"


@dataclass(frozen=True)
class UpdateMethod:
    """How to write a decision back for one transaction type.

    Attributes:
        method: DIA update method name
        endpoint: Module endpoint
        annotation_field: Card field receiving the decision text
        include_line_items: Send an empty `m_kalemler` list (receipt types
            reject updates without it)
    """
    method: str
    endpoint: str
    annotation_field: str
    include_line_items: bool = True


UPDATE_METHODS: Dict[TransactionType, UpdateMethod] = {
    TransactionType.INVOICE: UpdateMethod("scf_fatura_guncelle", "scf/json", "ekalan5", include_line_items=False),
    TransactionType.CURRENT_ACCOUNT: UpdateMethod("scf_carihesap_fisi_guncelle", "scf/json", "aciklama3"),
    TransactionType.BANK: UpdateMethod("bcs_banka_fisi_guncelle", "bcs/json", "aciklama3"),
    TransactionType.CASH: UpdateMethod("scf_kasa_fisi_guncelle", "scf/json", "aciklama3"),
}


def annotation_for(action: ApprovalAction, reason: Optional[str] = None) -> str:
    if action == ApprovalAction.APPROVE:
        return APPROVED_ANNOTATION
    if action == ApprovalAction.REJECT:
        return f"{REJECTED_PREFIX}{reason or DEFAULT_REJECTION_REASON}"
    return ""


def get_update_method(transaction_type: TransactionType) -> UpdateMethod:
    method = UPDATE_METHODS.get(transaction_type)
    if method is None:
        raise UnsupportedTransactionType(transaction_type.value)
    return method


def build_update_kart(
    transaction_type: TransactionType,
    target_key: int,
    action: ApprovalAction,
    keys: OperationTypeKeys,
    reason: Optional[str] = None,
) -> Tuple[UpdateMethod, Dict[str, Any]]:
    """Build the `kart` body for a decision.

    Args:
        transaction_type: Type of the local row
        target_key: DIA key to update (the parent receipt for line-level types)
        action: Decision
        keys: The user's operation-type keys
        reason: Rejection reason, if any

    Returns:
        (update method, kart dict)

    Raises:
        UnsupportedTransactionType: No update method for the type
    """
    update = get_update_method(transaction_type)

    kart: Dict[str, Any] = {"_key": target_key}
    if update.include_line_items:
        kart["m_kalemler"] = []

    marker = keys.for_action(action)
    if marker:
        kart["_key_sis_ust_islem_turu"] = marker

    kart[update.annotation_field] = annotation_for(action, reason)
    return update, kart
