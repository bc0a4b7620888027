"""Approval dispatcher.

Pushes user decisions (approve / reject / analyze) to DIA and records
them locally. Items are processed one at a time; a failure on one item
never affects another. Local state changes only after DIA accepted the
update, and then status and audit entry are written together.
"""

import sqlite3
import uuid
from typing import Any, Dict, Optional, Sequence, Tuple

from connectors.dia.dia_auth import DiaSessionManager
from connectors.dia.dia_client import DiaApiClient
from connectors.dia.dia_models import TRANSACTION_MAPPINGS, DiaSession
from approval_dispatcher.models import BatchResult, ItemResult
from approval_dispatcher.payloads import build_update_kart, get_update_method
from core.errors import (
    DiaError,
    InvalidRecordIdentity,
    NoSessionError,
    PartialApplyWarning,
    UnsupportedTransactionType,
)
from core.models.transactions import (
    ApprovalAction,
    OperationTypeKeys,
    PendingTransaction,
    TransactionType,
)
from core.observability.logging import get_logger, with_correlation
from storage.transactions import TransactionRepository
from storage.users import UserRepository
from sync_engine.status import as_key

logger = get_logger(__name__)


def parse_record_identity(dia_record_id: str) -> Tuple[TransactionType, int]:
    """Split `{transaction_type}_{erp_key}` into its parts.

    The key is taken after the last underscore since type names contain
    underscores themselves (current_account, check_note).

    Raises:
        InvalidRecordIdentity: Missing separator or non-numeric key
        UnsupportedTransactionType: Unknown type prefix
    """
    type_part, sep, key_part = (dia_record_id or "").rpartition("_")
    if not sep or not type_part:
        raise InvalidRecordIdentity(dia_record_id)
    try:
        key = int(key_part)
    except ValueError:
        raise InvalidRecordIdentity(dia_record_id)
    try:
        tx_type = TransactionType(type_part)
    except ValueError:
        raise UnsupportedTransactionType(type_part)
    return tx_type, key


def resolve_target_key(transaction_type: TransactionType, own_key: int, raw: Dict[str, Any]) -> int:
    """DIA key the update is sent to.

    Line-level rows are approved on their parent receipt; without a parent
    key in the raw payload the row's own key is used.
    """
    mapping = TRANSACTION_MAPPINGS.get(transaction_type)
    if mapping is None or not mapping.parent_key_field:
        return own_key
    parent_key = as_key((raw or {}).get(mapping.parent_key_field))
    return parent_key if parent_key is not None else own_key


class ApprovalDispatcher:
    """Send approval decisions to DIA and mirror them locally.

    Usage:
        dispatcher = ApprovalDispatcher(client, sessions, users, transactions)
        result = await dispatcher.process_transactions(user_id, ids, ApprovalAction.APPROVE)
    """

    def __init__(
        self,
        client: DiaApiClient,
        sessions: DiaSessionManager,
        users: UserRepository,
        transactions: TransactionRepository,
    ):
        self.client = client
        self.sessions = sessions
        self.users = users
        self.transactions = transactions

    async def process_transactions(
        self,
        user_id: str,
        transaction_ids: Sequence[str],
        action: ApprovalAction,
        reason: Optional[str] = None,
    ) -> BatchResult:
        """Apply one decision to a batch of local transactions.

        Args:
            user_id: Acting user; rows of other users are treated as missing
            transaction_ids: Local transaction ids, processed in this order
            action: Decision to apply
            reason: Rejection reason (also kept as history notes)

        Returns:
            BatchResult with one ItemResult per distinct id

        Raises:
            NoSessionError: The user has no usable DIA session
        """
        action = ApprovalAction(action)
        batch_id = f"batch-{uuid.uuid4().hex[:12]}"

        with with_correlation(user_id=user_id, batch_id=batch_id, action=action.value):
            session = await self.sessions.get_valid_session(user_id)
            if session is None:
                raise NoSessionError()

            keys = self.users.get_operation_type_keys(user_id)
            ordered_ids = list(dict.fromkeys(transaction_ids))
            rows = self.transactions.get_many(user_id, ordered_ids)

            results = []
            for tx_id in ordered_ids:
                tx = rows.get(tx_id)
                if tx is None:
                    results.append(ItemResult(tx_id, False, error="Transaction not found"))
                    continue

                with with_correlation(dia_record_id=tx.dia_record_id):
                    try:
                        results.append(await self._process_one(session, tx, action, keys, reason, user_id))
                    except DiaError as e:
                        logger.warning(f"Decision failed: {e}")
                        results.append(ItemResult(tx_id, False, error=str(e)))
                    except sqlite3.Error as e:
                        logger.exception("Local write failed after DIA accepted the update")
                        results.append(ItemResult(tx_id, False, error=f"Local update failed: {e}"))
                    except Exception as e:
                        logger.exception("Unexpected error while applying decision")
                        results.append(ItemResult(tx_id, False, error=str(e) or type(e).__name__))

            ok = sum(1 for r in results if r.success)
            failed = len(results) - ok
            logger.info(f"Batch finished: {ok} ok, {failed} failed")

            return BatchResult(
                success=failed == 0,
                results=results,
                message=f"{ok} başarılı, {failed} başarısız",
            )

    async def _process_one(
        self,
        session: DiaSession,
        tx: PendingTransaction,
        action: ApprovalAction,
        keys: OperationTypeKeys,
        reason: Optional[str],
        user_id: str,
    ) -> ItemResult:
        tx_type, own_key = parse_record_identity(tx.dia_record_id)
        get_update_method(tx_type)

        target_key = resolve_target_key(tx_type, own_key, tx.dia_raw_data)
        update, kart = build_update_kart(tx_type, target_key, action, keys, reason)

        response = await self.client.update(session, update.endpoint, update.method, kart)
        if not response.ok:
            error = response.error_message or "DIA update failed"
            logger.warning(f"DIA rejected {update.method} for key {target_key}: {error}")
            if response.session_rejected:
                self.sessions.invalidate(user_id)
            return ItemResult(tx.id, False, error=error)

        self.transactions.apply_decision(user_id, tx.id, action, reason, response.raw)

        warning = None
        if not keys.for_action(action):
            warning = str(PartialApplyWarning(
                f"No operation-type key configured for '{action.value}'; "
                f"annotation written to DIA but marker not set"
            ))
            logger.warning(warning)

        return ItemResult(tx.id, True, warning=warning)
