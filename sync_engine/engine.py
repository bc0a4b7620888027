"""Transaction synchronization engine.

A sync pass for one user:
1. Obtain a valid DIA session
2. Load the user's operation-type keys
3. Fetch every syncable type and both parent receipt lists concurrently,
   each branch capturing its own failure
4. Normalize rows and resolve their status
5. Upsert and clean up stale pending rows in one transaction

Stale cleanup only runs for types whose fetch succeeded, so a failed
fetch never deletes anything. A line-level type whose parent receipt
list failed is treated as failed too: without the parent markers its
statuses cannot be resolved.
"""

import asyncio
import uuid
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional

from connectors.dia.dia_auth import DiaSessionManager
from connectors.dia.dia_client import DiaApiClient
from connectors.dia.dia_models import (
    PARENT_LIST_METHODS,
    SESSION_REJECTED_CODE,
    SYNCABLE_TYPES,
    TRANSACTION_MAPPINGS,
    DiaSession,
    TransactionMapping,
)
from core.errors import ErpCommunicationError, NoSessionError
from core.models.transactions import (
    OperationTypeKeys,
    StagedTransaction,
    make_dia_record_id,
)
from core.observability.logging import get_logger, with_correlation
from storage.transactions import TransactionRepository
from storage.users import UserRepository
from sync_engine.models import SyncResult
from sync_engine.status import ParentReceiptIndex, build_parent_index, resolve_status

logger = get_logger(__name__)


def parse_amount(value: Any) -> Decimal:
    """Parse a DIA amount; missing or malformed values become 0."""
    if value is None or value == "" or isinstance(value, bool):
        return Decimal("0")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        return Decimal("0")
    return amount if amount.is_finite() else Decimal("0")


def normalize_record(
    record: Mapping[str, Any],
    mapping: TransactionMapping,
    user_id: str,
    firma_kodu: Optional[int],
    keys: OperationTypeKeys,
    parent_index: Optional[ParentReceiptIndex] = None,
) -> Optional[StagedTransaction]:
    """Turn a raw DIA row into a staged local row.

    Returns None when the row has no `_key`, since it cannot be identified.
    """
    erp_key = record.get("_key")
    if erp_key is None or erp_key == "":
        return None

    tx_type = mapping.transaction_type
    return StagedTransaction(
        user_id=user_id,
        dia_record_id=make_dia_record_id(tx_type, erp_key),
        transaction_type=tx_type,
        dia_firma_kodu=firma_kodu,
        dia_raw_data=dict(record),
        document_no=str(record.get(mapping.document_field) or ""),
        description=str(record.get("aciklama") or record.get("fisaciklama") or ""),
        counterparty=str(record.get(mapping.counterparty_field) or ""),
        amount=parse_amount(record.get(mapping.amount_field)),
        currency=str(record.get("dbirimkodu") or "TRY"),
        transaction_date=str(record.get(mapping.date_field) or date.today().isoformat()),
        status=resolve_status(record, keys, tx_type, parent_index),
    )


class TransactionSyncEngine:
    """Synchronize a user's approvable DIA records into the local store.

    Usage:
        engine = TransactionSyncEngine(client, sessions, users, transactions)
        result = await engine.sync_transactions(user_id)
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

    async def _fetch_type(self, session: DiaSession, mapping: TransactionMapping) -> List[Dict[str, Any]]:
        with with_correlation(transaction_type=mapping.transaction_type.value):
            logger.info(f"Fetching {mapping.transaction_type.value} using {mapping.list_method}")
            rows = await self.client.fetch_list(session, mapping.list_method, mapping.endpoint)
            logger.info(f"Fetched {len(rows)} {mapping.transaction_type.value} records")
            return rows

    async def sync_transactions(self, user_id: str) -> SyncResult:
        """Run one synchronization pass for a user.

        Raises:
            NoSessionError: The user has no usable DIA session
        """
        sync_id = f"sync-{uuid.uuid4().hex[:12]}"
        with with_correlation(user_id=user_id, sync_id=sync_id):
            session = await self.sessions.get_valid_session(user_id)
            if session is None:
                raise NoSessionError()

            keys = self.users.get_operation_type_keys(user_id)

            list_types = list(SYNCABLE_TYPES)
            parent_types = list(PARENT_LIST_METHODS)
            outcomes = await asyncio.gather(
                *[self._fetch_type(session, TRANSACTION_MAPPINGS[t]) for t in list_types],
                *[build_parent_index(self.client, session, t) for t in parent_types],
                return_exceptions=True,
            )
            if any(
                isinstance(o, ErpCommunicationError) and o.code == SESSION_REJECTED_CODE
                for o in outcomes
            ):
                self.sessions.invalidate(user_id)

            fetched = dict(zip(list_types, outcomes[:len(list_types)]))
            parents = dict(zip(parent_types, outcomes[len(list_types):]))

            errors: List[str] = []
            parent_indexes: Dict[Any, ParentReceiptIndex] = {}
            for tx_type, outcome in parents.items():
                if isinstance(outcome, BaseException):
                    logger.error(f"Parent receipt fetch failed for {tx_type.value}: {outcome}")
                    errors.append(f"{tx_type.value}: parent receipts: {outcome}")
                else:
                    parent_indexes[tx_type] = outcome

            staged: Dict[str, StagedTransaction] = {}
            succeeded = []
            for tx_type, outcome in fetched.items():
                if isinstance(outcome, BaseException):
                    logger.error(f"Fetch failed for {tx_type.value}: {outcome}")
                    errors.append(f"{tx_type.value}: {outcome}")
                    continue
                if tx_type in parents and tx_type not in parent_indexes:
                    continue

                mapping = TRANSACTION_MAPPINGS[tx_type]
                skipped = 0
                for record in outcome:
                    row = normalize_record(
                        record,
                        mapping,
                        user_id,
                        session.firma_kodu,
                        keys,
                        parent_indexes.get(tx_type),
                    )
                    if row is None:
                        skipped += 1
                        continue
                    staged[row.dia_record_id] = row
                if skipped:
                    logger.warning(f"Skipped {skipped} {tx_type.value} records without _key")
                succeeded.append(tx_type)

            write = self.transactions.write_sync_result(user_id, list(staged.values()), succeeded)

            synced = {t.value: 0 for t in succeeded}
            for row in staged.values():
                synced[row.transaction_type.value] += 1

            result = SyncResult(
                success=not errors,
                synced=synced,
                errors=errors,
                removed=write.deleted,
            )
            logger.info(
                "Sync pass finished",
                extra_fields={"synced": synced, "removed": write.deleted, "errors": len(errors)},
            )
            return result
