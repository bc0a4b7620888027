"""Sync Engine - pulls approvable DIA records into the local store.

One on-demand pass per call: fetch every syncable type concurrently,
resolve each record's approval status, upsert, then drop pending rows
that vanished from DIA.
"""

from sync_engine.engine import TransactionSyncEngine
from sync_engine.models import SyncResult
from sync_engine.status import ParentReceiptIndex, build_parent_index, resolve_status

__all__ = [
    "TransactionSyncEngine",
    "SyncResult",
    "ParentReceiptIndex",
    "build_parent_index",
    "resolve_status",
]
