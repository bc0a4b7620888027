"""Approval Dispatcher - writes approve / reject / analyze decisions back to DIA."""

from approval_dispatcher.dispatcher import ApprovalDispatcher, parse_record_identity, resolve_target_key
from approval_dispatcher.models import BatchResult, ItemResult
from approval_dispatcher.payloads import UPDATE_METHODS, UpdateMethod, annotation_for, build_update_kart

__all__ = [
    "ApprovalDispatcher",
    "parse_record_identity",
    "resolve_target_key",
    "BatchResult",
    "ItemResult",
    "UPDATE_METHODS",
    "UpdateMethod",
    "annotation_for",
    "build_update_kart",
]
