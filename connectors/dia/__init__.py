"""DIA Connector Package.

Client, models and mapping tables for the DIA ERP web-service API. The
session manager lives in connectors.dia.dia_auth and is imported from
there directly since it depends on the storage layer.
"""

from connectors.dia.dia_client import DiaApiClient
from connectors.dia.dia_models import (
    DETAIL_METHODS,
    PARENT_LIST_METHODS,
    SYNCABLE_TYPES,
    TRANSACTION_MAPPINGS,
    ApprovalCategory,
    DetailMethod,
    DiaCredentials,
    DiaFilter,
    DiaResponse,
    DiaSession,
    LoginResult,
    ParentReceipt,
    TransactionMapping,
)

__all__ = [
    # Client
    "DiaApiClient",
    # Session & wire types
    "DiaCredentials",
    "DiaSession",
    "DiaFilter",
    "DiaResponse",
    "LoginResult",
    "ApprovalCategory",
    "ParentReceipt",
    # Mapping tables
    "TransactionMapping",
    "DetailMethod",
    "TRANSACTION_MAPPINGS",
    "PARENT_LIST_METHODS",
    "DETAIL_METHODS",
    "SYNCABLE_TYPES",
]
