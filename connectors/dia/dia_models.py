"""DIA ERP data models.

Wire-level types for the DIA web-service API (session, credentials,
filters, response envelope) and the static per-type mapping tables that
tell the rest of the system which DIA method and fields belong to each
transaction type.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from core.models.transactions import TransactionType

# Envelope code DIA returns for an expired or displaced session
SESSION_REJECTED_CODE = "401"


# =============================================================================
# Session & Credentials
# =============================================================================

@dataclass
class DiaCredentials:
    """Connection details a user enters to connect to DIA.

    Attributes:
        server_name: Tenant server name (sunucu_adi), e.g. "acme"
        api_key: DIA web-service API key
        username: Web-service username (ws_kullanici)
        password: Web-service password (ws_sifre)
        firma_kodu: Company code
        donem_kodu: Period code
    """
    server_name: str
    api_key: str
    username: str
    password: str
    firma_kodu: int = 1
    donem_kodu: int = 1

    @property
    def is_complete(self) -> bool:
        return all([self.server_name, self.api_key, self.username, self.password])


@dataclass
class DiaSession:
    """An authenticated DIA session owned by a single local user."""
    session_id: str
    server_name: str
    firma_kodu: int
    donem_kodu: int
    expires_at: datetime

    def needs_refresh(self, buffer: timedelta = timedelta(minutes=2), now: Optional[datetime] = None) -> bool:
        """Check if the session is expired or about to expire."""
        now = now or datetime.utcnow()
        return self.expires_at - buffer < now

    def request_envelope(self) -> Dict[str, Any]:
        """Fields every authenticated DIA call carries."""
        return {
            "session_id": self.session_id,
            "firma_kodu": self.firma_kodu,
            "donem_kodu": self.donem_kodu,
        }


@dataclass
class LoginResult:
    """Outcome of a DIA login attempt."""
    success: bool
    session: Optional[DiaSession] = None
    error: Optional[str] = None


# =============================================================================
# Request / Response Envelope
# =============================================================================

@dataclass
class DiaFilter:
    """A DIA list filter. An empty operator means equality."""
    field: str
    value: Any
    operator: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"field": self.field, "operator": self.operator, "value": self.value}


@dataclass
class DiaResponse:
    """Parsed DIA response envelope.

    DIA answers every call with HTTP 200 and reports the outcome in
    `code`. `msg` is a human-readable message, except on login where it
    carries the new session id.
    """
    code: str
    msg: Optional[str] = None
    result: Any = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def parse(cls, body: Dict[str, Any]) -> "DiaResponse":
        """Build from a decoded response body, reading `code` first."""
        code = body.get("code")
        return cls(
            code=str(code) if code is not None else "",
            msg=body.get("msg"),
            result=body.get("result"),
            raw=body,
        )

    @property
    def ok(self) -> bool:
        return self.code == "200"

    @property
    def session_rejected(self) -> bool:
        """DIA no longer accepts the session, e.g. after a login elsewhere."""
        return self.code == SESSION_REJECTED_CODE

    @property
    def session_id(self) -> Optional[str]:
        """Session id from a login response, if the login succeeded."""
        if self.ok and self.msg:
            return str(self.msg)
        return None

    @property
    def error_message(self) -> Optional[str]:
        """Message describing a failed call."""
        if self.ok:
            return None
        return str(self.msg) if self.msg else f"DIA returned code {self.code or 'unknown'}"

    @property
    def rows(self) -> List[Dict[str, Any]]:
        """List payload of a successful list call."""
        if isinstance(self.result, list):
            return self.result
        return []


# =============================================================================
# Mapping Tables
# =============================================================================

@dataclass(frozen=True)
class TransactionMapping:
    """How to list one transaction type and where its fields live.

    Attributes:
        transaction_type: Local transaction type
        list_method: DIA list method name
        endpoint: Module endpoint, e.g. "scf/json"
        document_field: Field holding the document number
        amount_field: Field holding the signed amount
        date_field: Field holding the transaction date
        counterparty_field: Field holding the counterparty name
        counterparty_code_field: Field holding the counterparty code, if any
        parent_key_field: Field pointing at the parent receipt, if any
    """
    transaction_type: TransactionType
    list_method: str
    endpoint: str
    document_field: str
    amount_field: str
    date_field: str
    counterparty_field: str
    counterparty_code_field: Optional[str] = None
    parent_key_field: Optional[str] = None


TRANSACTION_MAPPINGS: Dict[TransactionType, TransactionMapping] = {
    TransactionType.INVOICE: TransactionMapping(
        transaction_type=TransactionType.INVOICE,
        list_method="scf_fatura_listele",
        endpoint="scf/json",
        document_field="belgeno2",
        amount_field="net",
        date_field="tarih",
        counterparty_field="unvan",
        counterparty_code_field="__carikartkodu",
    ),
    TransactionType.CURRENT_ACCOUNT: TransactionMapping(
        transaction_type=TransactionType.CURRENT_ACCOUNT,
        list_method="scf_carihesap_fisi_listele_ayrintili",
        endpoint="scf/json",
        document_field="fisno",
        amount_field="borc",
        date_field="tarih",
        counterparty_field="cariunvan",
        counterparty_code_field="carikodu",
        parent_key_field="_key_scf_carihesap_fisi",
    ),
    TransactionType.BANK: TransactionMapping(
        transaction_type=TransactionType.BANK,
        list_method="bcs_banka_fisi_listele_ayrintili",
        endpoint="bcs/json",
        document_field="fisno",
        amount_field="tutar",
        date_field="tarih",
        counterparty_field="aciklama",
        parent_key_field="_key_bcs_banka_fisi",
    ),
    TransactionType.CASH: TransactionMapping(
        transaction_type=TransactionType.CASH,
        list_method="scf_kasaislemleri_listele",
        endpoint="scf/json",
        document_field="fisno",
        amount_field="tutar",
        date_field="tarih",
        counterparty_field="aciklama",
    ),
}

SYNCABLE_TYPES = tuple(TRANSACTION_MAPPINGS)


@dataclass(frozen=True)
class ParentListMethod:
    """List call returning the parent receipts of a line-level type."""
    method: str
    endpoint: str


PARENT_LIST_METHODS: Dict[TransactionType, ParentListMethod] = {
    TransactionType.CURRENT_ACCOUNT: ParentListMethod("scf_carihesap_fisi_listele", "scf/json"),
    TransactionType.BANK: ParentListMethod("bcs_banka_fisi_listele", "bcs/json"),
}


@dataclass(frozen=True)
class DetailMethod:
    """Single-record fetch for a transaction type.

    With `use_key_param` the record key is sent as `key`; otherwise it is
    sent as a `_key` filter with limit 1.
    """
    method: str
    endpoint: str
    use_key_param: bool = True


DETAIL_METHODS: Dict[TransactionType, DetailMethod] = {
    TransactionType.ORDER: DetailMethod("scf_siparis_getir", "scf/json"),
    TransactionType.INVOICE: DetailMethod("scf_fatura_getir", "scf/json"),
    TransactionType.BANK: DetailMethod("bcs_banka_fisi_getir", "bcs/json"),
    TransactionType.CURRENT_ACCOUNT: DetailMethod("scf_carihesap_fisi_getir", "scf/json"),
    TransactionType.CASH: DetailMethod("scf_kasa_fisi_getir", "scf/json"),
    TransactionType.CHECK_NOTE: DetailMethod("bcs_ceksenet_getir", "bcs/json"),
}


@dataclass
class ParentReceipt:
    """Parent receipt info used for status resolution of line-level rows."""
    approval_marker_key: Optional[int] = None
    owner_user_key: Optional[int] = None


@dataclass
class ApprovalCategory:
    """An upper-operation-type a user can pick as approve/reject/analyze marker."""
    key: int
    label: str

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "label": self.label}
