"""Error taxonomy for synchronization and approval.

Only session acquisition failures are fatal for a whole sync or approval
call. Everything else is recorded per transaction type (sync) or per item
(approval) and returned in a structured result.
"""

from typing import Any, Dict, Optional


class DiaError(Exception):
    """Base exception for DIA integration errors."""
    pass


class NoSessionError(DiaError):
    """No usable DIA credentials or session could be established."""
    
    def __init__(self, message: str = "No valid DIA session. Please login to DIA first."):
        super().__init__(message)


class ErpCommunicationError(DiaError):
    """Transport failure or non-200 envelope while talking to DIA.
    
    Attributes:
        code: DIA envelope code, when a response was received
        response: Parsed response body, when available
    """
    
    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        response: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.response = response


class InvalidRecordIdentity(DiaError):
    """A stored dia_record_id or record key could not be parsed."""
    
    def __init__(self, value: str):
        super().__init__(f"Invalid record key: {value}")
        self.value = value


class UnsupportedTransactionType(DiaError):
    """The requested operation has no mapping for this transaction type."""
    
    def __init__(self, transaction_type: str):
        super().__init__(f"Unsupported transaction type: {transaction_type}")
        self.transaction_type = transaction_type


class PartialApplyWarning(UserWarning):
    """Saved locally, but the ERP only partly reflects the decision.
    
    Raised as a value, never thrown: the dispatcher attaches its text to the
    item result so the UI can show it next to the success.
    """
    pass
