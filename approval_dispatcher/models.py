"""Approval dispatcher result types."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class ItemResult:
    """Outcome for one transaction in a batch."""
    transaction_id: str
    success: bool
    error: Optional[str] = None
    warning: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"transactionId": self.transaction_id, "success": self.success}
        if self.error is not None:
            data["error"] = self.error
        if self.warning is not None:
            data["warning"] = self.warning
        return data


@dataclass
class BatchResult:
    """Outcome of a batch, in the caller's order."""
    success: bool
    results: List[ItemResult] = field(default_factory=list)
    message: str = ""

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "results": [r.to_dict() for r in self.results],
            "message": self.message,
        }
