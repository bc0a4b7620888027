"""Sync engine result types."""

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class SyncResult:
    """Outcome of one synchronization pass.

    Attributes:
        success: True only when every fetch branch succeeded
        synced: Rows written per successfully fetched type
        errors: One "{type}: {message}" entry per failed branch
        removed: Vanished pending rows deleted by stale cleanup
    """
    success: bool
    synced: Dict[str, int] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    removed: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "synced": dict(self.synced),
            "errors": list(self.errors),
            "removed": self.removed,
        }
