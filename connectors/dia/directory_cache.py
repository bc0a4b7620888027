"""Per-user cache of DIA user directories.

The DIA user list changes rarely and is needed to show who created or
owns a receipt. Entries expire after a TTL and can be dropped by hand,
e.g. after the user reconnects to a different DIA tenant.
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from connectors.dia.dia_client import DiaApiClient
from connectors.dia.dia_models import DiaSession


@dataclass
class _Entry:
    directory: Dict[int, str]
    fetched_at: float


class UserDirectoryCache:
    """TTL cache of `{dia_user_key: display_name}` per local user."""

    def __init__(self, client: DiaApiClient, ttl_seconds: int = 300, clock: Callable[[], float] = time.monotonic):
        self.client = client
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}

    def _fresh(self, entry: _Entry) -> bool:
        return self._clock() - entry.fetched_at < self.ttl_seconds

    async def get(self, user_id: str, session: DiaSession) -> Dict[int, str]:
        """Return the cached directory, fetching it when absent or stale."""
        entry = self._entries.get(user_id)
        if entry is not None and self._fresh(entry):
            return entry.directory

        directory = await self.client.fetch_user_directory(session)
        self._entries[user_id] = _Entry(directory=directory, fetched_at=self._clock())
        return directory

    def invalidate(self, user_id: Optional[str] = None) -> None:
        """Drop one user's entry, or every entry when user_id is None."""
        if user_id is None:
            self._entries.clear()
        else:
            self._entries.pop(user_id, None)
