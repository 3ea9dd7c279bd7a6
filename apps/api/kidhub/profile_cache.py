"""Process-wide lookaside cache of resolved user profiles."""
from __future__ import annotations

from typing import Dict, Optional

from .schemas import UserRecord


class ProfileCache:
    """Maps a user id to its resolved profile.

    No TTL and no eviction: the auth store clears it wholesale on every
    reconciliation and on sign-out, and callers must cope with a cold cache.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, UserRecord] = {}

    def get(self, user_id: str) -> Optional[UserRecord]:
        return self._entries.get(user_id)

    def set(self, user_id: str, profile: UserRecord) -> None:
        self._entries[user_id] = profile

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._entries
