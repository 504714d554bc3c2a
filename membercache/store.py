"""
Per-guild member snapshot storage with timestamped validity.
"""

import threading
import time
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from .core.models import CacheEntry, MemberRecord


class CacheStore:
    """
    Map of ``guild_id -> CacheEntry``.

    Entries are immutable and swapped whole, so readers see either the previous
    snapshot or the new one. The lock only guards the map itself and is never
    held across an await.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._entries: Dict[int, CacheEntry] = {}
        self._lock = threading.RLock()
        self.clock = clock

    def get(self, guild_id: int) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(guild_id)

    def set(self, guild_id: int, members: Mapping[int, MemberRecord]) -> CacheEntry:
        """
        Replace the guild's snapshot.

        Args:
            guild_id: Discord guild ID
            members: Complete member mapping from a successful fetch

        Returns:
            The newly stored entry
        """
        entry = CacheEntry(guild_id, dict(members), self.clock())
        with self._lock:
            self._entries[guild_id] = entry
        return entry

    def upsert(self, guild_id: int, records: Iterable[MemberRecord]) -> bool:
        """
        Add or replace individual records without touching ``last_update``.

        Returns:
            False when the guild has no entry (nothing is created)
        """
        records = list(records)
        with self._lock:
            entry = self._entries.get(guild_id)
            if entry is None:
                return False
            if records:
                self._entries[guild_id] = entry.with_members(records)
            return True

    def invalidate(self, guild_id: Optional[int] = None) -> int:
        """Remove one guild's entry, or every entry when ``guild_id`` is None."""
        with self._lock:
            if guild_id is None:
                removed = len(self._entries)
                self._entries.clear()
                return removed
            return 1 if self._entries.pop(guild_id, None) is not None else 0

    def entry_age(self, entry: CacheEntry) -> float:
        """Seconds since ``entry`` was last fully fetched."""
        return self.clock() - entry.last_update

    def is_entry_valid(self, entry: Optional[CacheEntry], ttl: float) -> bool:
        """Validity of an entry the caller already holds."""
        return entry is not None and self.entry_age(entry) < ttl

    def age(self, guild_id: int) -> Optional[float]:
        """Seconds since the entry's last full fetch, or None if absent."""
        entry = self.get(guild_id)
        if entry is None:
            return None
        return self.entry_age(entry)

    def is_valid(self, guild_id: int, ttl: float) -> bool:
        return self.is_entry_valid(self.get(guild_id), ttl)

    def guild_ids(self) -> List[int]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, guild_id: object) -> bool:
        with self._lock:
            return guild_id in self._entries
