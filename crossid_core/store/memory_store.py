"""
In-Memory Store
===============

Thread-safe dict-backed implementation of ``Store``.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

from crossid_core.store.base import Store, StoreEntry


class InMemoryStore(Store):
    """
    Dict-backed store guarded by a re-entrant lock.

    ``sweep`` copies the entries under the lock, filters them without
    holding it, and deletes the expired keys in a second short critical
    section, so lookups are never blocked for a full scan.

    Example:
        >>> store = InMemoryStore()
        >>> store.set("key", record, expires_at=now + timedelta(hours=24))
        >>> store.sweep(now)
    """

    def __init__(self, name: str = "store"):
        self.name = name
        self._entries: Dict[str, StoreEntry] = {}
        self._lock = threading.RLock()

    def get_entry(self, key: str) -> Optional[StoreEntry]:
        with self._lock:
            return self._entries.get(key)

    def set(self, key: str, value: Any, expires_at: Optional[datetime] = None) -> None:
        with self._lock:
            self._entries[key] = StoreEntry(key=key, value=value, expires_at=expires_at)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries.keys())

    def sweep(self, now: datetime) -> int:
        with self._lock:
            snapshot = list(self._entries.values())

        expired = [entry for entry in snapshot if entry.is_expired(now)]

        removed = 0
        with self._lock:
            for entry in expired:
                # Skip keys rewritten since the snapshot was taken
                if self._entries.get(entry.key) is entry:
                    del self._entries[entry.key]
                    removed += 1
        return removed

    def count(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
