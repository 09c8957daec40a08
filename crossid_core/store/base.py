"""
Base Store Interface
====================

Abstract key/value store with expiry, used for the verification cache,
the verification-record index, and rate-limit windows.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional


@dataclass(frozen=True)
class StoreEntry:
    """
    Entry in a store.

    Attributes:
        key: Entry key
        value: Stored value
        expires_at: Expiry time (None = never expires)
    """
    key: str
    value: Any
    expires_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class Store(ABC):
    """
    Abstract base class for engine state.

    Lifecycle: ``init()`` before first use, ``sweep(now)`` periodically to
    drop expired entries, ``teardown()`` on shutdown. Implementations must
    make single-key operations atomic with respect to each other.
    """

    def init(self) -> None:
        """Prepare the store for use."""

    def teardown(self) -> None:
        """Release resources and drop all state."""
        self.clear()

    @abstractmethod
    def get_entry(self, key: str) -> Optional[StoreEntry]:
        """
        Get an entry by key, expired or not.

        Args:
            key: Key to retrieve

        Returns:
            StoreEntry or None if not found
        """
        pass

    @abstractmethod
    def set(self, key: str, value: Any, expires_at: Optional[datetime] = None) -> None:
        """
        Store a value.

        Args:
            key: Entry key
            value: Value to store
            expires_at: Optional expiry time
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """
        Delete an entry.

        Returns:
            True if deleted, False if not found
        """
        pass

    @abstractmethod
    def keys(self) -> List[str]:
        """Snapshot of all keys."""
        pass

    @abstractmethod
    def sweep(self, now: datetime) -> int:
        """
        Remove every entry with ``now >= expires_at``.

        Returns:
            Number of entries removed
        """
        pass

    @abstractmethod
    def count(self) -> int:
        """Get the number of entries in the store."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Clear all entries from the store."""
        pass

    def get(self, key: str, now: Optional[datetime] = None) -> Any:
        """
        Get a live value.

        Args:
            key: Key to retrieve
            now: If given, entries expired at this time are treated as missing

        Returns:
            The value, or None
        """
        entry = self.get_entry(key)
        if entry is None:
            return None
        if now is not None and entry.is_expired(now):
            return None
        return entry.value

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, key: str) -> bool:
        return self.get_entry(key) is not None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(count={self.count()})"
