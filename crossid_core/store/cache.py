"""
Verification Cache
==================

TTL cache of cross-validation records keyed by a canonical encoding of
the input sources.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from datetime import timedelta
from typing import Optional

from crossid_core.errors import ComputationError
from crossid_core.matching.identity import SourceSet, SLOTS
from crossid_core.scoring.record import CrossValidationRecord
from crossid_core.store.base import Store
from crossid_core.store.memory_store import InMemoryStore
from crossid_core.utils.clock import Clock, SystemClock
from crossid_core.utils.masking import mask_pii

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 86400.0


def make_cache_key(sources: SourceSet) -> str:
    """
    Canonical, order-independent key for a source set.

    Only the matching fields (user ID, email, phone, name, account reference)
    and availability of each slot go into the key, serialized as JSON with
    sorted keys and hashed with SHA-256.
    """
    payload = {}
    for slot in SLOTS:
        identity = sources.get(slot)
        if identity is None:
            payload[slot] = None
            continue
        fields = identity.matching_fields()
        fields["success"] = identity.available
        payload[slot] = fields
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


class VerificationCache:
    """
    Memoizes cross-validation records with expiry.

    Example:
        >>> cache = VerificationCache(store=InMemoryStore(), clock=clock)
        >>> key = make_cache_key(sources)
        >>> record = cache.get(key)
        >>> if record is None:
        ...     cache.put(key, compute(sources))
    """

    def __init__(
        self,
        store: Optional[Store] = None,
        clock: Optional[Clock] = None,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
    ):
        """
        Initialize the cache.

        Args:
            store: Backing store (in-memory if None)
            clock: Time source
            ttl_seconds: Default entry lifetime
        """
        self.store = store if store is not None else InMemoryStore(name="verification_cache")
        self.clock = clock or SystemClock()
        self.ttl_seconds = ttl_seconds
        self.hits = 0
        self.misses = 0
        self._stats_lock = threading.Lock()

    make_key = staticmethod(make_cache_key)

    def get(self, key: str) -> Optional[CrossValidationRecord]:
        """Return the live record for ``key`` or None."""
        try:
            record = self._read(key)
        except ComputationError as e:
            logger.warning(
                f"Discarding cache entry {mask_pii(key)}: {e.message}"
            )
            self.store.delete(key)
            record = None

        with self._stats_lock:
            if record is None:
                self.misses += 1
            else:
                self.hits += 1
        return record

    def _read(self, key: str) -> Optional[CrossValidationRecord]:
        entry = self.store.get_entry(key)
        if entry is None:
            return None
        if entry.is_expired(self.clock.now()):
            return None
        if not isinstance(entry.value, CrossValidationRecord):
            raise ComputationError(
                "corrupt cache entry",
                details={"type": type(entry.value).__name__},
            )
        return entry.value

    def put(
        self,
        key: str,
        record: CrossValidationRecord,
        ttl_seconds: Optional[float] = None,
    ) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        expires_at = self.clock.now() + timedelta(seconds=ttl)
        self.store.set(key, record, expires_at=expires_at)

    def invalidate(self, key: str) -> bool:
        return self.store.delete(key)

    def sweep(self) -> int:
        """Drop expired entries. Returns the number removed."""
        removed = self.store.sweep(self.clock.now())
        if removed:
            logger.debug(f"Swept {removed} expired cache entries")
        return removed

    def clear(self) -> None:
        self.store.clear()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return self.store.count()
