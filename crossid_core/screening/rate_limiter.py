"""
Rate Limiter
============

Sliding-window attempt counter per identity key.
"""

from __future__ import annotations

import logging
import threading
from datetime import timedelta
from typing import List, Optional, Tuple

from crossid_core.store.base import Store
from crossid_core.store.memory_store import InMemoryStore
from crossid_core.utils.clock import Clock, SystemClock
from crossid_core.utils.masking import mask_pii

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Thread-safe sliding-window rate limiter.

    Every call to ``allow`` records an attempt. The call is blocked when
    the trailing window already held ``max_attempts`` earlier attempts.
    Windows live in a ``Store`` and expire one window after their newest
    attempt, so ``sweep`` can drop idle keys.

    Example:
        >>> limiter = RateLimiter(window_seconds=3600, max_attempts=5)
        >>> if not limiter.allow(user_id):
        ...     reject()
    """

    def __init__(
        self,
        window_seconds: float = 3600.0,
        max_attempts: int = 5,
        store: Optional[Store] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize rate limiter.

        Args:
            window_seconds: Trailing window length
            max_attempts: Prior attempts tolerated inside the window
            store: Backing store for windows (in-memory if None)
            clock: Time source
        """
        self.window = timedelta(seconds=window_seconds)
        self.max_attempts = max_attempts
        self.store = store if store is not None else InMemoryStore(name="rate_windows")
        self.clock = clock or SystemClock()
        self._lock = threading.Lock()

    def allow(self, identity_key: str) -> bool:
        """
        Record an attempt and decide whether it may proceed.

        Args:
            identity_key: Key to limit on (usually a user ID)

        Returns:
            True if allowed, False if blocked
        """
        with self._lock:
            now = self.clock.now()
            cutoff = now - self.window
            previous: Tuple = self.store.get(identity_key) or ()
            recent = [t for t in previous if t > cutoff]
            blocked = len(recent) >= self.max_attempts
            recent.append(now)
            self.store.set(identity_key, tuple(recent), expires_at=now + self.window)

        if blocked:
            logger.info(f"Rate limit exceeded for {mask_pii(identity_key)}")
        return not blocked

    def attempts(self, identity_key: str) -> int:
        """Attempts for ``identity_key`` still inside the window."""
        cutoff = self.clock.now() - self.window
        window: Tuple = self.store.get(identity_key) or ()
        return sum(1 for t in window if t > cutoff)

    def tracked_keys(self) -> List[str]:
        return self.store.keys()

    def sweep(self) -> int:
        """Remove windows whose attempts have all expired."""
        return self.store.sweep(self.clock.now())

    def clear(self) -> None:
        self.store.clear()

    def __len__(self) -> int:
        return self.store.count()
