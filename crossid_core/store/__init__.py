"""
Store Module
============

Explicit state stores and the verification cache built on them.
"""

from crossid_core.store.base import Store, StoreEntry
from crossid_core.store.memory_store import InMemoryStore
from crossid_core.store.cache import VerificationCache, make_cache_key

__all__ = [
    "Store",
    "StoreEntry",
    "InMemoryStore",
    "VerificationCache",
    "make_cache_key",
]
