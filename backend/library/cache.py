"""
Result Cache
============

A read-through cache in front of the library's read operations, backed by
a Django cache alias (LocMemCache by default, see settings.CACHES).

ENTRY LIFECYCLE:
----------------
    absent --set--> present --ttl elapses--> expired --sweep/delete--> absent

An expired entry reads as absent (the backend checks expiry on every
get), and never becomes fresh again without a new set().

INVALIDATION:
-------------
Callers that write data invalidate explicitly, scoped by entity:

- invalidate_documents(): every listing, search and stats key. Listings
  are derived from the whole corpus, so any document write touches them.
- invalidate_document(id): that document's keys + all listings.
- invalidate_user(id): that user's keys, every single-document view and
  all listings (usernames and reputation are embedded in uploader joins).

Django cache backends cannot enumerate keys portably, so the keys this
process has set are tracked in an in-memory index. sweep() drops index
entries whose values have expired; it also runs lazily from set() at most
once per LIBRARY_CACHE_SWEEP_INTERVAL seconds.

The cache is an optimization only. Every caller stays correct if every
get() misses.
"""

import hashlib
import json
import threading
import time
from functools import lru_cache
from typing import Any, Callable, Optional

from django.conf import settings
from django.core.cache import caches

# Per-family TTLs (seconds)
DOCUMENT_LIST_TTL = 300
SEARCH_TTL = 180
DOCUMENT_TTL = 600
USER_TTL = 900
STATS_TTL = 1800

DOCUMENTS_PREFIX = 'documents:'
SEARCH_PREFIX = 'search:'
DOCUMENT_PREFIX = 'document:'
STATS_KEY = 'platform:stats'

_MISSING = object()


def _digest(payload) -> str:
    encoded = json.dumps(payload, sort_keys=True, default=str).encode('utf-8')
    return hashlib.sha1(encoded).hexdigest()


def documents_key(filters: dict) -> str:
    """Key for a document listing. Equal filter sets give equal keys."""
    return f"{DOCUMENTS_PREFIX}{_digest(filters)}"


def search_key(text: str, filters: Optional[dict] = None) -> str:
    return f"{SEARCH_PREFIX}{_digest({'text': text, 'filters': filters or {}})}"


def document_key(document_id: int, view: str = 'uploader') -> str:
    return f"document:{document_id}:{view}"


def user_key(user_id: int, view: str = 'record') -> str:
    return f"user:{user_id}:{view}"


class ResultCache:

    def __init__(self, alias: str = 'results', sweep_interval: Optional[float] = None):
        self.alias = alias
        self.sweep_interval = (
            sweep_interval if sweep_interval is not None
            else getattr(settings, 'LIBRARY_CACHE_SWEEP_INTERVAL', 120)
        )
        self._keys: set[str] = set()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._last_sweep = time.monotonic()

    @property
    def backend(self):
        return caches[self.alias]

    # ------------------------------------------------------------------
    # Key-value interface
    # ------------------------------------------------------------------
    def get(self, key: str) -> Any:
        """Return the cached value, or None when absent or expired."""
        value = self.backend.get(key, _MISSING)
        with self._lock:
            if value is _MISSING:
                self._misses += 1
                self._keys.discard(key)
                return None
            self._hits += 1
        return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store a value. ttl=None uses the alias' default timeout."""
        if ttl is None:
            self.backend.set(key, value)
        else:
            self.backend.set(key, value, timeout=ttl)
        with self._lock:
            self._keys.add(key)
        self._maybe_sweep()

    def delete(self, key: str) -> bool:
        with self._lock:
            self._keys.discard(key)
        return bool(self.backend.delete(key))

    def has(self, key: str) -> bool:
        return self.backend.has_key(key)

    def clear(self) -> None:
        self.backend.clear()
        with self._lock:
            self._keys.clear()
            self._hits = 0
            self._misses = 0

    def keys(self) -> list[str]:
        """Tracked keys. May include expired entries until the next sweep."""
        with self._lock:
            return sorted(self._keys)

    def stats(self) -> dict:
        with self._lock:
            return {
                'hits': self._hits,
                'misses': self._misses,
                'keys': len(self._keys),
            }

    def fetch(self, key: str, loader: Callable[[], Any], ttl: Optional[float] = None) -> Any:
        """
        Read-through helper: return the cached value or load, store and
        return it. None results are not cached so a missing entity is
        looked up again next time.
        """
        value = self.get(key)
        if value is None:
            value = loader()
            if value is not None:
                self.set(key, value, ttl)
        return value

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------
    def sweep(self) -> int:
        """Forget tracked keys whose entries have expired. Returns the count."""
        with self._lock:
            tracked = list(self._keys)
            self._last_sweep = time.monotonic()
        # has_key() evicts expired entries from LocMemCache as a side effect
        expired = [key for key in tracked if not self.backend.has_key(key)]
        with self._lock:
            self._keys.difference_update(expired)
        return len(expired)

    def _maybe_sweep(self) -> None:
        with self._lock:
            due = time.monotonic() - self._last_sweep >= self.sweep_interval
        if due:
            self.sweep()

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------
    def _delete_matching(self, predicate: Callable[[str], bool]) -> int:
        with self._lock:
            doomed = [key for key in self._keys if predicate(key)]
            self._keys.difference_update(doomed)
        if doomed:
            self.backend.delete_many(doomed)
        return len(doomed)

    def invalidate_documents(self) -> int:
        return self._delete_matching(
            lambda key: key.startswith((DOCUMENTS_PREFIX, SEARCH_PREFIX)) or key == STATS_KEY
        )

    def invalidate_document(self, document_id: int) -> int:
        prefix = f"document:{document_id}:"
        removed = self._delete_matching(lambda key: key.startswith(prefix))
        return removed + self.invalidate_documents()

    def invalidate_user(self, user_id: int) -> int:
        prefix = f"user:{user_id}:"
        removed = self._delete_matching(
            lambda key: key.startswith(prefix) or key.startswith(DOCUMENT_PREFIX)
        )
        return removed + self.invalidate_documents()


@lru_cache(maxsize=None)
def get_result_cache() -> ResultCache:
    """Process-wide ResultCache shared by every Library instance."""
    return ResultCache()
