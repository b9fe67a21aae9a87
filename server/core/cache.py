"""In-process read-through cache for list queries.

One instance per process, owned by the DI container and injected into the
services that read or invalidate cached query results. Entries expire lazily
on read; nothing sweeps in the background. The cache is never the source of
truth, so dropping any or all entries is always safe.

Keys are colon-delimited with the entity type first, e.g.
``models:user:<id>:page:<n>:limit:<m>``. Writes invalidate the coarsest prefix
covering every cached variant of the entity's reads.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from core.logging import get_logger, log_cache_operation

logger = get_logger(__name__)

WILDCARD = "*"


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


class QueryCache:
    """Thread-safe TTL map with exact-key and prefix invalidation.

    Population happens only on read-miss, invalidation happens synchronously
    on the write path. A reader that misses, queries, and then populates can
    race a concurrent invalidation and write a stale value back; that value
    lives at most one TTL.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.monotonic
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and self._clock() >= entry.expires_at:
                del self._entries[key]
                entry = None
            if entry is None:
                self._misses += 1
            else:
                self._hits += 1

        log_cache_operation(logger, "get", key, hit=entry is not None)
        return entry.value if entry is not None else None

    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store value under key for ttl seconds, replacing any existing entry."""
        with self._lock:
            self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)
        log_cache_operation(logger, "set", key, ttl=ttl)

    def invalidate(self, pattern: str) -> int:
        """Drop one key, or every key under a prefix when pattern ends with '*'.

        Returns the number of entries removed. Unknown keys are a no-op.
        """
        with self._lock:
            if pattern.endswith(WILDCARD):
                prefix = pattern[:-len(WILDCARD)]
                keys = [k for k in self._entries if k.startswith(prefix)]
            else:
                keys = [pattern] if pattern in self._entries else []
            for key in keys:
                del self._entries[key]

        log_cache_operation(logger, "invalidate", pattern, deleted=len(keys))
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> Dict[str, int]:
        """Entry count and hit/miss counters (expired entries still count until read)."""
        with self._lock:
            return {
                "entries": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# Key builders shared by services so writers and readers agree on the layout.

def model_list_key(user_id: str, page: int, limit: int) -> str:
    return f"models:user:{user_id}:page:{page}:limit:{limit}"


def model_list_prefix(user_id: str) -> str:
    return f"models:user:{user_id}:{WILDCARD}"


def project_list_key(user_id: str, page: int, limit: int) -> str:
    return f"projects:user:{user_id}:page:{page}:limit:{limit}"


def project_list_prefix(user_id: str) -> str:
    return f"projects:user:{user_id}:{WILDCARD}"


def annotation_list_key(model_id: str) -> str:
    return f"annotations:model:{model_id}"
