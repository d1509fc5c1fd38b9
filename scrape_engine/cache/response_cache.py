"""In-memory response cache with TTL, size bound and statistics.

Key behaviors:
- get() returns a value only while ``now - stored_at < ttl``; expired entries
  are deleted on read (lazy invalidation, no background sweep)
- put() overwrites and refreshes the timestamp; when the cache is full the
  oldest 20% of entries are evicted first
- Keys are a pure function of the request shape (see make_cache_key), so the
  same request maps to the same key whichever proxy served it
"""

from __future__ import annotations

import hashlib
import json
import logging
import math
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

# Request headers that change the response representation
CACHE_KEY_HEADERS: tuple[str, ...] = ("accept", "accept-language")

_EVICTION_FRACTION = 0.2


def make_cache_key(
    method: str,
    url: str,
    headers: Mapping[str, str] | None = None,
    body: bytes | None = None,
) -> str:
    """Hash method, url, the declared header subset and a body digest."""
    lowered = {k.lower(): v for k, v in (headers or {}).items()}
    material = {
        "method": method.upper(),
        "url": url,
        "headers": {name: lowered[name] for name in CACHE_KEY_HEADERS if name in lowered},
        "body": hashlib.sha256(body).hexdigest() if body else None,
    }
    encoded = json.dumps(material, sort_keys=True, ensure_ascii=False).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


@dataclass
class CacheEntry:
    """A cached value and when it was stored (time.monotonic())."""

    key: str
    value: Any
    stored_at: float


class ResponseCache:
    """TTL cache keyed by request shape.

    Args:
        ttl_seconds: How long an entry stays valid.
        max_entries: Size bound; reaching it evicts the oldest entries.
    """

    def __init__(self, ttl_seconds: float = 3600.0, max_entries: int = 1000) -> None:
        self._ttl_seconds = ttl_seconds
        self._max_entries = max_entries
        self._entries: dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._deletes = 0
        self._evictions = 0

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None on miss or expiry."""
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        if time.monotonic() - entry.stored_at >= self._ttl_seconds:
            del self._entries[key]
            self._misses += 1
            return None

        self._hits += 1
        return entry.value

    def put(self, key: str, value: Any) -> None:
        """Store *value* under *key* with a fresh timestamp."""
        if key not in self._entries and len(self._entries) >= self._max_entries:
            self._evict_oldest()
        # Re-insert so dict order tracks stored_at
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(key=key, value=value, stored_at=time.monotonic())
        self._sets += 1

    def delete(self, key: str) -> bool:
        if self._entries.pop(key, None) is None:
            return False
        self._deletes += 1
        return True

    def clear(self) -> None:
        self._entries.clear()
        logger.info("Response cache cleared")

    def _evict_oldest(self) -> None:
        count = max(1, math.ceil(len(self._entries) * _EVICTION_FRACTION))
        for key in list(self._entries)[:count]:
            del self._entries[key]
        self._evictions += count
        logger.debug("Evicted %d oldest cache entries", count)

    def get_stats(self) -> dict:
        """Return hit/miss statistics and current size."""
        lookups = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "sets": self._sets,
            "deletes": self._deletes,
            "evictions": self._evictions,
            "size": len(self._entries),
            "max_entries": self._max_entries,
            "hit_rate": self._hits / lookups if lookups else 0.0,
        }
