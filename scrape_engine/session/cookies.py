"""Per-domain cookie store.

Cookies are partitioned by lower-cased domain and unique by name within a
domain: rewriting a cookie replaces its value and refreshes its timestamp
while keeping its original position. Entries older than the maximum age are
invisible to readers and removed by ``prune()``.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Iterable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE_SECONDS = 30 * 24 * 3600.0

# Attribute names that appear inside Set-Cookie strings but are not cookies
_ATTRIBUTE_NAMES = frozenset(
    {"path", "expires", "domain", "max-age", "samesite", "secure", "httponly", "priority", "partitioned"}
)

_SPLIT_RE = re.compile(r"[;,]")


@dataclass
class CookieEntry:
    """A single stored cookie."""

    domain: str
    name: str
    value: str
    created_at: float = field(default_factory=time.time)


class CookieStore:
    """In-memory cookie partitions keyed by domain."""

    def __init__(self, max_age_seconds: float = DEFAULT_MAX_AGE_SECONDS) -> None:
        self._max_age_seconds = max_age_seconds
        self._domains: dict[str, dict[str, CookieEntry]] = {}

    @staticmethod
    def _key(domain: str) -> str:
        return domain.strip().lower()

    def set(self, domain: str, name: str, value: str) -> None:
        """Store one cookie, replacing any existing value for the name."""
        partition = self._domains.setdefault(self._key(domain), {})
        now = time.time()
        entry = partition.get(name)
        if entry is None:
            partition[name] = CookieEntry(domain=self._key(domain), name=name, value=value, created_at=now)
        else:
            entry.value = value
            entry.created_at = now

    def record(self, domain: str, raw: str) -> int:
        """Parse a ``name=value`` list separated by commas or semicolons.

        Cookie attribute names (Path, Expires, ...) and fragments without
        ``=`` are ignored. Returns the number of cookies stored.
        """
        stored = 0
        for fragment in _SPLIT_RE.split(raw or ""):
            name, sep, value = fragment.partition("=")
            name = name.strip()
            if not sep or not name or name.lower() in _ATTRIBUTE_NAMES:
                continue
            self.set(domain, name, value.strip())
            stored += 1
        return stored

    def capture(self, domain: str, set_cookie_values: Iterable[str]) -> int:
        """Record the leading ``name=value`` pair of each Set-Cookie header."""
        stored = 0
        for header in set_cookie_values:
            pair = header.split(";", 1)[0]
            name, sep, value = pair.partition("=")
            name = name.strip()
            if not sep or not name:
                continue
            self.set(domain, name, value.strip())
            stored += 1
        if stored:
            logger.debug("Captured %d cookies for %s", stored, self._key(domain))
        return stored

    def _is_fresh(self, entry: CookieEntry, now: float) -> bool:
        return (now - entry.created_at) < self._max_age_seconds

    def for_domain(self, domain: str) -> list[CookieEntry]:
        """Return non-expired cookies for *domain* in insertion order."""
        now = time.time()
        partition = self._domains.get(self._key(domain), {})
        return [entry for entry in partition.values() if self._is_fresh(entry, now)]

    def header_for(self, domain: str) -> str | None:
        """Render the ``Cookie`` request header for *domain*, or None."""
        entries = self.for_domain(domain)
        if not entries:
            return None
        return "; ".join(f"{entry.name}={entry.value}" for entry in entries)

    def prune(self, max_age_seconds: float | None = None) -> int:
        """Remove entries older than *max_age_seconds*; return how many."""
        max_age = self._max_age_seconds if max_age_seconds is None else max_age_seconds
        now = time.time()
        removed = 0
        for key in list(self._domains):
            partition = self._domains[key]
            for name in [n for n, e in partition.items() if (now - e.created_at) >= max_age]:
                del partition[name]
                removed += 1
            if not partition:
                del self._domains[key]
        if removed:
            logger.info("Pruned %d expired cookies", removed)
        return removed

    def clear(self, domain: str | None = None) -> None:
        """Drop every cookie, or only those of *domain*."""
        if domain is None:
            self._domains.clear()
        else:
            self._domains.pop(self._key(domain), None)

    def domains(self) -> list[str]:
        return list(self._domains)
