"""TTL cache for index documents (listings and core metadata)."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from constants import Constants


@dataclass
class CachedDocument:
    """A cached response body with its expiry."""

    body: bytes
    expires_at: float
    created_at: float = field(default_factory=time.time)

    def is_expired(self) -> bool:
        """Check if this document has expired."""
        return time.time() > self.expires_at


class DocumentCache:
    """In-memory TTL cache of index response bodies.

    Keyed by request URL plus the negotiated content type, since the same
    simple-index URL can serve HTML or JSON.
    """

    def __init__(
        self,
        default_ttl: int = Constants.HTTP_CACHE_TTL_SEC,
        max_entries: int = Constants.HTTP_CACHE_MAX_ENTRIES,
        max_bytes: int = 64 * 1024 * 1024,
    ):
        """Initialize the document cache.

        Args:
            default_ttl: Default time-to-live in seconds.
            max_entries: Entry count above which the oldest tenth is evicted.
            max_bytes: Total body size budget.
        """
        self._default_ttl = default_ttl
        self._max_entries = max_entries
        self._max_bytes = max_bytes
        self._entries: Dict[str, CachedDocument] = {}
        self._current_bytes = 0
        self._last_cleanup = time.time()
        self._cleanup_interval = 30
        self.hits = 0
        self.misses = 0

    @staticmethod
    def make_key(url: str, accept: str = "") -> str:
        """Build the cache key for a URL and Accept header."""
        return f"{url}\naccept={accept}"

    def get(self, key: str) -> Optional[bytes]:
        """Return the cached body for ``key`` or None if missing/expired."""
        self._maybe_cleanup()

        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if entry.is_expired():
            self._remove(key)
            self.misses += 1
            return None
        self.hits += 1
        return entry.body

    def set(self, key: str, body: bytes, ttl: Optional[int] = None) -> None:
        """Cache a body.

        Bodies larger than a tenth of the byte budget are not cached.
        """
        self._maybe_cleanup()

        size = len(body)
        if size > self._max_bytes // 10:
            return

        if key in self._entries:
            self._remove(key)

        while self._current_bytes + size > self._max_bytes and self._entries:
            self._evict_oldest(1)

        effective_ttl = ttl if ttl is not None else self._default_ttl
        self._entries[key] = CachedDocument(body=body, expires_at=time.time() + effective_ttl)
        self._current_bytes += size

        if len(self._entries) > self._max_entries:
            self._evict_oldest(max(1, self._max_entries // 10))

    def clear(self) -> None:
        """Drop every cached document."""
        self._entries.clear()
        self._current_bytes = 0

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        expired = sum(1 for e in self._entries.values() if e.is_expired())
        return {
            "total_entries": len(self._entries),
            "expired_entries": expired,
            "current_bytes": self._current_bytes,
            "hits": self.hits,
            "misses": self.misses,
            "default_ttl": self._default_ttl,
        }

    def _remove(self, key: str) -> None:
        entry = self._entries.pop(key, None)
        if entry is not None:
            self._current_bytes -= len(entry.body)

    def _maybe_cleanup(self) -> None:
        now = time.time()
        if now - self._last_cleanup > self._cleanup_interval:
            for key in [k for k, e in self._entries.items() if e.is_expired()]:
                self._remove(key)
            self._last_cleanup = now

    def _evict_oldest(self, count: int) -> None:
        oldest = sorted(self._entries, key=lambda k: self._entries[k].created_at)
        for key in oldest[:count]:
            self._remove(key)
