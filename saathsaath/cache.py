# saath-saath/saathsaath/cache.py
"""
Expiring key-value cache.

Entries carry their own time-to-live and are expired lazily when read.
The cache is an ordinary object passed to whoever needs it; callers that
want a shared cache keep one instance at module level (see utils.py).
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple


class ExpiringCache:
    """
    A size-bounded map with per-entry TTL.

    Attributes:
        max_size: Maximum number of live entries. When full, the oldest
            10% of entries are evicted (insertion order).
        default_ttl: TTL in seconds used when put() is called without one.
    """

    def __init__(
        self,
        max_size: int = 1000,
        default_ttl: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[Hashable, Tuple[Any, Optional[float]]] = {}

    def put(self, key: Hashable, value: Any, ttl: Optional[float] = None) -> None:
        """
        Store a value.

        Args:
            key: Cache key
            value: Value to store
            ttl: Seconds until the entry expires. None falls back to
                default_ttl; if that is also None the entry never expires.
        """
        if ttl is None:
            ttl = self.default_ttl
        expires_at = self._clock() + ttl if ttl is not None else None

        if key in self._entries:
            del self._entries[key]
        elif self.max_size > 0 and len(self._entries) >= self.max_size:
            self._evict()

        self._entries[key] = (value, expires_at)

    def get(self, key: Hashable, default: Any = None) -> Any:
        """Return the live value for key, or default if missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return default

        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._entries[key]
            return default
        return value

    def __contains__(self, key: Hashable) -> bool:
        sentinel = object()
        return self.get(key, sentinel) is not sentinel

    def __len__(self) -> int:
        return len(self._entries)

    def pop(self, key: Hashable, default: Any = None) -> Any:
        """Remove key and return its live value (or default)."""
        value = self.get(key, default)
        self._entries.pop(key, None)
        return value

    def clear(self) -> int:
        """
        Drop every entry.

        Returns:
            Number of entries that were cleared
        """
        count = len(self._entries)
        self._entries = {}
        return count

    def purge_expired(self) -> int:
        """Remove all expired entries eagerly. Returns the number removed."""
        now = self._clock()
        expired = [
            k for k, (_, expires_at) in self._entries.items()
            if expires_at is not None and now >= expires_at
        ]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def stats(self) -> dict:
        """
        Get statistics about the cache.

        Returns:
            Dictionary with size, max_size and utilization
        """
        return {
            "size": len(self._entries),
            "max_size": self.max_size,
            "utilization": len(self._entries) / self.max_size if self.max_size > 0 else 0,
        }

    def _evict(self) -> None:
        # Expired entries go first, then the oldest 10% by insertion order
        if self.purge_expired():
            return
        keys_to_remove = list(self._entries.keys())[:max(self.max_size // 10, 1)]
        for key in keys_to_remove:
            del self._entries[key]
