"""Short-lived in-memory cache for portfolio-wide aggregates."""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Optional

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    key: Hashable
    value: Any
    inserted_at: float


class TTLCache:
    """
    Cache of computed aggregates, each entry valid for ``ttl_seconds``.

    Entries are keyed globally (not per caller). Staleness within the TTL is
    accepted; ``invalidate`` is the hook for callers that need fresher data
    after a write.
    """

    def __init__(self, ttl_seconds: float = 30.0, clock: Optional[Callable[[], float]] = None):
        self.ttl_seconds = ttl_seconds
        self._clock = clock or time.monotonic
        self._entries: Dict[Hashable, CacheEntry] = {}

    def get(self, key: Hashable) -> Optional[Any]:
        """Return the cached value, or None if absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._is_expired(entry, self._clock()):
            self._entries.pop(key, None)
            return None
        logger.debug(f"Cache hit for {key!r}")
        return entry.value

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.inserted_at >= self.ttl_seconds

    def purge_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""
        now = self._clock()
        expired = [k for k, entry in self._entries.items() if self._is_expired(entry, now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def set(self, key: Hashable, value: Any) -> None:
        # Keys that are never read again (e.g. dated alert keys) are dropped here
        self.purge_expired()
        self._entries[key] = CacheEntry(key=key, value=value, inserted_at=self._clock())

    def get_or_compute(self, key: Hashable, compute: Callable[[], Any]) -> Any:
        cached = self.get(key)
        if cached is not None:
            return cached
        value = compute()
        self.set(key, value)
        return value

    def invalidate(self, key: Optional[Hashable] = None) -> None:
        """Drop one key, or every entry when no key is given."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)
